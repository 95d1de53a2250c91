"""OAuth token state held for the lifetime of the process."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TokenState:
    """Bearer token plus what is needed to renew it."""

    access_token: str
    expires_at: datetime
    refresh_token: str | None = None
    scope: str | None = None

    @classmethod
    def from_token_response(
        cls,
        payload: dict[str, Any],
        *,
        now: datetime | None = None,
        previous_refresh_token: str | None = None,
    ) -> "TokenState":
        issued = now or utcnow()
        try:
            expires_in = int(payload.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        return cls(
            access_token=str(payload.get("access_token") or ""),
            expires_at=issued + timedelta(seconds=expires_in),
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            scope=payload.get("scope"),
        )

    def is_valid(self, now: datetime | None = None) -> bool:
        return bool(self.access_token) and (now or utcnow()) < self.expires_at
