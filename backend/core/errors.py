"""Error taxonomy shared by the gateways, the orchestration layer and the API."""
from __future__ import annotations

from enum import Enum
from typing import Any


class BridgeError(RuntimeError):
    """Base class for every error raised on purpose by this service."""

    status_code: int = 500

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "error": str(self)}


class ConfigurationError(BridgeError):
    """Raised when a required setting (OAuth client, API root) is missing."""

    status_code = 503


class InvalidRequestError(BridgeError, ValueError):
    """Raised when a request fails validation before any upstream call."""

    status_code = 400


class NotAuthenticated(BridgeError):
    """No usable access token and no refresh token; restart the OAuth flow."""

    status_code = 401


class AuthError(BridgeError):
    """The token endpoint refused an authorization code or refresh token."""

    status_code = 401

    def __init__(self, message: str, *, status: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["status"] = self.status
        return payload


class UpstreamError(BridgeError):
    """An upstream API answered with an error or could not be reached."""

    status_code = 502

    def __init__(self, message: str, *, status: int | None = None, body: Any = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
        self.url = url

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["status"] = self.status
        payload["details"] = self.body
        return payload


class UploadError(UpstreamError):
    """One step of a multi-step upload sequence failed."""

    def __init__(
        self,
        message: str,
        *,
        step: str,
        status: int | None = None,
        body: Any = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message, status=status, body=body, url=url)
        self.step = step

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["step"] = self.step
        return payload


class ProcessingIncomplete(BridgeError):
    """The analysis retry heuristic gave up without a usable answer."""

    def __init__(self, attempts: int, last_content: str | None = None) -> None:
        super().__init__(f"AI analysis still incomplete after {attempts} attempt(s)")
        self.attempts = attempts
        self.last_content = last_content


class LMSOutcome(str, Enum):
    """Classification of LMS responses that are returned instead of raised."""

    OK = "ok"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"


__all__ = [
    "AuthError",
    "BridgeError",
    "ConfigurationError",
    "InvalidRequestError",
    "LMSOutcome",
    "NotAuthenticated",
    "ProcessingIncomplete",
    "UploadError",
    "UpstreamError",
]
