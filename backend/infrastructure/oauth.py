"""Brightspace OAuth2 authorization-code flow with refresh."""
from __future__ import annotations

import asyncio
import base64
import json
import logging
import secrets
from datetime import datetime
from typing import Any, Iterable
from urllib.parse import urlencode

import httpx

from backend.core.config import DEFAULT_AUTH_URL, DEFAULT_REDIRECT_URI, DEFAULT_SCOPES, DEFAULT_TOKEN_URL, Settings
from backend.core.errors import AuthError, ConfigurationError, NotAuthenticated
from backend.domain import TokenState

logger = logging.getLogger(__name__)


class OAuthSession:
    """Token state for one Brightspace user plus the lock guarding refresh.

    Every gateway call takes the session explicitly; nothing about the
    current user lives in module globals.
    """

    def __init__(self, token: TokenState | None = None) -> None:
        self.token = token
        self.lock = asyncio.Lock()
        self._issued_states: set[str] = set()
        self.refresh_count = 0

    @property
    def has_token(self) -> bool:
        return self.token is not None and bool(self.token.access_token)

    def is_authenticated(self, now: datetime | None = None) -> bool:
        return self.token is not None and self.token.is_valid(now)

    def remember_state(self, state: str) -> None:
        self._issued_states.add(state)

    def consume_state(self, state: str | None) -> bool:
        """Accept a callback ``state`` once; unknown values are rejected."""

        if not state or state not in self._issued_states:
            return False
        self._issued_states.discard(state)
        return True

    def clear(self) -> None:
        self.token = None
        self._issued_states.clear()


class BrightspaceOAuth:
    """Builds authorization URLs and talks to the Brightspace token endpoint."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        auth_url: str = DEFAULT_AUTH_URL,
        token_url: str = DEFAULT_TOKEN_URL,
        redirect_uri: str = DEFAULT_REDIRECT_URI,
        scopes: Iterable[str] = DEFAULT_SCOPES,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._auth_url = auth_url
        self._token_url = token_url
        self._redirect_uri = redirect_uri
        self._scopes = tuple(scopes)
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings: Settings, *, http_client: httpx.AsyncClient | None = None) -> "BrightspaceOAuth":
        return cls(
            settings.client_id,
            settings.client_secret,
            auth_url=settings.auth_url,
            token_url=settings.token_url,
            redirect_uri=settings.redirect_uri,
            scopes=settings.scopes,
            http_client=http_client,
        )

    @property
    def configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    @property
    def scopes(self) -> tuple[str, ...]:
        return self._scopes

    # ------------------------------------------------------------------
    # authorization
    # ------------------------------------------------------------------
    @staticmethod
    def generate_state() -> str:
        return secrets.token_urlsafe(24)

    def build_authorization_url(self, scopes: Iterable[str] | None = None, state: str | None = None) -> str:
        if not self._client_id:
            raise ConfigurationError("BRIGHTSPACE_CLIENT_ID is not configured")
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "scope": " ".join(scopes if scopes is not None else self._scopes),
        }
        if state is not None:
            params["state"] = state
        return f"{self._auth_url}?{urlencode(params)}"

    def begin_authorization(self, session: OAuthSession) -> str:
        """Issue a fresh ``state`` on the session and return the URL to visit."""

        state = self.generate_state()
        url = self.build_authorization_url(state=state)
        session.remember_state(state)
        return url

    # ------------------------------------------------------------------
    # token endpoint
    # ------------------------------------------------------------------
    async def _request_token(self, form: dict[str, str]) -> dict[str, Any]:
        grant = form.get("grant_type")
        try:
            response = await self._client.post(
                self._token_url,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.error("Token request (%s) failed: %s", grant, exc)
            raise AuthError(f"Token endpoint unreachable: {exc}") from exc

        if response.is_error:
            body = _response_body(response)
            logger.warning("Token endpoint refused %s grant: %s %s", grant, response.status_code, body)
            raise AuthError(
                f"Token request failed with status {response.status_code}",
                status=response.status_code,
                body=body,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Token endpoint returned invalid JSON", status=response.status_code) from exc
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthError("Token endpoint response has no access_token", status=response.status_code, body=payload)
        return payload

    async def exchange_code(self, session: OAuthSession, code: str) -> TokenState:
        if not code:
            raise AuthError("Missing authorization code")
        payload = await self._request_token(
            {
                "grant_type": "authorization_code",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "redirect_uri": self._redirect_uri,
                "code": code,
            }
        )
        session.token = TokenState.from_token_response(payload)
        logger.info("Brightspace authorization code exchanged; token expires at %s", session.token.expires_at)
        return session.token

    async def _refresh_locked(self, session: OAuthSession) -> TokenState:
        token = session.token
        if token is None or not token.refresh_token:
            raise NotAuthenticated("No refresh token available; re-authorize with Brightspace")
        payload = await self._request_token(
            {
                "grant_type": "refresh_token",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": token.refresh_token,
            }
        )
        session.token = TokenState.from_token_response(payload, previous_refresh_token=token.refresh_token)
        session.refresh_count += 1
        logger.info("Brightspace access token refreshed")
        return session.token

    async def refresh(self, session: OAuthSession) -> TokenState:
        async with session.lock:
            return await self._refresh_locked(session)

    async def ensure_valid_token(self, session: OAuthSession) -> str:
        """Return a usable access token, refreshing it at most once.

        Concurrent callers that find the token expired queue on the session
        lock; whoever gets it first refreshes and the rest reuse the result.
        """

        token = session.token
        if token is None:
            raise NotAuthenticated("Not authenticated with Brightspace")
        if token.is_valid():
            return token.access_token

        async with session.lock:
            token = session.token
            if token is not None and token.is_valid():
                return token.access_token
            refreshed = await self._refresh_locked(session)
            return refreshed.access_token

    # ------------------------------------------------------------------
    # introspection
    # ------------------------------------------------------------------
    @staticmethod
    def token_scopes(session: OAuthSession) -> list[str]:
        """Scopes granted to the current token, read from the JWT payload.

        The signature is not verified; this is informational only.
        """

        token = session.token
        if token is None:
            return []
        if token.scope:
            return token.scope.split()
        parts = token.access_token.split(".")
        if len(parts) != 3:
            return []
        segment = parts[1] + "=" * (-len(parts[1]) % 4)
        try:
            claims = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
        except (ValueError, UnicodeError):
            return []
        scope = claims.get("scope") if isinstance(claims, dict) else None
        if isinstance(scope, list):
            return [str(item) for item in scope]
        if isinstance(scope, str):
            return scope.split()
        return []

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None
