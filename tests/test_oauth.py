from __future__ import annotations

import asyncio
import base64
import json
from datetime import timedelta
from pathlib import Path
import sys
from urllib.parse import parse_qs, urlparse

sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx
import pytest

from backend.core.errors import AuthError, ConfigurationError, NotAuthenticated
from backend.domain import TokenState, utcnow
from backend.infrastructure.oauth import BrightspaceOAuth, OAuthSession

TOKEN_URL = "https://auth.example.test/core/connect/token"


def _oauth(handler, **kwargs) -> BrightspaceOAuth:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BrightspaceOAuth(
        "client-id",
        "client-secret",
        auth_url="https://auth.example.test/oauth2/auth",
        token_url=TOKEN_URL,
        redirect_uri="https://localhost:3001/auth/brightspace/callback",
        scopes=("core:*:*", "content:modules:manage"),
        http_client=http_client,
        **kwargs,
    )


def _jwt(claims: dict) -> str:
    def segment(data: dict) -> str:
        raw = base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).decode("ascii")
        return raw.rstrip("=")

    return f"{segment({'alg': 'none'})}.{segment(claims)}.signature"


def test_authorization_url_round_trips_state():
    oauth = _oauth(lambda request: httpx.Response(500))
    state = "a b/c+d=e&f"

    url = oauth.build_authorization_url(state=state)

    query = parse_qs(urlparse(url).query)
    assert url.startswith("https://auth.example.test/oauth2/auth?")
    assert query["state"] == [state]
    assert query["response_type"] == ["code"]
    assert query["client_id"] == ["client-id"]
    assert query["scope"] == ["core:*:* content:modules:manage"]
    assert query["redirect_uri"] == ["https://localhost:3001/auth/brightspace/callback"]


def test_authorization_url_requires_client_id():
    oauth = BrightspaceOAuth("", "", http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))))
    with pytest.raises(ConfigurationError):
        oauth.build_authorization_url(state="x")


def test_begin_authorization_records_single_use_state():
    oauth = _oauth(lambda request: httpx.Response(500))
    session = OAuthSession()

    url = oauth.begin_authorization(session)
    state = parse_qs(urlparse(url).query)["state"][0]

    assert session.consume_state("forged") is False
    assert session.consume_state(state) is True
    assert session.consume_state(state) is False


def test_session_authentication_follows_token_lifecycle():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["form"] = parse_qs(request.content.decode("utf-8"))
        return httpx.Response(
            200,
            json={"access_token": "access-1", "refresh_token": "refresh-1", "expires_in": 3600},
        )

    oauth = _oauth(handler)
    session = OAuthSession()
    assert session.is_authenticated() is False

    token = asyncio.run(oauth.exchange_code(session, "auth-code"))

    assert session.is_authenticated() is True
    assert token.refresh_token == "refresh-1"
    assert session.is_authenticated(now=token.expires_at) is False
    assert session.is_authenticated(now=token.expires_at + timedelta(seconds=1)) is False
    form = captured["form"]
    assert form["grant_type"] == ["authorization_code"]
    assert form["code"] == ["auth-code"]
    assert form["client_secret"] == ["client-secret"]


def test_exchange_code_failure_raises_auth_error():
    oauth = _oauth(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    session = OAuthSession()

    with pytest.raises(AuthError) as excinfo:
        asyncio.run(oauth.exchange_code(session, "bad-code"))

    assert excinfo.value.status == 400
    assert excinfo.value.body == {"error": "invalid_grant"}
    assert session.token is None


def test_refresh_keeps_previous_refresh_token_when_omitted():
    def handler(request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode("utf-8"))
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["refresh-1"]
        return httpx.Response(200, json={"access_token": "access-2", "expires_in": 3600})

    oauth = _oauth(handler)
    session = OAuthSession(TokenState("access-1", utcnow() - timedelta(seconds=5), "refresh-1"))

    token = asyncio.run(oauth.refresh(session))

    assert token.access_token == "access-2"
    assert token.refresh_token == "refresh-1"
    assert session.is_authenticated()


def test_ensure_valid_token_refreshes_once_for_concurrent_callers():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})

    oauth = _oauth(handler)
    session = OAuthSession(TokenState("stale", utcnow() - timedelta(minutes=1), "refresh-1"))

    async def run() -> list[str]:
        return await asyncio.gather(*(oauth.ensure_valid_token(session) for _ in range(5)))

    tokens = asyncio.run(run())

    assert tokens == ["fresh"] * 5
    assert len(calls) == 1
    assert session.refresh_count == 1


def test_ensure_valid_token_without_refresh_token_requires_login():
    oauth = _oauth(lambda request: httpx.Response(500))

    with pytest.raises(NotAuthenticated):
        asyncio.run(oauth.ensure_valid_token(OAuthSession()))

    expired = OAuthSession(TokenState("stale", utcnow() - timedelta(minutes=1)))
    with pytest.raises(NotAuthenticated):
        asyncio.run(oauth.ensure_valid_token(expired))


def test_token_scopes_decoded_from_jwt_payload():
    session = OAuthSession(
        TokenState(_jwt({"scope": "content:modules:manage news:newsitems:manage"}), utcnow() + timedelta(hours=1))
    )

    assert BrightspaceOAuth.token_scopes(session) == ["content:modules:manage", "news:newsitems:manage"]
    assert BrightspaceOAuth.token_scopes(OAuthSession()) == []
    opaque = OAuthSession(TokenState("not-a-jwt", utcnow() + timedelta(hours=1)))
    assert BrightspaceOAuth.token_scopes(opaque) == []
