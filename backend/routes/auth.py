from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Query
from fastapi.responses import RedirectResponse

from backend.application import get_services
from backend.core.errors import AuthError

logger = logging.getLogger(__name__)

# Browser-facing endpoints live outside the /api prefix.
router = APIRouter(tags=["auth"])
api_router = APIRouter(tags=["auth"])


def _frontend_redirect(frontend_url: str, outcome: str, reason: str | None = None) -> RedirectResponse:
    params = {"auth": outcome}
    if reason:
        params["reason"] = reason
    return RedirectResponse(f"{frontend_url}?{urlencode(params)}", status_code=302)


@router.get("/auth")
async def start_authorization() -> RedirectResponse:
    services = get_services()
    url = services.oauth.begin_authorization(services.session)
    return RedirectResponse(url, status_code=302)


@router.get("/auth/brightspace/callback")
async def authorization_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
) -> RedirectResponse:
    services = get_services()
    frontend_url = services.settings.frontend_url
    if error:
        logger.warning("Brightspace authorization returned error: %s", error)
        return _frontend_redirect(frontend_url, "error", error)
    if not code:
        return _frontend_redirect(frontend_url, "error", "missing_code")
    if not services.session.consume_state(state):
        logger.warning("Rejected OAuth callback with unknown state")
        return _frontend_redirect(frontend_url, "error", "invalid_state")
    try:
        await services.oauth.exchange_code(services.session, code)
    except AuthError as exc:
        logger.error("Authorization code exchange failed: %s", exc)
        return _frontend_redirect(frontend_url, "error", "token_exchange_failed")
    return _frontend_redirect(frontend_url, "success")


@api_router.get("/auth-url")
async def authorization_url() -> dict:
    services = get_services()
    url = services.oauth.begin_authorization(services.session)
    return {"success": True, "data": {"authUrl": url}}


@api_router.get("/auth-status")
async def authorization_status() -> dict:
    services = get_services()
    session = services.session
    token = session.token
    return {
        "success": True,
        "data": {
            "authenticated": session.is_authenticated(),
            "configured": services.oauth.configured,
            "expires_at": token.expires_at.isoformat() if token else None,
            "can_refresh": bool(token and token.refresh_token),
            "scopes": services.oauth.token_scopes(session),
        },
    }


@api_router.post("/logout")
async def logout() -> dict:
    services = get_services()
    services.session.clear()
    return {"success": True, "data": {"authenticated": False}}
