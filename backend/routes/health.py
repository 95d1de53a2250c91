from __future__ import annotations

from fastapi import APIRouter

from backend.application import get_services

from .responses import ok

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    services = get_services()
    report = await services.content.health(services.session)
    return ok(report, status=report["status"])
