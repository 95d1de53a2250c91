"""JSON envelope helpers shared by the routers."""
from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

from backend.core.errors import LMSOutcome
from backend.infrastructure import LMSResult

_OUTCOME_STATUS = {
    LMSOutcome.PERMISSION_DENIED: 403,
    LMSOutcome.NOT_FOUND: 404,
}
_OUTCOME_MESSAGE = {
    LMSOutcome.PERMISSION_DENIED: "Permission denied by Brightspace",
    LMSOutcome.NOT_FOUND: "Resource not found in Brightspace",
}


def ok(data: Any = None, **extra: Any) -> dict[str, Any]:
    return {"success": True, "data": data, **extra}


def lms_response(result: LMSResult, message: str) -> dict[str, Any] | JSONResponse:
    """Envelope an LMS result; classified failures keep their status code."""

    if result.ok:
        return ok(result.data, message=message)
    return JSONResponse(
        status_code=_OUTCOME_STATUS[result.outcome],
        content={
            "success": False,
            "error": _OUTCOME_MESSAGE[result.outcome],
            "outcome": result.outcome.value,
            "status": result.status,
            "details": result.data,
        },
    )
