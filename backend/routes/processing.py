"""AI processing, generation and publishing endpoints."""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse

from backend.application import ServiceContainer, get_services
from backend.core.config import MAX_FILE_SIZE_BYTES, MAX_FILES_PER_REQUEST
from backend.core.errors import BridgeError, InvalidRequestError, NotAuthenticated
from backend.core.schema import AnalysisResult, ProcessingOptions, PublishRequest, SyllabusEntities
from backend.domain import UploadedFile

from .responses import ok

logger = logging.getLogger(__name__)

router = APIRouter(tags=["processing"])

PROCESSING_TYPES = {"educational_content", "syllabus_extraction"}


def _parse_context(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise InvalidRequestError("courseContext must be a JSON object") from exc
    if not isinstance(value, dict):
        raise InvalidRequestError("courseContext must be a JSON object")
    return value


async def _course_context(services: ServiceContainer, course_id: str, context: dict[str, Any]) -> dict[str, Any]:
    """Merge the Brightspace course record into the context; failures only warn."""

    try:
        result = await services.lms.get_course(services.session, course_id)
    except BridgeError as exc:
        logger.warning("Could not fetch course %s for context: %s", course_id, exc)
        return context
    if not result.ok or not isinstance(result.data, dict):
        logger.warning("Course %s unavailable for context (%s)", course_id, result.outcome.value)
        return context
    return {**result.data, **context}


@router.post("/process-files")
async def process_files(
    files: list[UploadFile] | None = File(None),
    processing_type: str = Form("educational_content", alias="processingType"),
    course_id: str | None = Form(None, alias="courseId"),
    course_context: str | None = Form(None, alias="courseContext"),
    generate_content: bool = Form(False, alias="generateContent"),
    include_quiz: bool = Form(False, alias="includeQuiz"),
    include_assignment: bool = Form(False, alias="includeAssignment"),
):
    if processing_type not in PROCESSING_TYPES:
        raise InvalidRequestError(f"Unknown processingType {processing_type!r}")
    uploads = files or []
    if not uploads:
        raise InvalidRequestError("No files provided")
    if len(uploads) > MAX_FILES_PER_REQUEST:
        raise InvalidRequestError(f"Too many files: at most {MAX_FILES_PER_REQUEST} per request")
    for upload in uploads:
        if upload.size is not None and upload.size > MAX_FILE_SIZE_BYTES:
            raise InvalidRequestError(
                f"{upload.filename} exceeds the {MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB limit"
            )

    services = get_services()
    context = _parse_context(course_context)
    if course_id:
        context = {**(context or {}), "course_id": course_id}
        if services.session.is_authenticated():
            context = await _course_context(services, course_id, context)

    received: list[UploadedFile] = []
    for upload in uploads:
        received.append(
            UploadedFile(
                name=upload.filename or "upload",
                mime_type=upload.content_type,
                content=await upload.read(),
            )
        )

    options = ProcessingOptions(processing_type=processing_type)  # type: ignore[arg-type]
    result = await services.content.process_files(received, options, course_context=context)
    if result.success and generate_content and processing_type == "educational_content":
        result.educational_content = await services.content.generate_educational_content(
            result,
            include_quiz=include_quiz,
            include_assignment=include_assignment,
        )
    body = {"success": result.success, "data": result.model_dump(mode="json"), "error": result.error}
    if not result.success:
        return JSONResponse(status_code=502, content=body)
    return body


@router.post("/publish-to-brightspace")
async def publish_to_brightspace(payload: PublishRequest):
    services = get_services()
    if not services.session.has_token:
        raise NotAuthenticated("Not authenticated with Brightspace")
    if not payload.analysis:
        raise InvalidRequestError("Analysis results are required")
    analysis = AnalysisResult.model_validate(payload.analysis)
    result = await services.content.publish(
        services.session,
        payload.course_id,
        analysis,
        announce=payload.announce,
    )
    body = {"success": result.success, "data": result.model_dump(mode="json")}
    if not result.success and not result.partial:
        body["error"] = result.summary
        return JSONResponse(status_code=502, content=body)
    return body


@router.post("/generate-course")
async def generate_course(payload: dict) -> dict:
    raw = payload.get("syllabus_entities") or payload.get("entities") or payload
    if not isinstance(raw, dict):
        raise InvalidRequestError("Syllabus entities must be an object")
    entities = SyllabusEntities.model_validate(raw)
    services = get_services()
    plan = await services.content.generate_course_from_syllabus(entities)
    return ok(plan)
