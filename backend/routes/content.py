"""Direct Brightspace content creation endpoints."""
from __future__ import annotations

from fastapi import APIRouter, File, Form, UploadFile

from backend.application import get_services
from backend.application.content import announcement_payload, forum_payload, survey_payload
from backend.core.errors import InvalidRequestError
from backend.core.schema import ContentRequest

from .responses import lms_response

router = APIRouter(tags=["content"])


@router.post("/create-announcement")
async def create_announcement(payload: ContentRequest):
    services = get_services()
    news = announcement_payload(payload.title, payload.text, payload.html)
    result = await services.lms.create_announcement(services.session, payload.course_id, news)
    return lms_response(result, "Announcement created successfully")


@router.post("/create-discussion")
async def create_discussion(payload: ContentRequest):
    services = get_services()
    forum = forum_payload(payload.title, payload.text, payload.html)
    result = await services.lms.create_discussion_forum(services.session, payload.course_id, forum)
    return lms_response(result, "Discussion forum created successfully")


@router.post("/create-survey")
async def create_survey(payload: ContentRequest):
    services = get_services()
    survey = survey_payload(payload.title, payload.text, payload.html)
    result = await services.lms.create_survey(services.session, payload.course_id, survey)
    return lms_response(result, "Survey created successfully")


@router.post("/upload-file-to-brightspace")
async def upload_file_to_brightspace(
    file: UploadFile | None = File(None),
    course_id: str | None = Form(None, alias="courseId"),
):
    if file is None:
        raise InvalidRequestError("No file provided")
    if not course_id:
        raise InvalidRequestError("Course ID required")
    services = get_services()
    content = await file.read()
    result = await services.lms.upload_file(
        services.session,
        course_id,
        content,
        file.filename or "upload",
        file.content_type,
    )
    return lms_response(result, "File uploaded successfully")
