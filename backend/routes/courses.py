from __future__ import annotations

from fastapi import APIRouter

from backend.application import get_services
from backend.infrastructure import project_courses

from .responses import lms_response, ok

router = APIRouter(prefix="/courses", tags=["courses"])


@router.get("")
async def list_courses():
    services = get_services()
    result = await services.lms.get_courses(services.session)
    if not result.ok:
        return lms_response(result, "Courses unavailable")
    courses = [course.model_dump() for course in project_courses(result.data)]
    return ok(courses, total=len(courses))


@router.get("/{course_id}")
async def get_course(course_id: str):
    services = get_services()
    result = await services.lms.get_course(services.session, course_id)
    return lms_response(result, "Course retrieved")


@router.get("/{course_id}/content")
async def get_course_content(course_id: str):
    services = get_services()
    result = await services.lms.get_course_content(services.session, course_id)
    return lms_response(result, "Course content retrieved")


@router.get("/{course_id}/news")
async def list_course_news(course_id: str):
    services = get_services()
    result = await services.lms.list_news(services.session, course_id)
    return lms_response(result, "News items retrieved")
