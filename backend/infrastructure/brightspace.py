"""Gateway for the Brightspace (D2L) Learning Platform and Learning Environment APIs."""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from backend.core.config import LMS_TIMEOUT_SECONDS, TRANSFER_TIMEOUT_SECONDS, Settings
from backend.core.errors import ConfigurationError, LMSOutcome, UploadError, UpstreamError
from backend.core.schema import CourseRef

from .oauth import BrightspaceOAuth, OAuthSession

logger = logging.getLogger(__name__)

MULTIPART_NEWLINE = "\r\n"


@dataclass(slots=True)
class LMSResult:
    """Response of an LMS call that did not raise.

    Permission and not-found answers come back here, classified by
    ``outcome``, so callers can report them per operation.
    """

    status: int
    data: Any = None
    outcome: LMSOutcome = LMSOutcome.OK

    @property
    def ok(self) -> bool:
        return self.outcome is LMSOutcome.OK

    def as_dict(self) -> dict[str, Any]:
        return {"status": self.status, "outcome": self.outcome.value, "data": self.data}


def news_boundary() -> str:
    return f"----formdata-brightspace-{int(time.time() * 1000)}"


def build_news_multipart(payload: Mapping[str, Any], boundary: str) -> bytes:
    """Encode a news item the way the Brightspace news endpoint expects.

    A single ``application/json`` part with compact JSON, CRLF line breaks
    and no trailing newline after the closing delimiter.
    """

    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    lines = [
        f"--{boundary}",
        "Content-Type: application/json",
        "",
        body,
        f"--{boundary}--",
    ]
    return MULTIPART_NEWLINE.join(lines).encode("utf-8")


def project_courses(enrollments: Any) -> list[CourseRef]:
    """Map a ``myenrollments`` page onto ``CourseRef`` entries."""

    items = enrollments.get("Items") if isinstance(enrollments, Mapping) else enrollments
    courses: list[CourseRef] = []
    for item in items or []:
        org_unit = item.get("OrgUnit") if isinstance(item, Mapping) else None
        if not isinstance(org_unit, Mapping) or org_unit.get("Id") is None:
            continue
        courses.append(
            CourseRef(
                id=org_unit["Id"],
                name=str(org_unit.get("Name") or ""),
                code=org_unit.get("Code"),
            )
        )
    return courses


def _with_defaults(data: Mapping[str, Any], defaults: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(defaults)
    merged.update({key: value for key, value in data.items() if value is not None})
    return merged


def _empty_rich_text() -> dict[str, str]:
    return {"Text": "", "Html": ""}


def _response_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class BrightspaceClient:
    """Authenticated calls against one Brightspace tenant.

    Every public method takes the caller's :class:`OAuthSession`; the access
    token is obtained (and refreshed if needed) per call.
    """

    def __init__(
        self,
        api_base_url: str,
        oauth: BrightspaceOAuth,
        *,
        lp_version: str = "1.0",
        le_version: str = "1.0",
        timeout: float = LMS_TIMEOUT_SECONDS,
        transfer_timeout: float = TRANSFER_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = api_base_url.rstrip("/")
        self._oauth = oauth
        self._lp = f"/lp/{lp_version}"
        self._le = f"/le/{le_version}"
        self._transfer_timeout = transfer_timeout
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        oauth: BrightspaceOAuth,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> "BrightspaceClient":
        return cls(
            settings.api_base_url,
            oauth,
            lp_version=settings.lp_version,
            le_version=settings.le_version,
            http_client=http_client,
        )

    @property
    def configured(self) -> bool:
        return bool(self._base_url)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _url(self, path: str) -> str:
        if not self._base_url:
            raise ConfigurationError("BRIGHTSPACE_API_BASE_URL is not configured")
        return f"{self._base_url}{path}"

    async def _headers(self, session: OAuthSession, content_type: str | None = "application/json") -> dict[str, str]:
        token = await self._oauth.ensure_valid_token(session)
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    @staticmethod
    def _classify(response: httpx.Response, method: str, url: str) -> LMSResult:
        body = _response_body(response)
        status = response.status_code
        if status in (401, 403):
            logger.warning("Brightspace denied %s %s: %s %s", method, url, status, body)
            return LMSResult(status, body, LMSOutcome.PERMISSION_DENIED)
        if status == 404:
            logger.warning("Brightspace resource not found: %s %s", method, url)
            return LMSResult(status, body, LMSOutcome.NOT_FOUND)
        if response.is_error:
            logger.error("Brightspace API error [%s %s]: %s %s", method, url, status, body)
            raise UpstreamError(f"Brightspace returned status {status}", status=status, body=body, url=url)
        return LMSResult(status, body)

    async def _request(
        self,
        session: OAuthSession,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        content: bytes | None = None,
        content_type: str | None = "application/json",
    ) -> LMSResult:
        url = self._url(path)
        headers = await self._headers(session, content_type if (json_body is not None or content) else None)
        try:
            if content is not None:
                response = await self._client.request(method, url, content=content, headers=headers)
            else:
                response = await self._client.request(method, url, json=json_body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Brightspace request failed [%s %s]: %s", method, url, exc)
            raise UpstreamError(f"Brightspace request failed: {exc}", url=url) from exc
        return self._classify(response, method, url)

    # ------------------------------------------------------------------
    # learning platform
    # ------------------------------------------------------------------
    async def get_current_user(self, session: OAuthSession) -> LMSResult:
        return await self._request(session, "GET", f"{self._lp}/users/whoami")

    async def get_courses(self, session: OAuthSession) -> LMSResult:
        return await self._request(session, "GET", f"{self._lp}/enrollments/myenrollments/")

    async def get_course(self, session: OAuthSession, course_id: int | str) -> LMSResult:
        return await self._request(session, "GET", f"{self._lp}/courses/{course_id}")

    # ------------------------------------------------------------------
    # learning environment
    # ------------------------------------------------------------------
    async def get_course_content(self, session: OAuthSession, course_id: int | str) -> LMSResult:
        return await self._request(session, "GET", f"{self._le}/{course_id}/content/")

    async def list_news(self, session: OAuthSession, course_id: int | str) -> LMSResult:
        return await self._request(session, "GET", f"{self._le}/{course_id}/news/")

    async def create_announcement(
        self,
        session: OAuthSession,
        course_id: int | str,
        news: Mapping[str, Any],
        *,
        boundary: str | None = None,
    ) -> LMSResult:
        boundary = boundary or news_boundary()
        body = build_news_multipart(news, boundary)
        return await self._request(
            session,
            "POST",
            f"{self._le}/{course_id}/news/",
            content=body,
            content_type=f"multipart/mixed; boundary={boundary}",
        )

    async def create_content_module(
        self, session: OAuthSession, course_id: int | str, module: Mapping[str, Any]
    ) -> LMSResult:
        payload = _with_defaults(
            module,
            {"Description": _empty_rich_text(), "IsHidden": False, "IsLocked": False},
        )
        return await self._request(session, "POST", f"{self._le}/{course_id}/content/modules/", json_body=payload)

    async def create_discussion_forum(
        self, session: OAuthSession, course_id: int | str, forum: Mapping[str, Any]
    ) -> LMSResult:
        payload = _with_defaults(
            forum,
            {"AllowAnonymous": False, "IsLocked": False, "IsHidden": False},
        )
        # Always sent as-is, whatever the caller passed.
        payload["RequiresApproval"] = False
        payload["IsActive"] = True
        return await self._request(
            session, "POST", f"{self._le}/{course_id}/discussions/forums/", json_body=payload
        )

    async def create_discussion_topic(
        self,
        session: OAuthSession,
        course_id: int | str,
        forum_id: int | str,
        topic: Mapping[str, Any],
    ) -> LMSResult:
        return await self._request(
            session,
            "POST",
            f"{self._le}/{course_id}/discussions/forums/{forum_id}/topics/",
            json_body=dict(topic),
        )

    async def create_survey(
        self, session: OAuthSession, course_id: int | str, survey: Mapping[str, Any]
    ) -> LMSResult:
        payload = _with_defaults(
            survey,
            {
                "Description": _empty_rich_text(),
                "Instructions": _empty_rich_text(),
                "IsActive": True,
                "SortOrder": 0,
                "IsAnonymous": False,
                "IsHidden": False,
                "ShowResults": False,
            },
        )
        return await self._request(session, "POST", f"{self._le}/{course_id}/surveys/", json_body=payload)

    async def create_quiz(self, session: OAuthSession, course_id: int | str, quiz: Mapping[str, Any]) -> LMSResult:
        payload = _with_defaults(
            quiz,
            {
                "Description": _empty_rich_text(),
                "Instructions": _empty_rich_text(),
                "IsActive": True,
                "SortOrder": 0,
                "AutoSetGraded": False,
                "GradeOutOf": 0,
                "IsRetakeCorrectOnly": False,
                "RetakeIncorrectOnly": False,
                "HasTimeLimit": False,
                "TimeLimitValue": 0,
                "IsShuffleQuestions": False,
                "IsShuffleAnswers": False,
                "HasAttemptsLimit": False,
                "AttemptsAllowed": 0,
            },
        )
        return await self._request(session, "POST", f"{self._le}/{course_id}/quizzes/", json_body=payload)

    # ------------------------------------------------------------------
    # file upload
    # ------------------------------------------------------------------
    async def upload_file(
        self,
        session: OAuthSession,
        course_id: int | str,
        content: bytes,
        file_name: str,
        content_type: str | None = None,
    ) -> LMSResult:
        """Three-step upload: request a location, PUT the bytes, finalize.

        Any failing step raises :class:`UploadError` naming the step.
        """

        endpoint_path = f"{self._le}/{course_id}/managefiles/upload/"

        try:
            location = await self._request(
                session,
                "POST",
                endpoint_path,
                json_body={"FileName": file_name, "FileSize": len(content)},
            )
        except UpstreamError as exc:
            raise UploadError(str(exc), step="request_location", status=exc.status, body=exc.body, url=exc.url) from exc
        if not location.ok:
            raise UploadError(
                "Brightspace refused the upload location request",
                step="request_location",
                status=location.status,
                body=location.data,
            )

        data = location.data if isinstance(location.data, Mapping) else {}
        upload_url = data.get("UploadUrl") or data.get("uploadUrl")
        file_id = data.get("FileId") or data.get("fileId") or data.get("Id")
        if not upload_url or file_id is None:
            raise UploadError("Upload location response is incomplete", step="request_location", body=data)

        try:
            put_response = await self._client.put(
                upload_url,
                content=content,
                headers={"Content-Type": content_type or "application/octet-stream"},
                timeout=self._transfer_timeout,
            )
        except httpx.HTTPError as exc:
            raise UploadError(f"File transfer failed: {exc}", step="transfer", url=upload_url) from exc
        if put_response.is_error:
            raise UploadError(
                f"File transfer failed with status {put_response.status_code}",
                step="transfer",
                status=put_response.status_code,
                body=_response_body(put_response),
                url=upload_url,
            )

        finalize_path = endpoint_path.replace("/upload/", f"/{file_id}/finalize/")
        try:
            finalized = await self._request(session, "POST", finalize_path)
        except UpstreamError as exc:
            raise UploadError(str(exc), step="finalize", status=exc.status, body=exc.body, url=exc.url) from exc
        if not finalized.ok:
            raise UploadError(
                "Brightspace refused to finalize the upload",
                step="finalize",
                status=finalized.status,
                body=finalized.data,
            )
        logger.info("Uploaded %s to course %s as file %s", file_name, course_id, file_id)
        return finalized

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
