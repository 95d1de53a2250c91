"""Orchestration of AI analysis and Brightspace publishing."""
from __future__ import annotations

import asyncio
import html
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

from backend.core import synthetic
from backend.core.config import (
    ALLOWED_MIME_TYPES,
    DEFAULT_MODEL,
    MAX_FILE_SIZE_BYTES,
    MAX_FILES_PER_REQUEST,
    AnalysisPolicy,
)
from backend.core.errors import InvalidRequestError, ProcessingIncomplete, UpstreamError
from backend.core.parsing import (
    extract_assessments,
    extract_modules,
    extract_syllabus_entities,
    has_usable_content,
    is_incomplete_response,
    parse_analysis,
)
from backend.core.prompts import analysis_prompt, course_generation_prompt, educational_content_prompt
from backend.core.schema import (
    AnalysisResult,
    EducationalAnalysis,
    OperationResult,
    ProcessingOptions,
    PublishResult,
    SyllabusEntities,
)
from backend.domain import FileJourney, FileState, UploadedFile, UploadResult
from backend.infrastructure import AIGateway, BrightspaceClient, ChatResult, LMSResult, Mode, OAuthSession

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

FALLBACK_REASON = "ai_analysis_unavailable"
FALLBACK_NOTE = (
    "Files were uploaded successfully but AI analysis is currently unavailable. Please try again later."
)
UPSTREAM_FAILURE = "upstream_error"
_PUBLISHABLE_STATES = frozenset({FileState.ANALYZED.value, FileState.ANALYSIS_FALLBACK.value})


def _now() -> datetime:
    return datetime.now(timezone.utc)


def validate_uploads(files: Sequence[UploadedFile]) -> None:
    """Reject a processing request before anything is sent upstream."""

    if not files:
        raise InvalidRequestError("No files provided")
    if len(files) > MAX_FILES_PER_REQUEST:
        raise InvalidRequestError(f"Too many files: at most {MAX_FILES_PER_REQUEST} per request")
    for item in files:
        if item.size is not None and item.size > MAX_FILE_SIZE_BYTES:
            raise InvalidRequestError(f"{item.name} exceeds the {MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB limit")
        if item.mime_type not in ALLOWED_MIME_TYPES:
            raise InvalidRequestError(f"Unsupported file type {item.mime_type} for {item.name}")


# ----------------------------------------------------------------------
# LMS payloads
# ----------------------------------------------------------------------
def _rich_text(text: str, markup: str | None = None) -> dict[str, str]:
    return {"Text": text, "Html": markup if markup is not None else f"<p>{html.escape(text)}</p>"}


def announcement_payload(
    title: str | None = None,
    text: str | None = None,
    markup: str | None = None,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    issued = now or _now()
    body = text or f"This announcement was created via API test at {issued:%Y-%m-%d %H:%M:%S}"
    return {
        "Title": title or "API Test Announcement",
        "Body": _rich_text(body, markup),
        "StartDate": issued.isoformat(),
        "EndDate": None,
        "IsGlobal": False,
        "IsPublished": True,
        "ShowOnlyInCourseOfferings": False,
        "IsAuthorInfoShown": True,
        "IsPinned": False,
        "IsStartDateShown": True,
    }


def forum_payload(
    title: str | None = None,
    text: str | None = None,
    markup: str | None = None,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    issued = now or _now()
    body = text or f"This discussion forum was created via API test at {issued:%Y-%m-%d %H:%M:%S}"
    return {
        "Name": title or "API Test Discussion Forum",
        "Description": _rich_text(body, markup),
        "AllowAnonymous": False,
        "IsLocked": False,
        "IsHidden": False,
    }


def survey_payload(
    title: str | None = None,
    text: str | None = None,
    markup: str | None = None,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    issued = now or _now()
    body = text or f"This survey was created via API test at {issued:%Y-%m-%d %H:%M:%S}"
    return {
        "Name": title or "API Test Survey",
        "Description": _rich_text(body, markup),
        "Instructions": _rich_text("Please complete this test survey."),
        "IsActive": True,
        "IsAnonymous": False,
        "IsHidden": False,
        "ShowResults": False,
    }


def module_payload(analysis: AnalysisResult) -> dict[str, Any]:
    topic = analysis.topics[0] if analysis.topics else "Learning Content"
    summary = analysis.summary or "Content generated from uploaded materials"
    markup = f"<p>{html.escape(summary)}</p>"
    if analysis.learning_objectives:
        items = "".join(f"<li>{html.escape(item)}</li>" for item in analysis.learning_objectives)
        markup += f"<h3>Learning Objectives</h3><ul>{items}</ul>"
    return {
        "Title": f"AI-Generated Module: {topic}",
        "ShortTitle": topic[:50],
        "Description": {"Text": summary, "Html": markup},
        "IsHidden": False,
        "IsLocked": False,
    }


def _operation(name: str, result: LMSResult) -> OperationResult:
    return OperationResult(
        name=name,
        success=result.ok,
        status=result.status,
        outcome=result.outcome.value,
        data=result.data,
        error=None if result.ok else f"Brightspace answered {result.status} ({result.outcome.value})",
    )


async def _attempt(name: str, call: Awaitable[LMSResult]) -> OperationResult:
    """Run one publishing step; upstream failures become a failed operation."""

    try:
        result = await call
    except UpstreamError as exc:
        logger.warning("Publishing step %s failed: %s", name, exc)
        return OperationResult(
            name=name,
            success=False,
            status=exc.status,
            outcome=UPSTREAM_FAILURE,
            data=exc.body,
            error=str(exc),
        )
    return _operation(name, result)


def _mark_published(entry: dict[str, Any]) -> dict[str, Any]:
    if entry.get("state") in _PUBLISHABLE_STATES:
        return {**entry, "state": FileState.PUBLISHED.value}
    return dict(entry)


class ContentService:
    """Composes the Brightspace and Amplify gateways into user-facing operations."""

    def __init__(
        self,
        lms: BrightspaceClient,
        ai: AIGateway,
        *,
        policy: AnalysisPolicy | None = None,
        model: str = DEFAULT_MODEL,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._lms = lms
        self._ai = ai
        self._policy = policy or AnalysisPolicy()
        self._model = model
        self._sleep = sleep

    @property
    def lms(self) -> BrightspaceClient:
        return self._lms

    @property
    def ai(self) -> AIGateway:
        return self._ai

    # ------------------------------------------------------------------
    # processing
    # ------------------------------------------------------------------
    async def _upload_all(
        self,
        files: Sequence[UploadedFile],
        journeys: list[FileJourney],
        options: ProcessingOptions,
    ) -> list[UploadResult]:
        uploaded: list[UploadResult] = []
        for index, (item, journey) in enumerate(zip(files, journeys)):
            if index:
                await self._sleep(self._policy.upload_pacing)
            journey.advance(FileState.UPLOADING)
            try:
                result = await self._ai.upload_file(
                    item,
                    knowledge_base=options.knowledge_base,
                    tags=options.tags,
                    rag_on=True,
                )
            except UpstreamError as exc:
                logger.warning("Upload of %s failed: %s", item.name, exc)
                journey.advance(FileState.UPLOAD_FAILED, error=str(exc))
                continue
            if not result.key:
                logger.warning("Upload of %s returned no file key", item.name)
                journey.advance(FileState.UPLOAD_FAILED, error="No file key returned")
                continue
            journey.key = result.key
            journey.advance(FileState.UPLOADED)
            uploaded.append(result)
        return uploaded

    async def _ask(self, prompt: str, keys: list[str], model: str, *, retry: bool) -> ChatResult | None:
        temperature = self._policy.retry_temperature if retry else self._policy.temperature
        max_tokens = self._policy.retry_max_tokens if retry else self._policy.max_tokens
        try:
            return await self._ai.chat(
                prompt,
                data_sources=keys,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except UpstreamError as exc:
            logger.warning("Analysis chat failed: %s", exc)
            return None

    async def _analyse(self, prompt: str, keys: list[str], model: str) -> tuple[ChatResult, int]:
        """Ask for the analysis, retrying while the answer looks not-ready.

        Returns the accepted answer and the number of retries spent; raises
        :class:`ProcessingIncomplete` once the retry budget is gone.
        """

        retries = 0
        result = await self._ask(prompt, keys, model, retry=False)
        while result is None or is_incomplete_response(result.content):
            if retries >= self._policy.max_retries:
                raise ProcessingIncomplete(retries + 1, result.content if result else None)
            retries += 1
            delay = self._policy.backoff_for(retries)
            logger.info("Analysis not ready; retry %s/%s in %.0fs", retries, self._policy.max_retries, delay)
            await self._sleep(delay)
            result = await self._ask(prompt, keys, model, retry=True)
        return result, retries

    def _analysis_result(
        self,
        content: str,
        options: ProcessingOptions,
        files: Sequence[UploadedFile],
        uploads: list[UploadResult],
    ) -> AnalysisResult:
        if options.processing_type == "syllabus_extraction":
            entities = extract_syllabus_entities(content)
            return AnalysisResult(
                processing_type="syllabus_extraction",
                raw_text=content,
                summary=(
                    f"Successfully extracted course information from {len(files)} syllabus file(s). "
                    "Please review and confirm the details before generating the course."
                ),
                syllabus_entities=entities,
                educational_analysis=EducationalAnalysis(
                    learning_objectives=entities.learning_objectives,
                    difficulty_level=options.difficulty_level or "intermediate",
                    ai_processed=True,
                ),
                files_uploaded=len(uploads),
                analysis_method="syllabus_entity_extraction",
                confidence_score=0.9,
                content_type="syllabus",
            )

        fields = parse_analysis(content)
        return AnalysisResult(
            processing_type="educational_content",
            raw_text=content,
            summary=fields.summary or content.strip()[:500],
            topics=fields.topics,
            insights=fields.insights,
            educational_analysis=EducationalAnalysis(
                learning_objectives=fields.learning_objectives,
                difficulty_level=fields.difficulty_level or options.difficulty_level or "intermediate",
                recommended_actions=list(synthetic.RECOMMENDED_ACTIONS),
                ai_processed=True,
            ),
            files_uploaded=len(uploads),
            analysis_method=fields.method,
            confidence_score=0.95 if fields.method == "structured_output" else 0.85,
        )

    @staticmethod
    def _fallback_result(
        options: ProcessingOptions,
        files: Sequence[UploadedFile],
        uploads: list[UploadResult],
        last_content: str | None,
    ) -> AnalysisResult:
        return AnalysisResult(
            processing_type=options.processing_type,
            raw_text=last_content or "",
            summary=synthetic.summary(files),
            topics=synthetic.topics(files),
            insights=synthetic.insights(files),
            educational_analysis=EducationalAnalysis(
                learning_objectives=synthetic.learning_objectives(files),
                difficulty_level=options.difficulty_level or "intermediate",
                recommended_actions=list(synthetic.RECOMMENDED_ACTIONS),
                ai_processed=False,
            ),
            files_uploaded=len(uploads),
            analysis_method="fallback",
            confidence_score=0.87,
            fallback_reason=FALLBACK_REASON,
            note=FALLBACK_NOTE,
        )

    async def process_files(
        self,
        files: Sequence[UploadedFile],
        options: ProcessingOptions | None = None,
        *,
        course_context: dict[str, Any] | None = None,
    ) -> AnalysisResult:
        """Upload files to Amplify, wait for indexing and ask for an analysis.

        Failed uploads are skipped; the analysis runs on whatever made it.
        A syntactically fine but unusable answer yields the fallback result
        rather than an error.
        """

        options = options or ProcessingOptions()
        validate_uploads(files)
        journeys = [FileJourney(item.name, item.mime_type, item.size) for item in files]
        model = options.model or self._model
        logger.info("Processing %s file(s) as %s", len(files), options.processing_type)

        uploads = await self._upload_all(files, journeys, options)
        upload_report = [
            {"name": journey.name, "key": journey.key, "success": journey.key is not None, "error": journey.error}
            for journey in journeys
        ]
        if not uploads:
            logger.error("No files were successfully uploaded")
            return AnalysisResult(
                success=False,
                processing_type=options.processing_type,
                error="No files were successfully uploaded",
                upload_results=upload_report,
                files=[journey.as_dict() for journey in journeys],
                course_context=course_context,
                mock=self._ai.mode is Mode.MOCK,
            )

        if self._ai.requires_indexing_wait:
            logger.info("Waiting %.0fs for Amplify to index %s file(s)", self._policy.post_upload_delay, len(uploads))
            await self._sleep(self._policy.post_upload_delay)

        uploaded_journeys = [journey for journey in journeys if journey.state is FileState.UPLOADED]
        for journey in uploaded_journeys:
            journey.advance(FileState.ANALYZING)

        keys = [upload.key for upload in uploads if upload.key]
        retries = 0
        chat: ChatResult | None = None
        try:
            chat, retries = await self._analyse(analysis_prompt(options.processing_type), keys, model)
        except ProcessingIncomplete as exc:
            logger.warning("%s; using fallback response", exc)
            retries = exc.attempts - 1
            last_content = exc.last_content
        else:
            last_content = chat.content

        if chat is not None and has_usable_content(chat.content):
            result = self._analysis_result(chat.content or "", options, files, uploads)
            state = FileState.ANALYZED
        else:
            if chat is not None:
                logger.warning("AI analysis returned an unusable answer; using fallback response")
            result = self._fallback_result(options, files, uploads, last_content)
            state = FileState.ANALYSIS_FALLBACK
        for journey in uploaded_journeys:
            journey.advance(state)

        result.upload_results = upload_report
        result.files = [journey.as_dict() for journey in journeys]
        result.course_context = course_context
        result.mock = bool(chat is not None and chat.mock)
        result.metadata = {
            "files_processed": len(uploads),
            "files_failed": len(files) - len(uploads),
            "retries": retries,
            "model": model,
            "mode": self._ai.mode.value,
            "processed_at": _now().isoformat(),
        }
        return result

    # ------------------------------------------------------------------
    # generation
    # ------------------------------------------------------------------
    async def generate_educational_content(
        self,
        analysis: AnalysisResult,
        *,
        content_type: str = "module",
        difficulty_level: str | None = None,
        include_quiz: bool = False,
        include_assignment: bool = False,
    ) -> dict[str, Any]:
        level = difficulty_level or analysis.educational_analysis.difficulty_level
        keys = [item["key"] for item in analysis.upload_results if item.get("success") and item.get("key")]
        prompt = educational_content_prompt(
            content_type=content_type,
            difficulty_level=level,
            include_quiz=include_quiz,
            include_assignment=include_assignment,
        )
        generated: str | None = None
        try:
            response = await self._ai.chat(
                prompt,
                data_sources=keys,
                model=self._model,
                temperature=self._policy.retry_temperature,
                max_tokens=self._policy.retry_max_tokens,
            )
        except UpstreamError as exc:
            logger.warning("Educational content generation failed: %s", exc)
        else:
            if has_usable_content(response.content):
                generated = response.content

        topic = analysis.topics[0] if analysis.topics else "Course Content"
        sections: list[dict[str, Any]] = [
            {
                "title": "Introduction",
                "content": "This module covers the key concepts extracted from your uploaded materials.",
                "type": "text",
            },
            {"title": "Learning Objectives", "content": analysis.learning_objectives, "type": "list"},
        ]
        if generated:
            sections.append({"title": "AI-Generated Content", "content": generated, "type": "text"})
        else:
            sections.append({"title": "Key Topics", "content": analysis.topics, "type": "list"})

        return {
            "content_type": content_type,
            "difficulty_level": level,
            "title": "AI-Generated Course Module" if generated else f"Educational Module: {topic}",
            "description": analysis.summary or "Educational content generated from uploaded materials",
            "generated_content": generated,
            "ai_generated": generated is not None,
            "sections": sections,
            "quiz": synthetic.quiz(analysis.topics, analysis.insights) if include_quiz else None,
            "assignment": synthetic.assignment() if include_assignment else None,
        }

    async def generate_course_from_syllabus(self, entities: SyllabusEntities) -> dict[str, Any]:
        content: str | None = None
        try:
            response = await self._ai.chat(
                course_generation_prompt(entities),
                model=self._model,
                temperature=0.4,
                max_tokens=6000,
            )
        except UpstreamError as exc:
            logger.warning("Course generation from syllabus failed: %s", exc)
        else:
            content = response.content if has_usable_content(response.content) else None

        return {
            "success": True,
            "course_name": entities.course_code_name or None,
            "course_structure": content,
            "modules": extract_modules(content),
            "assessments": extract_assessments(content),
            "learning_objectives": entities.learning_objectives,
            "generated_at": _now().isoformat(),
            "based_on_syllabus": True,
            "ai_generated": content is not None,
        }

    # ------------------------------------------------------------------
    # publishing
    # ------------------------------------------------------------------
    async def publish(
        self,
        session: OAuthSession,
        course_id: int | str,
        analysis: AnalysisResult,
        *,
        announce: bool = True,
    ) -> PublishResult:
        """Create a content module (and optionally an announcement) in a course.

        Every step is reported separately and attempted even when an earlier
        one failed. Nothing is rolled back. Files in ``analysis.files`` move
        to ``published`` once the module exists.
        """

        operations: list[OperationResult] = []

        course = await _attempt("get_course", self._lms.get_course(session, course_id))
        operations.append(course)
        course_name = course.data.get("Name") if course.success and isinstance(course.data, dict) else None

        module = module_payload(analysis)
        created = await _attempt("create_module", self._lms.create_content_module(session, course_id, module))
        operations.append(created)

        if announce:
            news = announcement_payload(
                f"New content available: {module['Title']}",
                analysis.summary or "New AI-generated content has been added to this course.",
            )
            operations.append(
                await _attempt("create_announcement", self._lms.create_announcement(session, course_id, news))
            )

        files = [_mark_published(entry) if created.success else dict(entry) for entry in analysis.files]

        succeeded = [operation for operation in operations if operation.success]
        success = len(succeeded) == len(operations)
        partial = bool(succeeded) and not success
        label = course_name or f"course {course_id}"
        if success:
            summary = f"Successfully published AI-generated content to {label}"
        elif partial:
            failed = ", ".join(operation.name for operation in operations if not operation.success)
            summary = f"Partially published to {label}; failed: {failed}"
        else:
            summary = f"Publishing to {label} failed"
        logger.info(summary)

        return PublishResult(
            success=success,
            partial=partial,
            course={"id": course_id, "name": course_name},
            operations=operations,
            files=files,
            summary=summary,
            timestamp=_now().isoformat(),
        )

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------
    async def health(self, session: OAuthSession) -> dict[str, Any]:
        token = session.token
        return {
            "status": "healthy",
            "services": {
                "brightspace": {
                    "connected": session.is_authenticated(),
                    "configured": self._lms.configured,
                    "expires": token.expires_at.isoformat() if token else None,
                },
                "amplify": await self._ai.check_health(),
            },
            "timestamp": _now().isoformat(),
        }


__all__ = [
    "ContentService",
    "FALLBACK_REASON",
    "announcement_payload",
    "forum_payload",
    "module_payload",
    "survey_payload",
    "validate_uploads",
]
