"""Amplify AI gateway: file ingestion and RAG chat.

Two interchangeable implementations share the :class:`AIGateway` contract.
``build_ai_gateway`` picks one when the service container is built: the live
client when an API key is configured, the deterministic mock otherwise.
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence

import httpx

from backend.core import synthetic
from backend.core.config import DEFAULT_AMPLIFY_BASE_URL, DEFAULT_MODEL, TRANSFER_TIMEOUT_SECONDS, Settings
from backend.core.errors import UploadError, UpstreamError
from backend.core.prompts import HEALTH_CHECK_PROMPT
from backend.domain import UploadedFile, UploadResult

logger = logging.getLogger(__name__)

DEFAULT_ACTIONS: tuple[str, ...] = ("saveAsData", "createChunks", "ingestRag", "makeDownloadable", "extractText")


class Mode(str, Enum):
    LIVE = "live"
    MOCK = "mock"


@dataclass(slots=True)
class ChatResult:
    content: str | None
    model: str | None = None
    usage: dict[str, Any] | None = None
    raw: Any = None
    mock: bool = False


class AIGateway(Protocol):
    """Contract for AI vendor integrations."""

    mode: Mode

    @property
    def requires_indexing_wait(self) -> bool:
        """Whether uploaded files need time before they can be queried."""

    async def upload_file(
        self,
        file: UploadedFile,
        *,
        knowledge_base: str = "default",
        tags: Sequence[str] = (),
        rag_on: bool = False,
        group_id: str | None = None,
    ) -> UploadResult:
        """Register and transfer one file; return its vendor key."""

    async def chat(
        self,
        message: str,
        *,
        data_sources: Sequence[str] = (),
        model: str | None = None,
        temperature: float = 0.5,
        max_tokens: int = 4096,
        system_message: str | None = None,
        assistant_id: str | None = None,
    ) -> ChatResult:
        """Send one prompt, optionally grounded on uploaded files."""

    async def check_health(self) -> dict[str, Any]:
        """Report whether the vendor can currently be reached."""

    async def aclose(self) -> None:
        """Release network resources."""


def extract_chat_content(result: Any) -> str | None:
    """Pick the answer text out of a chat response body."""

    if isinstance(result, str):
        return result
    if not isinstance(result, dict):
        return None
    for key in ("data", "content", "message"):
        value = result.get(key)
        if isinstance(value, str) and value:
            return value
    choices = result.get("choices")
    if isinstance(choices, list) and choices:
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]
    return None


def _build_messages(message: str, system_message: str | None) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if system_message:
        messages.append({"role": "system", "content": system_message})
    messages.append({"role": "user", "content": message})
    return messages


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class AmplifyClient:
    """Client for the Amplify HTTP API."""

    mode = Mode.LIVE

    def __init__(
        self,
        api_key: str,
        *,
        api_base: str = DEFAULT_AMPLIFY_BASE_URL,
        default_model: str = DEFAULT_MODEL,
        timeout: float = TRANSFER_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required for the live Amplify client")
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._default_model = default_model
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    @property
    def requires_indexing_wait(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {self._api_key}"}

    @staticmethod
    def _log_auth_hint(status: int) -> None:
        if status == 401:
            logger.error("Amplify rejected the request: unauthorized, check AMPLIFY_API_KEY")
        elif status == 403:
            logger.error("Amplify rejected the request: forbidden, the API key may be invalid or expired")

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def upload_file(
        self,
        file: UploadedFile,
        *,
        knowledge_base: str = "default",
        tags: Sequence[str] = (),
        rag_on: bool = False,
        group_id: str | None = None,
    ) -> UploadResult:
        url = f"{self._api_base}/files/upload"
        descriptor: dict[str, Any] = {
            "type": file.mime_type,
            "name": file.name,
            "knowledgeBase": knowledge_base,
            "tags": list(tags),
            "data": {},
            "actions": [{"name": name} for name in DEFAULT_ACTIONS],
            "ragOn": rag_on,
        }
        if group_id:
            descriptor["groupId"] = group_id

        try:
            content = file.read_bytes()
        except FileNotFoundError as exc:
            raise UploadError(str(exc), step="read") from exc

        try:
            response = await self._client.post(url, json={"data": descriptor}, headers=self._headers())
        except httpx.HTTPError as exc:
            raise UploadError(f"Upload request failed: {exc}", step="request_url", url=url) from exc
        body = _response_body(response)
        if response.is_error:
            self._log_auth_hint(response.status_code)
            raise UploadError(
                f"Upload request failed with status {response.status_code}",
                step="request_url",
                status=response.status_code,
                body=body,
                url=url,
            )
        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise UploadError(f"Upload failed: {error or 'Unknown error'}", step="request_url", body=body, url=url)
        presigned_url = body.get("uploadUrl")
        if not presigned_url:
            raise UploadError("No upload URL received from Amplify", step="request_url", body=body, url=url)

        logger.info("Transferring %s to Amplify storage", file.name)
        try:
            transfer = await self._client.put(
                presigned_url,
                content=content,
                headers={"Content-Type": file.mime_type or "application/octet-stream"},
            )
        except httpx.HTTPError as exc:
            raise UploadError(f"Storage transfer failed: {exc}", step="transfer") from exc
        if transfer.is_error:
            raise UploadError(
                f"Storage transfer failed with status {transfer.status_code}",
                step="transfer",
                status=transfer.status_code,
                body=_response_body(transfer),
            )

        key = body.get("key") or body.get("id")
        return UploadResult(key=str(key) if key is not None else None, upload_url=presigned_url, raw=body)

    async def chat(
        self,
        message: str,
        *,
        data_sources: Sequence[str] = (),
        model: str | None = None,
        temperature: float = 0.5,
        max_tokens: int = 4096,
        system_message: str | None = None,
        assistant_id: str | None = None,
    ) -> ChatResult:
        url = f"{self._api_base}/chat"
        model_id = model or self._default_model
        options: dict[str, Any] = {
            "ragOnly": False,
            "skipRag": not data_sources,
            "model": {"id": model_id},
            "prompt": message,
        }
        if assistant_id:
            options["assistantId"] = assistant_id
        payload = {
            "data": {
                "temperature": temperature,
                "max_tokens": max_tokens,
                "messages": _build_messages(message, system_message),
                "dataSources": list(data_sources),
                "options": options,
            }
        }

        try:
            response = await self._client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.error("Amplify chat request failed: %s", exc)
            raise UpstreamError(f"Amplify chat request failed: {exc}", url=url) from exc
        body = _response_body(response)
        if response.is_error:
            self._log_auth_hint(response.status_code)
            logger.error("Amplify chat returned %s: %s", response.status_code, body)
            raise UpstreamError(
                f"Amplify chat failed with status {response.status_code}",
                status=response.status_code,
                body=body,
                url=url,
            )

        content = extract_chat_content(body)
        logger.debug("Amplify chat answered with %s characters", len(content) if content else 0)
        return ChatResult(
            content=content,
            model=body.get("model") if isinstance(body, dict) else model_id,
            usage=body.get("usage") if isinstance(body, dict) else None,
            raw=body,
        )

    async def check_health(self) -> dict[str, Any]:
        try:
            result = await self.chat(HEALTH_CHECK_PROMPT, temperature=0.1, max_tokens=50)
        except UpstreamError as exc:
            return {"available": False, "status": "unhealthy", "error": str(exc), "mock_mode": False}
        return {"available": True, "status": "healthy", "mock_mode": False, "model": result.model}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


@dataclass
class MockAmplifyClient:
    """Offline stand-in used when no API key is configured.

    Keys are derived from file name and size, so the same input always
    produces the same answer.
    """

    default_model: str = DEFAULT_MODEL
    uploads: dict[str, UploadedFile] = field(default_factory=dict)
    mode: Mode = Mode.MOCK

    @property
    def requires_indexing_wait(self) -> bool:
        return False

    @staticmethod
    def key_for(file: UploadedFile) -> str:
        digest = hashlib.sha1(f"{file.name}:{file.size or 0}".encode("utf-8")).hexdigest()
        return f"mock-{digest[:16]}"

    async def upload_file(
        self,
        file: UploadedFile,
        *,
        knowledge_base: str = "default",
        tags: Sequence[str] = (),
        rag_on: bool = False,
        group_id: str | None = None,
    ) -> UploadResult:
        key = self.key_for(file)
        self.uploads[key] = file
        return UploadResult(
            key=key,
            raw={"success": True, "key": key, "knowledgeBase": knowledge_base, "tags": list(tags), "mock": True},
        )

    async def chat(
        self,
        message: str,
        *,
        data_sources: Sequence[str] = (),
        model: str | None = None,
        temperature: float = 0.5,
        max_tokens: int = 4096,
        system_message: str | None = None,
        assistant_id: str | None = None,
    ) -> ChatResult:
        if data_sources:
            files = [self.uploads[key] for key in data_sources if key in self.uploads]
            content = json.dumps(synthetic.analysis_payload(files), indent=2)
        else:
            first_line = message.strip().splitlines()[0] if message.strip() else ""
            content = f"Mock response to: {first_line} This would be the AI-generated response from Amplify API."
        return ChatResult(
            content=content,
            model=model or self.default_model,
            usage={"total_tokens": 150, "prompt_tokens": 50, "completion_tokens": 100},
            mock=True,
        )

    async def check_health(self) -> dict[str, Any]:
        return {"available": False, "mock_mode": True}

    async def aclose(self) -> None:
        return None


def build_ai_gateway(settings: Settings, *, http_client: httpx.AsyncClient | None = None) -> AIGateway:
    """Select the live or mock gateway once, from configuration."""

    if settings.mock_mode:
        logger.warning("AMPLIFY_API_KEY not set; AI analysis runs in mock mode")
        return MockAmplifyClient(default_model=settings.amplify_model)
    return AmplifyClient(
        settings.amplify_api_key,
        api_base=settings.amplify_base_url,
        default_model=settings.amplify_model,
        http_client=http_client,
    )
