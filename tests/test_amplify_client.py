from __future__ import annotations

import asyncio
import json
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx
import pytest

from backend.core.config import Settings
from backend.core.errors import UploadError, UpstreamError
from backend.domain import UploadedFile
from backend.infrastructure.amplify import (
    AmplifyClient,
    MockAmplifyClient,
    Mode,
    build_ai_gateway,
    extract_chat_content,
)

API_BASE = "https://amplify.example.test"


def _client(handler) -> AmplifyClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AmplifyClient("secret-key", api_base=API_BASE, http_client=http_client)


def test_upload_file_requests_url_then_puts_bytes():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "amplify.example.test":
            captured["descriptor"] = json.loads(request.content)
            captured["auth"] = request.headers["Authorization"]
            return httpx.Response(
                200,
                json={"success": True, "uploadUrl": "https://s3.example.test/bucket/obj", "key": "user/notes.txt"},
            )
        captured["put_type"] = request.headers["Content-Type"]
        captured["put_body"] = request.content
        return httpx.Response(200)

    client = _client(handler)
    file = UploadedFile("notes.txt", "text/plain", content=b"lecture notes")

    result = asyncio.run(client.upload_file(file, knowledge_base="educational_content", tags=["educational"], rag_on=True))

    assert result.key == "user/notes.txt"
    assert captured["auth"] == "Bearer secret-key"
    descriptor = captured["descriptor"]["data"]
    assert descriptor["type"] == "text/plain"
    assert descriptor["name"] == "notes.txt"
    assert descriptor["knowledgeBase"] == "educational_content"
    assert descriptor["tags"] == ["educational"]
    assert descriptor["ragOn"] is True
    assert [action["name"] for action in descriptor["actions"]] == [
        "saveAsData",
        "createChunks",
        "ingestRag",
        "makeDownloadable",
        "extractText",
    ]
    assert "groupId" not in descriptor
    assert captured["put_type"] == "text/plain"
    assert captured["put_body"] == b"lecture notes"


def test_upload_file_unsuccessful_descriptor_raises():
    client = _client(lambda request: httpx.Response(200, json={"success": False, "error": "quota exceeded"}))

    with pytest.raises(UploadError) as excinfo:
        asyncio.run(client.upload_file(UploadedFile("a.pdf", content=b"x")))

    assert excinfo.value.step == "request_url"
    assert "quota exceeded" in str(excinfo.value)


def test_chat_payload_and_content_extraction():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"data": "A thorough analysis of the material.", "model": "gpt-4o"})

    client = _client(handler)

    result = asyncio.run(
        client.chat("Analyse", data_sources=["k1", "k2"], temperature=0.9, max_tokens=5012, assistant_id="astp/1")
    )

    assert result.content == "A thorough analysis of the material."
    data = captured["payload"]["data"]
    assert data["temperature"] == 0.9
    assert data["max_tokens"] == 5012
    assert data["dataSources"] == ["k1", "k2"]
    assert data["messages"] == [{"role": "user", "content": "Analyse"}]
    assert data["options"] == {
        "ragOnly": False,
        "skipRag": False,
        "model": {"id": "gpt-4o"},
        "prompt": "Analyse",
        "assistantId": "astp/1",
    }


def test_chat_without_sources_skips_rag():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "pong"}}]})

    result = asyncio.run(_client(handler).chat("ping"))

    assert result.content == "pong"
    assert captured["payload"]["data"]["options"]["skipRag"] is True


def test_chat_error_status_raises_upstream_error():
    client = _client(lambda request: httpx.Response(401, json={"error": "bad key"}))

    with pytest.raises(UpstreamError) as excinfo:
        asyncio.run(client.chat("hello"))

    assert excinfo.value.status == 401


def test_extract_chat_content_prefers_data_then_content_then_message():
    assert extract_chat_content({"data": "d", "content": "c"}) == "d"
    assert extract_chat_content({"content": "c", "message": "m"}) == "c"
    assert extract_chat_content({"message": "m"}) == "m"
    assert extract_chat_content({"choices": [{"message": {"content": "x"}}]}) == "x"
    assert extract_chat_content({"unexpected": True}) is None


def test_health_check_reports_unavailable_on_error():
    client = _client(lambda request: httpx.Response(503, text="down"))

    report = asyncio.run(client.check_health())

    assert report["available"] is False
    assert report["status"] == "unhealthy"


def test_mock_gateway_is_deterministic_and_offline():
    file = UploadedFile("data-analytics-syllabus.pdf", "application/pdf", content=b"%PDF-1.4")

    first, second = MockAmplifyClient(), MockAmplifyClient()
    key_one = asyncio.run(first.upload_file(file)).key
    key_two = asyncio.run(second.upload_file(file)).key
    answer_one = asyncio.run(first.chat("Analyse", data_sources=[key_one]))
    answer_two = asyncio.run(second.chat("Analyse", data_sources=[key_two]))

    assert key_one == key_two
    assert answer_one.content == answer_two.content
    assert answer_one.mock is True
    payload = json.loads(answer_one.content)
    assert "Data Science" in payload["topics"]
    assert payload["course_materials"] == ["data-analytics-syllabus.pdf"]


def test_build_ai_gateway_selects_mode_from_api_key():
    assert build_ai_gateway(Settings()).mode is Mode.MOCK
    assert asyncio.run(build_ai_gateway(Settings()).check_health()) == {"available": False, "mock_mode": True}

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    live = build_ai_gateway(Settings(amplify_api_key="k"), http_client=http_client)
    assert live.mode is Mode.LIVE
    assert live.requires_indexing_wait is True
