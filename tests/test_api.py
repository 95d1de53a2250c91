from __future__ import annotations

from datetime import timedelta
from pathlib import Path
import sys
from urllib.parse import parse_qs, urlparse

sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx
import pytest
from fastapi.testclient import TestClient

from backend.application import ServiceContainer, reset_services
from backend.core.config import Settings
from backend.domain import TokenState, utcnow
from backend.infrastructure import MockAmplifyClient

API_BASE = "https://school.example.test/d2l/api"
SETTINGS = Settings(
    client_id="client-id",
    client_secret="client-secret",
    api_base_url=API_BASE,
    frontend_url="http://localhost:5173",
)


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture(autouse=True)
def reset_state():
    reset_services()
    yield
    reset_services()


@pytest.fixture()
def build_client():
    def factory(handler):
        from backend.app import create_app

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        container = ServiceContainer.build(SETTINGS, http_client=http_client, ai=MockAmplifyClient(), sleep=_no_sleep)
        return TestClient(create_app(container=container)), container

    return factory


def _authenticate(container: ServiceContainer) -> None:
    container.session.token = TokenState("token-123", utcnow() + timedelta(hours=1), "refresh-1")


def _unexpected(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected upstream call {request.method} {request.url}")


def test_landing_page(build_client):
    client, _ = build_client(_unexpected)
    with client:
        response = client.get("/")

    assert response.status_code == 200
    assert response.json()["health"] == "/api/health"


def test_oauth_callback_flow_authenticates_session(build_client):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/core/connect/token"
        return httpx.Response(200, json={"access_token": "access-1", "refresh_token": "r", "expires_in": 3600})

    client, container = build_client(handler)
    with client:
        redirect = client.get("/auth", follow_redirects=False)
        state = parse_qs(urlparse(redirect.headers["location"]).query)["state"][0]
        callback = client.get(
            "/auth/brightspace/callback",
            params={"code": "abc", "state": state},
            follow_redirects=False,
        )
        status = client.get("/api/auth-status").json()

    assert redirect.status_code == 302
    assert redirect.headers["location"].startswith("https://auth.brightspace.com/oauth2/auth?")
    assert callback.status_code == 302
    assert callback.headers["location"] == "http://localhost:5173?auth=success"
    assert status["data"]["authenticated"] is True
    assert container.session.token.access_token == "access-1"


def test_oauth_callback_rejects_unknown_state(build_client):
    client, container = build_client(_unexpected)
    with client:
        response = client.get(
            "/auth/brightspace/callback",
            params={"code": "abc", "state": "forged"},
            follow_redirects=False,
        )

    assert response.headers["location"] == "http://localhost:5173?auth=error&reason=invalid_state"
    assert container.session.token is None


def test_auth_url_endpoint_returns_url(build_client):
    client, _ = build_client(_unexpected)
    with client:
        body = client.get("/api/auth-url").json()

    assert body["success"] is True
    assert "state=" in body["data"]["authUrl"]


def test_courses_require_authentication(build_client):
    client, _ = build_client(_unexpected)
    with client:
        response = client.get("/api/courses")

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_courses_are_projected_from_enrollments(build_client):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/d2l/api/lp/1.0/enrollments/myenrollments/"
        return httpx.Response(200, json={"Items": [{"OrgUnit": {"Id": 6606, "Name": "Numerical Analysis", "Code": "M1"}}]})

    client, container = build_client(handler)
    _authenticate(container)
    with client:
        body = client.get("/api/courses").json()

    assert body == {
        "success": True,
        "data": [{"id": 6606, "name": "Numerical Analysis", "code": "M1"}],
        "total": 1,
    }


def test_forbidden_announcement_returns_json_error(build_client):
    client, container = build_client(lambda request: httpx.Response(403, json={"Message": "Forbidden"}))
    _authenticate(container)
    with client:
        response = client.post("/api/create-announcement", json={"courseId": 6606, "title": "Hello"})

    assert response.status_code == 403
    body = response.json()
    assert body["success"] is False
    assert body["outcome"] == "permission_denied"
    assert body["details"] == {"Message": "Forbidden"}


def test_create_survey_uses_default_payload(build_client):
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        import json

        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"SurveyId": 3})

    client, container = build_client(handler)
    _authenticate(container)
    with client:
        response = client.post("/api/create-survey", json={"course_id": "6606"})

    assert response.status_code == 200
    assert response.json()["data"] == {"SurveyId": 3}
    assert captured["body"]["Name"] == "API Test Survey"
    assert captured["body"]["Instructions"]["Text"] == "Please complete this test survey."


def test_missing_course_id_is_bad_request(build_client):
    client, container = build_client(_unexpected)
    _authenticate(container)
    with client:
        response = client.post("/api/create-discussion", json={"title": "No course"})

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_process_files_in_mock_mode(build_client):
    client, _ = build_client(_unexpected)
    with client:
        response = client.post(
            "/api/process-files",
            files=[("files", ("data-notes.txt", b"Lecture notes on data analysis", "text/plain"))],
            data={"processingType": "educational_content", "generateContent": "true", "includeQuiz": "true"},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["mock"] is True
    assert body["data"]["files"][0]["state"] == "analyzed"
    assert body["data"]["educational_content"]["quiz"]["title"] == "Knowledge Check Quiz"


def test_process_files_without_files_is_bad_request(build_client):
    client, _ = build_client(_unexpected)
    with client:
        response = client.post("/api/process-files", data={"processingType": "educational_content"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "No files provided"}


def test_process_files_rejects_disallowed_type(build_client):
    client, _ = build_client(_unexpected)
    with client:
        response = client.post(
            "/api/process-files",
            files=[("files", ("run.sh", b"#!/bin/sh", "application/x-sh"))],
        )

    assert response.status_code == 400


def test_publish_with_forbidden_announcement_is_partial(build_client):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"Name": "Numerical Analysis"})
        if request.url.path.endswith("/content/modules/"):
            return httpx.Response(200, json={"Id": 1})
        return httpx.Response(403, json={"Message": "Forbidden"})

    client, container = build_client(handler)
    _authenticate(container)
    with client:
        response = client.post(
            "/api/publish-to-brightspace",
            json={"courseId": 6606, "amplifyResults": {"summary": "Numerical methods", "topics": ["Root finding"]}},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["data"]["partial"] is True
    assert body["data"]["operations"][-1]["outcome"] == "permission_denied"


def test_generate_course_returns_plan(build_client):
    client, _ = build_client(_unexpected)
    with client:
        response = client.post(
            "/api/generate-course",
            json={"syllabus_entities": {"course_code_name": "MATH 3620", "learning_objectives": ["Solve equations"]}},
        )

    assert response.status_code == 200
    plan = response.json()["data"]
    assert plan["course_name"] == "MATH 3620"
    assert len(plan["modules"]) == 4


def test_health_endpoint(build_client):
    client, _ = build_client(_unexpected)
    with client:
        body = client.get("/api/health").json()

    assert body["success"] is True
    assert body["data"]["services"]["amplify"]["mock_mode"] is True


def _notes():
    return [("files", ("data-notes.txt", b"Lecture notes on data analysis", "text/plain"))]


def test_process_files_merges_course_record_into_context(build_client):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/d2l/api/lp/1.0/courses/6606"
        return httpx.Response(200, json={"Name": "Numerical Analysis", "Code": "MATH-3620"})

    client, container = build_client(handler)
    _authenticate(container)
    with client:
        response = client.post("/api/process-files", files=_notes(), data={"courseId": "6606"})

    assert response.status_code == 200
    assert response.json()["data"]["course_context"] == {
        "Name": "Numerical Analysis",
        "Code": "MATH-3620",
        "course_id": "6606",
    }


def test_process_files_continues_when_course_lookup_fails(build_client):
    client, container = build_client(lambda request: httpx.Response(500, text="boom"))
    _authenticate(container)
    with client:
        response = client.post("/api/process-files", files=_notes(), data={"courseId": "6606"})

    assert response.status_code == 200
    assert response.json()["data"]["course_context"] == {"course_id": "6606"}


def test_process_files_skips_course_lookup_when_signed_out(build_client):
    client, _ = build_client(_unexpected)
    with client:
        response = client.post("/api/process-files", files=_notes(), data={"courseId": "6606"})

    assert response.status_code == 200
    assert response.json()["data"]["course_context"] == {"course_id": "6606"}


def test_process_files_rejects_too_many_files(build_client):
    client, _ = build_client(_unexpected)
    files = [("files", (f"notes-{index}.txt", b"notes", "text/plain")) for index in range(11)]
    with client:
        response = client.post("/api/process-files", files=files)

    assert response.status_code == 400
    assert response.json()["error"].startswith("Too many files")


def test_process_files_checks_size_before_reading(build_client, monkeypatch):
    from backend.routes import processing

    monkeypatch.setattr(processing, "MAX_FILE_SIZE_BYTES", 4)
    client, _ = build_client(_unexpected)
    with client:
        response = client.post("/api/process-files", files=_notes())

    assert response.status_code == 400
    assert "exceeds" in response.json()["error"]
