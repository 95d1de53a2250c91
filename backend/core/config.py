"""Runtime configuration loaded from the process environment."""
from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_AUTH_URL = "https://auth.brightspace.com/oauth2/auth"
DEFAULT_TOKEN_URL = "https://auth.brightspace.com/core/connect/token"
DEFAULT_REDIRECT_URI = "https://localhost:3001/auth/brightspace/callback"
DEFAULT_AMPLIFY_BASE_URL = "https://prod-api.vanderbilt.ai"
DEFAULT_MODEL = "gpt-4o"

DEFAULT_SCOPES: tuple[str, ...] = (
    "users:profile:read",
    "users:own_profile:read",
    "enrollment:orgunit:read",
    "enrollment:own_enrollment:read",
    "orgunits:course:read",
    "orgunits:course:update",
    "content:modules:manage",
    "content:topics:manage",
    "content:file:read",
    "content:file:write",
    "content:access:read",
    "content:toc:read",
    "discussions:forums:manage",
    "discussions:topics:manage",
    "discussions:access:read",
    "surveys:surveys:create",
    "surveys:surveys:read",
    "surveys:access:read",
    "managefiles:files:manage",
    "managefiles:files:read",
    "news:newsitems:manage",
    "news:access:read",
    "quizzing:quiz:write",
    "quizzing:access:read",
)

# Amplify gives no "ready" signal after an upload, so analysis waits a fixed
# delay and then retries on known "not ready" answers.
POST_UPLOAD_DELAY_SECONDS = 30.0
UPLOAD_PACING_SECONDS = 1.0
MAX_ANALYSIS_RETRIES = 3
RETRY_BACKOFF_SECONDS = 15.0
ANALYSIS_TEMPERATURE = 0.9
ANALYSIS_MAX_TOKENS = 5012
RETRY_TEMPERATURE = 0.3
RETRY_MAX_TOKENS = 4096

LMS_TIMEOUT_SECONDS = 30.0
TRANSFER_TIMEOUT_SECONDS = 60.0

MAX_FILES_PER_REQUEST = 10
MAX_FILE_SIZE_BYTES = 50 * 1024 * 1024
ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
        "text/csv",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "image/jpeg",
        "image/png",
        "image/gif",
        "video/mp4",
        "audio/mpeg",
    }
)


@dataclass(frozen=True, slots=True)
class AnalysisPolicy:
    """Timing and sampling knobs for the post-upload analysis heuristic."""

    post_upload_delay: float = POST_UPLOAD_DELAY_SECONDS
    upload_pacing: float = UPLOAD_PACING_SECONDS
    max_retries: int = MAX_ANALYSIS_RETRIES
    retry_backoff: float = RETRY_BACKOFF_SECONDS
    temperature: float = ANALYSIS_TEMPERATURE
    max_tokens: int = ANALYSIS_MAX_TOKENS
    retry_temperature: float = RETRY_TEMPERATURE
    retry_max_tokens: int = RETRY_MAX_TOKENS

    def backoff_for(self, attempt: int) -> float:
        """Linear backoff: 15s, 30s, 45s for attempts 1, 2, 3."""

        return self.retry_backoff * attempt


def _split_csv(value: str | None) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


@dataclass(frozen=True, slots=True)
class Settings:
    client_id: str = ""
    client_secret: str = ""
    auth_url: str = DEFAULT_AUTH_URL
    token_url: str = DEFAULT_TOKEN_URL
    redirect_uri: str = DEFAULT_REDIRECT_URI
    api_base_url: str = ""
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    lp_version: str = "1.0"
    le_version: str = "1.0"
    amplify_base_url: str = DEFAULT_AMPLIFY_BASE_URL
    amplify_api_key: str = ""
    amplify_model: str = DEFAULT_MODEL
    port: int = 3001
    frontend_url: str = "http://localhost:5173"
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:5173"]
    )
    log_level: str = "INFO"
    analysis: AnalysisPolicy = field(default_factory=AnalysisPolicy)

    @property
    def mock_mode(self) -> bool:
        return not self.amplify_api_key

    @property
    def oauth_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        scopes_env = os.getenv("BRIGHTSPACE_SCOPES")
        scopes = tuple(scopes_env.split()) if scopes_env else DEFAULT_SCOPES

        port_value = os.getenv("SERVER_PORT") or os.getenv("PORT") or "3001"
        try:
            port = int(port_value)
        except ValueError:
            port = 3001

        kwargs: dict[str, object] = {
            "client_id": os.getenv("BRIGHTSPACE_CLIENT_ID", ""),
            "client_secret": os.getenv("BRIGHTSPACE_CLIENT_SECRET", ""),
            "auth_url": os.getenv("BRIGHTSPACE_AUTH_URL") or DEFAULT_AUTH_URL,
            "token_url": os.getenv("BRIGHTSPACE_TOKEN_URL") or DEFAULT_TOKEN_URL,
            "redirect_uri": os.getenv("BRIGHTSPACE_REDIRECT_URI") or DEFAULT_REDIRECT_URI,
            "api_base_url": (os.getenv("BRIGHTSPACE_API_BASE_URL") or "").rstrip("/"),
            "scopes": scopes,
            "lp_version": os.getenv("BRIGHTSPACE_LP_VERSION") or "1.0",
            "le_version": os.getenv("BRIGHTSPACE_LE_VERSION") or "1.0",
            "amplify_base_url": (os.getenv("AMPLIFY_API_BASE_URL") or DEFAULT_AMPLIFY_BASE_URL).rstrip("/"),
            "amplify_api_key": os.getenv("AMPLIFY_API_KEY", ""),
            "amplify_model": os.getenv("AMPLIFY_MODEL") or DEFAULT_MODEL,
            "port": port,
            "frontend_url": (os.getenv("FRONTEND_URL") or "http://localhost:5173").rstrip("/"),
            "log_level": (os.getenv("LOG_LEVEL") or "INFO").upper(),
        }
        origins = _split_csv(os.getenv("API_CORS_ORIGINS"))
        if origins:
            kwargs["cors_origins"] = origins
        return cls(**kwargs)  # type: ignore[arg-type]
