"""Files travelling through a single processing request."""
from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class FileState(str, Enum):
    SELECTED = "selected"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    ANALYSIS_FALLBACK = "analysis_fallback"
    PUBLISHED = "published"


@dataclass(slots=True)
class UploadedFile:
    """A file received at ingress, held in memory or on disk."""

    name: str
    mime_type: str | None = None
    content: bytes | None = None
    path: Path | None = None
    size: int | None = None

    def __post_init__(self) -> None:
        if not self.mime_type:
            guessed, _ = mimetypes.guess_type(self.name)
            self.mime_type = guessed or "text/plain"
        if self.size is None:
            if self.content is not None:
                self.size = len(self.content)
            elif self.path is not None and self.path.exists():
                self.size = self.path.stat().st_size

    def read_bytes(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.path is not None and self.path.exists():
            return self.path.read_bytes()
        raise FileNotFoundError(f"No content available for {self.name}")


@dataclass(slots=True)
class UploadResult:
    """Handle returned by the AI vendor for an uploaded file."""

    key: str | None
    upload_url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class FileJourney:
    """Tracks one file through upload, analysis and publishing."""

    name: str
    mime_type: str | None
    size: int | None
    state: FileState = FileState.SELECTED
    key: str | None = None
    error: str | None = None

    def advance(self, state: FileState, *, error: str | None = None) -> None:
        self.state = state
        if error is not None:
            self.error = error

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "mime_type": self.mime_type,
            "size": self.size,
            "state": self.state.value,
            "key": self.key,
            "error": self.error,
        }
