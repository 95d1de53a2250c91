"""Domain layer definitions."""

from .files import FileJourney, FileState, UploadedFile, UploadResult
from .tokens import TokenState, utcnow

__all__ = [
    "FileJourney",
    "FileState",
    "TokenState",
    "UploadResult",
    "UploadedFile",
    "utcnow",
]
