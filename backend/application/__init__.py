"""Application services."""

from .content import ContentService, validate_uploads
from .services import ServiceContainer, configure_services, get_services, reset_services

__all__ = [
    "ContentService",
    "ServiceContainer",
    "configure_services",
    "get_services",
    "reset_services",
    "validate_uploads",
]
