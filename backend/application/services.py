"""Process-wide wiring of settings, gateways and the orchestration service."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from backend.core.config import LMS_TIMEOUT_SECONDS, Settings
from backend.infrastructure import AIGateway, BrightspaceClient, BrightspaceOAuth, OAuthSession, build_ai_gateway

from .content import ContentService, SleepFn

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler needs.

    The HTTP surface serves a single Brightspace user, so the container holds
    one :class:`OAuthSession`; the gateways themselves never store it.
    """

    settings: Settings
    oauth: BrightspaceOAuth
    session: OAuthSession
    lms: BrightspaceClient
    ai: AIGateway
    content: ContentService
    http_client: httpx.AsyncClient | None = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
        ai: AIGateway | None = None,
        sleep: SleepFn | None = None,
    ) -> "ServiceContainer":
        owned = http_client is None
        client = http_client or httpx.AsyncClient(timeout=LMS_TIMEOUT_SECONDS)
        oauth = BrightspaceOAuth.from_settings(settings, http_client=client)
        lms = BrightspaceClient.from_settings(settings, oauth, http_client=client)
        gateway = ai or build_ai_gateway(settings, http_client=client)
        content_kwargs = {"sleep": sleep} if sleep is not None else {}
        content = ContentService(
            lms,
            gateway,
            policy=settings.analysis,
            model=settings.amplify_model,
            **content_kwargs,
        )
        logger.info(
            "Services ready (Amplify %s mode, Brightspace API %s)",
            gateway.mode.value,
            settings.api_base_url or "not configured",
        )
        return cls(
            settings=settings,
            oauth=oauth,
            session=OAuthSession(),
            lms=lms,
            ai=gateway,
            content=content,
            http_client=client if owned else None,
        )

    async def aclose(self) -> None:
        await self.ai.aclose()
        if self.http_client is not None:
            await self.http_client.aclose()


_services: ServiceContainer | None = None


def configure_services(container: ServiceContainer) -> None:
    """Install the container used by the routers."""

    global _services
    _services = container


def get_services() -> ServiceContainer:
    """Return the configured container, building one from the environment if needed."""

    global _services
    if _services is None:
        _services = ServiceContainer.build(Settings.from_env())
    return _services


def reset_services() -> None:
    """Forget the current container (tests)."""

    global _services
    _services = None
