"""Infrastructure layer exports."""

from .amplify import AIGateway, AmplifyClient, ChatResult, MockAmplifyClient, Mode, build_ai_gateway
from .brightspace import BrightspaceClient, LMSResult, build_news_multipart, project_courses
from .oauth import BrightspaceOAuth, OAuthSession

__all__ = [
    "AIGateway",
    "AmplifyClient",
    "BrightspaceClient",
    "BrightspaceOAuth",
    "ChatResult",
    "LMSResult",
    "MockAmplifyClient",
    "Mode",
    "OAuthSession",
    "build_ai_gateway",
    "build_news_multipart",
    "project_courses",
]
