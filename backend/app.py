from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.application import ServiceContainer, configure_services, get_services, reset_services
from backend.core.config import Settings
from backend.core.errors import BridgeError
from backend.core.logging_utils import configure_logging
from backend.routes import auth, content, courses, health, processing

logger = logging.getLogger(__name__)


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )


def create_app(settings: Settings | None = None, *, container: ServiceContainer | None = None) -> FastAPI:
    if container is not None:
        settings = container.settings
        configure_services(container)
    elif settings is not None:
        configure_services(ServiceContainer.build(settings))
    else:
        load_dotenv()
        settings = Settings.from_env()

    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        await get_services().aclose()
        reset_services()

    app = FastAPI(title="Amplify Brightspace Bridge API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _install_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(auth.api_router, prefix="/api")
    app.include_router(courses.router, prefix="/api")
    app.include_router(content.router, prefix="/api")
    app.include_router(processing.router, prefix="/api")
    app.include_router(health.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Amplify Brightspace Bridge API",
                "docs": "/docs",
                "health": "/api/health",
                "auth": "/auth",
            }
        )

    return app


app = create_app()
