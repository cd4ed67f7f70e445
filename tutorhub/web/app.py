"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tutorhub.config.logging import setup_logging
from tutorhub.config.settings import Settings, get_settings
from tutorhub.exceptions import ApiError, InternalError, ValidationError
from tutorhub.web.dependencies import AuthServices, build_services
from tutorhub.web.health import check_health
from tutorhub.web.middleware import RequestIDMiddleware
from tutorhub.web.routes.access import router as access_router
from tutorhub.web.routes.auth import router as auth_router
from tutorhub.web.routes.parent_auth import router as parent_auth_router
from tutorhub.web.routes.parents import router as parents_router

logger = structlog.get_logger(__name__)


def create_app(settings: Settings | None = None, services: AuthServices | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if services.engine is not None:
            from tutorhub.storage.database import init_db

            await init_db(services.engine)
        yield
        if services.engine is not None:
            await services.engine.dispose()

    app = FastAPI(
        title="TutorHub",
        description="Multi-tenant tutoring center access core",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("api_error", code=exc.code, path=request.url.path)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
        error = ValidationError(details={"fields": fields})
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        # Never echo internals to the client.
        logger.exception("unhandled_error", path=request.url.path, error_type=type(exc).__name__)
        error = InternalError()
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    # Middleware (last added runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/health")
    async def health_check() -> dict[str, object]:
        return await check_health(services.engine)

    app.include_router(auth_router)
    app.include_router(parent_auth_router)
    app.include_router(access_router)
    app.include_router(parents_router)

    logger.info("app_created", app_env=settings.app_env, use_database=services.engine is not None)
    return app
