"""Itumy FastAPI application entry point."""

from __future__ import annotations

import secrets
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from itumy import __version__
from itumy.config import get_settings
from itumy.db import close_db, init_db
from itumy.errors import InternalError, KeyServiceError, ValidationError
from itumy.logging_config import configure_logging
from itumy.services.sweeper.lifecycle import init_sweep_scheduler, shutdown_sweep_scheduler

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()

    # Startup
    logger.info("itumy.startup", version=__version__)
    await init_db()

    app.state.sweep_scheduler = await init_sweep_scheduler(settings)

    yield

    # Shutdown
    logger.info("itumy.shutdown")

    await shutdown_sweep_scheduler(app.state.sweep_scheduler)
    app.state.sweep_scheduler = None

    await close_db()


def _resolve_session_secret(configured: str | None) -> str:
    if configured:
        return configured
    logger.warning(
        "security.session_secret.ephemeral",
        msg="ITUMY_SECURITY__SESSION_SECRET is not set; admin sessions will not survive a restart",
    )
    return secrets.token_hex(32)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()
    configure_logging(settings.logging.level, settings.logging.json_logs)

    app = FastAPI(
        title="Itumy",
        description="API key issuing and administration service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.session_secret = _resolve_session_secret(settings.security.session_secret)
    app.state.sweep_scheduler = None

    # Request ID middleware
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add request ID to all requests and bind it to the log context."""
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        response.headers["X-Request-Id"] = request_id
        return response

    # Error handlers
    @app.exception_handler(KeyServiceError)
    async def key_service_error_handler(request: Request, exc: KeyServiceError):
        """Render service errors as the JSON envelope."""
        request_id = getattr(request.state, "request_id", None)
        if exc.status_code >= 500:
            logger.error("request.failed", code=exc.code, message=exc.message, **exc.details)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies are plain validation errors."""
        return await key_service_error_handler(
            request,
            ValidationError("Invalid request body", details={"errors": jsonable_encoder(exc.errors())}),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        """Anything else is an internal error, still rendered as the envelope."""
        request_id = getattr(request.state, "request_id", None)
        logger.exception("request.unhandled_error", path=request.url.path, error=str(exc))
        error = InternalError("Unexpected server error", error=str(exc))
        headers = {"X-Request-Id": request_id} if request_id else None
        return JSONResponse(
            status_code=error.status_code,
            content=error.to_dict(request_id),
            headers=headers,
        )

    # Health check
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    from itumy.api import router as api_router

    app.include_router(api_router)

    return app


# Create default app instance
app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "itumy.main:app",
        host=settings.server.host,
        port=settings.server.port,
    )


if __name__ == "__main__":
    run()
