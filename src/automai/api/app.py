"""FastAPI application factory, lifespan management, and middleware configuration.

Creates the FastAPI app with:
- Async lifespan (logging)
- CORS middleware
- Rate limiting (slowapi) on routes that call tenant gateways
- Request body size limit middleware
- Route modules and global error handlers
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.responses import JSONResponse

from automai import __version__
from automai.api.error_handlers import register_error_handlers
from automai.api.rate_limit import limiter
from automai.api.routes import health, whatsapp
from automai.config import Settings
from automai.log_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging on startup and record the gateway policy in effect."""
    settings: Settings = app.state.settings

    configure_logging(log_level=settings.log_level, log_format=settings.log_format)

    await logger.ainfo(
        "startup_complete",
        evolution_allow_http=settings.evolution_allow_http,
        evolution_resolve_dns=settings.evolution_resolve_dns,
    )

    yield

    await logger.ainfo("shutdown_complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory: create and configure the FastAPI app.

    Args:
        settings: Optional Settings instance. If None, loads from environment.

    Returns:
        A fully configured FastAPI application.
    """
    if settings is None:
        from automai.config import get_settings
        settings = get_settings()

    app = FastAPI(
        title="AutomAI Gateway",
        description="Tenant WhatsApp gateway onboarding with SSRF-safe base URLs",
        version=__version__,
        lifespan=lifespan,
    )

    # Attach settings before lifespan runs
    app.state.settings = settings

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # --- Rate limiting ---
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded"},
        )

    # --- Request body size limit ---
    max_body = settings.max_request_body_bytes

    @app.middleware("http")
    async def limit_request_body(request: Request, call_next: object) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > max_body:
            return JSONResponse(
                status_code=413,
                content={"detail": "Request body too large"},
            )
        response = await call_next(request)  # type: ignore[operator]
        return response

    # --- Routes ---
    app.include_router(whatsapp.router)
    app.include_router(health.router)

    # --- Error handlers ---
    register_error_handlers(app)

    return app
