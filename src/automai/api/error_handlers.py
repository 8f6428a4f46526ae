"""Global exception handlers: log details internally, return sanitized errors.

Guard rejections and Evolution API failures carry an error_key the frontend
maps to localized copy. Stack traces and upstream bodies never reach callers.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from automai.integrations.evolution import EvolutionApiError
from automai.utils.url_safety import UnsafeUrlError

logger = structlog.get_logger()


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(UnsafeUrlError)
    async def unsafe_url_handler(request: Request, exc: UnsafeUrlError) -> JSONResponse:
        # The rejected URL itself is not logged
        await logger.awarning(
            "base_url_rejected",
            path=request.url.path,
            error_key=exc.error_key,
            reason=exc.reason,
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(EvolutionApiError)
    async def evolution_error_handler(request: Request, exc: EvolutionApiError) -> JSONResponse:
        await logger.awarning(
            "evolution_api_error",
            path=request.url.path,
            error_key=exc.error_key,
            upstream_status=exc.status_code,
        )
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        await logger.awarning(
            "validation_error",
            path=request.url.path,
            errors=len(exc.errors()),
        )
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation error",
                "errors": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        await logger.aerror(
            "unhandled_exception",
            path=request.url.path,
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
