"""FastAPI application factory for the read-only API.

Usage::

    from kubemirror.api import create_app

    app = create_app(informer)

The factory is used by both the production bootstrap (``kubemirror.app``)
and unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from kubemirror.api.routes import probes, router
from kubemirror.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(informer: Any) -> FastAPI:
    """Create the API application serving *informer*'s cache.

    Args:
        informer: A started (or starting) Informer.  Only its read-only
                  surface is used.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubemirror import __version__

    app = FastAPI(
        title="kubemirror",
        summary="Read-only view of a mirrored Kubernetes resource class",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url=None,
        openapi_url="/api/v1/openapi.json",
    )
    app.state.informer = informer

    app.include_router(probes)
    app.include_router(router, prefix=_API_PREFIX)
    app.mount("/metrics", make_asgi_app())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = exc.errors()
        first_msg = str(errors[0].get("msg", "")) if errors else ""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=first_msg).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
