"""FastAPI application entrypoint and configuration.

This module provides the main FastAPI application factory that sets up
CORS middleware, includes the upload, overlap and layer routers, maps the
service error taxonomy onto JSON responses and exposes a health check
endpoint for monitoring.

Example:
    The application can be run with uvicorn:
        $ uvicorn geooverlap.main:app --reload

    Or with the installed console script, which honours HOST/PORT:
        $ geooverlap
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

import fastapi
import uvicorn
from fastapi import responses
from fastapi.middleware import cors

from geooverlap.api import layers, overlap, upload
from geooverlap.core import config, errors
from geooverlap.db import database

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def _lifespan(_app: fastapi.FastAPI) -> AsyncIterator[None]:
    yield
    database.close_spatial_store()


async def _service_error_handler(
    request: fastapi.Request,
    exc: errors.ServiceError,
) -> responses.JSONResponse:
    """Render a ``ServiceError`` as ``{"ok": false, "message": ...}``."""
    logger.warning(
        "%s %s failed (%s): %s",
        request.method,
        request.url.path,
        exc.__class__.__name__,
        exc.message,
    )
    return responses.JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "message": exc.message},
    )


async def _unexpected_error_handler(
    request: fastapi.Request,
    exc: Exception,
) -> responses.JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return responses.JSONResponse(
        status_code=500,
        content={"ok": False, "message": str(exc) or exc.__class__.__name__},
    )


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Sets up CORS middleware, includes the upload, overlap and layer routers,
    registers the error handlers and adds a health check endpoint. CORS
    origins are configured from settings.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    app = fastapi.FastAPI(
        title="Geo Overlap",
        version="0.1.0",
        lifespan=_lifespan,
    )

    app.include_router(upload.router)
    app.include_router(overlap.router)
    app.include_router(layers.router)

    app.add_exception_handler(
        errors.ServiceError,
        _service_error_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, _unexpected_error_handler)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    """Console entry point: configure logging and serve ``app`` with uvicorn."""
    settings = config.get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
