"""FastAPI application entrypoint and configuration.

This module provides the main FastAPI application factory that sets up
logging, CORS middleware, the API routers for layers, markers, uploads and
geocoding, static serving of uploaded photos under ``/uploads``, error
handlers, and a health check endpoint for monitoring.

Example:
    The application can be run with uvicorn:
        $ uvicorn mapnotes.main:app --reload

    Or imported and used programmatically:
        >>> from mapnotes.main import app
        >>> # Use app in ASGI server
"""

from __future__ import annotations

import logging

import fastapi
from fastapi import exceptions, responses, staticfiles
from fastapi.middleware import cors

from mapnotes.api import geocode, layers, markers, upload
from mapnotes.core import config
from mapnotes.db import database
from mapnotes.services import images

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _validation_message(exc: exceptions.RequestValidationError) -> str:
    """Flatten pydantic errors into ``"field: message"`` pairs."""
    parts = []
    for error in exc.errors():
        location = ".".join(
            str(part) for part in error.get("loc", ()) if part != "body"
        )
        message = str(error.get("msg", "Invalid value"))
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request"


def create_app(settings: config.Settings | None = None) -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Sets up logging, CORS middleware, the API routers, the static mount for
    uploaded photos and the exception handlers. Requests that fail parsing
    are rejected with 400 and missing records are reported as 404; storage
    and unexpected failures are logged with their traceback and reported as
    500 with a static message.

    Args:
        settings: Settings to build the app with. Defaults to
            ``config.get_settings()``. Route dependencies still resolve
            ``config.get_settings``, so tests override both.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = settings or config.get_settings()
    settings.ensure_directories()
    _configure_logging(settings.log_level)

    app = fastapi.FastAPI(title="Map Notes", version="0.1.0")

    app.include_router(layers.router)
    app.include_router(markers.router)
    app.include_router(upload.router)
    app.include_router(geocode.router)

    app.mount(
        images.UPLOADS_URL_PREFIX,
        staticfiles.StaticFiles(directory=settings.upload_dir),
        name="uploads",
    )

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(database.RecordNotFoundError)
    async def not_found_handler(
        _request: fastapi.Request,
        exc: database.RecordNotFoundError,
    ) -> responses.JSONResponse:
        return responses.JSONResponse(
            status_code=404,
            content={"detail": str(exc)},
        )

    @app.exception_handler(exceptions.RequestValidationError)
    async def validation_error_handler(
        request: fastapi.Request,
        exc: exceptions.RequestValidationError,
    ) -> responses.JSONResponse:
        logger.info(
            "Rejected %s %s: %s",
            request.method,
            request.url.path,
            exc.errors(),
        )
        return responses.JSONResponse(
            status_code=400,
            content={"detail": _validation_message(exc)},
        )

    @app.exception_handler(database.StorageError)
    async def storage_error_handler(
        request: fastapi.Request,
        exc: database.StorageError,
    ) -> responses.JSONResponse:
        logger.error(
            "Storage failure on %s %s: %s",
            request.method,
            request.url.path,
            exc,
        )
        return responses.JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(
        request: fastapi.Request,
        exc: Exception,
    ) -> responses.JSONResponse:
        logger.exception(
            "Unhandled error on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return responses.JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    logger.info("Serving uploads from %s", settings.upload_dir.resolve())
    return app


app = create_app()
