"""
FastAPI application entry point for the tree page backend.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from treepage import dependencies
from treepage.config import Settings, get_settings
from treepage.errors import TreePageError, StorageIOError, GenerationExhausted
from treepage.routes import link_router, router

logger = logging.getLogger(__name__)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TreePageError)
    async def handle_tree_page_error(request: Request, exc: TreePageError):
        if isinstance(exc, (StorageIOError, GenerationExhausted)):
            logger.error(
                "%s %s failed: %s",
                request.method,
                request.url.path,
                exc,
                exc_info=exc,
            )
            return JSONResponse({"error": "Internal server error"}, status_code=500)
        return JSONResponse(exc.body(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
        return JSONResponse({"error": "Invalid request"}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
        )
        return JSONResponse({"error": "Internal server error"}, status_code=500)


def _register_access_log(app: FastAPI) -> None:
    access_logger = logging.getLogger("treepage.access")

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        access_logger.info(
            "%s %s %d %.1f ms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    settings.resolved_data_dir().mkdir(parents=True, exist_ok=True)
    settings.resolved_photo_dir().mkdir(parents=True, exist_ok=True)
    dependencies.configure(settings)

    app = FastAPI(title="Tree Page Backend", version="0.1.0")
    app.state.settings = settings
    _register_error_handlers(app)
    _register_access_log(app)

    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(link_router)

    # Mounts match by prefix, so the site root goes last.
    app.mount(
        "/uploads",
        StaticFiles(directory=str(settings.resolved_uploads_dir())),
        name="uploads",
    )
    app.mount(
        "/",
        StaticFiles(directory=str(settings.root_dir), html=True, check_dir=False),
        name="site",
    )
    return app
