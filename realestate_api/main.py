# ---------------------------------------------------------
# realestate_api/main.py
# Real-estate listings backend
#
# Run: uvicorn realestate_api.main:app --reload (from repo root)
#
# - FastAPI + SQLite
# - /api/auth        : register, login, profile
# - /api/properties  : search, agent listings, analytics, locations, CRUD
# - /api/admin       : user and listing moderation (admin only)
# ---------------------------------------------------------

from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from realestate_api import routes_admin, routes_auth, routes_properties
from realestate_api.assets import build_asset_store
from realestate_api.config import Settings, load_settings
from realestate_api.db import init_db
from realestate_api.errors import MarketplaceError, ValidationError
from realestate_api.logging_config import CORRELATION_ID_HEADER, RequestLoggingMiddleware, setup_logging
from realestate_api.schemas import validation_messages

logger = logging.getLogger(__name__)


# ---------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------
def _error_body(message: str, errors: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        if exc.status_code >= 500:
            # Internal detail stays in the log
            logger.error("[ERROR] %s %s: %s", request.method, request.url.path, exc.message)
            return JSONResponse(status_code=exc.status_code, content=_error_body(exc.default_message))
        errors = exc.errors if isinstance(exc, ValidationError) else None
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, errors))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = validation_messages(list(exc.errors()))
        return JSONResponse(status_code=400, content=_error_body("Validation failed", errors))

    @app.exception_handler(sqlite3.Error)
    async def database_error_handler(request: Request, exc: sqlite3.Error):
        logger.exception("[DB] %s %s failed", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body("Server Error"))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(status_code=exc.status_code, content=_error_body(message), headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("[ERROR] Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body("Something went wrong!"))


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
def create_app(settings: Optional[Settings] = None, asset_store=None) -> FastAPI:
    """
    Build the application.

    Settings default to load_settings() (environment plus .env). Passing an
    asset_store skips building one from settings. The schema is created on
    startup, not at import.
    """
    settings = settings or load_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(settings.database_path)
        if app.state.asset_store is None:
            app.state.asset_store = build_asset_store(settings)
        logger.info("[STARTUP] env=%s db=%s", settings.env, settings.database_path)
        yield

    app = FastAPI(title="Real Estate Listings API", version="1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.asset_store = asset_store

    # CORS configuration from settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[CORRELATION_ID_HEADER],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    app.include_router(routes_auth.router)
    app.include_router(routes_properties.router)
    app.include_router(routes_admin.router)

    if not settings.cloudinary_enabled:
        # Local-disk images are served by the app itself
        app.mount(
            settings.upload_base_url,
            StaticFiles(directory=settings.upload_dir, check_dir=False),
            name="uploads",
        )

    @app.get("/")
    def root() -> Dict[str, str]:
        return {"message": "Welcome to the Real Estate Listings API"}

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
