from __future__ import annotations

import logging

import psycopg2
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import OperationalError as SAOperationalError

from api.router import api_router
from core.bootstrap import bootstrap_schema
from core.config import settings
from core.database import DatabaseUnavailableError, is_transient_db_connectivity_error, ping
from core.logging import setup_logging
from services.block_service import BlockServiceError


logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": code, "message": message, "error": message})


def _db_unavailable_response() -> JSONResponse:
    return _error(503, "DATABASE_UNAVAILABLE", "Database temporarily unavailable. Please retry.")


def create_app() -> FastAPI:
    setup_logging(environment=settings.environment)
    is_production = settings.environment.lower() == "production"
    app = FastAPI(
        title="Block Assignment API",
        version="0.1.0",
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
    )

    @app.exception_handler(BlockServiceError)
    def _block_service_error(_request, exc: BlockServiceError):
        logger.info("Block request refused (%s %s): %s", exc.status_code, exc.code, exc.message)
        return _error(exc.status_code, exc.code, exc.message)

    @app.exception_handler(IntegrityError)
    def _integrity_error(_request, exc: IntegrityError):
        logger.warning("Integrity error (409)", exc_info=exc)
        return _error(409, "CONFLICT", "The change conflicts with existing data.")

    @app.exception_handler(DatabaseUnavailableError)
    def _db_unavailable(_request, _exc: DatabaseUnavailableError):
        logger.warning("Database unavailable (503)", exc_info=_exc)
        return _db_unavailable_response()

    @app.exception_handler(SAOperationalError)
    def _sqlalchemy_operational_error(_request, exc: SAOperationalError):
        if is_transient_db_connectivity_error(exc):
            logger.warning("Database transient connectivity error (503)", exc_info=exc)
            return _db_unavailable_response()
        logger.error("Database operation failed", exc_info=exc)
        return _error(500, "DATABASE_ERROR", "Database operation failed.")

    # Driver-level errors that escape SQLAlchemy wrapping.
    @app.exception_handler(psycopg2.OperationalError)
    def _psycopg2_operational_error(_request, exc: Exception):
        if is_transient_db_connectivity_error(exc):
            return _db_unavailable_response()
        return _error(500, "DATABASE_ERROR", "Database operation failed.")

    allow_origins = [settings.frontend_origin]
    allow_origin_regex = None
    if not is_production:
        # Dev-friendly: allow the configured origin and any localhost port.
        allow_origins.extend(["http://localhost:5173", "http://127.0.0.1:5173"])
        allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_origin_regex=allow_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict:
        return {"app": "ok", "database": "ok" if ping() else "down"}

    bootstrap_schema()
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
