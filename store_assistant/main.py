import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from store_assistant.assistant.errors import PersistenceConflictError
from store_assistant.config import settings
from store_assistant.db.base import engine, init_db
from store_assistant.llm.client import LLMClientConfigError, LLMTimeoutError
from store_assistant.observability import initialize_langfuse, shutdown_langfuse
from store_assistant.routers import assistant, slot_configurations, training

logger = logging.getLogger(__name__)


def _is_schema_mismatch_programming_error(exc: ProgrammingError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "42703":
        return True
    message = str(orig or exc).lower()
    return any(
        marker in message
        for marker in (
            "undefined column",
            "does not exist",
            "no such column",
        )
    )


@asynccontextmanager
async def _app_lifespan(_app: FastAPI) -> AsyncIterator[None]:
    init_db()
    initialize_langfuse()
    try:
        yield
    finally:
        shutdown_langfuse()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Store Assistant API",
        default_response_class=ORJSONResponse,
        lifespan=_app_lifespan,
    )

    allow_origins = sorted(set(settings.BACKEND_CORS_ORIGINS))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PersistenceConflictError)
    async def persistence_conflict_handler(_request: Request, exc: PersistenceConflictError) -> ORJSONResponse:
        return ORJSONResponse(status_code=409, content={"detail": exc.user_message()})

    @app.exception_handler(LLMTimeoutError)
    async def llm_timeout_handler(_request: Request, exc: LLMTimeoutError) -> ORJSONResponse:
        logger.warning("Model request timed out", extra={"model": exc.model, "timeout": exc.timeout_seconds})
        return ORJSONResponse(status_code=504, content={"detail": str(exc), "retryable": True})

    @app.exception_handler(LLMClientConfigError)
    async def llm_config_error_handler(_request: Request, exc: LLMClientConfigError) -> ORJSONResponse:
        logger.error("Model provider is not configured", extra={"error": str(exc)})
        return ORJSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(ProgrammingError)
    async def programming_error_handler(_request: Request, exc: ProgrammingError) -> ORJSONResponse:
        logger.exception("Database programming error", exc_info=exc)
        if _is_schema_mismatch_programming_error(exc):
            return ORJSONResponse(
                status_code=503,
                content={"detail": "Database schema is out of date. Recreate the tables and redeploy."},
            )
        return ORJSONResponse(status_code=500, content={"detail": "Database query failed."})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("Unhandled server exception", exc_info=exc)
        return ORJSONResponse(status_code=500, content={"detail": "Internal server error."})

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/health/db")
    def health_db() -> dict[str, str]:
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return {"db": "ok"}
        except Exception as exc:  # pragma: no cover - simple runtime check
            return {"db": f"error: {exc}"}

    app.include_router(assistant.router)
    app.include_router(slot_configurations.router)
    app.include_router(training.router)

    return app


app = create_app()
