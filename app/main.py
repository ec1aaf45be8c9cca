from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.logging import logger
from app.routers.soft_delete import router as soft_delete_router
from app.services.retention_purge_scheduler import RetentionPurgeScheduler
from app.services.soft_delete_errors import SoftDeleteError
from core.settings import get_settings
from db.session import AsyncSessionLocal, engine


settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = RetentionPurgeScheduler(AsyncSessionLocal, settings)
    scheduler.start()
    app.state.retention_purge_scheduler = scheduler
    try:
        yield
    finally:
        scheduler.shutdown()
        # Ensure DB connections are cleanly closed on shutdown
        await engine.dispose()


async def soft_delete_error_handler(
    request: Request, exc: SoftDeleteError
) -> JSONResponse:
    """Render a rejected soft-delete operation as a JSON error body."""

    logger.info(
        "Soft-delete request rejected (%s): %s %s",
        exc.code,
        request.method,
        request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "code": exc.code,
            "entity_type": exc.entity_type,
            "entity_id": exc.entity_id,
        },
    )


def create_app(allowed_origins: Sequence[str] | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        allowed_origins: Optional list of CORS origins to allow. If not provided,
            permissive defaults will be used for local development.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

    cors_origins = list(
        allowed_origins
        or [
            "http://localhost",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SoftDeleteError, soft_delete_error_handler)

    app.include_router(soft_delete_router, prefix="/soft-delete", tags=["soft-delete"])

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
