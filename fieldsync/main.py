"""
FastAPI application entrypoint for the fieldsync integration service.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from fieldsync.api.routes import router as api_router
from fieldsync.core.config import get_settings
from fieldsync.core.logging import configure_logging
from fieldsync.dependencies import get_http_transport


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    if get_http_transport.cache_info().currsize:
        await get_http_transport().aclose()


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="fieldsync",
        version="0.1.0",
        description="OAuth-backed Dialpad and Gmail integrations for field-service tenants.",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
