"""FastAPI application for the construction ledger."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.api.distribution import router as distribution_router
from src.services import dispose_engine
from src.services.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Ledger API starting")
    yield
    await dispose_engine()
    logger.info("Ledger API stopped")


def create_app() -> FastAPI:
    """Build the FastAPI app with all routers mounted."""
    settings = get_settings()
    app = FastAPI(
        title=settings.api_title,
        description="Percentage and maps distribution engine for construction projects",
        version=settings.api_version,
        lifespan=lifespan,
    )
    app.include_router(distribution_router)

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint for monitoring."""
        return {"status": "ok"}

    return app


__all__ = ["create_app"]
