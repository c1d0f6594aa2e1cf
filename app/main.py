"""FastAPI application entrypoint."""
from contextlib import asynccontextmanager
import logging

import httpx
from fastapi import FastAPI

from app.errors import register_exception_handlers
from app.routers import health, recommendations, analysis
from app.settings import settings
from app.startup import run_startup_validation
from app.middleware import (
    RequestLoggingMiddleware,
    RateLimitMiddleware,
    setup_logging
)

# Configure logging before anything else
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan with startup validation.

    Validates settings and database connection before accepting traffic and
    opens one HTTP client shared by all vendor calls.
    """
    logger.info(f"Starting application in {settings.ENV} environment")

    try:
        run_startup_validation()
    except Exception as e:
        logger.error(f"Startup validation failed: {e}")
        logger.error("Application will not start")
        raise

    async with httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_SECONDS) as client:
        app.state.http_client = client
        yield
        app.state.http_client = None

    logger.info("Shutting down application")


app = FastAPI(
    title="Declutter Decisions",
    description="Keep, store, sell, donate or discard recommendations for household items",
    version="0.1.0",
    lifespan=lifespan
)

# Add middleware (order matters - last added is executed first)
# 1. Rate Limiting
app.add_middleware(RateLimitMiddleware)

# 2. Logging (outermost - logs everything, including rate-limited requests)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Include routers
app.include_router(health.router)
app.include_router(recommendations.router)
app.include_router(analysis.router)
