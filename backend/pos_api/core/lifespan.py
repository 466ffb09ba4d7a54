"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from pos_shared.infrastructure.db import engine
from pos_shared.config.settings import settings
from pos_shared.config.logging import setup_logging, rest_api_logger as logger
from pos_shared.infrastructure.events import close_notifier, close_redis_sync_client, get_notifier
from pos_api.models import Base


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Initialize logging
    setup_logging()

    # Validate production settings before startup
    config_errors = settings.validate_production_settings()
    if config_errors:
        for error in config_errors:
            logger.error("Configuration error", error=error)
        if settings.environment == "production":
            raise RuntimeError(f"Production configuration errors: {'; '.join(config_errors)}")
        logger.warning("Running with development defaults")

    logger.info("Starting POS API", port=settings.rest_api_port, env=settings.environment)

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    # Pick the event publisher once, while starting up
    notifier = get_notifier()
    logger.info("Realtime notifier ready", **notifier.health())

    yield

    # Shutdown
    logger.info("Shutting down POS API")
    close_notifier()
    close_redis_sync_client()
    logger.info("Event publisher closed")
