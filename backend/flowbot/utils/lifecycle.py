# /flowbot/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from flowbot.utils.logging import setup_logging
from flowbot.services.db_service import db_service
from flowbot.services.http_service import http_service
from flowbot.services.whatsapp_service import whatsapp_service

# Startup and shutdown of the shared collaborators.

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()
    logger.info("Application starting up...")

    await db_service.create_indexes()

    logger.info("Application startup complete. Ready to accept requests.")

    yield  # Application is now running

    logger.info("Application shutting down...")

    await whatsapp_service.close()
    await http_service.close()
    db_service.client.close()
