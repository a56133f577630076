# /flowbot/utils/logging.py

import logging
import sys
from typing import Optional

import structlog
from flowbot.config.settings import settings

SERVICE_NAME = "flowbot"

# Libraries whose INFO output drowns out flow run logs
NOISY_LOGGERS = ("uvicorn.access", "httpx", "pymongo", "google_genai", "openai")


def add_service_context(logger, method_name, event_dict):
    """Tags every record with the service and environment it came from."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("environment", settings.environment)
    return event_dict


def resolve_level(level: Optional[str]) -> int:
    """Maps a level name such as "debug" to its logging constant; unknown names mean INFO."""
    value = logging.getLevelName(str(level or "INFO").upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: Optional[str] = None):
    """
    Routes both the engine's stdlib loggers and the routes' structlog loggers
    through one formatter: console output in development, JSON lines elsewhere.

    Args:
        level: Level name; defaults to settings.log_level
    """
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.environment == "development":
        final_processor = structlog.dev.ConsoleRenderer()
    else:
        final_processor = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=final_processor,
        foreign_pre_chain=shared_processors,
    ))

    root_logger = logging.getLogger()
    # The lifespan runs once per app instance; tests build several
    for existing in list(root_logger.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(resolve_level(level or settings.log_level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
