"""
logging_config.py — Centralized Logging Configuration

Sets up Loguru as the single logging backend. Intercepts Python's stdlib
logging module so uvicorn, SQLAlchemy and httpx records route through
Loguru with the same format.

Business Rules:
- All logs go through Loguru (no direct print() or stdlib logging)
- JSON format in production for machine parsing
- Human-readable format in development
- Scoring and draft reconciliation only log at DEBUG

Called by: app/main.py (on startup)
Depends on: LOG_LEVEL, APP_URL environment variables
"""

import logging
import os
import sys

from loguru import logger

_DEV_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0")


def setup_logging() -> None:
    """Configure Loguru and intercept stdlib logging.

    Call once at app startup, before any other imports that log.
    """
    logger.remove()

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    app_url = os.getenv("APP_URL", "http://localhost:8000")
    is_production = not any(host in app_url for host in _DEV_HOSTS)

    if is_production:
        # Production: JSON lines to stdout (container runtime captures these)
        logger.add(
            sys.stdout,
            level=log_level,
            format="{message}",
            serialize=True,
        )
    else:
        logger.add(
            sys.stdout,
            level=log_level,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            colorize=True,
        )

    # Intercept stdlib logging → route through Loguru
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for noisy in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured", level=log_level, production=is_production)


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames from stdlib logging internals
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
