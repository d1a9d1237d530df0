"""Logging configuration."""
import logging
import sys
from typing import Optional

from app.core.config import settings

# Chatty client libraries; per-request logging comes from our own [PREFIX] lines
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "twilio.http_client", "aiosqlite")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure application logging at LOG_LEVEL (or the given level name)."""
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
