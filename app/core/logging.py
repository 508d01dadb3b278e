"""Logging configuration."""
import logging
import sys
from typing import Union

# Chatty at INFO; call flow lines matter more
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "twilio", "aiosqlite", "sqlalchemy.engine")


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure application logging once, at startup."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
