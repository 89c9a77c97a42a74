"""
Logging utilities for action codes with key and signature masking.

Usage:
    from actioncodes.logging import get_logger, mask_value

    logger = get_logger(__name__)
    logger.info("Issued action code for %s", mask_value(pubkey))
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

MASK_PATTERN = "***"


def mask_value(value: Optional[str], show_chars: int = 4) -> str:
    """Shorten a key, signature or base64 payload to ``head...tail`` for log records.

    Values too short to leave a hidden middle collapse to ``***``.
    """
    if not value or len(value) <= show_chars * 2:
        return MASK_PATTERN
    head, tail = value[:show_chars], value[-show_chars:]
    return f"{head}...{tail}"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``actioncodes`` namespace."""
    if not name.startswith("actioncodes"):
        name = f"actioncodes.{name}"
    return logging.getLogger(name)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, stamped with the record's own creation time."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
) -> None:
    """Configure the ``actioncodes`` logger hierarchy.

    Args:
        level: Logging level
        json_format: Whether to use JSON formatting
    """
    handler = logging.StreamHandler()
    handler.setLevel(level)

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root = logging.getLogger("actioncodes")
    root.handlers = [handler]
    root.setLevel(level)


__all__ = [
    "mask_value",
    "get_logger",
    "configure_logging",
    "JsonFormatter",
]
