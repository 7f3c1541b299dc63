from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Mapping

from .config import LOG_FILE

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"

REDACTED = "<<REDACTED>>"
SENSITIVE_FIELDS = frozenset({"password", "password_hash", "confirm", "confirm_password"})


def setup_logging() -> None:
    """Configure application logging with a daily rotating file handler."""

    root = logging.getLogger()
    # Avoid duplicating handlers when called multiple times
    for handler in root.handlers:
        if isinstance(handler, TimedRotatingFileHandler):
            return

    root.setLevel(logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    log_path = Path(LOG_FILE)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = TimedRotatingFileHandler(
        log_path,
        when="midnight",
        interval=1,
        backupCount=14,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)


def redact(data: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a copy of ``data`` with password-like fields masked."""

    if not data:
        return {}
    clean: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower() in SENSITIVE_FIELDS and value:
            clean[key] = REDACTED
        else:
            clean[key] = value
    return clean
