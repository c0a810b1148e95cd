"""JSON-lines logging for the client process."""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from ..config.paths import log_dir
from ..config.settings import ClientSettings
from .trace import current_message_type, current_trace

ROOT_LOGGER = "companion_client"
CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, tagged with the message being dispatched."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "category": record.name,
            "message": record.getMessage(),
            "trace_id": current_trace(),
            "message_type": current_message_type(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class SizeAndTimeRotatingFileHandler(TimedRotatingFileHandler):
    """Roll over at midnight or once the file would exceed ``max_bytes``."""

    def __init__(self, filename: str | Path, *, max_bytes: int = 0, backup_count: int = 0) -> None:
        self.max_bytes = max_bytes
        super().__init__(str(filename), when="midnight", backupCount=backup_count, encoding="utf-8")

    def shouldRollover(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if self.max_bytes > 0:
            if self.stream is None:  # pragma: no cover
                self.stream = self._open()
            size = len(f"{self.format(record)}\n".encode("utf-8"))
            if self.stream.tell() + size >= self.max_bytes:
                return True
        return super().shouldRollover(record)


def configure_logging(settings: ClientSettings, *, console: bool = False) -> logging.Logger:
    """Attach the JSON file handler (once) and optionally a stderr handler."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(settings.log_level.upper())

    if not any(isinstance(h, SizeAndTimeRotatingFileHandler) for h in logger.handlers):
        directory = Path(settings.log_dir) if settings.log_dir else log_dir()
        directory.mkdir(parents=True, exist_ok=True)
        handler = SizeAndTimeRotatingFileHandler(
            directory / "client.jsonl",
            max_bytes=settings.log_rotate_mb * 1024 * 1024,
            backup_count=settings.log_retention_days,
        )
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

    has_console = any(type(h) is logging.StreamHandler for h in logger.handlers)
    if console and not has_console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        logger.addHandler(stream)
    return logger
