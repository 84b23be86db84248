"""
Centralized logging configuration for bqcost.

Structured JSON logging in production, readable lines in development,
correlation IDs carried through contextvars, and redaction of OAuth
tokens before anything reaches a handler.

All modules should use:
    from bqcost.logging_config import get_logger
    logger = get_logger(__name__)
"""

import json
import logging
import os
import re
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path

ROOT_LOGGER = "bqcost"

# ---------------------------------------------------------------------------
# Correlation ID context
# ---------------------------------------------------------------------------
_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_HEADER = "x-correlation-id"


def get_correlation_id() -> str:
    """Return the current correlation ID, or empty string if none set."""
    return _correlation_id.get()


def set_correlation_id(cid: str) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id.set(cid)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Environment detection
# ---------------------------------------------------------------------------
def _get_environment() -> str:
    return os.environ.get("APP_ENV", os.environ.get("ENV", "development")).lower()


def is_production() -> bool:
    return _get_environment() == "production"


# ---------------------------------------------------------------------------
# Secret redaction
# ---------------------------------------------------------------------------
_SECRET_PATTERNS = [
    re.compile(r"(access[_-]?token\s*[:=]\s*)['\"]?[\w\-\.]{10,}['\"]?", re.IGNORECASE),
    re.compile(r"(refresh[_-]?token\s*[:=]\s*)['\"]?[\w\-\.\/]{10,}['\"]?", re.IGNORECASE),
    re.compile(r"(Bearer\s+)[\w\-\.]{10,}", re.IGNORECASE),
    re.compile(r"()ya29\.[\w\-\.]+"),
]


def redact_secrets(message: str) -> str:
    """Remove OAuth tokens from a message."""
    result = message
    for pattern in _SECRET_PATTERNS:
        result = pattern.sub(r"\1[REDACTED]", result)
    return result


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------
class StructuredJsonFormatter(logging.Formatter):
    """Formats log records as one JSON object per line.

    Every entry includes timestamp, level, service, context and
    correlationId. Records with exc_info also carry stackTrace.
    """

    LEVEL_MAP = {
        "DEBUG": "debug",
        "INFO": "info",
        "WARNING": "warn",
        "ERROR": "error",
        "CRITICAL": "fatal",
    }

    def __init__(self, service: str = ROOT_LOGGER):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": self.LEVEL_MAP.get(record.levelname, record.levelname.lower()),
            "service": self.service,
            "context": record.name,
            "correlationId": get_correlation_id() or None,
            "message": redact_secrets(record.getMessage()),
        }

        if record.exc_info and record.exc_info[1] is not None:
            entry["stackTrace"] = redact_secrets(self.formatException(record.exc_info))

        # extra={"data": {...}}
        if hasattr(record, "data") and isinstance(record.data, dict):
            entry["data"] = record.data

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S"
        )
        cid = get_correlation_id()
        cid_str = f" [{cid[:8]}]" if cid else ""
        msg = redact_secrets(record.getMessage())
        base = f"{record.levelname}:\t{ts}\t{record.name}{cid_str}\t{msg}"

        if record.exc_info and record.exc_info[1] is not None:
            base += "\n" + redact_secrets(self.formatException(record.exc_info))

        return base


# ---------------------------------------------------------------------------
# File handler with retention
# ---------------------------------------------------------------------------
LOG_RETENTION_HOURS = 48


class RetentionFileHandler(logging.FileHandler):
    """Appends to <log_dir>/bqcost.log and truncates it once it ages past retention."""

    def __init__(self, log_dir: Path, retention_hours: int = LOG_RETENTION_HOURS):
        log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = log_dir / "bqcost.log"
        self.retention_hours = retention_hours
        self._cleanup_interval = 3600
        self._last_cleanup = 0.0
        super().__init__(str(self.log_file), mode="a", encoding="utf-8")
        self._truncate_if_stale()

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        if time.time() - self._last_cleanup > self._cleanup_interval:
            self._truncate_if_stale()

    def _truncate_if_stale(self) -> None:
        self._last_cleanup = time.time()
        cutoff = self._last_cleanup - self.retention_hours * 3600
        try:
            if self.log_file.exists() and self.log_file.stat().st_mtime < cutoff:
                self.log_file.write_text("")
        except OSError:
            # Truncation is best-effort.
            pass


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------
_configured = False


def configure_logging(
    log_level: str = "INFO",
    service: str = ROOT_LOGGER,
    log_dir: Path | None = None,
) -> None:
    """Configure the bqcost logger tree.

    Call once at startup (main.py). Later get_logger() calls inherit this.

    Args:
        log_level: Minimum log level name.
        service: Service name included in every structured entry.
        log_dir: If set, also write JSON lines to a retained file there.
    """
    global _configured

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if is_production():
        formatter = StructuredJsonFormatter(service=service)
    else:
        formatter = DevelopmentFormatter()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root_logger.addHandler(console)

    if log_dir is not None:
        try:
            file_handler = RetentionFileHandler(log_dir)
            file_handler.setFormatter(StructuredJsonFormatter(service=service))
            root_logger.addHandler(file_handler)
        except OSError:
            root_logger.warning(f"Could not initialize file logging in {log_dir}")

    root_logger.propagate = False
    _configured = True


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Get a logger routed through the bqcost root logger.

    Module names already under the package (bqcost.store.db) are used
    as-is; anything else is nested below the root.
    """
    if not _configured:
        configure_logging()

    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)

    logger = logging.getLogger(f"{ROOT_LOGGER}.{name}")
    logger.propagate = True
    return logger
