"""
Structured logging configuration.

Provides:
    • JSON-formatted logs for production (machine-parseable)
    • Pretty console logs for development (human-readable)
    • Request-scoped context (request_id, client_ip, endpoint)
    • Alert-engine extras (alert_id, scope, recipient_count, ...) in both

Usage:
    from backend.app.core.logging_config import setup_logging, get_logger

    setup_logging(settings)
    logger = get_logger(__name__)
    logger.info("Alert stored", extra={"alert_id": "ALR-...", "operation": "create"})
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from backend.app.core.config import Settings, settings as default_settings

# ── Context variable for request-scoped data ──
_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context", default={}
)

# Record attributes passed through ``extra=`` by the alert engine
_EXTRA_KEYS = (
    "alert_id", "operation", "scope", "recipient_count", "delivered",
    "subscriber_count", "duration_ms", "status_code", "endpoint",
)

# Shown inline by the pretty formatter, in this order
_INLINE_KEYS = ("alert_id", "scope", "subscriber_count")


def set_request_context(**kwargs: Any) -> None:
    """Replace the request-scoped log context. No arguments clears it."""
    _request_context.set(kwargs)


def get_request_context() -> Dict[str, Any]:
    return _request_context.get()


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in _EXTRA_KEYS if hasattr(record, key)}


# ═══════════════════════════════════════════════════════════════════════════
# Formatters
# ═══════════════════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def __init__(self, service: str = "") -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if self.service:
            entry["service"] = self.service

        ctx = get_request_context()
        if ctx:
            entry["context"] = ctx
        entry.update(_record_extras(record))

        if record.exc_info and record.exc_info[1]:
            exc = record.exc_info[1]
            entry["exception"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    """Coloured single-line format for local development."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        ts = self.formatTime(record, "%H:%M:%S")

        request_id = get_request_context().get("request_id")
        prefix = f" [{request_id[:8]}]" if request_id else ""

        extras = _record_extras(record)
        tags = " ".join(f"{k}={extras[k]}" for k in _INLINE_KEYS if k in extras)
        suffix = f"  ({tags})" if tags else ""

        line = (
            f"{color}{ts} {record.levelname:8s}{self.RESET}"
            f"{prefix} {record.name}: {record.getMessage()}{suffix}"
        )
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


# ═══════════════════════════════════════════════════════════════════════════
# Setup
# ═══════════════════════════════════════════════════════════════════════════

def setup_logging(config: Optional[Settings] = None) -> None:
    """
    Configure the root logger: JSON in production, pretty output elsewhere.

    Safe to call more than once (each call replaces the root handlers), which
    ``create_app`` relies on when tests build several applications.
    """
    config = config or default_settings

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JSONFormatter(service=config.APP_NAME) if config.is_production else PrettyFormatter()
    )
    root.addHandler(handler)

    for noisy in ("uvicorn.access", "httpx", "httpcore", "aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    if config.DATABASE_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
