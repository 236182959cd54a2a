"""
Logging setup for Inventory Sync.

Sync runs log with a run context attached through ``extra=``:

    logger.info("Processing page", extra=run_context(state, session="default"))

The json format emits those fields as top-level keys; the simple format
and the log file append them as ``key=value`` pairs. The rich console
shows the message only.
"""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Protocol

from rich.console import Console
from rich.logging import RichHandler


# Log lines go to stderr so they never mix with command output
console = Console(stderr=True)

logger = logging.getLogger("inventory_sync")

# Run fields the engine attaches to its records, in display order
CONTEXT_FIELDS = ("session", "page", "processed", "total", "added", "updated")


class _RunState(Protocol):
    page: int
    processed_products: int
    estimated_total: int
    products_added: int
    products_updated: int


def run_context(state: _RunState, session: str | None = None) -> dict[str, Any]:
    """Build the ``extra`` mapping for a log call made during a sync run."""
    context: dict[str, Any] = {
        "page": state.page,
        "processed": state.processed_products,
        "total": state.estimated_total,
        "added": state.products_added,
        "updated": state.products_updated,
    }
    if session is not None:
        context["session"] = session
    return context


def context_of(record: logging.LogRecord) -> dict[str, Any]:
    """Run fields present on a record."""
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if hasattr(record, name)
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line, run context as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(context_of(record))
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data)


class ContextFormatter(logging.Formatter):
    """Plain text lines with any run context appended."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = context_of(record)
        if not context:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in context.items())
        return f"{line} [{pairs}]"


def _console_handler(format_style: str) -> logging.Handler:
    if format_style == "json":
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter())
    elif format_style == "simple":
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            ContextFormatter("%(asctime)s | %(levelname)-8s | %(message)s", "%Y-%m-%d %H:%M:%S")
        )
    else:
        handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    format_style: str = "rich",
    max_file_size_mb: int = 10,
    backup_count: int = 3,
) -> None:
    """
    Configure the ``inventory_sync`` logger.

    Args:
        level: Log level name
        log_file: Optional rotating log file; always written with run context
        format_style: "rich", "json", or "simple"
        max_file_size_mb: Size at which the log file rotates
        backup_count: Rotated files to keep
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.handlers.clear()
    logger.setLevel(log_level)

    handlers = [_console_handler(format_style)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        file_handler.setFormatter(
            ContextFormatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                "%Y-%m-%d %H:%M:%S",
            )
        )
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(log_level)
        logger.addHandler(handler)


def get_logger(name: str = "inventory_sync") -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
