"""Logging setup for mealdeck.

Every log line can carry up to three context values, held in context
variables so they follow a request or an import across ``await`` points:

- ``request_id``: set by the HTTP middleware for each request
- ``source_url``: the recipe page being imported
- ``recipe_id``: the recipe row an import created
"""

import json
import logging
import os
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any

from mealdeck.config import get_settings

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
recipe_id_ctx: ContextVar[int | None] = ContextVar("recipe_id", default=None)
source_url_ctx: ContextVar[str | None] = ContextVar("source_url", default=None)

CONTEXT_VARS: dict[str, ContextVar] = {
    "request_id": request_id_ctx,
    "recipe_id": recipe_id_ctx,
    "source_url": source_url_ctx,
}

# Context key -> (label, max chars) for the text formatter
_TEXT_LABELS: dict[str, tuple[str, int | None]] = {
    "request_id": ("req", 8),
    "recipe_id": ("recipe", None),
    "source_url": ("url", None),
}

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "PIL", "uvicorn.access")


def current_context() -> dict[str, Any]:
    """Return the context values that are currently set."""
    return {name: var.get() for name, var in CONTEXT_VARS.items() if var.get() is not None}


# =============================================================================
# Formatters
# =============================================================================


class StructuredJsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **current_context(),
        }
        payload.update(getattr(record, "extra_data", {}))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        payload["location"] = f"{record.filename}:{record.lineno} ({record.funcName})"

        return json.dumps(payload, default=str)


class ContextualFormatter(logging.Formatter):
    """``time | LEVEL | logger [context] | message`` for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        tags = []
        for name, value in current_context().items():
            label, width = _TEXT_LABELS[name]
            text = str(value)
            tags.append(f"{label}={text[:width] if width else text}")
        context = f" [{', '.join(tags)}]" if tags else ""

        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        line = (
            f"{timestamp} | {record.levelname:<8} | {record.name}{context} | "
            f"{record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that copies the current context into ``extra``."""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**current_context(), **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger for the given module name."""
    return ContextLogger(logging.getLogger(name), {})


# =============================================================================
# Setup
# =============================================================================


def configure_logging(
    log_level: str | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """
    Install one formatter on the root logger.

    Args:
        log_level: Minimum level name; defaults to ``LOG_LEVEL`` from settings.
        json_format: Force JSON output. When None, JSON is used if
            ``LOG_FORMAT=json`` or when running non-interactively in production.
        log_file: Optional file to receive the same records.
    """
    settings = get_settings()
    level_name = (log_level or settings.log_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level_name, level = "INFO", logging.INFO

    if json_format is None:
        json_format = os.getenv("LOG_FORMAT", "").lower() == "json" or (
            settings.environment.lower() == "production" and not sys.stdout.isatty()
        )
    formatter = StructuredJsonFormatter() if json_format else ContextualFormatter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("mealdeck").setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    get_logger(__name__).info(
        f"Logging configured: level={level_name}, format={'json' if json_format else 'text'}"
    )


# =============================================================================
# Context Helpers
# =============================================================================


def set_context(
    request_id: str | None = None,
    recipe_id: int | None = None,
    source_url: str | None = None,
) -> None:
    """Set context values for the rest of the current task."""
    values = {"request_id": request_id, "recipe_id": recipe_id, "source_url": source_url}
    for name, value in values.items():
        if value is not None:
            CONTEXT_VARS[name].set(value)


def clear_context() -> None:
    """Unset every context value."""
    for var in CONTEXT_VARS.values():
        var.set(None)


class LoggingContext:
    """
    Set context values for the span of a ``with`` block.

    Values given as None are left untouched, so blocks nest: an inner
    ``LoggingContext(recipe_id=...)`` keeps the outer ``source_url``.
    """

    def __init__(
        self,
        request_id: str | None = None,
        recipe_id: int | None = None,
        source_url: str | None = None,
    ):
        self.values = {"request_id": request_id, "recipe_id": recipe_id, "source_url": source_url}
        self._tokens: list[tuple[ContextVar, Token]] = []

    def __enter__(self) -> "LoggingContext":
        for name, value in self.values.items():
            if value is not None:
                var = CONTEXT_VARS[name]
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, *args: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
