"""
Logging utilities for the vector document store.

Log records can carry document fields (recipe_id, version_id, operation,
backend, worker_id). DocumentContext sets them for a block of code and
log_with_context() copies them onto each record, so one re-embedding can be
followed from the indexer through the store. Both formatters below render
those fields.
"""

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional


CONTEXT_FIELDS = ("operation", "recipe_id", "version_id", "backend", "worker_id")

# Innermost DocumentContext of the running thread or task
_active_context: ContextVar[Optional["DocumentContext"]] = ContextVar(
    "vecdocs_document_context", default=None
)

# Fields shown inline by the human-readable format
INLINE_FIELDS = ("operation", "recipe_id", "version_id")


def _record_context(record: logging.LogRecord, names: Iterable[str]) -> Dict[str, Any]:
    found = {}
    for name in names:
        value = record.__dict__.get(name)
        if value is not None:
            found[name] = value
    return found


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, timestamp, context, exception."""

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.include_timestamp:
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            entry["timestamp"] = created.isoformat()

        entry.update(_record_context(record, CONTEXT_FIELDS))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Format: TIMESTAMP - LOGGER - LEVEL - MESSAGE [operation=X recipe_id=Y version_id=Z]
    """

    def __init__(self, include_timestamp: bool = True):
        parts = ["%(name)s", "%(levelname)s", "%(message)s"]
        if include_timestamp:
            parts.insert(0, "%(asctime)s")
        super().__init__(" - ".join(parts))

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _record_context(record, INLINE_FIELDS)
        if not context:
            return line
        suffix = " ".join(f"{name}={value}" for name, value in context.items())
        return f"{line} [{suffix}]"


def configure_logging(
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
    structured: bool = False,
) -> logging.Logger:
    """
    Set up the `vecdocs` package logger for CLI and worker processes.

    A stderr handler is attached the first time only; later calls just adjust
    the level.

    Args:
        level: Logging level for the package logger and its handler
        format_string: Plain logging format, used when not structured
        include_timestamp: Prefix lines with the record time
        structured: Emit JSON lines instead of text

    Returns:
        The `vecdocs` logger
    """
    package_logger = logging.getLogger("vecdocs")
    package_logger.setLevel(level)

    if package_logger.handlers:
        for handler in package_logger.handlers:
            handler.setLevel(level)
        return package_logger

    if structured:
        formatter: logging.Formatter = StructuredFormatter(include_timestamp)
    elif format_string:
        formatter = logging.Formatter(format_string)
    else:
        formatter = HumanReadableFormatter(include_timestamp)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    package_logger.addHandler(handler)
    return package_logger


class DocumentContext:
    """
    Document fields active for a block of code. Contexts nest; leaving a block
    restores the enclosing one. Each thread (and asyncio task) sees only the
    contexts it entered itself.

    Example:
        >>> with DocumentContext(recipe_id="r1", version_id="v2", operation="upsert"):
        ...     log_with_context(logger, logging.INFO, "Upserted")
    """

    def __init__(
        self,
        recipe_id: Optional[str] = None,
        version_id: Optional[str] = None,
        operation: Optional[str] = None,
        **extra: Any,
    ):
        fields = dict(recipe_id=recipe_id, version_id=version_id, operation=operation, **extra)
        self.context = {name: value for name, value in fields.items() if value is not None}
        self._token: Optional[Token] = None

    def __enter__(self) -> "DocumentContext":
        self._token = _active_context.set(self)
        return self

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _active_context.reset(self._token)
            self._token = None

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Copy of the innermost active context, or {}."""
        active = _active_context.get()
        return dict(active.context) if active is not None else {}


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **extra: Any,
) -> None:
    """
    Log `message` with the active DocumentContext fields attached.

    Keyword arguments are added as well and win over context values.
    """
    fields = DocumentContext.get_current()
    fields.update(extra)
    logger.log(level, message, extra=fields)
