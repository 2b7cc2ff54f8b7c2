"""
core/logging.py - Structured JSON logging.

Every record carries structured fields under one key:

    logger.warning("...", extra={"context": {"chain": "lisk", "provider": "drpc"}})

The JSON formatter renders a single line per record:

    {"timestamp": "...", "level": "WARNING", "logger": "chains.executor",
     "message": "...", "context": {"chain": "lisk", "provider": "drpc"}}

Process-wide fields (service name, version) are set once with
set_global_context() and merged into every record. Logs go to stderr;
stdout belongs to the CLI's fetch output.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

_global_context: dict[str, Any] = {}

# Transport libraries log every request at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    context = dict(_global_context)
    context.update(getattr(record, "context", None) or {})
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line; the context key is omitted when empty."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = _record_context(record)
        if record.exc_info:
            context["exception"] = self.formatException(record.exc_info)
        if context:
            entry["context"] = context

        return json.dumps(entry, default=str)


class ContextAdapter(logging.LoggerAdapter):
    """
    Adapter holding default context for one component.

    Call-site context is merged over the defaults, so a call can override
    e.g. the chain a logger was created for.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        call_context = kwargs.get("extra", {}).get("context", {})
        kwargs["extra"] = {"context": {**self.extra, **call_context}}
        return msg, kwargs


def set_global_context(**fields: Any) -> None:
    """Add fields to every record, e.g. service="contract-fetcher"."""
    _global_context.update(fields)


def clear_global_context() -> None:
    _global_context.clear()


def get_logger(name: str, **context: Any) -> ContextAdapter:
    """
    Get a structured logger.

    Args:
        name: Logger name (e.g., "chains.executor")
        **context: Default context for every record from this logger

    Example:
        logger = get_logger("fetcher.listener", chain="lisk")
        logger.info("Poll complete", extra={"context": {"delivered": 3}})
    """
    return ContextAdapter(logging.getLogger(name), context)


def setup_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_file: str | Path | None = None,
) -> None:
    """
    Configure the root logger (replaces existing handlers).

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_output: JSON lines when True, plain text otherwise
        log_file: Optional file receiving the same records
    """
    formatter = JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# =============================================================================
# FETCHER LOG SHAPES
# =============================================================================

def log_attempt(
    logger: ContextAdapter,
    chain: str,
    provider: str,
    operation: str,
    success: bool,
    duration_ms: int,
    error: str | None = None,
    **extra: Any,
) -> None:
    """One provider attempt: DEBUG on success, WARNING with the error otherwise."""
    context = {
        "chain": chain,
        "provider": provider,
        "operation": operation,
        "success": success,
        "duration_ms": duration_ms,
        **extra,
    }
    if success:
        logger.debug(f"{operation} ok via {provider} on {chain} in {duration_ms}ms", extra={"context": context})
        return

    context["error"] = error
    logger.warning(f"{operation} failed via {provider} on {chain}: {error}", extra={"context": context})


def log_range_failure(
    logger: ContextAdapter,
    chain: str,
    address: str,
    from_block: int,
    to_block: int,
    error: str,
    **extra: Any,
) -> None:
    """A sub-range skipped after every provider failed."""
    context = {
        "chain": chain,
        "address": address,
        "from_block": from_block,
        "to_block": to_block,
        "error": error,
        **extra,
    }
    logger.warning(f"Skipping blocks {from_block}-{to_block} on {chain}: {error}", extra={"context": context})
