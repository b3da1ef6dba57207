"""structlog setup shared by the CLI and the codec modules.

Library modules only call ``get_logger``; the entry point calls
``configure_logging`` once. Events are key/value pairs, for example::

    logger.info("archive_extracted", path=str(path), entries=3, media=1)
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from packages.common.exceptions import ApkgError

CORRELATION_KEY = "correlation_id"


def get_correlation_id() -> str | None:
    """Correlation ID bound to the current context, if any."""
    value = structlog.contextvars.get_contextvars().get(CORRELATION_KEY)
    return None if value is None else str(value)


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation ID to every event logged from this context.

    A random one is generated when none is given; the CLI binds one per run.
    """
    if correlation_id is None:
        correlation_id = uuid4().hex
    structlog.contextvars.bind_contextvars(**{CORRELATION_KEY: correlation_id})
    return correlation_id


def clear_correlation_id() -> None:
    structlog.contextvars.unbind_contextvars(CORRELATION_KEY)


def expand_error(_logger: WrappedLogger, _method_name: str, event_dict: EventDict) -> EventDict:
    """Replace an ``error=ApkgError`` value by its message, kind and context keys."""
    error = event_dict.get("error")
    if isinstance(error, ApkgError):
        event_dict["error"] = str(error)
        event_dict["error_kind"] = type(error).__name__
        for key, value in error.context.items():
            event_dict.setdefault(key, value)
    return event_dict


def configure_logging(
    *,
    debug: bool = False,
    json_output: bool = False,
    log_stream: TextIO | None = None,
) -> None:
    """Send structlog events through one stdlib handler.

    Args:
        debug: Emit DEBUG events (skipped media entries, workspace details).
        json_output: One JSON object per line instead of the console renderer.
        log_stream: Where to write; ``sys.stderr`` when omitted.
    """
    renderer: Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            expand_error,
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(log_stream or sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def get_logger(**initial_context: object) -> structlog.stdlib.BoundLogger:
    """Logger with ``initial_context`` bound to every event it emits."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(**initial_context)
    return logger
