"""
Structured logging for litebridge.

Library modules only call :func:`get_logger` and emit event-style messages
with keyword fields (``worker.item_done``, ``connection.opened``...). Output
is decided once by the application through :func:`configure_logging`, which
reads its defaults from :class:`~litebridge.core.settings.BridgeSettings`
(``LITEBRIDGE_LOG_LEVEL``, ``LITEBRIDGE_JSON_LOGS``).

Each worker thread binds its own ``worker`` and ``path`` fields with
:func:`bind_context` when it starts. Thread context is not inherited, so
those fields appear on every event logged from that thread and nowhere else.

Examples:
    >>> from litebridge.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> get_logger(__name__).info("connection.opened", path=":memory:")

Tags:
    logging, structlog, observability, litebridge
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from litebridge.core.settings import BridgeSettings, get_settings

_LIBRARY = "litebridge"

# Track if logging has been configured
_configured = False


def _add_library(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("library", _LIBRARY)
    return event_dict


def _processors(json_format: bool, add_timestamp: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_library,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))
    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    *,
    settings: BridgeSettings | None = None,
    add_timestamp: bool = True,
    force: bool = False,
) -> None:
    """Configure structlog output for the process.

    Subsequent calls are no-ops unless ``force=True``.

    Args:
        level: Log level; defaults to ``settings.log_level``
        json_format: JSON output; defaults to ``settings.json_logs``, then to
            JSON whenever stdout is not a terminal
        settings: Settings to read defaults from (``get_settings()`` if omitted)
        add_timestamp: Include an ISO timestamp
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    settings = settings or get_settings()
    log_level = (level or settings.log_level).upper()
    numeric_level = logging.getLevelName(log_level)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    if json_format is None:
        json_format = settings.json_logs
    if json_format is None:
        json_format = not sys.stdout.isatty()

    structlog.configure(
        processors=_processors(json_format, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level, force=True)
    _configured = True


def get_logger(name: str | None = None) -> Any:
    """Structured logger for ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind fields to every later event logged from the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
]
