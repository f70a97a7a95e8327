"""structlog setup for the notifier's own log output.

faultpost logs through ``structlog.get_logger("faultpost")`` and never
configures logging on import.  Applications that have no logging setup of
their own can call :func:`configure_logging` to get JSON (or console)
lines on a stream::

    from faultpost.log import configure_logging

    configure_logging(level="INFO")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import orjson
import structlog
from structlog.contextvars import merge_contextvars


def _orjson_serializer(obj: object, **_kw: object) -> str:
    """Serialize *obj* to a JSON string using orjson."""
    return orjson.dumps(obj, default=str).decode()


def _to_logging_level(level_name: str) -> int:
    """Convert a human-readable level name to its :mod:`logging` constant."""
    upper_level = level_name.upper()
    if upper_level == "WARN":
        return logging.WARNING
    result: int = getattr(logging, upper_level, logging.INFO)
    return result


def _stream_isatty(stream: Any) -> bool:
    """Check if *stream* is connected to a terminal."""
    try:
        result: bool = stream.isatty()
        return result
    except (AttributeError, ValueError):
        return False


def _build_shared_processors() -> list[structlog.types.Processor]:
    return [
        merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.EventRenamer("message"),
    ]


def configure_logging(
    *,
    level: str = "INFO",
    json_logs: bool = True,
    stream: Any = None,
    logger_name: str = "faultpost",
    clear_handlers: bool = True,
) -> logging.Handler:
    """Configure structlog and route faultpost's output to *stream*.

    structlog is configured process-wide to hand events to stdlib
    logging; the rendering handler is attached to the *logger_name*
    stdlib logger only.

    Parameters
    ----------
    level:
        Minimum log level (e.g. ``"DEBUG"``, ``"INFO"``).
    json_logs:
        ``True`` for JSON output, ``False`` for console output.
    stream:
        Output stream.  Defaults to ``sys.stderr``.
    logger_name:
        stdlib logger that receives the handler.
    clear_handlers:
        If ``True`` (default), remove existing handlers from *logger_name*
        before adding the new one, so repeated calls do not duplicate output.

    Returns
    -------
    logging.Handler
        The installed handler (useful for removal in tests).
    """
    if stream is None:
        stream = sys.stderr

    shared_processors = _build_shared_processors()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(_to_logging_level(level)),
        cache_logger_on_first_use=False,
    )

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer(serializer=_orjson_serializer)
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=_stream_isatty(stream), event_key="message")
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    log = logging.getLogger(logger_name)
    if clear_handlers:
        log.handlers.clear()
    log.setLevel(_to_logging_level(level))
    log.addHandler(handler)
    return handler
