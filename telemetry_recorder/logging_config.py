"""structlog setup for applications embedding the engine.

Sessions bind ``recording_id`` into :mod:`structlog.contextvars` while they
record, so every event logged from that task carries it.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Callable, Dict, List

import structlog

from telemetry_recorder.config import RecorderSettings

_RENDERERS: Dict[str, Callable[[], Any]] = {
    "console": structlog.dev.ConsoleRenderer,
    "json": structlog.processors.JSONRenderer,
}


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Route structlog through stdlib logging on stderr.

    *fmt* is ``"console"`` or ``"json"``; anything else raises
    ``ValueError``.  Unknown level names fall back to ``INFO``.
    """
    try:
        renderer = _RENDERERS[fmt]()
    except KeyError:
        raise ValueError(
            f"Unknown log format {fmt!r}; expected one of {sorted(_RENDERERS)}"
        ) from None

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
        force=True,
    )

    processors = _shared_processors()
    if fmt == "json":
        # ConsoleRenderer pretty-prints exc_info itself.
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_from_settings(settings: RecorderSettings) -> None:
    """Apply ``log_level`` / ``log_format`` from *settings*."""
    configure_logging(settings.log_level, settings.log_format)
