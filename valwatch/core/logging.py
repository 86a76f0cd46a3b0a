"""Structured logging for valwatch.

Everything is routed through stdlib ``logging`` and rendered by structlog's
``ProcessorFormatter``, so records from the substrate client and aiohttp come
out in the same shape as our own events.  Alert decisions, emitted on the
``decision_log`` logger, can additionally be appended to a JSON-lines audit
file that is independent of the console level and format.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

from valwatch.core.config import get_settings

DECISION_LOGGER = "decision_log"

# Third-party loggers held at INFO or above even when we run at DEBUG.
_CHATTY_LOGGERS = ("async_substrate_interface", "websockets", "aiohttp.access")


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _formatter(renderer: structlog.types.Processor) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def _console_renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def _attach_decision_file(path: Path | None) -> None:
    """Point the decision logger at *path*, replacing any earlier file sink."""
    decisions = logging.getLogger(DECISION_LOGGER)
    for old in list(decisions.handlers):
        decisions.removeHandler(old)
        old.close()
    if path is None:
        decisions.setLevel(logging.NOTSET)
        return

    path.parent.mkdir(parents=True, exist_ok=True)
    sink = logging.FileHandler(path, encoding="utf-8")
    sink.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    decisions.addHandler(sink)
    # Decisions are always audited; the console handler still filters them.
    decisions.setLevel(logging.INFO)


def setup_logging(
    level: str | None = None,
    fmt: str | None = None,
    decision_log_path: Path | None = None,
) -> None:
    """Configure structlog over stdlib logging.

    Args:
        level: Log level override (e.g. "DEBUG"). Uses config if None.
        fmt: Renderer format override ("json" or "console"). Uses config if None.
        decision_log_path: Audit file for alert decisions. Uses config if None;
            no file is written when neither is set.

    Safe to call more than once; handlers from a previous call are replaced.
    """
    config = get_settings().logging
    log_level = getattr(logging, (level or config.level).upper(), logging.INFO)

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_formatter(_console_renderer(fmt or config.format)))
    console.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(console)
    root_logger.setLevel(log_level)

    _attach_decision_file(decision_log_path or config.decision_log_path)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))
