"""Logging setup for docsync.

Library code never configures logging; it takes an injected logger or falls
back to ``get_component_logger``. Applications (and the CLI) call
``configure_logging`` once:

    from docsync.logging import configure_logging, get_component_logger

    configure_logging("DEBUG", json_output=False)
    logger = get_component_logger("watch", location="my-app:/rooms")
    logger.info("watch_change_applied", kind="put", path="/a")
"""

from __future__ import annotations

import logging
import sys
from typing import Any, List

import structlog

_CONFIGURED = False

# Transport libraries log every request at INFO
_QUIET_LOGGERS = ("httpx", "httpcore")


def _renderer(json_output: bool) -> Any:
    if json_output:
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _processors(json_output: bool) -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        _renderer(json_output),
    ]


def configure_logging(level: str = "INFO", *, json_output: bool = True) -> None:
    """Route stdlib and structlog output to stderr at ``level``.

    Only the first call has an effect. Event output goes to stderr so the
    CLI can keep documents alone on stdout.
    """
    global _CONFIGURED

    if _CONFIGURED:
        return

    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(level=log_level, format="%(message)s", stream=sys.stderr)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=_processors(json_output),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True


def get_component_logger(component: str, **context: Any) -> Any:
    """Structlog logger bound to ``component`` and any extra context."""
    return structlog.get_logger().bind(component=component, **context)


__all__ = ["configure_logging", "get_component_logger"]
