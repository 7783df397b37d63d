"""structlog configuration shared by the CLI and the web service."""

from __future__ import annotations

import logging

import structlog

_configured_logging = False


def configure_logging(level: str | int = logging.INFO) -> None:
    """Configure structlog once; later calls are ignored."""

    global _configured_logging
    if _configured_logging:
        return
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    _configured_logging = True
