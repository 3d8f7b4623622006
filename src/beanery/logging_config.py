from __future__ import annotations

import logging
import os
import sys
from typing import Optional

import structlog

_configured: bool = False


def configure_logging(level: Optional[str] = None, json: bool = True) -> None:
    """Configure structlog/stdlib logging for the framework's log events.

    - Level: ``level`` if given, else ``BEANERY_LOG_LEVEL``, else INFO
    - Timestamp: UTC ISO-8601 under ``ts``
    - Output: one JSON object per line on stdout, or console rendering
    """

    global _configured

    raw_level: str = level if level is not None else os.getenv("BEANERY_LOG_LEVEL", "INFO")
    log_level = getattr(logging, raw_level.upper(), logging.INFO)

    # force=True so a second call (e.g. under capsys) rebinds to the current stdout.
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        stream=sys.stdout,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.dict_tracebacks,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def is_configured() -> bool:
    return _configured
