"""Structured logging singleton.

``LOG_LEVEL`` and ``LOG_FORMAT`` are read from os.environ directly: the logger
is imported by every module, :mod:`omgexec.config` included, so it cannot
depend on Settings.

Everything goes to stderr; stdout carries only action output.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _setup_logging() -> structlog.stdlib.BoundLogger:
    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    fmt = os.environ.get("LOG_FORMAT", "console").lower()

    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
    else:
        processors.append(structlog.dev.set_exc_info)
    processors.append(_renderer(fmt))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger("omgexec")


logger = _setup_logging()
