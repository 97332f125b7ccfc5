# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge for tabsession.

Modules log through ``logging.getLogger(__name__)``; this installs one
stderr handler whose formatter renders either human-readable console lines
or JSON lines. Leaf module, safe to call before anything else.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

_LEVEL_ENV = "TABSESSION_LOG_LEVEL"
_JSON_ENV = "TABSESSION_LOG_JSON"

# Driver internals are chatty at DEBUG
_QUIET_LOGGERS = ("asyncio", "playwright")


def configure(*, json_output: bool | None = None, level: str | None = None) -> None:
    """Configure structlog with the stdlib bridge.

    Args:
        json_output: True for JSON lines, False for ConsoleRenderer.
            Defaults to ``TABSESSION_LOG_JSON`` (off).
        level: Root logger level. Defaults to ``TABSESSION_LOG_LEVEL`` or INFO.
    """
    if json_output is None:
        json_output = os.environ.get(_JSON_ENV, "").lower() in ("1", "true", "yes")
    if level is None:
        level = os.environ.get(_LEVEL_ENV, "INFO")

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(root_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))