# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Logging for the probe: structlog rendering on top of stdlib ``logging``.

Modules keep using ``logging.getLogger(__name__)``; ``configure`` routes
every record through one stderr handler whose formatter is a structlog
``ProcessorFormatter``.  Interactive runs get the console renderer, and
``PROBE_LOG_JSON`` switches to one JSON object per line for log shippers.

Every record carries the probe's ``region`` so logs from several regional
probes can be merged, and records emitted inside ``check_context`` also
carry the monitor being checked.

Leaf module, no regionprobe imports.  Safe to call early in startup.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

# uvicorn installs its own handlers; route them through the root formatter instead.
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

# httpx logs every request at INFO; one line per hop drowns the check summary.
_CHATTY_LOGGERS = ("httpx", "httpcore")


def _stamp(**fields: str):
    """Processor adding *fields* to every event unless the event sets them."""

    def processor(_logger, _method_name, event_dict):
        for key, value in fields.items():
            event_dict.setdefault(key, value)
        return event_dict

    return processor


def configure(*, json_output: bool = False, level: str = "INFO", region: str | None = None) -> None:
    """Install the structlog bridge on the root logger.

    Args:
        json_output: JSON lines instead of the human-readable console renderer.
        level: Root level name; unknown names fall back to INFO.
        region: Region tag stamped on every record.
    """
    root_level = getattr(logging, level.upper(), None)
    if not isinstance(root_level, int):
        root_level = logging.INFO

    shared: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if region:
        shared.append(_stamp(region=region))
    shared += [structlog.processors.format_exc_info, structlog.processors.UnicodeDecoder()]

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(root_level)

    for name in _UVICORN_LOGGERS:
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True

    # hop-level detail stays available with --log-level DEBUG
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if root_level <= logging.DEBUG else logging.WARNING)


@contextmanager
def check_context(monitor_id: str | None, monitor_type: str) -> Iterator[None]:
    """Bind the monitor being checked to every record logged inside the block."""
    with structlog.contextvars.bound_contextvars(monitor_id=monitor_id or "-", monitor_type=monitor_type):
        yield
