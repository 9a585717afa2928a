"""
structlog setup for AdPilot.

Every record carries the service name and which ad platform the engine is
wired to. Records emitted inside an automation cycle also carry the cycle
number, bound by the scheduler through structlog contextvars.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from .config import settings

SERVICE_NAME = "adpilot"

# Third-party loggers that are chatty at INFO during every cycle or request
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "uvicorn.access")


def add_service_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("platform", "remote" if settings.uses_remote_platform else "memory")
    return event_dict


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Route structlog and stdlib logging through one stderr handler.

    `level` and `json_output` default to the ADPILOT_LOG_LEVEL / ADPILOT_LOG_JSON settings.
    """
    level = level or settings.log_level
    json_output = settings.log_json if json_output is None else json_output

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # foreign_pre_chain gives uvicorn and library records the same context as ours
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
