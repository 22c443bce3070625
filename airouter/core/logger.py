"""
Structured logging for the router.

Events carry key/value context (provider id, organization, capability,
attempt). Credential-like keys are masked before rendering.
"""
import logging
import sys
from pathlib import Path
from typing import Any, List

import structlog
from structlog.types import EventDict, Processor

from airouter.core.config import settings

REDACTED = "***"
SENSITIVE_KEYS = frozenset({
    "api_key",
    "credential",
    "authorization",
    "x_api_key",
    "admin_key",
})


def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("env", settings.app_env)
    return event_dict


def redact_credentials(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask values logged under credential-like keys."""
    for key in event_dict.keys() & SENSITIVE_KEYS:
        event_dict[key] = REDACTED
    return event_dict


def _build_handlers() -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        path = Path(settings.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(path)))
    return handlers


def _renderer_chain() -> List[Processor]:
    if settings.log_format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [
        structlog.processors.ExceptionRenderer(),
        structlog.dev.ConsoleRenderer(colors=settings.is_development),
    ]


def setup_logging() -> None:
    """Route structlog through stdlib logging with the configured renderer."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.getLevelName(settings.log_level.upper()),
        handlers=_build_handlers(),
        force=True,
    )

    shared: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_service_context,
        redact_credentials,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=shared + _renderer_chain(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


setup_logging()
