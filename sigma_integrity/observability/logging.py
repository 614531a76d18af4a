"""
Structured Logging for the Integrity Engine.

Engine modules log through `structlog.get_logger(__name__)`. Repair runs bind
their context (run id, strategy, neighbor count) with `repair_context`, and
every event logged inside the block carries it once `configure_logging` has
routed structlog through the standard library.
"""

import logging
import sys
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

SERVICE_NAME = "sigma-integrity"

_repair_context: ContextVar[dict[str, Any]] = ContextVar("repair_context", default={})


def new_run_id() -> str:
    """Short identifier for one repair run."""
    return uuid.uuid4().hex[:12]


@contextmanager
def repair_context(**values: Any) -> Iterator[dict[str, Any]]:
    """
    Bind values to every event logged inside the block.

    Nested blocks extend the outer context; the outer context is restored on
    exit, also when the block raises.

    Usage:
        with repair_context(repair_run=new_run_id(), strategy="adaptive"):
            logger.info("Repair completed")
    """
    bound = {**_repair_context.get(), **values}
    token = _repair_context.set(bound)
    try:
        yield bound
    finally:
        _repair_context.reset(token)


def current_log_context() -> dict[str, Any]:
    return dict(_repair_context.get())


def merge_repair_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add the bound repair context; explicit event keys win."""
    for key, value in _repair_context.get().items():
        event_dict.setdefault(key, value)
    return event_dict


def add_service(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


_RENDERERS: dict[str, Callable[[], Processor]] = {
    "json": structlog.processors.JSONRenderer,
    "console": lambda: structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
}


def configure_logging(
    level: str = "INFO",
    format: Literal["json", "console"] = "json",
    cache_loggers: bool = True,
) -> None:
    """
    Route engine events through the standard library logging module.

    Args:
        level: Level of the `sigma_integrity` logger (DEBUG, INFO, WARNING, ERROR)
        format: "json" for production, "console" for development
        cache_loggers: Cache bound loggers on first use; disable when the
            configuration is swapped at runtime
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_service,
            merge_repair_context,
            structlog.processors.format_exc_info,
            _RENDERERS[format](),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=cache_loggers,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger("sigma_integrity").setLevel(getattr(logging, level.upper()))


def configure_from_settings() -> None:
    """Configure logging from the cached application settings."""
    from sigma_integrity.config.settings import get_settings

    settings = get_settings()
    configure_logging(level=settings.log_level, format=settings.observability.log_format)
