"""Logging configuration utilities."""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.contextvars import bind_contextvars, bound_contextvars


SENSITIVE_KEYS = {
    "password",
    "secret",
    "client_secret",
    "token",
    "access_token",
    "api_key",
    "apikey",
    "authorization",
    "auth",
    "userpwd",
    "deploy_password",
}


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Redact sensitive fields in the structured log."""
    for key in list(event_dict.keys()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "[REDACTED]"
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging."""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_sensitive,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_deployment_context(web_app: Optional[str] = None, run_id: Optional[str] = None) -> None:
    """Bind correlation fields for deployment logs using contextvars."""
    if web_app:
        bind_contextvars(webApp=web_app)
    if run_id:
        bind_contextvars(runId=run_id)


@contextmanager
def task_span(task: str, **fields: Any) -> Iterator[None]:
    """Log the start and end of a named task.

    The task name and fields are bound to every log line emitted inside the
    block and unbound on exit, whether the block succeeds or raises.
    """
    logger = structlog.get_logger()
    start = time.perf_counter()
    with bound_contextvars(task=task, **fields):
        logger.info("Task started")
        try:
            yield
        except BaseException as exc:
            logger.warning(
                "Task failed",
                duration_ms=round((time.perf_counter() - start) * 1000.0, 3),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        logger.info("Task finished", duration_ms=round((time.perf_counter() - start) * 1000.0, 3))
