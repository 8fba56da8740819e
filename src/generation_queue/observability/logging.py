"""Structured JSON logging with task context."""
import logging
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from generation_queue.config import get_settings


CONTEXT_FIELDS = ("task_id", "job_id", "task_kind")


class TaskContextFilter(logging.Filter):
    """Add task context to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add default task context fields if not present."""
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, None)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with standardized field names."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add custom fields to the log record."""
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)

        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                log_record[name] = value
            else:
                log_record.pop(name, None)


def setup_logging() -> None:
    """Configure structured JSON logging for the application."""
    settings = get_settings()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    handler.setFormatter(formatter)
    handler.addFilter(TaskContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges per-call extra with the adapter defaults."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str, **context: Any) -> logging.LoggerAdapter:
    """
    Get a logger with task context support.

    Args:
        name: Logger name (typically __name__)
        **context: Fields attached to every record from this adapter

    Returns:
        LoggerAdapter that can accept task context in extra dict
    """
    logger = logging.getLogger(name)
    return ContextAdapter(logger, extra=context)


def with_task_context(
    task_id: str | None = None,
    job_id: str | None = None,
    task_kind: str | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """
    Create an extra dict with task context for logging.

    Args:
        task_id: Local task ID
        job_id: Engine job (prompt) ID
        task_kind: Pipeline kind
        **kwargs: Additional context fields

    Returns:
        Dict to pass as extra parameter to logger methods
    """
    extra = kwargs.copy()
    if task_id:
        extra["task_id"] = task_id
    if job_id:
        extra["job_id"] = job_id
    if task_kind:
        extra["task_kind"] = task_kind
    return extra
