"""Observability package."""
from generation_queue.observability.logging import (
    get_logger,
    setup_logging,
    with_task_context,
)

__all__ = ["get_logger", "setup_logging", "with_task_context"]
