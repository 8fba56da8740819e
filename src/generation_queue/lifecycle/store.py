"""Thread-safe in-memory task store."""
import threading
from typing import Callable

from generation_queue.observability import get_logger
from generation_queue.tasks import GenerationTask, TaskStatus

logger = get_logger(__name__)


class TaskStore:
    """
    In-memory store of tasks keyed by task ID.

    Tasks live for the process lifetime and are only evicted by remove()
    or remove_where(); nothing is persisted.
    """

    def __init__(self):
        """Initialize an empty store."""
        self._tasks: dict[str, GenerationTask] = {}
        self._lock = threading.RLock()

    def add(self, task: GenerationTask) -> None:
        """
        Insert a new task.

        Raises:
            ValueError: If a task with the same ID is already stored
        """
        with self._lock:
            if task.id in self._tasks:
                raise ValueError(f"Task {task.id} already exists")
            self._tasks[task.id] = task
        logger.debug("Task stored", extra={"task_id": task.id})

    def get(self, task_id: str) -> GenerationTask | None:
        with self._lock:
            return self._tasks.get(task_id)

    def remove(self, task_id: str) -> GenerationTask | None:
        with self._lock:
            return self._tasks.pop(task_id, None)

    def remove_where(self, predicate: Callable[[GenerationTask], bool]) -> list[GenerationTask]:
        """Remove and return every task matching the predicate."""
        with self._lock:
            removed = [task for task in self._tasks.values() if predicate(task)]
            for task in removed:
                del self._tasks[task.id]
        return removed

    def all(self) -> list[GenerationTask]:
        """All tasks in insertion order."""
        with self._lock:
            return list(self._tasks.values())

    def active(self) -> list[GenerationTask]:
        """Tasks that are queued or processing and have an engine job ID."""
        with self._lock:
            return [
                task for task in self._tasks.values()
                if task.status in (TaskStatus.QUEUED, TaskStatus.PROCESSING) and task.job_id
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._tasks
