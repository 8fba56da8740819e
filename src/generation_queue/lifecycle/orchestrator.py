"""
Generation queue - owns all tasks and drives them through their lifecycle.

Submission runs in the caller's thread. A daemon thread runs the poll
loop; each tick checks every active task in turn, and a failure in one
task's check only fails that task.

Race policy: cancel wins. Every status write happens under one lock and
is dropped if the task has already reached a terminal status, so a poll
that finishes after a cancel cannot flip the task back to Completed.
"""
import threading
from datetime import datetime, timezone
from typing import Any, Callable

from generation_queue.config import Settings, get_settings
from generation_queue.engine import ComfyUIClient
from generation_queue.lifecycle.store import TaskStore
from generation_queue.observability import get_logger, with_task_context
from generation_queue.tasks import (
    TERMINAL_STATUSES,
    CheckState,
    ExecutionClient,
    GenerationTask,
    TaskInfo,
    TaskStatus,
)

logger = get_logger(__name__)

StatusCallback = Callable[[TaskInfo], None]

CANCELLED_MESSAGE = "Cancelled by user"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class GenerationQueue:
    """
    Task lifecycle orchestrator.

    Args:
        client: Execution engine client (a ComfyUIClient is created if omitted)
        settings: Settings for polling and payload options (defaults to global)
        store: Task store (a fresh in-memory store if omitted)
    """

    def __init__(
        self,
        client: ExecutionClient | None = None,
        settings: Settings | None = None,
        store: TaskStore | None = None,
    ):
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self.client = client or ComfyUIClient(self.settings)
        self.store = store or TaskStore()

        self._lock = threading.RLock()
        self._tick_lock = threading.Lock()
        self._subscribers: list[StatusCallback] = []
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, callback: StatusCallback) -> None:
        """Register a callback invoked with a TaskInfo after every status change."""
        with self._lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)

    def unsubscribe(self, callback: StatusCallback) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def _notify(self, info: TaskInfo) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(info)
            except Exception:
                logger.exception(
                    "Status callback failed",
                    extra=with_task_context(task_id=info.task_id, job_id=info.job_id),
                )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, task: GenerationTask, status: TaskStatus, **fields: Any) -> bool:
        """
        Apply a status change and publish it.

        Returns:
            False if the task was already terminal or nothing changed
        """
        with self._lock:
            if task.status in TERMINAL_STATUSES:
                logger.debug(
                    f"Ignoring {status.value} for task already {task.status.value}",
                    extra=task.log_context(),
                )
                return False

            changed = task.status != status or any(
                getattr(task, name) != value for name, value in fields.items()
            )
            if not changed:
                return False

            previous = task.status
            task.status = status
            for name, value in fields.items():
                setattr(task, name, value)
            info = task.to_info()

        logger.info(
            f"Task {previous.value} -> {status.value}",
            extra=task.log_context(queue_position=info.queue_position),
        )
        self._notify(info)
        return True

    def _fail(self, task: GenerationTask, message: str) -> bool:
        return self._transition(
            task,
            TaskStatus.FAILED,
            error_message=message,
            completed_at=_now(),
            queue_position=None,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def queue_task(self, task: GenerationTask) -> TaskInfo:
        """
        Store a task and submit it.

        Returns once the engine has assigned a job ID or the submission has
        failed; failures are recorded on the task, not raised.

        Args:
            task: A new task in Pending status

        Returns:
            Snapshot of the task after submission

        Raises:
            ValueError: If the task is not Pending or is already stored
        """
        if task.status != TaskStatus.PENDING:
            raise ValueError(f"Task {task.id} is {task.status.value}, expected pending")

        self.store.add(task)
        logger.info("Task added", extra=task.log_context(task_name=task.name))
        self._notify(task.to_info())

        self._transition(task, TaskStatus.QUEUED, submitted_at=_now())
        label = task.kind.label

        try:
            job_id = task.submit(
                self.client, string_refs=self.settings.engine_string_node_refs
            )
        except Exception as e:
            logger.error(
                f"Submission failed: {e}",
                extra=task.log_context(error_type=type(e).__name__),
            )
            self._fail(task, f"{label} generation failed: {e}")
            return task.to_info()

        if not job_id:
            self._fail(task, f"Failed to submit {label} workflow - no prompt ID received.")
            return task.to_info()

        with self._lock:
            task.job_id = job_id
            cancelled_meanwhile = task.status == TaskStatus.CANCELLED

        if cancelled_meanwhile:
            # Cancelled while the submit call was in flight
            self._remote_cancel(task)
        else:
            self._notify(task.to_info())
        return task.to_info()

    def poll_once(self) -> int:
        """
        Run one poll tick.

        Returns:
            Number of tasks checked; 0 when nothing is active or another
            tick is already running
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Poll tick already in flight, skipping")
            return 0
        try:
            active = self.store.active()
            if not active:
                return 0

            for task in active:
                self._check_task(task)
            return len(active)
        finally:
            self._tick_lock.release()

    def _check_task(self, task: GenerationTask) -> None:
        try:
            result = task.check_completion(self.client)
        except Exception as e:
            logger.error(
                f"Status check failed: {e}",
                extra=task.log_context(error_type=type(e).__name__),
            )
            self._fail(task, f"Status check failed: {e}")
            return

        if result.state == CheckState.EXECUTING:
            self._transition(task, TaskStatus.PROCESSING, queue_position=0)
        elif result.state == CheckState.QUEUED:
            if task.status == TaskStatus.PROCESSING:
                # Processing never moves back to Queued
                logger.debug(
                    "Processing task reported as queued, keeping status",
                    extra=task.log_context(queue_position=result.queue_position),
                )
                return
            self._transition(task, TaskStatus.QUEUED, queue_position=result.queue_position)
        elif result.artifact_path:
            self._transition(
                task,
                TaskStatus.COMPLETED,
                artifact_path=result.artifact_path,
                completed_at=_now(),
                queue_position=None,
            )
        else:
            self._fail(
                task,
                f"{task.kind.label} generation finished but no output was produced.",
            )

    def cancel_task(self, task_id: str) -> bool:
        """
        Cancel a task.

        The task is marked Cancelled locally first, then the engine is asked
        to drop the job; an engine failure is logged and does not undo the
        local cancel.

        Returns:
            False if the task is unknown or already terminal
        """
        task = self.store.get(task_id)
        if task is None:
            return False

        cancelled = self._transition(
            task,
            TaskStatus.CANCELLED,
            error_message=CANCELLED_MESSAGE,
            completed_at=_now(),
            queue_position=None,
        )
        if not cancelled:
            return False

        self._remote_cancel(task)
        return True

    def _remote_cancel(self, task: GenerationTask) -> None:
        if not task.job_id:
            return
        try:
            task.cancel(self.client)
        except Exception as e:
            logger.warning(
                f"Remote cancel failed: {e}",
                extra=task.log_context(error_type=type(e).__name__),
            )

    def clear_completed(self) -> int:
        """
        Evict every Completed, Failed or Cancelled task.

        Returns:
            Number of tasks removed
        """
        with self._lock:
            removed = self.store.remove_where(lambda t: t.status in TERMINAL_STATUSES)
        if removed:
            logger.info("Cleared finished tasks", extra={"count": len(removed)})
        return len(removed)

    def get_task(self, task_id: str) -> TaskInfo | None:
        task = self.store.get(task_id)
        if task is None:
            return None
        with self._lock:
            return task.to_info()

    def list_tasks(self) -> list[TaskInfo]:
        """Snapshots of all tasks, newest first."""
        with self._lock:
            infos = [task.to_info() for task in reversed(self.store.all())]
        return sorted(infos, key=lambda info: info.created_at, reverse=True)

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background poll loop (idempotent)."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="generation-queue-poller",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Poll loop started",
            extra={
                "initial_delay_s": self.settings.poll_initial_delay_s,
                "interval_s": self.settings.poll_interval_s,
            },
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the poll loop and wait for the thread to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Poll loop stopped")

    def close(self) -> None:
        """Stop polling and close the engine client if this queue created it."""
        self.stop()
        if self._owns_client and hasattr(self.client, "close"):
            self.client.close()

    def _run(self) -> None:
        if self._stop_event.wait(self.settings.poll_initial_delay_s):
            return
        while True:
            try:
                self.poll_once()
            except Exception:
                logger.exception("Poll tick crashed")
            if self._stop_event.wait(self.settings.poll_interval_s):
                return

    def __enter__(self) -> "GenerationQueue":
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
