"""Base generation task with submit/check/cancel against the execution engine."""
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

from workflow_graph import Graph, prepare_payload

from generation_queue.engine import EngineError, PromptResponse, QueueStatus
from generation_queue.observability import get_logger, with_task_context

logger = get_logger(__name__)


class TaskKind(str, Enum):
    """Pipeline kind a task submits."""

    AUDIO = "audio"
    IMAGE = "image"
    VIDEO = "video"
    GRAPH = "graph"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


TERMINAL_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)
ACTIVE_STATUSES = frozenset({TaskStatus.QUEUED, TaskStatus.PROCESSING})


class TaskError(Exception):
    """Base exception for task errors."""

    pass


class SubmissionFailure(TaskError):
    """Raised when the engine rejects or cannot accept a submission."""

    pass


class UploadFailure(SubmissionFailure):
    """Raised when an input file cannot be uploaded; the graph is not submitted."""

    pass


class CompletionCheckFailure(TaskError):
    """Raised when a status check against the engine fails."""

    pass


class CancellationFailure(TaskError):
    """Raised when the engine cancel call fails."""

    pass


def display_name(label: str, text: str, limit: int = 50) -> str:
    """Short task name from a prompt, e.g. "Image: a lighthouse at dusk"."""
    text = " ".join(text.split())
    if not text:
        return f"{label} generation"
    if len(text) > limit:
        text = text[:limit].rstrip() + "..."
    return f"{label}: {text}"


class ExecutionClient(Protocol):
    """Engine operations a task needs."""

    def submit(self, payload: dict[str, Any]) -> PromptResponse: ...

    def get_queue_status(self) -> QueueStatus: ...

    def cancel(self, job_id: str) -> bool: ...

    def fetch_artifact(self, job_id: str, subfolder: str, filename_prefix: str) -> str | None: ...

    def upload_file(
        self, data: bytes, filename: str, subfolder: str = "", overwrite: bool = False
    ) -> str: ...


class CheckState(str, Enum):
    """What a completion check observed."""

    QUEUED = "queued"
    EXECUTING = "executing"
    FINISHED = "finished"


@dataclass(frozen=True)
class CompletionCheck:
    """
    Observation from one completion check.

    The orchestrator turns this into a status transition; tasks never
    write their own status.
    """

    state: CheckState
    queue_position: int | None = None
    artifact_path: str | None = None


class TaskInfo(BaseModel):
    """Immutable snapshot of a task, used for listings and notifications."""

    task_id: str = Field(..., description="Local task ID")
    kind: TaskKind = Field(..., description="Pipeline kind")
    name: str = Field(..., description="Display name")
    status: TaskStatus = Field(..., description="Lifecycle status")
    job_id: str | None = Field(default=None, description="Engine job ID")
    created_at: datetime = Field(..., description="When the task was created")
    submitted_at: datetime | None = Field(default=None, description="When submission started")
    completed_at: datetime | None = Field(default=None, description="When a terminal status was reached")
    queue_position: int | None = Field(default=None, description="0 while executing, 1-based while queued")
    error_message: str | None = Field(default=None, description="Failure or cancel reason")
    artifact_path: str | None = Field(default=None, description="Path of the produced artifact")


class GenerationTask(ABC):
    """
    Base class for all generation tasks.

    Subclasses supply the graph and the artifact location policy
    (output_subfolder, file_prefix); submit, check and cancel are shared.
    """

    kind: TaskKind = TaskKind.GRAPH
    output_subfolder: str = "output"
    file_prefix: str = "output"

    def __init__(self, name: str | None = None, task_id: str | None = None):
        self.id = task_id or str(uuid.uuid4())
        self.name = name or f"{self.kind.label} generation"
        self.job_id: str | None = None
        self.status = TaskStatus.PENDING
        self.created_at = datetime.now(timezone.utc)
        self.submitted_at: datetime | None = None
        self.completed_at: datetime | None = None
        self.queue_position: int | None = None
        self.error_message: str | None = None
        self.artifact_path: str | None = None
        self.payload: dict[str, Any] | None = None

    @abstractmethod
    def build_graph(self) -> Graph:
        """
        Build the graph this task submits.

        Returns:
            A fully populated Graph
        """
        pass

    def prepare_uploads(self, client: ExecutionClient) -> None:
        """Upload input files the graph refers to. No-op by default."""
        pass

    def log_context(self, **kwargs: Any) -> dict[str, Any]:
        return with_task_context(
            task_id=self.id, job_id=self.job_id, task_kind=self.kind.value, **kwargs
        )

    def submit(self, client: ExecutionClient, string_refs: bool = False) -> str | None:
        """
        Upload inputs, build, validate, flatten and submit the graph.

        Args:
            client: Execution engine client
            string_refs: Emit link references with string node ids

        Returns:
            Engine job ID, or None if the engine returned none

        Raises:
            UploadFailure: If an input upload fails (nothing is submitted)
            GraphValidationError: If the built graph is invalid
            FlattenIntegrityError: If the graph cannot be flattened
            SubmissionFailure: If the engine rejects the prompt
        """
        self.prepare_uploads(client)

        graph = self.build_graph()
        self.payload = prepare_payload(graph, string_refs=string_refs)

        try:
            response = client.submit(self.payload)
        except EngineError as e:
            raise SubmissionFailure(str(e)) from e

        logger.info(
            "Task submitted",
            extra=self.log_context(engine_job=response.prompt_id, nodes=len(self.payload)),
        )
        return response.prompt_id

    def check_completion(self, client: ExecutionClient) -> CompletionCheck:
        """
        Look up this task's job in the engine queue.

        Still queued or executing is a normal result, not an error. Once the
        job has left the queue the artifact is fetched.

        Raises:
            CompletionCheckFailure: If the task has no job ID or the engine call fails
        """
        if not self.job_id:
            raise CompletionCheckFailure("Task has no job ID to check")

        try:
            position = client.get_queue_status().position(self.job_id)
            if position == 0:
                return CompletionCheck(CheckState.EXECUTING, queue_position=0)
            if position is not None:
                return CompletionCheck(CheckState.QUEUED, queue_position=position)

            artifact = client.fetch_artifact(self.job_id, self.output_subfolder, self.file_prefix)
        except EngineError as e:
            raise CompletionCheckFailure(str(e)) from e

        return CompletionCheck(CheckState.FINISHED, artifact_path=artifact)

    def cancel(self, client: ExecutionClient) -> bool:
        """
        Ask the engine to drop this task's job.

        Returns:
            False when there is no job to cancel, otherwise the engine result

        Raises:
            CancellationFailure: If the engine call fails
        """
        if not self.job_id:
            return False
        try:
            return client.cancel(self.job_id)
        except EngineError as e:
            raise CancellationFailure(str(e)) from e

    def to_info(self) -> TaskInfo:
        return TaskInfo(
            task_id=self.id,
            kind=self.kind,
            name=self.name,
            status=self.status,
            job_id=self.job_id,
            created_at=self.created_at,
            submitted_at=self.submitted_at,
            completed_at=self.completed_at,
            queue_position=self.queue_position,
            error_message=self.error_message,
            artifact_path=self.artifact_path,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} {self.status.value}>"
