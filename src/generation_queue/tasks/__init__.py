"""Generation tasks: one implementation per pipeline kind."""
from generation_queue.tasks.audio import AudioTask
from generation_queue.tasks.base import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    CancellationFailure,
    CheckState,
    CompletionCheck,
    CompletionCheckFailure,
    ExecutionClient,
    GenerationTask,
    SubmissionFailure,
    TaskError,
    TaskInfo,
    TaskKind,
    TaskStatus,
    UploadFailure,
)
from generation_queue.tasks.graph import GraphTask
from generation_queue.tasks.image import ImageTask
from generation_queue.tasks.video import AUDIO_EXTENSIONS, IMAGE_EXTENSIONS, VideoTask

__all__ = [
    "ACTIVE_STATUSES",
    "AUDIO_EXTENSIONS",
    "IMAGE_EXTENSIONS",
    "TERMINAL_STATUSES",
    "AudioTask",
    "CancellationFailure",
    "CheckState",
    "CompletionCheck",
    "CompletionCheckFailure",
    "ExecutionClient",
    "GenerationTask",
    "GraphTask",
    "ImageTask",
    "SubmissionFailure",
    "TaskError",
    "TaskInfo",
    "TaskKind",
    "TaskStatus",
    "UploadFailure",
    "VideoTask",
]
