"""
Generation Queue - submits node graphs to an execution engine and tracks
each job until it produces an artifact, fails or is cancelled.
"""
from generation_queue.lifecycle import GenerationQueue, TaskStore
from generation_queue.tasks import (
    AudioTask,
    GenerationTask,
    GraphTask,
    ImageTask,
    TaskInfo,
    TaskKind,
    TaskStatus,
    VideoTask,
)

__version__ = "0.1.0"

__all__ = [
    "AudioTask",
    "GenerationQueue",
    "GenerationTask",
    "GraphTask",
    "ImageTask",
    "TaskInfo",
    "TaskKind",
    "TaskStatus",
    "TaskStore",
    "VideoTask",
]
