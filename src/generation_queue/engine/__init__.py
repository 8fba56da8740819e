"""Execution engine client package."""
from generation_queue.engine.client import (
    ComfyUIClient,
    EngineError,
    EngineRejectedError,
)
from generation_queue.engine.models import (
    OutputFile,
    PromptResponse,
    QueueStatus,
    UploadResult,
)

__all__ = [
    "ComfyUIClient",
    "EngineError",
    "EngineRejectedError",
    "OutputFile",
    "PromptResponse",
    "QueueStatus",
    "UploadResult",
]
