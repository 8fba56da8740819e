"""Task lifecycle orchestration."""
from generation_queue.lifecycle.orchestrator import GenerationQueue, StatusCallback
from generation_queue.lifecycle.store import TaskStore

__all__ = ["GenerationQueue", "StatusCallback", "TaskStore"]
