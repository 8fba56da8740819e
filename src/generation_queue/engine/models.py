"""Response models for the execution engine API."""
from typing import Any

from pydantic import BaseModel, Field


class PromptResponse(BaseModel):
    """Result of POST /prompt."""

    prompt_id: str | None = Field(default=None, description="Job ID assigned by the engine")
    number: int | None = Field(default=None, description="Queue number")
    node_errors: dict[str, Any] = Field(
        default_factory=dict,
        description="Per-node validation errors reported by the engine",
    )


class QueueStatus(BaseModel):
    """Snapshot of the engine queue."""

    executing: list[str] = Field(default_factory=list, description="Job IDs currently running")
    queued: list[str] = Field(default_factory=list, description="Job IDs waiting, in queue order")

    def position(self, job_id: str) -> int | None:
        """
        Queue position of a job.

        Returns:
            0 when executing, the 1-based index when queued, None when absent
        """
        if job_id in self.executing:
            return 0
        if job_id in self.queued:
            return self.queued.index(job_id) + 1
        return None


class OutputFile(BaseModel):
    """A file reference from a job's history outputs."""

    filename: str = Field(..., description="Engine-side filename")
    subfolder: str = Field(default="", description="Engine-side subfolder")
    type: str = Field(default="output", description="Storage area: output, temp or input")
    node_id: str | None = Field(default=None, description="Node that produced the file")
    media: str = Field(default="images", description="History key the file was listed under")


class UploadResult(BaseModel):
    """Result of POST /upload/image."""

    name: str = Field(..., description="Stored filename")
    subfolder: str = Field(default="", description="Stored subfolder")
    type: str = Field(default="input", description="Storage area")

    @property
    def reference(self) -> str:
        """Name to put into a loader node input."""
        if self.subfolder:
            return f"{self.subfolder}/{self.name}"
        return self.name
