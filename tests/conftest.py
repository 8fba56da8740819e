"""Pytest configuration and fixtures."""
import os

import pytest

# Set test environment variables
os.environ["GENQ_ENV"] = "test"
os.environ["GENQ_ENGINE_BASE_URL"] = "http://engine.test:8188"
os.environ["GENQ_ARTIFACT_RETRY_DELAY_S"] = "0"

from generation_queue.config import Settings, reset_settings  # noqa: E402
from generation_queue.engine import EngineError, PromptResponse, QueueStatus  # noqa: E402
from workflow_graph import Graph  # noqa: E402


class FakeEngineClient:
    """In-memory stand-in for ComfyUIClient."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self.submitted: list[dict] = []
        self.uploads: list[tuple[str, bytes]] = []
        self.cancelled: list[str] = []
        self.queue = QueueStatus()
        self.artifacts: dict[str, str] = {}
        self.queue_calls = 0
        self.submit_error: Exception | None = None
        self.submit_returns_id = True
        self.cancel_error: Exception | None = None
        self.upload_error: Exception | None = None
        self._next = 0

    def submit(self, payload):
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(payload)
        self._next += 1
        prompt_id = f"job-{self._next}" if self.submit_returns_id else None
        return PromptResponse(prompt_id=prompt_id, number=self._next)

    def get_queue_status(self):
        self.queue_calls += 1
        return self.queue

    def cancel(self, job_id):
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(job_id)
        return True

    def fetch_artifact(self, job_id, subfolder, filename_prefix):
        return self.artifacts.get(job_id)

    def upload_file(self, data, filename, subfolder="", overwrite=False):
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append((filename, data))
        return f"uploaded_{filename}"


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Make every test see settings built from the current environment."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings(tmp_path):
    """Settings writing artifacts under a temp dir, with no retry delays."""
    return Settings(
        output_dir=tmp_path / "output",
        artifact_retries=3,
        artifact_retry_delay_s=0,
        engine_max_retries=2,
        poll_initial_delay_s=0,
        poll_interval_s=0.05,
    )


@pytest.fixture
def fake_client(settings):
    return FakeEngineClient(settings)


@pytest.fixture
def engine_error():
    return EngineError("connection refused")


@pytest.fixture
def loader_encode_graph():
    """
    Two-node graph: node 1 (loader) output 0 feeds input "src" of node 2 via link 10.
    """
    from workflow_graph import Link, LinkRef, Node, OutputPort

    return Graph(
        nodes=[
            Node(id=1, kind="loader", outputs=[OutputPort(name="OUT", type="DATA", links=[10])]),
            Node(id=2, kind="encode", inputs={"src": LinkRef(10)}),
        ],
        links=[
            Link(
                id=10,
                source_node=1,
                source_output_index=0,
                target_node=2,
                target_input_index=0,
                data_type="DATA",
            )
        ],
        next_node_id=3,
        next_link_id=11,
    )
