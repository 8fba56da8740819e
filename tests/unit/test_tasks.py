"""Tests for generation tasks."""
import pytest

from generation_queue.engine import EngineError, QueueStatus
from generation_queue.tasks import (
    AudioTask,
    CancellationFailure,
    CheckState,
    CompletionCheckFailure,
    GraphTask,
    ImageTask,
    SubmissionFailure,
    TaskKind,
    TaskStatus,
    UploadFailure,
    VideoTask,
)
from workflow_graph import AudioParams, Graph, GraphValidationError, ImageParams, VideoParams


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "portrait.png"
    path.write_bytes(b"\x89PNG fake")
    return path


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "voice.wav"
    path.write_bytes(b"RIFF fake")
    return path


class TestNewTask:
    def test_initial_state(self):
        task = ImageTask(ImageParams(positive_prompt="a red fox in the snow"))

        assert task.status == TaskStatus.PENDING
        assert task.kind == TaskKind.IMAGE
        assert task.job_id is None
        assert task.submitted_at is None
        assert task.name == "Image: a red fox in the snow"
        assert task.created_at.tzinfo is not None

    def test_ids_are_unique(self):
        assert ImageTask(ImageParams()).id != ImageTask(ImageParams()).id

    def test_long_prompt_shortened(self):
        task = AudioTask(AudioParams(tags="x" * 80))
        assert task.name == "Audio: " + "x" * 50 + "..."

    def test_seed_resolved_at_creation(self):
        task = ImageTask(ImageParams(seed=-1))
        assert task.params.seed >= 0
        # building twice gives the same graph
        assert task.build_graph() == task.build_graph()

    def test_artifact_policy(self):
        assert (AudioTask.output_subfolder, AudioTask.file_prefix) == ("audio", "audio")
        assert (ImageTask.output_subfolder, ImageTask.file_prefix) == ("image", "image")
        assert (VideoTask.output_subfolder, VideoTask.file_prefix) == ("video", "video")

    def test_info_snapshot(self):
        task = AudioTask(AudioParams(), name="Song")
        info = task.to_info()
        assert info.task_id == task.id
        assert info.name == "Song"
        assert info.status == TaskStatus.PENDING
        assert info.kind == TaskKind.AUDIO


class TestSubmit:
    def test_submit_returns_job_id(self, fake_client):
        task = ImageTask(ImageParams(seed=1))

        job_id = task.submit(fake_client, string_refs=True)

        assert job_id == "job-1"
        payload = fake_client.submitted[0]
        assert payload == task.payload
        sampler = next(v for v in payload.values() if v["class_type"] == "KSampler")
        assert sampler["inputs"]["model"] == ["1", 0]

    def test_submit_without_id(self, fake_client):
        fake_client.submit_returns_id = False
        assert ImageTask(ImageParams()).submit(fake_client) is None

    def test_engine_error_becomes_submission_failure(self, fake_client):
        fake_client.submit_error = EngineError("engine down")
        with pytest.raises(SubmissionFailure, match="engine down"):
            AudioTask(AudioParams()).submit(fake_client)

    def test_invalid_graph_never_submitted(self, fake_client):
        graph = Graph()
        graph.add_node("VAELoader")

        with pytest.raises(GraphValidationError):
            GraphTask(graph).submit(fake_client)
        assert fake_client.submitted == []

    def test_graph_task_does_not_mutate_graph(self, fake_client, loader_encode_graph):
        task = GraphTask(loader_encode_graph, output_subfolder="misc", file_prefix="misc")
        task.submit(fake_client)
        assert fake_client.submitted[0]["2"]["inputs"]["src"] == [1, 0]
        assert task.output_subfolder == "misc"


class TestVideoUploads:
    def test_uploads_before_submit(self, fake_client, image_file, audio_file):
        task = VideoTask(image_file, audio_file, VideoParams(positive_prompt="talking head", seed=4))

        task.submit(fake_client)

        assert [name for name, _ in fake_client.uploads] == ["portrait.png", "voice.wav"]
        payload = fake_client.submitted[0]
        load_image = next(v for v in payload.values() if v["class_type"] == "LoadImage")
        load_audio = next(v for v in payload.values() if v["class_type"] == "LoadAudio")
        assert load_image["inputs"]["image"] == "uploaded_portrait.png"
        assert load_audio["inputs"]["audio"] == "uploaded_voice.wav"

    def test_audio_optional(self, fake_client, image_file):
        task = VideoTask(image_file)
        task.submit(fake_client)
        classes = [v["class_type"] for v in fake_client.submitted[0].values()]
        assert "LoadAudio" not in classes
        assert len(fake_client.uploads) == 1

    def test_upload_failure_aborts_submission(self, fake_client, image_file):
        fake_client.upload_error = EngineError("disk full", status_code=500)
        task = VideoTask(image_file)

        with pytest.raises(UploadFailure, match="disk full"):
            task.submit(fake_client)
        assert fake_client.submitted == []

    def test_rejects_unsupported_image_type(self, fake_client, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")

        with pytest.raises(UploadFailure, match="Unsupported image file type"):
            VideoTask(path).submit(fake_client)
        assert fake_client.uploads == []

    def test_rejects_unsupported_audio_type(self, fake_client, image_file, tmp_path):
        path = tmp_path / "clip.mid"
        path.write_bytes(b"MThd")

        with pytest.raises(UploadFailure, match="Unsupported audio file type"):
            VideoTask(image_file, path).submit(fake_client)
        assert fake_client.submitted == []

    def test_missing_file(self, fake_client, tmp_path):
        with pytest.raises(UploadFailure, match="Cannot read image file"):
            VideoTask(tmp_path / "missing.png").submit(fake_client)

    def test_upload_failure_is_a_submission_failure(self):
        assert issubclass(UploadFailure, SubmissionFailure)


class TestCheckCompletion:
    def _submitted(self, fake_client):
        task = ImageTask(ImageParams())
        task.job_id = task.submit(fake_client)
        return task

    def test_executing(self, fake_client):
        task = self._submitted(fake_client)
        fake_client.queue = QueueStatus(executing=["job-1"])

        result = task.check_completion(fake_client)

        assert result.state == CheckState.EXECUTING
        assert result.queue_position == 0

    def test_queued_position(self, fake_client):
        task = self._submitted(fake_client)
        fake_client.queue = QueueStatus(executing=["other"], queued=["x", "job-1"])

        result = task.check_completion(fake_client)

        assert result.state == CheckState.QUEUED
        assert result.queue_position == 2

    def test_finished_with_artifact(self, fake_client):
        task = self._submitted(fake_client)
        fake_client.artifacts["job-1"] = "/image/image_job-1.png"

        result = task.check_completion(fake_client)

        assert result.state == CheckState.FINISHED
        assert result.artifact_path == "/image/image_job-1.png"

    def test_finished_without_artifact(self, fake_client):
        result = self._submitted(fake_client).check_completion(fake_client)
        assert result.state == CheckState.FINISHED
        assert result.artifact_path is None

    def test_engine_error(self, fake_client):
        task = self._submitted(fake_client)

        def broken():
            raise EngineError("queue unavailable")

        fake_client.get_queue_status = broken
        with pytest.raises(CompletionCheckFailure, match="queue unavailable"):
            task.check_completion(fake_client)

    def test_no_job_id(self, fake_client):
        with pytest.raises(CompletionCheckFailure):
            ImageTask(ImageParams()).check_completion(fake_client)


class TestCancel:
    def test_cancel_with_job(self, fake_client):
        task = ImageTask(ImageParams())
        task.job_id = "job-9"
        assert task.cancel(fake_client) is True
        assert fake_client.cancelled == ["job-9"]

    def test_cancel_without_job(self, fake_client):
        assert ImageTask(ImageParams()).cancel(fake_client) is False
        assert fake_client.cancelled == []

    def test_cancel_error(self, fake_client):
        fake_client.cancel_error = EngineError("timeout")
        task = ImageTask(ImageParams())
        task.job_id = "job-9"
        with pytest.raises(CancellationFailure):
            task.cancel(fake_client)


@pytest.mark.parametrize(
    "status,terminal,active",
    [
        (TaskStatus.PENDING, False, False),
        (TaskStatus.QUEUED, False, True),
        (TaskStatus.PROCESSING, False, True),
        (TaskStatus.COMPLETED, True, False),
        (TaskStatus.FAILED, True, False),
        (TaskStatus.CANCELLED, True, False),
    ],
)
def test_status_classification(status, terminal, active):
    assert status.is_terminal is terminal
    assert status.is_active is active
