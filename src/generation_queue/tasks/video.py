"""Image+audio-to-video task with input uploads."""
from pathlib import Path

from workflow_graph import Graph, ModelCatalog, VideoParams, build_video_graph, default_catalog

from generation_queue.engine import EngineError
from generation_queue.tasks.base import (
    ExecutionClient,
    GenerationTask,
    TaskKind,
    UploadFailure,
    display_name,
)

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".bmp"})
AUDIO_EXTENSIONS = frozenset({".mp3", ".wav", ".flac", ".ogg", ".m4a"})


class VideoTask(GenerationTask):
    """
    Generate a video from a reference image and optional driving audio.

    Both files are local paths; they are uploaded to the engine before the
    graph is built so the loader nodes can reference the uploaded names.
    """

    kind = TaskKind.VIDEO
    output_subfolder = "video"
    file_prefix = "video"
    upload_subfolder = ""

    def __init__(
        self,
        image_path: str | Path,
        audio_path: str | Path | None = None,
        params: VideoParams | None = None,
        catalog: ModelCatalog | None = None,
        name: str | None = None,
        task_id: str | None = None,
    ):
        params = params or VideoParams()
        super().__init__(name=name or display_name("Video", params.positive_prompt), task_id=task_id)
        self.image_path = Path(image_path)
        self.audio_path = Path(audio_path) if audio_path else None
        self.params = params.with_resolved_seed()
        self.catalog = catalog or default_catalog()

    def prepare_uploads(self, client: ExecutionClient) -> None:
        """
        Upload the reference image and, if given, the audio file.

        Raises:
            UploadFailure: If a file is missing, has the wrong type, or is rejected
        """
        image_name = self._upload(client, self.image_path, IMAGE_EXTENSIONS, "image")
        update = {"image_name": image_name}
        if self.audio_path is not None:
            update["audio_name"] = self._upload(client, self.audio_path, AUDIO_EXTENSIONS, "audio")
        self.params = self.params.model_copy(update=update)

    def _upload(
        self,
        client: ExecutionClient,
        path: Path,
        extensions: frozenset,
        label: str,
    ) -> str:
        if path.suffix.lower() not in extensions:
            raise UploadFailure(
                f"Unsupported {label} file type '{path.suffix}'. "
                f"Expected one of: {', '.join(sorted(extensions))}"
            )
        try:
            data = path.read_bytes()
        except OSError as e:
            raise UploadFailure(f"Cannot read {label} file {path}: {e}") from e

        try:
            uploaded = client.upload_file(data, path.name, self.upload_subfolder, overwrite=False)
        except EngineError as e:
            raise UploadFailure(f"Failed to upload {label} file {path.name}: {e}") from e
        if not uploaded:
            raise UploadFailure(f"Failed to upload {label} file {path.name}: no name returned")
        return uploaded

    def build_graph(self) -> Graph:
        return build_video_graph(self.params, self.catalog)
