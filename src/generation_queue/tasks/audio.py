"""Text-to-music task."""
from workflow_graph import AudioParams, Graph, ModelCatalog, build_audio_graph, default_catalog

from generation_queue.tasks.base import GenerationTask, TaskKind, display_name


class AudioTask(GenerationTask):
    """Generate a music clip from style tags and lyrics."""

    kind = TaskKind.AUDIO
    output_subfolder = "audio"
    file_prefix = "audio"

    def __init__(
        self,
        params: AudioParams,
        catalog: ModelCatalog | None = None,
        name: str | None = None,
        task_id: str | None = None,
    ):
        super().__init__(name=name or display_name("Audio", params.tags), task_id=task_id)
        self.params = params.with_resolved_seed()
        self.catalog = catalog or default_catalog()

    def build_graph(self) -> Graph:
        return build_audio_graph(self.params, self.catalog)
