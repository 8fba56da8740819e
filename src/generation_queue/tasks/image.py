"""Text-to-image task."""
from workflow_graph import Graph, ImageParams, ModelCatalog, build_image_graph, default_catalog

from generation_queue.tasks.base import GenerationTask, TaskKind, display_name


class ImageTask(GenerationTask):
    """Generate an image from a text prompt."""

    kind = TaskKind.IMAGE
    output_subfolder = "image"
    file_prefix = "image"

    def __init__(
        self,
        params: ImageParams,
        catalog: ModelCatalog | None = None,
        name: str | None = None,
        task_id: str | None = None,
    ):
        super().__init__(name=name or display_name("Image", params.positive_prompt), task_id=task_id)
        self.params = params.with_resolved_seed()
        self.catalog = catalog or default_catalog()

    def build_graph(self) -> Graph:
        return build_image_graph(self.params, self.catalog)

