"""Task that submits a caller-built graph as-is."""
from workflow_graph import Graph

from generation_queue.tasks.base import GenerationTask, TaskKind


class GraphTask(GenerationTask):
    """Submit an arbitrary graph; the artifact location is configurable."""

    kind = TaskKind.GRAPH

    def __init__(
        self,
        graph: Graph,
        name: str | None = None,
        output_subfolder: str = "output",
        file_prefix: str = "output",
        task_id: str | None = None,
    ):
        super().__init__(name=name, task_id=task_id)
        self.graph = graph
        self.output_subfolder = output_subfolder
        self.file_prefix = file_prefix

    def build_graph(self) -> Graph:
        return self.graph.copy()
