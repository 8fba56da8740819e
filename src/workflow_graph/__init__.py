"""
Workflow Graph - node/link pipeline model for the generation engine.

Graphs are built by the per-kind builders, checked by the validator and
flattened into the engine's prompt payload. Nothing in this package does
I/O.

Usage:
    from workflow_graph import build_image_graph, ImageParams, default_catalog, prepare_payload

    graph = build_image_graph(ImageParams(positive_prompt="a lighthouse"), default_catalog())
    payload = prepare_payload(graph)
"""

from .builders import (
    AudioParams,
    ImageParams,
    SamplerParams,
    VideoParams,
    build_audio_graph,
    build_image_graph,
    build_video_graph,
)
from .catalog import ModelCatalog, ModelSet, default_catalog
from .flattener import FlattenIntegrityError, Payload, flatten_graph, prepare_payload
from .models import Graph, Link, LinkRef, LiteralValue, Node, OutputPort, is_literal
from .validator import (
    REQUIRED_INPUTS,
    GraphValidationError,
    ValidationIssue,
    validate_graph,
    validate_or_raise,
)

__all__ = [
    # Models
    "Graph",
    "Link",
    "LinkRef",
    "LiteralValue",
    "Node",
    "OutputPort",
    "is_literal",
    # Validation
    "REQUIRED_INPUTS",
    "GraphValidationError",
    "ValidationIssue",
    "validate_graph",
    "validate_or_raise",
    # Flattening
    "FlattenIntegrityError",
    "Payload",
    "flatten_graph",
    "prepare_payload",
    # Catalog
    "ModelCatalog",
    "ModelSet",
    "default_catalog",
    # Builders
    "AudioParams",
    "ImageParams",
    "SamplerParams",
    "VideoParams",
    "build_audio_graph",
    "build_image_graph",
    "build_video_graph",
]
