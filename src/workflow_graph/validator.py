"""
Graph Validator - static checks run before a graph is flattened.

Checks, in order:
1. duplicate node ids
2. dangling links (source or target node missing)
3. required inputs for known node kinds
4. acyclicity (Kahn's algorithm)
5. link data type agreement with declared port types

Validation never mutates the graph.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from .models import Graph, Node


logger = logging.getLogger(__name__)


ANY_TYPE = "*"

# Inputs that must be present (literal or link) on each known node kind.
# Kinds not listed here are not checked.
REQUIRED_INPUTS: Dict[str, Sequence[str]] = {
    "CLIPLoader": ("clip_name", "type"),
    "UNETLoader": ("unet_name",),
    "VAELoader": ("vae_name",),
    "CheckpointLoaderSimple": ("ckpt_name",),
    "CLIPTextEncode": ("text", "clip"),
    "KSampler": ("model", "positive", "negative", "latent_image", "seed", "steps", "cfg"),
    "VAEDecode": ("samples", "vae"),
    "SaveImage": ("images", "filename_prefix"),
    "SaveVideo": ("video", "filename_prefix", "codec", "format"),
    "LoadImage": ("image",),
}


@dataclass(frozen=True)
class ValidationIssue:
    """One problem found in a graph."""
    code: str
    message: str
    node_id: Optional[int] = None
    link_id: Optional[int] = None

    def __str__(self) -> str:
        return self.message


class GraphValidationError(ValueError):
    """Raised when a graph fails validation; carries every issue found."""

    def __init__(self, errors: Sequence[ValidationIssue]):
        self.errors = list(errors)
        super().__init__("; ".join(issue.message for issue in self.errors))


def validate_graph(
    graph: Graph,
    required_inputs: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[ValidationIssue]:
    """
    Run all checks and return the issues found, in check order.

    Args:
        graph: Graph to inspect
        required_inputs: Override for the required-inputs table

    Returns:
        List of issues; empty when the graph is valid
    """
    table = REQUIRED_INPUTS if required_inputs is None else required_inputs
    node_ids = {node.id for node in graph.nodes}

    issues: List[ValidationIssue] = []
    issues.extend(_check_duplicate_ids(graph))

    dangling = _check_dangling_links(graph, node_ids)
    issues.extend(dangling)

    issues.extend(_check_required_inputs(graph, table))

    # Edges to missing nodes make the in-degree count meaningless
    if not dangling:
        issues.extend(_check_cycles(graph))

    issues.extend(_check_link_types(graph))

    if issues:
        logger.debug("Graph validation found %d issue(s)", len(issues))
    return issues


def validate_or_raise(
    graph: Graph,
    required_inputs: Optional[Mapping[str, Sequence[str]]] = None,
) -> None:
    """
    Validate a graph, raising if anything is wrong.

    Raises:
        GraphValidationError: With the full list of issues
    """
    issues = validate_graph(graph, required_inputs)
    if issues:
        raise GraphValidationError(issues)


def _check_duplicate_ids(graph: Graph) -> List[ValidationIssue]:
    counts = Counter(node.id for node in graph.nodes)
    duplicates: List[int] = []
    for node in graph.nodes:
        if counts[node.id] > 1 and node.id not in duplicates:
            duplicates.append(node.id)
    if not duplicates:
        return []
    return [
        ValidationIssue(
            code="duplicate_node_id",
            message="Duplicate node IDs found: " + ", ".join(str(i) for i in duplicates),
        )
    ]


def _check_dangling_links(graph: Graph, node_ids: set) -> List[ValidationIssue]:
    issues = []
    for link in graph.links:
        if link.source_node not in node_ids:
            issues.append(ValidationIssue(
                code="dangling_link",
                message=f"Link {link.id} references non-existent source node {link.source_node}",
                node_id=link.source_node,
                link_id=link.id,
            ))
        if link.target_node not in node_ids:
            issues.append(ValidationIssue(
                code="dangling_link",
                message=f"Link {link.id} references non-existent target node {link.target_node}",
                node_id=link.target_node,
                link_id=link.id,
            ))
    return issues


def _check_required_inputs(
    graph: Graph,
    table: Mapping[str, Sequence[str]],
) -> List[ValidationIssue]:
    issues = []
    for node in graph.nodes:
        for name in table.get(node.kind, ()):
            if name not in node.inputs:
                issues.append(ValidationIssue(
                    code="missing_input",
                    message=f"Node {node.id} ({node.kind}) missing required input: {name}",
                    node_id=node.id,
                ))
    return issues


def _check_cycles(graph: Graph) -> List[ValidationIssue]:
    """Kahn's algorithm over the Link Table."""
    order: List[int] = []
    for node in graph.nodes:
        if node.id not in order:
            order.append(node.id)

    in_degree: Dict[int, int] = {node_id: 0 for node_id in order}
    downstream: Dict[int, List[int]] = {node_id: [] for node_id in order}
    for link in graph.links:
        in_degree[link.target_node] += 1
        downstream[link.source_node].append(link.target_node)

    queue = [node_id for node_id in order if in_degree[node_id] == 0]
    visited = 0
    while queue:
        node_id = queue.pop(0)
        visited += 1
        for target in downstream[node_id]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    if visited == len(order):
        return []

    remaining = [node_id for node_id in order if in_degree[node_id] > 0]
    return [
        ValidationIssue(
            code="cycle",
            message="Graph contains a cycle involving nodes: "
            + ", ".join(str(i) for i in remaining),
        )
    ]


def _check_link_types(graph: Graph) -> List[ValidationIssue]:
    issues = []
    for link in graph.links:
        if link.data_type in (None, ANY_TYPE):
            continue
        source = graph.get_node(link.source_node)
        target = graph.get_node(link.target_node)
        if source is None or target is None:
            continue

        source_type = _output_type(source, link.source_output_index)
        if source_type not in (None, ANY_TYPE) and source_type != link.data_type:
            issues.append(ValidationIssue(
                code="type_mismatch",
                message=(
                    f"Link {link.id} carries {link.data_type} but output "
                    f"{link.source_output_index} of node {source.id} ({source.kind}) "
                    f"is {source_type}"
                ),
                node_id=source.id,
                link_id=link.id,
            ))

        input_name = _linked_input(target, link.id)
        target_type = target.input_types.get(input_name) if input_name else None
        if target_type not in (None, ANY_TYPE) and target_type != link.data_type:
            issues.append(ValidationIssue(
                code="type_mismatch",
                message=(
                    f"Link {link.id} carries {link.data_type} but input "
                    f"'{input_name}' of node {target.id} ({target.kind}) is {target_type}"
                ),
                node_id=target.id,
                link_id=link.id,
            ))
    return issues


def _linked_input(node: Node, link_id: int) -> Optional[str]:
    for name, ref in node.linked_inputs():
        if ref.link == link_id:
            return name
    return None


def _output_type(node: Node, index: int) -> Optional[str]:
    if 0 <= index < len(node.outputs):
        return node.outputs[index].type
    return None
