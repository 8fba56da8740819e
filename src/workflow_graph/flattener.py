"""
Graph Flattener - converts a validated Graph into the engine prompt payload.

Payload shape:
    {"<node id>": {"class_type": kind, "inputs": {name: literal | [node_id, output_index]}}}

Link references are resolved through the output port that lists the link,
not through the Link record's own source fields.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Optional, Tuple, Union

from .models import Graph, LinkRef
from .validator import validate_or_raise


logger = logging.getLogger(__name__)


Payload = Dict[str, Dict[str, Any]]


class FlattenIntegrityError(RuntimeError):
    """A link reference could not be resolved; the graph is internally inconsistent."""

    def __init__(
        self,
        message: str,
        link_id: Optional[int] = None,
        node_id: Optional[int] = None,
    ):
        self.link_id = link_id
        self.node_id = node_id
        super().__init__(message)


def flatten_graph(graph: Graph, *, string_refs: bool = False) -> Payload:
    """
    Flatten a graph into a submission payload.

    Node insertion order is preserved in the returned mapping.

    Args:
        graph: A graph that has passed validation
        string_refs: Emit reference node ids as decimal strings
            (["4", 0]) instead of integers ([4, 0])

    Returns:
        Payload dict keyed by node id strings

    Raises:
        FlattenIntegrityError: If a linked input cannot be traced to an output port
    """
    link_ids = {link.id for link in graph.links}

    # link id -> (owning node id, output port index)
    owners: Dict[int, Tuple[int, int]] = {}
    for node in graph.nodes:
        for index, port in enumerate(node.outputs):
            for link_id in port.links:
                owners.setdefault(link_id, (node.id, index))

    payload: Payload = {}
    for node in graph.nodes:
        inputs: Dict[str, Any] = {}
        for name, value in node.inputs.items():
            if isinstance(value, LinkRef):
                inputs[name] = _resolve(value, node.id, name, link_ids, owners, string_refs)
            else:
                inputs[name] = copy.deepcopy(value)

        entry: Dict[str, Any] = {"class_type": node.kind, "inputs": inputs}
        if node.title:
            entry["_meta"] = {"title": node.title}
        payload[str(node.id)] = entry

    return payload


def prepare_payload(graph: Graph, *, string_refs: bool = False) -> Payload:
    """
    Validate then flatten.

    Raises:
        GraphValidationError: If validation finds any issue
        FlattenIntegrityError: If a link reference is unresolvable
    """
    validate_or_raise(graph)
    payload = flatten_graph(graph, string_refs=string_refs)
    logger.debug("Flattened graph into %d payload entries", len(payload))
    return payload


def _resolve(
    ref: LinkRef,
    node_id: int,
    input_name: str,
    link_ids: set,
    owners: Dict[int, Tuple[int, int]],
    string_refs: bool,
) -> list:
    if ref.link not in link_ids:
        raise FlattenIntegrityError(
            f"Input '{input_name}' of node {node_id} references link {ref.link}, "
            "which is not in the link table",
            link_id=ref.link,
            node_id=node_id,
        )

    owner = owners.get(ref.link)
    if owner is None:
        raise FlattenIntegrityError(
            f"Link {ref.link} feeding input '{input_name}' of node {node_id} "
            "is not listed on any output port",
            link_id=ref.link,
            node_id=node_id,
        )

    source_id, output_index = owner
    source_ref: Union[int, str] = str(source_id) if string_refs else source_id
    return [source_ref, output_index]
