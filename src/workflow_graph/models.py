"""
Graph Models - in-memory node/link pipeline structure.

A Graph is an ordered list of Nodes plus a Link Table. Node inputs hold
either a literal value or a LinkRef; each output port lists the ids of the
links leaving it. The editing helpers below keep the output ports and the
Link Table symmetric.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union


LiteralValue = Union[bool, int, float, str, List["LiteralValue"]]


@dataclass(frozen=True)
class LinkRef:
    """Reference from a node input to a Link in the Link Table."""
    link: int


InputValue = Union[LinkRef, LiteralValue]

# (name, type) pair accepted wherever an output port is declared
PortSpec = Union["OutputPort", Tuple[str, Optional[str]], str]


def is_literal(value: object) -> bool:
    """Check whether a value belongs to the closed literal union."""
    if isinstance(value, (bool, int, float, str)):
        return True
    if isinstance(value, list):
        return all(is_literal(item) for item in value)
    return False


@dataclass
class OutputPort:
    """Named output of a node and the ids of the links leaving it."""
    name: str
    type: Optional[str] = None
    links: List[int] = field(default_factory=list)


@dataclass
class Node:
    """
    One pipeline step.

    `kind` is opaque here; the execution engine interprets it.
    `input_types` optionally records the declared type of an input so the
    validator can compare it against the links that feed it.
    """
    id: int
    kind: str
    inputs: Dict[str, InputValue] = field(default_factory=dict)
    outputs: List[OutputPort] = field(default_factory=list)
    input_types: Dict[str, str] = field(default_factory=dict)
    title: Optional[str] = None

    def input_index(self, name: str) -> int:
        """Position of an input in declaration order, -1 if absent."""
        for index, input_name in enumerate(self.inputs):
            if input_name == name:
                return index
        return -1

    def linked_inputs(self) -> Iterator[Tuple[str, LinkRef]]:
        for name, value in self.inputs.items():
            if isinstance(value, LinkRef):
                yield name, value


@dataclass
class Link:
    """Directed edge from one node's output port to another node's input."""
    id: int
    source_node: int
    source_output_index: int
    target_node: int
    target_input_index: int
    data_type: str = "*"


def _to_port(spec: PortSpec) -> OutputPort:
    if isinstance(spec, OutputPort):
        return spec
    if isinstance(spec, str):
        return OutputPort(name=spec, type=spec)
    name, port_type = spec
    return OutputPort(name=name, type=port_type)


@dataclass
class Graph:
    """
    Nodes plus Link Table plus the id counters used by incremental builds.

    Node and link ids are handed out sequentially from 1, so two builds with
    the same sequence of edits produce identical graphs.
    """
    nodes: List[Node] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)
    next_node_id: int = 1
    next_link_id: int = 1

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_node(self, node_id: int) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_link(self, link_id: int) -> Optional[Link]:
        for link in self.links:
            if link.id == link_id:
                return link
        return None

    def incoming_link(self, node_id: int, input_name: str) -> Optional[Link]:
        """Get the link feeding a named input, if that input is linked."""
        node = self.get_node(node_id)
        if node is None:
            return None
        value = node.inputs.get(input_name)
        if isinstance(value, LinkRef):
            return self.get_link(value.link)
        return None

    def outgoing_links(self, node_id: int) -> List[Link]:
        return [link for link in self.links if link.source_node == node_id]

    def copy(self) -> "Graph":
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def add_node(
        self,
        kind: str,
        inputs: Optional[Dict[str, InputValue]] = None,
        outputs: Optional[Sequence[PortSpec]] = None,
        title: Optional[str] = None,
    ) -> Node:
        """
        Append a node using the next node id.

        Args:
            kind: Node kind label
            inputs: Literal inputs (links are added with connect())
            outputs: Output ports as OutputPort, (name, type) or a bare name
            title: Optional display title

        Returns:
            The created node
        """
        node = Node(
            id=self.next_node_id,
            kind=kind,
            inputs=dict(inputs or {}),
            outputs=[_to_port(spec) for spec in (outputs or [])],
            title=title,
        )
        self.nodes.append(node)
        self.next_node_id += 1
        return node

    def connect(
        self,
        source_id: int,
        output_index: int,
        target_id: int,
        input_name: str,
        data_type: Optional[str] = None,
    ) -> Link:
        """
        Link a source output port to a target input using the next link id.

        An existing link on the target input is replaced.

        Raises:
            KeyError: If either node is missing
            IndexError: If the source has no such output port
        """
        source = self._require_node(source_id)
        target = self._require_node(target_id)
        if not 0 <= output_index < len(source.outputs):
            raise IndexError(
                f"Node {source_id} ({source.kind}) has no output {output_index}"
            )
        port = source.outputs[output_index]

        existing = target.inputs.get(input_name)
        if isinstance(existing, LinkRef):
            self.remove_link(existing.link)

        link = Link(
            id=self.next_link_id,
            source_node=source_id,
            source_output_index=output_index,
            target_node=target_id,
            target_input_index=0,
            data_type=data_type or port.type or "*",
        )
        self.next_link_id += 1

        target.inputs[input_name] = LinkRef(link.id)
        if link.data_type != "*":
            target.input_types[input_name] = link.data_type
        link.target_input_index = target.input_index(input_name)

        port.links.append(link.id)
        self.links.append(link)
        return link

    def remove_link(self, link_id: int) -> Link:
        """
        Remove a link from the Link Table, its source port and its target input.

        Raises:
            KeyError: If the link does not exist
        """
        link = self.get_link(link_id)
        if link is None:
            raise KeyError(f"Link {link_id} not found")

        self.links.remove(link)
        for node in self.nodes:
            for port in node.outputs:
                if link_id in port.links:
                    port.links.remove(link_id)

        target = self.get_node(link.target_node)
        if target is not None:
            for name, ref in list(target.linked_inputs()):
                if ref.link == link_id:
                    del target.inputs[name]
                    target.input_types.pop(name, None)
            self._reindex_inputs(target)
        return link

    def remove_node(self, node_id: int) -> Node:
        """
        Remove a node and every link attached to it.

        Raises:
            KeyError: If the node does not exist
        """
        node = self._require_node(node_id)
        attached = [
            link.id for link in self.links
            if link.source_node == node_id or link.target_node == node_id
        ]
        for link_id in attached:
            self.remove_link(link_id)
        self.nodes.remove(node)
        return node

    def reroute_link(self, link_id: int, new_source_id: int, new_output_index: int) -> Link:
        """
        Move the source end of an existing link, keeping its id and target.

        Raises:
            KeyError: If the link or the new source node is missing
            IndexError: If the new source has no such output port
        """
        link = self.get_link(link_id)
        if link is None:
            raise KeyError(f"Link {link_id} not found")
        new_source = self._require_node(new_source_id)
        if not 0 <= new_output_index < len(new_source.outputs):
            raise IndexError(
                f"Node {new_source_id} ({new_source.kind}) has no output {new_output_index}"
            )

        for node in self.nodes:
            for port in node.outputs:
                if link_id in port.links:
                    port.links.remove(link_id)

        new_source.outputs[new_output_index].links.append(link_id)
        link.source_node = new_source_id
        link.source_output_index = new_output_index
        return link

    def insert_between(
        self,
        link_id: int,
        kind: str,
        input_name: str,
        output_index: int = 0,
        inputs: Optional[Dict[str, InputValue]] = None,
        outputs: Optional[Sequence[PortSpec]] = None,
        title: Optional[str] = None,
    ) -> Node:
        """
        Splice an optional node into an existing link.

        The consumer keeps its link (same id) but now receives it from the new
        node's `output_index`; the old source is connected to the new node's
        `input_name` with a fresh link. No other link id changes.

        Returns:
            The inserted node
        """
        link = self.get_link(link_id)
        if link is None:
            raise KeyError(f"Link {link_id} not found")
        old_source, old_index, data_type = (
            link.source_node, link.source_output_index, link.data_type
        )

        node = self.add_node(kind, inputs=inputs, outputs=outputs, title=title)
        self.reroute_link(link_id, node.id, output_index)
        self.connect(old_source, old_index, node.id, input_name, data_type)
        return node

    def _require_node(self, node_id: int) -> Node:
        node = self.get_node(node_id)
        if node is None:
            raise KeyError(f"Node {node_id} not found")
        return node

    def _reindex_inputs(self, node: Node) -> None:
        positions = {ref.link: node.input_index(name) for name, ref in node.linked_inputs()}
        for link in self.links:
            if link.target_node == node.id and link.id in positions:
                link.target_input_index = positions[link.id]
