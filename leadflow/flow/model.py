"""
model.py - Editable flow graph with undo/redo history.

FlowGraph is the single owner of a flow's nodes and edges. Hosts (an editor,
the HTTP API, a CLI) mutate it through the methods below and read it back as
FlowData snapshots.

Mutation rules:
    - Structural mutations record a history snapshot *before* applying.
    - Position updates during a drag do not record history; one snapshot is
      committed per drag gesture via ``commit_node_positions()``.
    - Mutations never reject logically invalid input (edges to missing nodes,
      unknown ids). Those problems surface through the validator instead.

Usage:
    from leadflow.flow.model import FlowGraph
    from leadflow.flow.types import NodeType

    graph = FlowGraph()
    start = graph.add_node(NodeType.START)
    end = graph.add_node(NodeType.END)
    graph.add_edge(start, end)
    graph.undo()
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from leadflow.config.runtime_config import get_history_cap

from ._ids import IdGenerator, generate_short_id
from .history import FlowHistory
from .types import (
    FlowData,
    FlowEdge,
    FlowNode,
    FlowPosition,
    NodeType,
    flow_node_data_from_dict,
    node_dimensions,
)

logger = logging.getLogger(__name__)

# Placement of new nodes when no position is given
PLACEMENT_BASE_X = 250.0
PLACEMENT_BASE_Y = 100.0
PLACEMENT_SPACING = 120.0
SNAP_RADIUS = 20.0
OVERLAP_STEP = 40.0

DEFAULT_LABELS: Dict[NodeType, str] = {
    NodeType.START: "Start",
    NodeType.END: "End",
    NodeType.ACTION: "New action",
    NodeType.DECISION: "Condition?",
}

FlowListener = Callable[[FlowData], None]


def find_available_position(nodes: List[FlowNode]) -> FlowPosition:
    """Find a free canvas position for a new node.

    Stacks the node below the lowest existing node, then nudges it by a fixed
    step until no existing node lies within the snap radius.
    """
    if not nodes:
        candidate = FlowPosition(PLACEMENT_BASE_X, PLACEMENT_BASE_Y)
    else:
        lowest = max(n.position.y + node_dimensions(n.type)["height"] for n in nodes)
        candidate = FlowPosition(PLACEMENT_BASE_X, lowest + PLACEMENT_SPACING)

    def _collides(pos: FlowPosition) -> bool:
        return any(
            abs(n.position.x - pos.x) < SNAP_RADIUS and abs(n.position.y - pos.y) < SNAP_RADIUS
            for n in nodes
        )

    # A node can block at most one candidate: ends within len(nodes) + 1 steps.
    while _collides(candidate):
        candidate = FlowPosition(candidate.x + OVERLAP_STEP, candidate.y + OVERLAP_STEP)
    return candidate


class FlowGraph:
    """Exclusive owner of one flow's state.

    Attributes:
        history: Undo/redo stacks for this graph.
    """

    def __init__(
        self,
        data: Optional[FlowData] = None,
        id_generator: Optional[IdGenerator] = None,
        history_cap: Optional[int] = None,
    ):
        """Initialize the graph.

        Args:
            data: Initial flow. Copied, never aliased.
            id_generator: Source of node/edge ids. Defaults to short random ids.
            history_cap: Maximum number of undo snapshots. Defaults to the
                runtime configuration (30).
        """
        initial = data.copy() if data is not None else FlowData()
        self._nodes: List[FlowNode] = initial.nodes
        self._edges: List[FlowEdge] = initial.edges
        self._new_id = id_generator or generate_short_id
        self.history = FlowHistory(cap=history_cap if history_cap is not None else get_history_cap())
        self._has_unsaved_changes = False
        self._drag_origin: Optional[FlowData] = None
        self._listeners: List[FlowListener] = []

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def nodes(self) -> List[FlowNode]:
        """Live node list. Treat as read-only; mutate through methods."""
        return self._nodes

    @property
    def edges(self) -> List[FlowEdge]:
        """Live edge list. Treat as read-only; mutate through methods."""
        return self._edges

    @property
    def has_unsaved_changes(self) -> bool:
        return self._has_unsaved_changes

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        for node in self._nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[FlowEdge]:
        for edge in self._edges:
            if edge.id == edge_id:
                return edge
        return None

    def get_flow_data(self) -> FlowData:
        """Return a deep copy of the current flow."""
        return FlowData(nodes=self._nodes, edges=self._edges).copy()

    # -------------------------------------------------------------------------
    # Host integration
    # -------------------------------------------------------------------------

    def add_listener(self, listener: FlowListener) -> None:
        """Register a callback invoked with a FlowData copy after each mutation."""
        self._listeners.append(listener)

    def remove_listener(self, listener: FlowListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def mark_as_saved(self) -> None:
        self._has_unsaved_changes = False

    def mark_as_changed(self) -> None:
        self._has_unsaved_changes = True

    def _changed(self, dirty: bool = True) -> None:
        self._has_unsaved_changes = dirty
        if not self._listeners:
            return
        snapshot = self.get_flow_data()
        for listener in list(self._listeners):
            listener(snapshot)

    def _restore(self, snapshot: FlowData) -> None:
        self._nodes = snapshot.nodes
        self._edges = snapshot.edges

    # -------------------------------------------------------------------------
    # Data management
    # -------------------------------------------------------------------------

    def set_flow_data(self, data: FlowData) -> None:
        """Replace the whole flow, e.g. when the host loads a document.

        A snapshot is recorded only if the graph already had nodes, so the
        initial load is not undoable. The graph is marked as saved.
        """
        if self._nodes:
            self.push_history()
        self._restore(data.copy())
        self._drag_origin = None
        self._changed(dirty=False)

    def clear_flow(self) -> None:
        """Remove every node and edge."""
        if self._nodes:
            self.push_history()
        self._restore(FlowData())
        self._drag_origin = None
        self._changed(dirty=False)

    # -------------------------------------------------------------------------
    # Undo / redo
    # -------------------------------------------------------------------------

    def push_history(self) -> None:
        """Record the current state as an undo snapshot."""
        self.history.push(FlowData(nodes=self._nodes, edges=self._edges))

    def undo(self) -> bool:
        """Restore the previous snapshot. Returns False if there was none."""
        previous = self.history.undo(FlowData(nodes=self._nodes, edges=self._edges))
        if previous is None:
            return False
        self._restore(previous)
        self._changed()
        return True

    def redo(self) -> bool:
        """Re-apply the last undone snapshot. Returns False if there was none."""
        following = self.history.redo(FlowData(nodes=self._nodes, edges=self._edges))
        if following is None:
            return False
        self._restore(following)
        self._changed()
        return True

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def add_node(
        self,
        node_type: Union[NodeType, str],
        position: Optional[FlowPosition] = None,
        label: Optional[str] = None,
    ) -> str:
        """Add a node and return its id.

        Args:
            node_type: Node type (enum or its string value).
            position: Canvas position. Computed when omitted.
            label: Node label. Defaults to a per-type label.

        Raises:
            ValueError: If ``node_type`` is not a known node type.
        """
        node_type = NodeType(node_type)
        self.push_history()
        node_id = self._new_id()
        node = FlowNode(
            id=node_id,
            type=node_type,
            label=label if label is not None else DEFAULT_LABELS[node_type],
            position=(
                FlowPosition(position.x, position.y)
                if position is not None
                else find_available_position(self._nodes)
            ),
        )
        self._nodes = [*self._nodes, node]
        logger.debug("Added %s node %s", node_type.value, node_id)
        self._changed()
        return node_id

    def update_node(self, node_id: str, updates: Mapping[str, Any]) -> None:
        """Shallow-update node fields (``label``, ``type``, ``position``, ``data``).

        The ``id`` field is never changed.
        Wire-shape ``position`` and ``data`` mappings are parsed into their types.
        """
        self.push_history()
        fields = {k: v for k, v in updates.items() if k != "id"}
        if "type" in fields:
            fields["type"] = NodeType(fields["type"])
        if isinstance(fields.get("position"), Mapping):
            position = fields["position"]
            fields["position"] = FlowPosition(float(position.get("x", 0)), float(position.get("y", 0)))
        if isinstance(fields.get("data"), Mapping):
            fields["data"] = flow_node_data_from_dict(fields["data"])
        self._nodes = [self._replace_node(n, fields) if n.id == node_id else n for n in self._nodes]
        self._changed()

    def update_node_label(self, node_id: str, label: str) -> None:
        self.update_node(node_id, {"label": label})

    def update_node_position(self, node_id: str, position: FlowPosition) -> None:
        """Move a node without recording history (called on every drag frame)."""
        self._nodes = [
            self._replace_node(n, {"position": FlowPosition(position.x, position.y)})
            if n.id == node_id
            else n
            for n in self._nodes
        ]
        self._changed()

    def begin_node_drag(self) -> None:
        """Capture the pre-drag state so the gesture can be undone as one step."""
        self._drag_origin = self.get_flow_data()

    def commit_node_positions(self) -> None:
        """Commit exactly one snapshot for a finished drag gesture.

        Records the state captured by :meth:`begin_node_drag` when one is
        pending, otherwise the current state.
        """
        if self._drag_origin is not None:
            self.history.push(self._drag_origin)
            self._drag_origin = None
        else:
            self.push_history()

    def delete_node(self, node_id: str) -> None:
        """Delete a node and every edge whose source or target is that node."""
        self.push_history()
        self._nodes = [n for n in self._nodes if n.id != node_id]
        removed = [e.id for e in self._edges if e.source == node_id or e.target == node_id]
        self._edges = [e for e in self._edges if e.source != node_id and e.target != node_id]
        if removed:
            logger.debug("Deleted node %s with %d incident edge(s)", node_id, len(removed))
        self._changed()

    @staticmethod
    def _replace_node(node: FlowNode, fields: Mapping[str, Any]) -> FlowNode:
        return FlowNode(
            id=node.id,
            type=fields.get("type", node.type),
            label=fields.get("label", node.label),
            position=fields.get("position", node.position),
            data=fields.get("data", node.data),
        )

    # -------------------------------------------------------------------------
    # Edges
    # -------------------------------------------------------------------------

    def add_edge(
        self,
        source: str,
        target: str,
        label: Optional[str] = None,
        source_handle: Optional[str] = None,
    ) -> str:
        """Connect two nodes and return the new edge id.

        Returns an empty string, without recording history, if an edge with the
        same source, target and handle already exists.
        """
        source_handle = source_handle or None
        for edge in self._edges:
            if (
                edge.source == source
                and edge.target == target
                and edge.source_handle == source_handle
            ):
                logger.debug("Ignoring duplicate edge %s -> %s", source, target)
                return ""

        self.push_history()
        edge_id = f"e-{self._new_id()}"
        self._edges = [
            *self._edges,
            FlowEdge(
                id=edge_id,
                source=source,
                target=target,
                label=label or None,
                source_handle=source_handle,
            ),
        ]
        self._changed()
        return edge_id

    def update_edge(self, edge_id: str, updates: Mapping[str, Any]) -> None:
        """Shallow-update edge fields (``source``, ``target``, ``label``, ``source_handle``)."""
        self.push_history()
        self._edges = [
            FlowEdge(
                id=e.id,
                source=updates.get("source", e.source),
                target=updates.get("target", e.target),
                label=updates.get("label", e.label),
                source_handle=updates.get("source_handle", e.source_handle) or None,
            )
            if e.id == edge_id
            else e
            for e in self._edges
        ]
        self._changed()

    def delete_edge(self, edge_id: str) -> None:
        self.push_history()
        self._edges = [e for e in self._edges if e.id != edge_id]
        self._changed()
