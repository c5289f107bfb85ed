"""Core types for conversation flow graphs.

This module contains the node, edge and graph snapshot types shared by the
graph model, validator, layout engine and simulation layer, plus the
serdes helpers that map them to and from their JSON wire shape.

The wire shape uses camelCase keys (``sourceHandle``, ``linkedFlowId``) so a
FlowData document produced by the editor round-trips through JSON unchanged.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class NodeType(str, Enum):
    """Kind of node in a conversation flow."""

    START = "start"
    END = "end"
    ACTION = "action"
    DECISION = "decision"


# Canvas footprint per node type (width, height)
NODE_DIMENSIONS: Dict[NodeType, Dict[str, float]] = {
    NodeType.START: {"width": 100, "height": 50},
    NodeType.END: {"width": 100, "height": 50},
    NodeType.ACTION: {"width": 200, "height": 80},
    NodeType.DECISION: {"width": 150, "height": 100},
}

# Branch discriminators expected on decision node outgoing edges
BRANCH_YES = "yes"
BRANCH_NO = "no"
DECISION_BRANCHES = (BRANCH_YES, BRANCH_NO)


@dataclass
class FlowPosition:
    """Canvas position of a node."""

    x: float = 0.0
    y: float = 0.0


@dataclass
class FlowNodeData:
    """Optional per-node payload.

    Attributes:
        description: Free-text description of the step.
        condition: Condition evaluated by a decision node.
        action: Action performed by an action node.
        instructions: Agent instructions for this step.
        keywords: Keywords/triggers that activate this node.
        linked_flow_id: Cross-flow reference. An end node carrying one
            redirects the conversation into another flow.
    """

    description: Optional[str] = None
    condition: Optional[str] = None
    action: Optional[str] = None
    instructions: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    linked_flow_id: Optional[str] = None


@dataclass
class FlowNode:
    """A node in the conversation flow graph."""

    id: str
    type: NodeType
    label: str
    position: FlowPosition = field(default_factory=FlowPosition)
    data: Optional[FlowNodeData] = None

    @property
    def linked_flow_id(self) -> Optional[str]:
        """Cross-flow reference carried by this node, if any."""
        return self.data.linked_flow_id if self.data else None


@dataclass
class FlowEdge:
    """A directed connection between two nodes.

    ``source_handle`` is the branch discriminator ("yes"/"no") and is only
    meaningful when the source is a decision node.
    """

    id: str
    source: str
    target: str
    label: Optional[str] = None
    source_handle: Optional[str] = None

    @property
    def branch(self) -> Optional[str]:
        """Normalized branch name: the handle, else the label, lowercased."""
        raw = self.source_handle or self.label
        if raw is None:
            return None
        return raw.strip().lower() or None


@dataclass
class FlowData:
    """Serializable snapshot of a whole flow graph."""

    nodes: List[FlowNode] = field(default_factory=list)
    edges: List[FlowEdge] = field(default_factory=list)

    def copy(self) -> "FlowData":
        """Return a deep copy sharing no node or edge objects with self."""
        return copy.deepcopy(self)

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def is_empty(self) -> bool:
        return len(self.nodes) == 0


def node_dimensions(node_type: NodeType) -> Dict[str, float]:
    """Footprint for a node type, defaulting to the action footprint."""
    return NODE_DIMENSIONS.get(node_type, NODE_DIMENSIONS[NodeType.ACTION])


# =============================================================================
# Serdes
# =============================================================================


def flow_node_data_to_dict(data: FlowNodeData) -> Dict[str, Any]:
    """Convert FlowNodeData to its wire shape, omitting unset fields."""
    result: Dict[str, Any] = {}
    if data.description is not None:
        result["description"] = data.description
    if data.condition is not None:
        result["condition"] = data.condition
    if data.action is not None:
        result["action"] = data.action
    if data.instructions is not None:
        result["instructions"] = data.instructions
    if data.keywords:
        result["keywords"] = list(data.keywords)
    if data.linked_flow_id is not None:
        result["linkedFlowId"] = data.linked_flow_id
    return result


def flow_node_data_from_dict(data: Dict[str, Any]) -> FlowNodeData:
    """Parse FlowNodeData from its wire shape."""
    return FlowNodeData(
        description=data.get("description"),
        condition=data.get("condition"),
        action=data.get("action"),
        instructions=data.get("instructions"),
        keywords=list(data.get("keywords") or []),
        linked_flow_id=data.get("linkedFlowId"),
    )


def flow_node_to_dict(node: FlowNode) -> Dict[str, Any]:
    """Convert a FlowNode to a dictionary for JSON serialization.

    Args:
        node: The FlowNode to convert.

    Returns:
        Dictionary with ``id``, ``type``, ``label``, ``position`` and, when
        present, ``data``.
    """
    result: Dict[str, Any] = {
        "id": node.id,
        "type": node.type.value,
        "label": node.label,
        "position": {"x": node.position.x, "y": node.position.y},
    }
    if node.data is not None:
        result["data"] = flow_node_data_to_dict(node.data)
    return result


def flow_node_from_dict(data: Dict[str, Any]) -> FlowNode:
    """Parse a FlowNode from a dictionary.

    Args:
        data: Dictionary in the FlowNode wire shape.

    Returns:
        Parsed FlowNode instance.

    Raises:
        ValueError: If ``type`` is not a known node type.
    """
    position = data.get("position") or {}
    raw_data = data.get("data")
    return FlowNode(
        id=str(data["id"]),
        type=NodeType(data.get("type", NodeType.ACTION.value)),
        label=data.get("label", ""),
        position=FlowPosition(
            x=float(position.get("x", 0.0)),
            y=float(position.get("y", 0.0)),
        ),
        data=flow_node_data_from_dict(raw_data) if raw_data is not None else None,
    )


def flow_edge_to_dict(edge: FlowEdge) -> Dict[str, Any]:
    """Convert a FlowEdge to a dictionary, omitting unset optional keys."""
    result: Dict[str, Any] = {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
    }
    if edge.label is not None:
        result["label"] = edge.label
    if edge.source_handle is not None:
        result["sourceHandle"] = edge.source_handle
    return result


def flow_edge_from_dict(data: Dict[str, Any]) -> FlowEdge:
    """Parse a FlowEdge from a dictionary."""
    return FlowEdge(
        id=str(data["id"]),
        source=str(data["source"]),
        target=str(data["target"]),
        label=data.get("label"),
        source_handle=data.get("sourceHandle"),
    )


def flow_data_to_dict(flow: FlowData) -> Dict[str, Any]:
    """Convert FlowData to a dictionary for JSON serialization."""
    return {
        "nodes": [flow_node_to_dict(n) for n in flow.nodes],
        "edges": [flow_edge_to_dict(e) for e in flow.edges],
    }


def flow_data_from_dict(data: Dict[str, Any]) -> FlowData:
    """Parse FlowData from a dictionary.

    Missing ``nodes``/``edges`` keys are treated as empty lists.
    """
    return FlowData(
        nodes=[flow_node_from_dict(n) for n in data.get("nodes") or []],
        edges=[flow_edge_from_dict(e) for e in data.get("edges") or []],
    )
