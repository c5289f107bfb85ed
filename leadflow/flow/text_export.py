"""
text_export.py - Render a flow as numbered text or a Mermaid diagram.

Both renderings walk the graph in the same step order:

    1. Breadth-first from every start node (type ``start`` or no incoming
       edges), in node-list order. Each node is visited once, so cycles end.
    2. Nodes the walk never reaches are appended in node-list order.

Structured text numbers every node as a step. Decision nodes list their
branches as ``- <label> -> Step N`` and end nodes carrying a linked flow id
name the flow the conversation continues in. Mermaid output is a fenced
``graph TD`` block with readable node ids (``start``, ``action``,
``action2``, ..., with end nodes as ``End``, ``End2``).

Usage:
    from leadflow.flow.text_export import TextFormat, flow_to_text

    text = flow_to_text(flow, "Qualification", TextFormat.MERMAID)
"""

from __future__ import annotations

import re
from collections import deque
from enum import Enum
from typing import Dict, List, Mapping, Optional

from .types import FlowData, FlowEdge, FlowNode, NodeType


class TextFormat(str, Enum):
    """Supported text renderings of a flow."""

    STRUCTURED = "structured"
    MERMAID = "mermaid"


TYPE_LABELS: Dict[NodeType, str] = {
    NodeType.START: "Start",
    NodeType.END: "End",
    NodeType.ACTION: "Action",
    NodeType.DECISION: "Decision",
}

_MERMAID_STRIP = re.compile(r"[\[\]{}()]")


def step_order(flow: FlowData) -> List[FlowNode]:
    """Nodes in step order (see module docstring)."""
    outgoing: Dict[str, List[str]] = {n.id: [] for n in flow.nodes}
    incoming: Dict[str, int] = {n.id: 0 for n in flow.nodes}
    for edge in flow.edges:
        if edge.source in outgoing and edge.target in incoming:
            outgoing[edge.source].append(edge.target)
            incoming[edge.target] += 1

    by_id = {n.id: n for n in flow.nodes}
    roots = [n.id for n in flow.nodes if n.type == NodeType.START or incoming[n.id] == 0]
    visited = set(roots)
    queue = deque(roots)
    ordered: List[FlowNode] = []
    while queue:
        node_id = queue.popleft()
        ordered.append(by_id[node_id])
        for target in outgoing[node_id]:
            if target not in visited:
                visited.add(target)
                queue.append(target)

    ordered.extend(n for n in flow.nodes if n.id not in visited)
    return ordered


def node_description(node: FlowNode) -> Optional[str]:
    """First of description, instructions or condition that is set."""
    if node.data is None:
        return None
    return node.data.description or node.data.instructions or node.data.condition or None


def _linked_flow_name(node: FlowNode, available_flows: Optional[Mapping[str, str]]) -> Optional[str]:
    if node.type != NodeType.END or not available_flows or not node.linked_flow_id:
        return None
    return available_flows.get(node.linked_flow_id)


def _branch_label(edge: FlowEdge) -> Optional[str]:
    return edge.label or edge.source_handle or None


def flow_to_structured_text(
    flow: FlowData,
    flow_name: str,
    available_flows: Optional[Mapping[str, str]] = None,
) -> str:
    """Render the flow as numbered steps.

    Args:
        flow: Flow to render.
        flow_name: Heading for the output.
        available_flows: Optional map of flow id to name, used to name the
            target of linked end nodes.

    Returns:
        The text, or an empty string for a flow without nodes.
    """
    if flow.is_empty():
        return ""

    ordered = step_order(flow)
    steps = {node.id: index + 1 for index, node in enumerate(ordered)}
    lines = [f"## {flow_name}", ""]

    for node in ordered:
        type_label = TYPE_LABELS.get(node.type, str(node.type.value))
        description = node_description(node)
        line = f"{steps[node.id]}. [{type_label}] {node.label}"
        lines.append(f"{line}: {description}" if description else line)

        if node.type == NodeType.DECISION:
            for edge in flow.edges:
                if edge.source != node.id or edge.target not in steps:
                    continue
                lines.append(f"   - {_branch_label(edge) or '->'} -> Step {steps[edge.target]}")

        linked_name = _linked_flow_name(node, available_flows)
        if linked_name:
            lines.append(f"   -> Continues in: {linked_name}")

    return "\n".join(lines)


def escape_mermaid_label(text: str) -> str:
    """Swap double quotes for single quotes and drop bracket characters."""
    return _MERMAID_STRIP.sub("", text.replace('"', "'"))


def mermaid_ids(ordered: List[FlowNode]) -> Dict[str, str]:
    """Readable ids: the first node of a type is named after it, later ones numbered."""
    counters: Dict[str, int] = {}
    ids: Dict[str, str] = {}
    for node in ordered:
        # lowercase "end" is a Mermaid keyword
        type_name = "End" if node.type == NodeType.END else node.type.value
        counters[type_name] = counters.get(type_name, 0) + 1
        count = counters[type_name]
        ids[node.id] = type_name if count == 1 else f"{type_name}{count}"
    return ids


def flow_to_mermaid(
    flow: FlowData,
    flow_name: str,
    available_flows: Optional[Mapping[str, str]] = None,
) -> str:
    """Render the flow as a fenced Mermaid ``graph TD`` block.

    Edges with a missing endpoint are left out.
    """
    if flow.is_empty():
        return ""

    ordered = step_order(flow)
    ids = mermaid_ids(ordered)
    lines = [f"## {flow_name}", "", "```mermaid", "graph TD"]

    for node in ordered:
        label = escape_mermaid_label(node.label)
        description = node_description(node)
        if description:
            label = f"{label}: {escape_mermaid_label(description)}"
        linked_name = _linked_flow_name(node, available_flows)
        if linked_name:
            label = f"{label}\\n-> {escape_mermaid_label(linked_name)}"

        if node.type == NodeType.DECISION:
            lines.append(f'    {ids[node.id]}{{"{label}"}}')
        else:
            lines.append(f'    {ids[node.id]}["{label}"]')

    lines.append("")

    for edge in flow.edges:
        source = ids.get(edge.source)
        target = ids.get(edge.target)
        if source is None or target is None:
            continue
        branch = _branch_label(edge)
        if branch:
            lines.append(f"    {source} -- {escape_mermaid_label(branch)} --> {target}")
        else:
            lines.append(f"    {source} --> {target}")

    lines.append("```")
    return "\n".join(lines)


def flow_to_text(
    flow: FlowData,
    flow_name: str,
    text_format: TextFormat = TextFormat.STRUCTURED,
    available_flows: Optional[Mapping[str, str]] = None,
) -> str:
    """Render the flow in the requested format.

    Raises:
        ValueError: If ``text_format`` is not a known format.
    """
    text_format = TextFormat(text_format)
    if text_format == TextFormat.MERMAID:
        return flow_to_mermaid(flow, flow_name, available_flows)
    return flow_to_structured_text(flow, flow_name, available_flows)
