"""
rules.py - Structural validation rules for conversation flows.

validate_flow() is a pure function: it never mutates the flow and returns the
same findings, in the same order, for the same input. Findings are data, not
exceptions, and never block editing.

Rules:
    missing-start             error    no start node
    missing-end               error    no end node
    dangling-edge             error    edge source/target does not exist
    decision-missing-branch   error    decision lacks a "yes" or "no" branch
    decision-unmatched-handle error    decision edge is neither "yes" nor "no"
    unreachable-node          warning  no incoming edge, or not reachable from a start
    dead-end-node             warning  no outgoing edge, not an end, no linked flow
    self-loop                 warning  edge from a node to itself
    empty-label               info     blank node label
"""

from __future__ import annotations

from collections import deque
from typing import Dict, List, Set

from leadflow.flow.types import DECISION_BRANCHES, FlowData, FlowEdge, NodeType

from .errors import (
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    FlowValidationWarning,
    sort_by_severity,
)


def _reachable_from(start_ids: List[str], outgoing: Dict[str, List[FlowEdge]]) -> Set[str]:
    """BFS over existing nodes from every start node."""
    visited: Set[str] = set(start_ids)
    queue = deque(start_ids)
    while queue:
        current = queue.popleft()
        for edge in outgoing.get(current, []):
            if edge.target in outgoing and edge.target not in visited:
                visited.add(edge.target)
                queue.append(edge.target)
    return visited


def validate_flow(flow: FlowData) -> List[FlowValidationWarning]:
    """Validate a flow and return findings grouped error, warning, info.

    Args:
        flow: The flow to check. Not modified.

    Returns:
        Findings sorted by severity. An empty flow yields no findings.
    """
    warnings: List[FlowValidationWarning] = []
    nodes, edges = flow.nodes, flow.edges

    if not nodes:
        return warnings

    outgoing: Dict[str, List[FlowEdge]] = {n.id: [] for n in nodes}
    incoming: Dict[str, List[FlowEdge]] = {n.id: [] for n in nodes}
    labels = {n.id: n.label for n in nodes}

    # Dangling references
    for edge in edges:
        missing = [ref for ref in (edge.source, edge.target) if ref not in outgoing]
        if missing:
            warnings.append(
                FlowValidationWarning(
                    id=f"dangling-edge-{edge.id}",
                    severity=SEVERITY_ERROR,
                    message=(
                        f'Edge "{edge.id}" references missing node(s): '
                        + ", ".join(f'"{ref}"' for ref in dict.fromkeys(missing))
                    ),
                    rule="dangling-edge",
                    edge_id=edge.id,
                )
            )
            continue
        outgoing[edge.source].append(edge)
        incoming[edge.target].append(edge)

    start_ids = [n.id for n in nodes if n.type == NodeType.START]
    if not start_ids:
        warnings.append(
            FlowValidationWarning(
                id="missing-start",
                severity=SEVERITY_ERROR,
                message="The flow has no start node",
                rule="missing-start",
            )
        )

    if not any(n.type == NodeType.END for n in nodes):
        warnings.append(
            FlowValidationWarning(
                id="missing-end",
                severity=SEVERITY_ERROR,
                message="The flow has no end node",
                rule="missing-end",
            )
        )

    # Decision branches
    for node in nodes:
        if node.type != NodeType.DECISION:
            continue
        present: Set[str] = set()
        for edge in outgoing[node.id]:
            branch = edge.branch
            if branch in DECISION_BRANCHES:
                present.add(branch)
                continue
            warnings.append(
                FlowValidationWarning(
                    id=f"decision-unmatched-handle-{edge.id}",
                    severity=SEVERITY_ERROR,
                    message=(
                        f'Decision node "{node.label}" has a branch '
                        f'"{branch or ""}" that is neither "yes" nor "no"'
                    ),
                    rule="decision-unmatched-handle",
                    node_id=node.id,
                    edge_id=edge.id,
                )
            )
        missing_branches = [b for b in DECISION_BRANCHES if b not in present]
        if missing_branches:
            quoted = " and ".join(f'"{b}"' for b in missing_branches)
            noun = "branch" if len(missing_branches) == 1 else "branches"
            warnings.append(
                FlowValidationWarning(
                    id=f"decision-missing-branch-{node.id}",
                    severity=SEVERITY_ERROR,
                    message=f'Decision node "{node.label}" is missing its {quoted} {noun}',
                    rule="decision-missing-branch",
                    node_id=node.id,
                )
            )

    # Reachability
    reachable = _reachable_from(start_ids, outgoing) if start_ids else set()
    for node in nodes:
        if node.type == NodeType.START:
            continue
        if not incoming[node.id] or (start_ids and node.id not in reachable):
            warnings.append(
                FlowValidationWarning(
                    id=f"unreachable-node-{node.id}",
                    severity=SEVERITY_WARNING,
                    message=f'Node "{node.label}" is not reachable from the start',
                    rule="unreachable-node",
                    node_id=node.id,
                )
            )

    # Dead ends
    for node in nodes:
        if node.type == NodeType.END or node.linked_flow_id:
            continue
        if not outgoing[node.id]:
            warnings.append(
                FlowValidationWarning(
                    id=f"dead-end-node-{node.id}",
                    severity=SEVERITY_WARNING,
                    message=f'Node "{node.label}" has no outgoing connections',
                    rule="dead-end-node",
                    node_id=node.id,
                )
            )

    for edge in edges:
        if edge.source == edge.target and edge.source in outgoing:
            warnings.append(
                FlowValidationWarning(
                    id=f"self-loop-{edge.id}",
                    severity=SEVERITY_WARNING,
                    message=f'Node "{labels[edge.source]}" connects to itself',
                    rule="self-loop",
                    node_id=edge.source,
                    edge_id=edge.id,
                )
            )

    for node in nodes:
        if not node.label or not node.label.strip():
            warnings.append(
                FlowValidationWarning(
                    id=f"empty-label-{node.id}",
                    severity=SEVERITY_INFO,
                    message="A node has an empty label",
                    rule="empty-label",
                    node_id=node.id,
                )
            )

    return sort_by_severity(warnings)


def is_flow_valid(flow: FlowData) -> bool:
    """Returns True if the flow has no errors (warnings and info are OK)."""
    return not any(w.severity == SEVERITY_ERROR for w in validate_flow(flow))
