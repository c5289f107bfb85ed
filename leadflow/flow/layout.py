"""
layout.py - Layered auto-layout for flow graphs.

Assigns every node a rank (depth from the start nodes) and places each rank on
a horizontal row. Ranks are stacked top to bottom.

Algorithm:
    1. Depth-first pass from every start node. An edge pointing at a node that
       is on the current DFS path is a back edge and is never followed, so
       cyclic graphs terminate.
    2. Over the remaining forward edges, depth = 1 + max(depth of all
       predecessors); start nodes sit at depth 0.
    3. Nodes not reachable from any start go on one extra rank after the
       deepest, so no node is lost.
    4. Within a rank nodes are sorted by id, which makes the output identical
       across runs for the same graph.

Usage:
    from leadflow.flow.layout import auto_layout

    positioned = auto_layout(flow.nodes, flow.edges)
"""

from __future__ import annotations

import copy
import logging
from collections import deque
from typing import Dict, List, Set, Tuple

from .types import FlowEdge, FlowNode, FlowPosition, NodeType, node_dimensions

logger = logging.getLogger(__name__)

MARGIN_X = 100.0
MARGIN_Y = 50.0
NODE_GAP_X = 60.0
RANK_GAP_Y = 160.0


def _find_back_edges(
    start_ids: List[str],
    children: Dict[str, List[str]],
) -> Tuple[Set[Tuple[str, str]], Set[str]]:
    """Iterative DFS from the start nodes.

    Returns:
        Tuple of (back edges as (source, target) pairs, reachable node ids).
    """
    on_path: Set[str] = set()
    visited: Set[str] = set()
    back_edges: Set[Tuple[str, str]] = set()

    for root in start_ids:
        if root in visited:
            continue
        visited.add(root)
        on_path.add(root)
        stack: List[Tuple[str, int]] = [(root, 0)]
        while stack:
            node_id, child_idx = stack[-1]
            kids = children.get(node_id, [])
            if child_idx >= len(kids):
                stack.pop()
                on_path.discard(node_id)
                continue
            stack[-1] = (node_id, child_idx + 1)
            target = kids[child_idx]
            if target in on_path:
                back_edges.add((node_id, target))
            elif target not in visited:
                visited.add(target)
                on_path.add(target)
                stack.append((target, 0))

    return back_edges, visited


def compute_depths(nodes: List[FlowNode], edges: List[FlowEdge]) -> Dict[str, int]:
    """Compute the rank of every node.

    Args:
        nodes: Flow nodes.
        edges: Flow edges. Edges referencing missing nodes are ignored.

    Returns:
        Mapping of node id to depth. Unreachable nodes get ``max_depth + 1``.
    """
    node_ids = {n.id for n in nodes}
    start_ids = [n.id for n in nodes if n.type == NodeType.START]
    start_set = set(start_ids)

    children: Dict[str, List[str]] = {n.id: [] for n in nodes}
    for edge in edges:
        if edge.source in node_ids and edge.target in node_ids:
            children[edge.source].append(edge.target)

    back_edges, reachable = _find_back_edges(start_ids, children)

    # Forward edges among reachable nodes. Edges into a start node are ignored
    # so every start stays at depth 0.
    forward: Dict[str, List[str]] = {node_id: [] for node_id in reachable}
    in_degree: Dict[str, int] = {node_id: 0 for node_id in reachable}
    for source in sorted(reachable):
        for target in children[source]:
            if (source, target) in back_edges or target in start_set:
                continue
            forward[source].append(target)
            in_degree[target] += 1

    depths: Dict[str, int] = {}
    queue = deque(sorted(node_id for node_id, deg in in_degree.items() if deg == 0))
    for node_id in queue:
        depths[node_id] = 0
    while queue:
        current = queue.popleft()
        for target in forward[current]:
            depths[target] = max(depths.get(target, 0), depths[current] + 1)
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    deepest = max(depths.values(), default=-1)
    unreachable = [n.id for n in nodes if n.id not in depths]
    if unreachable:
        logger.debug("Placing %d unreachable node(s) on rank %d", len(unreachable), deepest + 1)
    for node_id in unreachable:
        depths[node_id] = deepest + 1

    return depths


def auto_layout(nodes: List[FlowNode], edges: List[FlowEdge]) -> List[FlowNode]:
    """Compute new positions for every node.

    Args:
        nodes: Flow nodes. Not modified.
        edges: Flow edges.

    Returns:
        New FlowNode list in the input order, with the same ids and data and
        only ``position`` changed.
    """
    if not nodes:
        return []

    depths = compute_depths(nodes, edges)
    node_map = {n.id: n for n in nodes}

    ranks: Dict[int, List[str]] = {}
    for node_id, depth in depths.items():
        ranks.setdefault(depth, []).append(node_id)
    for rank in ranks.values():
        rank.sort()

    def _rank_width(rank: List[str]) -> float:
        widths = [node_dimensions(node_map[node_id].type)["width"] for node_id in rank]
        return sum(widths) + NODE_GAP_X * (len(widths) - 1)

    axis_x = MARGIN_X + max(_rank_width(rank) for rank in ranks.values()) / 2

    positions: Dict[str, FlowPosition] = {}
    for depth in sorted(ranks):
        rank = ranks[depth]
        cursor = axis_x - _rank_width(rank) / 2
        y = MARGIN_Y + depth * RANK_GAP_Y
        for node_id in rank:
            positions[node_id] = FlowPosition(x=cursor, y=y)
            cursor += node_dimensions(node_map[node_id].type)["width"] + NODE_GAP_X

    laid_out: List[FlowNode] = []
    for node in nodes:
        moved = copy.deepcopy(node)
        moved.position = positions[node.id]
        laid_out.append(moved)
    return laid_out
