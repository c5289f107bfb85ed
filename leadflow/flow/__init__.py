# leadflow/flow package
# Conversation flow graph: data model, undo/redo history, layout, persistence.
#
# Core components:
#   - types: FlowNode, FlowEdge, FlowData dataclasses and JSON serdes
#   - history: Snapshot-based undo/redo stacks
#   - model: FlowGraph, the editable owner of one flow
#   - layout: Rank-based automatic layout
#   - serializer: JSON documents and <flow> prompt embedding
#   - templates: Packaged starter flows
#   - text_export: Numbered step text and Mermaid renderings
#
# Usage:
#     from leadflow.flow import FlowGraph, NodeType
#     graph = FlowGraph()
#     start = graph.add_node(NodeType.START)

from ._ids import IdGenerator, SequentialIdGenerator, generate_short_id
from .history import DEFAULT_HISTORY_CAP, FlowHistory
from .layout import auto_layout, compute_depths
from .model import FlowGraph, find_available_position
from .serializer import (
    FlowDataError,
    create_initial_flow,
    dump_flow_data,
    extract_flow_from_prompt,
    load_flow_data,
    parse_flow_document,
    read_flow_file,
    update_prompt_with_flow,
    write_flow_file,
)
from .templates import FlowTemplate, get_template, list_templates
from .text_export import TextFormat, flow_to_mermaid, flow_to_structured_text, flow_to_text
from .types import (
    BRANCH_NO,
    BRANCH_YES,
    FlowData,
    FlowEdge,
    FlowNode,
    FlowNodeData,
    FlowPosition,
    NodeType,
    flow_data_from_dict,
    flow_data_to_dict,
)

__all__ = [
    # Types
    "NodeType",
    "FlowPosition",
    "FlowNodeData",
    "FlowNode",
    "FlowEdge",
    "FlowData",
    "BRANCH_YES",
    "BRANCH_NO",
    "flow_data_to_dict",
    "flow_data_from_dict",
    # Ids
    "IdGenerator",
    "SequentialIdGenerator",
    "generate_short_id",
    # Model
    "DEFAULT_HISTORY_CAP",
    "FlowHistory",
    "FlowGraph",
    "find_available_position",
    # Layout
    "auto_layout",
    "compute_depths",
    # Serializer
    "FlowDataError",
    "create_initial_flow",
    "dump_flow_data",
    "load_flow_data",
    "parse_flow_document",
    "read_flow_file",
    "write_flow_file",
    "extract_flow_from_prompt",
    "update_prompt_with_flow",
    # Templates
    "FlowTemplate",
    "list_templates",
    "get_template",
    # Text export
    "TextFormat",
    "flow_to_text",
    "flow_to_structured_text",
    "flow_to_mermaid",
]
