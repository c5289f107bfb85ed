"""
serializer.py - FlowData persistence and prompt embedding.

FlowData documents are plain JSON (see ``FLOW_DATA_SCHEMA``). Documents coming
from outside (files, HTTP bodies, prompt text) are checked against the schema
with jsonschema before they are parsed.

A flow can also be embedded in an agent prompt inside ``<flow>...</flow>``
tags so the prompt and its flow travel together.

Usage:
    from leadflow.flow.serializer import dump_flow_data, load_flow_data

    text = dump_flow_data(flow)
    assert load_flow_data(text) == flow
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import jsonschema

from .types import (
    FlowData,
    FlowNode,
    FlowPosition,
    NodeType,
    flow_data_from_dict,
    flow_data_to_dict,
)

logger = logging.getLogger(__name__)

FLOW_TAG_PATTERN = re.compile(r"<flow>\s*([\s\S]*?)\s*</flow>", re.IGNORECASE)

FLOW_DATA_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "FlowData",
    "type": "object",
    "required": ["nodes", "edges"],
    "properties": {
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "type"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "type": {"enum": [t.value for t in NodeType]},
                    "label": {"type": "string"},
                    "position": {
                        "type": "object",
                        "required": ["x", "y"],
                        "properties": {
                            "x": {"type": "number"},
                            "y": {"type": "number"},
                        },
                    },
                    "data": {
                        "type": ["object", "null"],
                        "properties": {
                            "description": {"type": ["string", "null"]},
                            "condition": {"type": ["string", "null"]},
                            "action": {"type": ["string", "null"]},
                            "instructions": {"type": ["string", "null"]},
                            "keywords": {"type": "array", "items": {"type": "string"}},
                            "linkedFlowId": {"type": ["string", "null"]},
                        },
                    },
                },
            },
        },
        "edges": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "source", "target"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "source": {"type": "string"},
                    "target": {"type": "string"},
                    "label": {"type": ["string", "null"]},
                    "sourceHandle": {"type": ["string", "null"]},
                },
            },
        },
    },
}


class FlowDataError(ValueError):
    """Raised when a FlowData document is malformed."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


def check_flow_document(document: Any) -> List[str]:
    """Validate a raw FlowData document against the JSON schema.

    Args:
        document: Decoded JSON value.

    Returns:
        List of validation error messages (empty if valid).
    """
    validator = jsonschema.Draft7Validator(FLOW_DATA_SCHEMA)
    errors = sorted(validator.iter_errors(document), key=lambda e: list(e.absolute_path))
    return [
        f"Validation error at {e.json_path}: {e.message}"
        for e in errors
    ]


def parse_flow_document(document: Any) -> FlowData:
    """Check and parse a decoded FlowData document.

    Raises:
        FlowDataError: If the document does not match the schema.
    """
    errors = check_flow_document(document)
    if errors:
        raise FlowDataError(f"Invalid flow document ({len(errors)} error(s))", errors)
    return flow_data_from_dict(document)


def load_flow_data(text: str) -> FlowData:
    """Parse FlowData from JSON text.

    Raises:
        FlowDataError: If the text is not JSON or not a valid flow document.
    """
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise FlowDataError(f"Flow document is not valid JSON: {e}") from e
    return parse_flow_document(document)


def dump_flow_data(flow: FlowData, indent: Optional[int] = 2) -> str:
    """Serialize FlowData to JSON text."""
    return json.dumps(flow_data_to_dict(flow), indent=indent, ensure_ascii=False)


def read_flow_file(path: Union[str, Path]) -> FlowData:
    """Load FlowData from a JSON file."""
    return load_flow_data(Path(path).read_text(encoding="utf-8"))


def write_flow_file(flow: FlowData, path: Union[str, Path]) -> Path:
    """Write FlowData to a JSON file and return its path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(dump_flow_data(flow) + "\n", encoding="utf-8")
    logger.debug("Wrote flow with %d node(s) to %s", len(flow.nodes), target)
    return target


# =============================================================================
# Prompt embedding
# =============================================================================


def serialize_flow_tag(flow: FlowData) -> str:
    """Serialize flow data to a JSON string wrapped in <flow> tags."""
    return f"<flow>\n{dump_flow_data(flow)}\n</flow>"


def has_flow_in_prompt(prompt: str) -> bool:
    return bool(prompt) and FLOW_TAG_PATTERN.search(prompt) is not None


def extract_flow_from_prompt(prompt: str) -> Optional[FlowData]:
    """Parse the flow embedded in a prompt, if there is one.

    Raises:
        FlowDataError: If a <flow> tag is present but its content is invalid.
    """
    match = FLOW_TAG_PATTERN.search(prompt or "")
    if match is None:
        return None
    return load_flow_data(match.group(1))


def update_prompt_with_flow(prompt: str, flow: FlowData) -> str:
    """Replace the prompt's <flow> tag, or append one at the end."""
    flow_tag = serialize_flow_tag(flow)

    if has_flow_in_prompt(prompt):
        return FLOW_TAG_PATTERN.sub(lambda _m: flow_tag, prompt, count=1)

    trimmed = prompt.strip()
    if trimmed:
        return f"{trimmed}\n\n{flow_tag}"
    return flow_tag


def remove_flow_from_prompt(prompt: str) -> str:
    """Remove the <flow> tag and collapse the blank lines it leaves behind."""
    if not prompt:
        return ""
    stripped = FLOW_TAG_PATTERN.sub("", prompt, count=1)
    return re.sub(r"\n{3,}", "\n\n", stripped).strip()


# =============================================================================
# Helpers
# =============================================================================


def is_flow_empty(flow: Optional[FlowData]) -> bool:
    """Checks if flow data is missing or has no nodes."""
    return flow is None or flow.is_empty()


def create_initial_flow() -> FlowData:
    """Creates an initial flow with start and end nodes."""
    return FlowData(
        nodes=[
            FlowNode(id="start", type=NodeType.START, label="Start", position=FlowPosition(250, 50)),
            FlowNode(id="end", type=NodeType.END, label="End", position=FlowPosition(250, 400)),
        ],
        edges=[],
    )
