"""Starter flow templates.

Templates live in ``templates.yaml`` next to this module and are loaded once
with PyYAML. Callers always receive fresh FlowData objects, so editing a
template in a graph never changes the cached copy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .types import FlowData, flow_data_from_dict, flow_data_to_dict

logger = logging.getLogger(__name__)

_TEMPLATES_PATH = Path(__file__).parent / "templates.yaml"
_cached_templates: Optional[Dict[str, Any]] = None


@dataclass
class FlowTemplate:
    """A named starter flow."""

    id: str
    name: str
    description: str
    category: str
    flow: FlowData

    @property
    def category_label(self) -> str:
        return get_category_labels().get(self.category, self.category)


def _load_templates() -> Dict[str, Any]:
    global _cached_templates
    if _cached_templates is not None:
        return _cached_templates

    with open(_TEMPLATES_PATH, encoding="utf-8") as f:
        _cached_templates = yaml.safe_load(f) or {}
    logger.debug(
        "Loaded %d flow template(s) from %s",
        len(_cached_templates.get("templates") or []),
        _TEMPLATES_PATH,
    )
    return _cached_templates


def reset_templates() -> None:
    """Drop the cached template file (for testing)."""
    global _cached_templates
    _cached_templates = None


def get_category_labels() -> Dict[str, str]:
    return dict(_load_templates().get("categories") or {})


def _template_from_dict(data: Dict[str, Any]) -> FlowTemplate:
    return FlowTemplate(
        id=data["id"],
        name=data.get("name", data["id"]),
        description=data.get("description", ""),
        category=data.get("category", ""),
        flow=flow_data_from_dict(data.get("flow") or {}),
    )


def list_templates(category: Optional[str] = None) -> List[FlowTemplate]:
    """Return all templates, optionally filtered by category, in file order."""
    templates = [_template_from_dict(t) for t in _load_templates().get("templates") or []]
    if category is not None:
        templates = [t for t in templates if t.category == category]
    return templates


def get_template(template_id: str) -> Optional[FlowTemplate]:
    """Look up a template by id. Returns None if unknown."""
    for template in list_templates():
        if template.id == template_id:
            return template
    return None


def template_to_dict(template: FlowTemplate, include_flow: bool = True) -> Dict[str, Any]:
    """Convert a template to a dictionary for JSON serialization."""
    result: Dict[str, Any] = {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "category": template.category,
        "categoryLabel": template.category_label,
        "nodeCount": len(template.flow.nodes),
    }
    if include_flow:
        result["flow"] = flow_data_to_dict(template.flow)
    return result
