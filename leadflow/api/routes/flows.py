"""
Flow endpoints for the leadflow API.

Provides REST endpoints for:
- Validating a flow document
- Auto-laying out a flow document
- Rendering a flow document as step text or Mermaid
- Listing and fetching starter templates
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from leadflow.flow.layout import auto_layout
from leadflow.flow.serializer import FlowDataError, parse_flow_document
from leadflow.flow.templates import get_template, list_templates, template_to_dict
from leadflow.flow.text_export import TextFormat, flow_to_text
from leadflow.flow.types import FlowData, flow_data_to_dict
from leadflow.validator import ValidationReport, validate_flow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flows", tags=["flows"])


# =============================================================================
# Pydantic Models
# =============================================================================


class FlowRequest(BaseModel):
    """Request carrying a FlowData document."""

    flow: Dict[str, Any] = Field(..., description="FlowData document ({nodes, edges})")


class ValidationResponse(BaseModel):
    """Validation findings for a flow."""

    valid: bool
    status: str
    counts: Dict[str, int]
    warnings: List[Dict[str, Any]]


class LayoutResponse(BaseModel):
    """Flow with recomputed node positions."""

    flow: Dict[str, Any]


class ExportRequest(FlowRequest):
    """Request to render a flow as text."""

    name: str = Field("Flow", description="Heading for the rendered text")
    format: TextFormat = Field(TextFormat.STRUCTURED, description="structured or mermaid")
    available_flows: Dict[str, str] = Field(
        default_factory=dict, description="Flow id to name, for linked end nodes"
    )


class ExportResponse(BaseModel):
    """Rendered flow text."""

    format: TextFormat
    text: str


class TemplateSummary(BaseModel):
    """Template summary for list endpoint."""

    id: str
    name: str
    description: str = ""
    category: str = ""
    category_label: str = ""
    node_count: int = 0


class TemplateListResponse(BaseModel):
    """Response for list templates endpoint."""

    templates: List[TemplateSummary]


# =============================================================================
# Helpers
# =============================================================================


def parse_flow_or_422(document: Dict[str, Any]) -> FlowData:
    """Parse a request's flow document, mapping schema failures to HTTP 422."""
    try:
        return parse_flow_document(document)
    except FlowDataError as e:
        raise HTTPException(
            status_code=422,
            detail={
                "error": "invalid_flow",
                "message": str(e),
                "details": {"errors": e.errors},
            },
        )


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/validate", response_model=ValidationResponse)
async def validate_flow_document(request: FlowRequest):
    """Run the structural validator over a flow."""
    flow = parse_flow_or_422(request.flow)
    report = ValidationReport(validate_flow(flow))
    logger.debug("Validated flow with %d node(s): %s", len(flow.nodes), report.counts())
    return ValidationResponse(**report.to_dict())


@router.post("/layout", response_model=LayoutResponse)
async def layout_flow_document(request: FlowRequest):
    """Return the flow with auto-layout positions applied."""
    flow = parse_flow_or_422(request.flow)
    laid_out = FlowData(nodes=auto_layout(flow.nodes, flow.edges), edges=flow.edges)
    return LayoutResponse(flow=flow_data_to_dict(laid_out))


@router.post("/export", response_model=ExportResponse)
async def export_flow_document(request: ExportRequest):
    """Render a flow as numbered steps or a Mermaid diagram."""
    flow = parse_flow_or_422(request.flow)
    text = flow_to_text(flow, request.name, request.format, request.available_flows)
    return ExportResponse(format=request.format, text=text)


@router.get("/templates", response_model=TemplateListResponse)
async def list_flow_templates(category: Optional[str] = None):
    """List starter templates, optionally filtered by category."""
    templates = list_templates(category=category)
    return TemplateListResponse(
        templates=[
            TemplateSummary(
                id=t.id,
                name=t.name,
                description=t.description,
                category=t.category,
                category_label=t.category_label,
                node_count=len(t.flow.nodes),
            )
            for t in templates
        ]
    )


@router.get("/templates/{template_id}")
async def get_flow_template(template_id: str):
    """Get a template including its flow."""
    template = get_template(template_id)
    if template is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "template_not_found",
                "message": f"Template '{template_id}' not found",
                "details": {"template_id": template_id},
            },
        )
    return template_to_dict(template)
