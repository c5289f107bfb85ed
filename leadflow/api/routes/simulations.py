"""
Simulation endpoints for the leadflow API.

Provides REST endpoints for:
- Listing the built-in personas
- Running one persona through a flow
- Running a batch test over a persona set
- Re-running a scripted test case

Runs execute inline in the request; the turn resolver and summarizer come
from ``app.state`` (see ``create_app``).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from leadflow.simulation.batch import BatchRunner
from leadflow.simulation.orchestrator import SimulationOrchestrator
from leadflow.simulation.personas import DEFAULT_PERSONAS, get_persona_by_id
from leadflow.simulation.testcases import run_test_case, test_case_from_dict
from leadflow.simulation.types import (
    LeadPersona,
    batch_test_result_to_dict,
    lead_persona_to_dict,
    simulation_run_to_dict,
)

from .flows import parse_flow_or_422

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/simulations", tags=["simulations"])


# =============================================================================
# Pydantic Models
# =============================================================================


class SimulationRunRequest(BaseModel):
    """Request to simulate one persona."""

    flow: Dict[str, Any] = Field(..., description="FlowData document to simulate")
    persona_id: str = Field(..., description="Built-in persona id")
    prompt_context: Optional[str] = Field(None, description="Agent prompt text for the resolver")
    max_turns: Optional[int] = Field(None, ge=1, description="Turn cap (defaults to config)")


class BatchRunRequest(BaseModel):
    """Request to run a batch test."""

    flow: Dict[str, Any] = Field(..., description="FlowData document to simulate")
    persona_ids: Optional[List[str]] = Field(None, description="Subset of personas (defaults to all)")
    prompt_context: Optional[str] = None


class ScenarioRunRequest(BaseModel):
    """Request to re-run a scripted test case."""

    flow: Dict[str, Any]
    test_case: Dict[str, Any] = Field(..., description="Test case in its camelCase wire shape")


class PersonaListResponse(BaseModel):
    personas: List[Dict[str, Any]]


# =============================================================================
# Helpers
# =============================================================================


def _persona_or_404(persona_id: str) -> LeadPersona:
    persona = get_persona_by_id(persona_id)
    if persona is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "persona_not_found",
                "message": f"Persona '{persona_id}' not found",
                "details": {"persona_id": persona_id},
            },
        )
    return persona


def _empty_flow_error(e: ValueError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"error": "empty_flow", "message": str(e), "details": {}},
    )


def _orchestrator(http_request: Request, max_turns: Optional[int] = None) -> SimulationOrchestrator:
    state = http_request.app.state
    return SimulationOrchestrator(
        state.resolver,
        max_turns=max_turns,
        turn_delay=state.turn_delay,
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/personas", response_model=PersonaListResponse)
async def list_personas():
    """List the built-in personas."""
    return PersonaListResponse(personas=[lead_persona_to_dict(p) for p in DEFAULT_PERSONAS])


@router.post("/run")
async def run_simulation(request: SimulationRunRequest, http_request: Request):
    """Simulate one persona against a flow and return the finished run."""
    flow = parse_flow_or_422(request.flow)
    persona = _persona_or_404(request.persona_id)
    orchestrator = _orchestrator(http_request, request.max_turns)
    try:
        run = await orchestrator.run(persona, flow, prompt_context=request.prompt_context)
    except ValueError as e:
        raise _empty_flow_error(e)
    return simulation_run_to_dict(run, include_flow=False)


@router.post("/batch")
async def run_batch(request: BatchRunRequest, http_request: Request):
    """Run a batch test and return the aggregated report."""
    flow = parse_flow_or_422(request.flow)
    if request.persona_ids is not None:
        personas = [_persona_or_404(pid) for pid in request.persona_ids]
    else:
        personas = list(DEFAULT_PERSONAS)

    state = http_request.app.state
    runner = BatchRunner(
        _orchestrator(http_request),
        personas=personas,
        summarizer=state.summarizer,
        run_delay=state.run_delay,
    )
    try:
        result = await runner.run(flow, prompt_context=request.prompt_context)
    except ValueError as e:
        raise _empty_flow_error(e)
    return batch_test_result_to_dict(result)


@router.post("/test-cases/run")
async def run_scripted_test_case(request: ScenarioRunRequest, http_request: Request):
    """Re-run a scripted test case against a flow."""
    flow = parse_flow_or_422(request.flow)
    try:
        test_case = test_case_from_dict(request.test_case)
    except ValueError as e:
        raise HTTPException(
            status_code=422,
            detail={"error": "invalid_test_case", "message": str(e), "details": {}},
        )
    _persona_or_404(test_case.persona_id)
    try:
        result = await run_test_case(_orchestrator(http_request), test_case, flow)
    except ValueError as e:
        raise _empty_flow_error(e)
    return result.to_dict()
