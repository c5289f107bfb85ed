"""
batch.py - Run every persona against a flow and aggregate a report.

Personas run sequentially through one SimulationOrchestrator, which is
reset between runs. Only runs that reached a terminal status (completed or
failed) are kept; a run interrupted by cancellation is dropped. Cancellation
is honoured at the next persona boundary, and the report is built from the
runs kept so far.
A persona run that raises is recorded as failed and the batch goes on.

Metrics (all zero when there are no runs or no nodes):
    conversionRate            converted runs / total runs * 100
    avgMessages               total messages / total runs
    nodeCoverage              size of the union of visited nodes
    totalNodeCoveragePercent  nodeCoverage / flow nodes * 100
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from leadflow.config.runtime_config import get_batch_run_delay_seconds
from leadflow.flow._ids import IdGenerator, generate_short_id
from leadflow.flow.types import FlowData

from .cancellation import CancellationToken
from .orchestrator import SimulationOrchestrator
from .personas import DEFAULT_PERSONAS, get_persona_by_id
from .resolvers import BatchSummarizer
from .types import (
    BatchProgress,
    BatchTestResult,
    ExpectedOutcome,
    LeadPersona,
    PersonaResult,
    SimulationOutcome,
    SimulationRun,
    Verdict,
    now_ms,
)

logger = logging.getLogger(__name__)

ProgressListener = Callable[[BatchProgress], None]


def persona_verdict(run: SimulationRun, persona: Optional[LeadPersona]) -> Verdict:
    """Grade a run.

    fail on any critical issue; pass when the outcome matches the persona's
    expected outcome (expected "conversion" matches "converted"); otherwise
    warning.
    """
    if run.has_critical_issue():
        return Verdict.FAIL
    if persona is None or run.outcome is None:
        return Verdict.WARNING
    expected = persona.expected_outcome
    if expected.value == run.outcome.value:
        return Verdict.PASS
    if expected == ExpectedOutcome.CONVERSION and run.outcome == SimulationOutcome.CONVERTED:
        return Verdict.PASS
    return Verdict.WARNING


def compute_batch_result(
    runs: List[SimulationRun],
    total_nodes: int,
    personas: Optional[List[LeadPersona]] = None,
    notes: Optional[Dict[str, str]] = None,
    batch_id: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> BatchTestResult:
    """Aggregate finished runs into a BatchTestResult.

    Args:
        runs: Runs to aggregate, in execution order.
        total_nodes: Number of nodes in the simulated flow.
        personas: Persona set used to look up expected outcomes.
        notes: Optional summarizer notes keyed by persona id.
        batch_id: Report id. Random when omitted.
        timestamp: Report time in epoch milliseconds. Now when omitted.
    """
    personas = personas if personas is not None else DEFAULT_PERSONAS
    notes = notes or {}
    total_runs = len(runs)

    converted = sum(1 for r in runs if r.outcome == SimulationOutcome.CONVERTED)
    total_messages = sum(len(r.messages) for r in runs)

    visited: List[str] = []
    for run in runs:
        for node_id in run.nodes_visited:
            if node_id not in visited:
                visited.append(node_id)

    persona_results = [
        PersonaResult(
            persona_id=run.persona_id,
            outcome=run.outcome or SimulationOutcome.TIMEOUT,
            messages_count=len(run.messages),
            issues=list(run.issues),
            nodes_visited=list(run.nodes_visited),
            verdict=persona_verdict(run, get_persona_by_id(run.persona_id, personas)),
            notes=notes.get(run.persona_id, ""),
        )
        for run in runs
    ]

    return BatchTestResult(
        id=batch_id or generate_short_id(),
        timestamp=timestamp if timestamp is not None else now_ms(),
        runs=list(runs),
        total_runs=total_runs,
        conversion_rate=converted / total_runs * 100 if total_runs else 0.0,
        avg_messages=total_messages / total_runs if total_runs else 0.0,
        node_coverage=len(visited),
        total_node_coverage_percent=len(visited) / total_nodes * 100 if total_nodes else 0.0,
        persona_results=persona_results,
    )


class BatchRunner:
    """Sequential batch test over a persona set."""

    def __init__(
        self,
        orchestrator: SimulationOrchestrator,
        personas: Optional[List[LeadPersona]] = None,
        summarizer: Optional[BatchSummarizer] = None,
        run_delay: Optional[float] = None,
        id_generator: Optional[IdGenerator] = None,
    ):
        self.orchestrator = orchestrator
        self.personas = list(personas) if personas is not None else list(DEFAULT_PERSONAS)
        self.summarizer = summarizer
        self.run_delay = run_delay if run_delay is not None else get_batch_run_delay_seconds()
        self._new_id = id_generator or generate_short_id
        self.progress = BatchProgress(total=len(self.personas))
        self.is_running = False
        self._listeners: List[ProgressListener] = []

    def add_listener(self, listener: ProgressListener) -> None:
        """Register a callback invoked with a BatchProgress before each persona run."""
        self._listeners.append(listener)

    def _set_progress(self, current: int, persona_name: str) -> None:
        self.progress = BatchProgress(
            current=current,
            total=len(self.personas),
            current_persona=persona_name,
        )
        for listener in list(self._listeners):
            listener(self.progress)

    async def run(
        self,
        flow_data: FlowData,
        token: Optional[CancellationToken] = None,
        prompt_context: Optional[str] = None,
    ) -> BatchTestResult:
        """Run every persona and build the report.

        Raises:
            ValueError: If the flow has no nodes.
        """
        if flow_data is None or flow_data.is_empty():
            raise ValueError("Cannot run a batch against an empty flow")

        token = token or CancellationToken()
        runs: List[SimulationRun] = []
        self.is_running = True
        self._set_progress(0, "")
        logger.info("Batch started: %d persona(s)", len(self.personas))

        try:
            for index, persona in enumerate(self.personas):
                if token.cancelled:
                    logger.info("Batch cancelled after %d of %d run(s)", len(runs), len(self.personas))
                    break

                self._set_progress(index + 1, persona.name)
                self.orchestrator.reset()
                if self.run_delay > 0:
                    await asyncio.sleep(self.run_delay)

                try:
                    run = await self.orchestrator.run(persona, flow_data, token, prompt_context)
                except Exception as e:
                    logger.exception("Simulation for persona %s raised, recording it as failed", persona.id)
                    run = self.orchestrator.fail_current_run(f"Simulation error: {e}")
                    if run is None:
                        continue
                if run.is_terminal:
                    runs.append(run)
                else:
                    logger.info("Dropping interrupted run %s (persona=%s)", run.id, persona.id)

            notes = await self._summarize(runs, flow_data)
        finally:
            self.is_running = False

        result = compute_batch_result(
            runs,
            total_nodes=len(flow_data.nodes),
            personas=self.personas,
            notes=notes,
            batch_id=self._new_id(),
        )
        logger.info(
            "Batch %s finished: runs=%d conversion=%.1f%% coverage=%.1f%%",
            result.id,
            result.total_runs,
            result.conversion_rate,
            result.total_node_coverage_percent,
        )
        return result

    async def _summarize(self, runs: List[SimulationRun], flow_data: FlowData) -> Dict[str, str]:
        """Collect summarizer notes. Any failure degrades to no notes."""
        if self.summarizer is None or not runs:
            return {}
        try:
            return await self.summarizer.summarize(runs, flow_data)
        except Exception as e:
            logger.warning("Batch summarizer failed, continuing without notes: %s", e)
            return {}
