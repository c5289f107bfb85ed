"""
orchestrator.py - Drive one persona through a flow, turn by turn.

The SimulationOrchestrator owns a single run slot (``current_run``). Each
call to ``run()`` freezes a deep copy of the flow, then loops:

    1. Poll the cancellation token. If set, return without finalizing.
    2. Ask the turn resolver for the next turn.
    3. Append lead/agent messages, visited nodes and issues.
    4. Finalize on completion, or keep going until ``max_turns``.

Runs that exhaust ``max_turns`` end with outcome ``timeout``. A
TurnResolutionError fails the run at once with a critical issue; turns are
never retried.

Usage:
    from leadflow.simulation.orchestrator import SimulationOrchestrator
    from leadflow.simulation.resolvers import GraphWalkTurnResolver

    orchestrator = SimulationOrchestrator(GraphWalkTurnResolver(), turn_delay=0)
    run = asyncio.run(orchestrator.run(persona, flow))
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from leadflow.config.runtime_config import get_max_turns, get_turn_delay_seconds
from leadflow.flow._ids import IdGenerator, generate_short_id
from leadflow.flow.types import FlowData

from .cancellation import CancellationToken
from .resolvers import TurnRequest, TurnResolutionError, TurnResolver, TurnResult
from .types import (
    IssueSeverity,
    LeadPersona,
    MessageRole,
    SimulationIssue,
    SimulationMessage,
    SimulationOutcome,
    SimulationRun,
    SimulationStatus,
    now_ms,
)

logger = logging.getLogger(__name__)

RunListener = Callable[[SimulationRun], None]


class SimulationOrchestrator:
    """Runs simulations one at a time against a turn resolver.

    Attributes:
        max_turns: Turn cap per run.
        turn_delay: Pacing delay between turns, in seconds. Zero disables it.
    """

    def __init__(
        self,
        resolver: TurnResolver,
        id_generator: Optional[IdGenerator] = None,
        max_turns: Optional[int] = None,
        turn_delay: Optional[float] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """Initialize the orchestrator.

        Args:
            resolver: Collaborator that plays each turn.
            id_generator: Source of run and issue ids.
            max_turns: Turn cap. Defaults to the runtime configuration (15).
            turn_delay: Seconds to sleep between turns. Defaults to config.
            clock: Epoch-millisecond clock for message timestamps.

        Raises:
            ValueError: If ``max_turns`` is less than 1.
        """
        self._resolver = resolver
        self._new_id = id_generator or generate_short_id
        self.max_turns = max_turns if max_turns is not None else get_max_turns()
        if self.max_turns < 1:
            raise ValueError(f"max_turns must be at least 1, got {self.max_turns}")
        self.turn_delay = turn_delay if turn_delay is not None else get_turn_delay_seconds()
        self._clock = clock or now_ms
        self._current_run: Optional[SimulationRun] = None
        self._listeners: List[RunListener] = []

    @property
    def current_run(self) -> Optional[SimulationRun]:
        return self._current_run

    @property
    def status(self) -> SimulationStatus:
        if self._current_run is None:
            return SimulationStatus.IDLE
        return self._current_run.status

    def add_listener(self, listener: RunListener) -> None:
        """Register a callback invoked with the live run after every change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: RunListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        if self._current_run is None:
            return
        for listener in list(self._listeners):
            listener(self._current_run)

    def reset(self) -> None:
        """Discard the current run and return to idle."""
        self._current_run = None

    def fail_current_run(self, error: str) -> Optional[SimulationRun]:
        """Fail the current run with a critical issue, unless it already finished."""
        run = self._current_run
        if run is None:
            return None
        if not run.is_terminal:
            self._fail(run, error)
        return run

    async def run(
        self,
        persona: LeadPersona,
        flow_data: FlowData,
        token: Optional[CancellationToken] = None,
        prompt_context: Optional[str] = None,
    ) -> SimulationRun:
        """Simulate one persona against a flow.

        Args:
            persona: The lead persona to play.
            flow_data: Flow to walk. A deep copy is frozen into the run.
            token: Cancellation token polled before every turn.
            prompt_context: Optional agent prompt text passed to the resolver.

        Returns:
            The run. Its status is ``running`` if it was cancelled, else
            ``completed`` or ``failed``.

        Raises:
            ValueError: If the flow has no nodes.
        """
        if flow_data is None or flow_data.is_empty():
            raise ValueError("Cannot simulate an empty flow")

        token = token or CancellationToken()
        frozen = flow_data.copy()
        run = SimulationRun(id=self._new_id(), persona_id=persona.id, flow_data=frozen)
        self._current_run = run
        logger.info(
            "Simulation %s started: persona=%s nodes=%d max_turns=%d",
            run.id,
            persona.id,
            len(frozen.nodes),
            self.max_turns,
        )
        self._notify()

        for turn_number in range(1, self.max_turns + 1):
            if token.cancelled:
                logger.info("Simulation %s cancelled before turn %d", run.id, turn_number)
                return run

            request = TurnRequest(
                flow_data=frozen,
                persona=persona,
                history=list(run.messages),
                turn_number=turn_number,
                max_turns=self.max_turns,
                prompt_context=prompt_context,
            )
            try:
                result = await self._resolver.resolve_turn(request)
            except TurnResolutionError as e:
                logger.warning("Simulation %s failed on turn %d: %s", run.id, turn_number, e)
                self._fail(run, str(e))
                return run

            self._apply_turn(run, turn_number, result)

            if result.is_complete:
                self._complete(run, result.outcome or SimulationOutcome.TIMEOUT)
                return run

            if self.turn_delay > 0 and turn_number < self.max_turns:
                await asyncio.sleep(self.turn_delay)

        if token.cancelled:
            logger.info("Simulation %s cancelled after the last turn", run.id)
            return run

        logger.info("Simulation %s hit the %d-turn cap", run.id, self.max_turns)
        self._complete(run, SimulationOutcome.TIMEOUT)
        return run

    def _apply_turn(self, run: SimulationRun, turn_number: int, result: TurnResult) -> None:
        timestamp = self._clock()
        if result.lead_message:
            run.messages.append(
                SimulationMessage(
                    id=f"lead-{turn_number}",
                    role=MessageRole.LEAD,
                    content=result.lead_message,
                    timestamp=timestamp,
                    current_node_id=result.current_node_id,
                    annotation=result.annotation,
                )
            )
        if result.agent_response:
            run.messages.append(
                SimulationMessage(
                    id=f"agent-{turn_number}",
                    role=MessageRole.AGENT,
                    content=result.agent_response,
                    timestamp=timestamp + 1,
                    current_node_id=result.current_node_id,
                )
            )

        known = set(run.flow_data.node_ids())
        for node_id in (result.current_node_id, result.next_node_id):
            if not node_id:
                continue
            if node_id not in known:
                logger.debug("Simulation %s: resolver named unknown node %s", run.id, node_id)
                continue
            if node_id not in run.nodes_visited:
                run.nodes_visited.append(node_id)
        run.nodes_coverage = self._coverage(run)

        for issue in result.issues:
            if not issue.id:
                issue = SimulationIssue(
                    id=f"issue-{self._new_id()}",
                    severity=issue.severity,
                    message=issue.message,
                    node_id=issue.node_id,
                )
            run.issues.append(issue)

        self._notify()

    @staticmethod
    def _coverage(run: SimulationRun) -> float:
        total = len(run.flow_data.nodes)
        if total == 0:
            return 0.0
        return len(run.nodes_visited) / total * 100

    def _complete(self, run: SimulationRun, outcome: SimulationOutcome) -> None:
        run.status = SimulationStatus.COMPLETED
        run.outcome = outcome
        run.nodes_coverage = self._coverage(run)
        logger.info(
            "Simulation %s completed: outcome=%s messages=%d coverage=%.1f%%",
            run.id,
            outcome.value,
            len(run.messages),
            run.nodes_coverage,
        )
        self._notify()

    def _fail(self, run: SimulationRun, error: str) -> None:
        run.status = SimulationStatus.FAILED
        run.issues.append(
            SimulationIssue(
                id=f"issue-{self._new_id()}",
                severity=IssueSeverity.CRITICAL,
                message=error or "Simulation failed",
            )
        )
        self._notify()
