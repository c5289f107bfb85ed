"""
resolvers.py - Turn resolution and batch summary collaborators.

The orchestrator never decides what a lead or the agent says. Each turn it
sends a TurnRequest to a TurnResolver and applies the TurnResult it gets
back. Batch reports can additionally be annotated by a BatchSummarizer.

Implementations:
    - ScriptedTurnResolver: replays canned results (tests, fixtures)
    - GraphWalkTurnResolver: deterministic zero-cost stub that follows the
      graph, taking the "yes" branch for personas expected to convert
    - HttpTurnResolver / HttpBatchSummarizer: call the simulation service
      over HTTP with httpx

Usage:
    from leadflow.simulation.resolvers import create_turn_resolver

    resolver = create_turn_resolver()  # honours LEADFLOW_RESOLVER_MODE
    result = await resolver.resolve_turn(request)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from leadflow.config.runtime_config import (
    get_resolver_base_url,
    get_resolver_timeout_seconds,
    is_stub_mode,
)
from leadflow.flow.types import (
    BRANCH_NO,
    BRANCH_YES,
    FlowData,
    FlowEdge,
    FlowNode,
    NodeType,
    flow_data_to_dict,
)

from .types import (
    ExpectedOutcome,
    IssueSeverity,
    LeadPersona,
    SimulationIssue,
    SimulationMessage,
    SimulationOutcome,
    SimulationRun,
    lead_persona_to_dict,
    simulation_issue_from_dict,
    simulation_issue_to_dict,
    simulation_message_to_dict,
    simulation_run_to_dict,
)

logger = logging.getLogger(__name__)

SIMULATE_PATH = "/api/simulate"
SIMULATE_BATCH_PATH = "/api/simulate/batch"

# Outcome a graph walk ends with when it reaches an end node
EXPECTED_TO_OUTCOME: Dict[ExpectedOutcome, SimulationOutcome] = {
    ExpectedOutcome.CONVERSION: SimulationOutcome.CONVERTED,
    ExpectedOutcome.NURTURE: SimulationOutcome.NURTURE,
    ExpectedOutcome.DISQUALIFIED: SimulationOutcome.LOST,
    ExpectedOutcome.BLOCKED: SimulationOutcome.BLOCKED,
}


class CollaboratorError(Exception):
    """Base error for failures talking to an external collaborator."""


class TurnResolutionError(CollaboratorError):
    """A turn could not be resolved (transport or protocol failure)."""


class SummarizationError(CollaboratorError):
    """The batch summarizer failed."""


# =============================================================================
# Wire types
# =============================================================================


@dataclass
class TurnRequest:
    """Everything the resolver needs to play one turn."""

    flow_data: FlowData
    persona: LeadPersona
    history: List[SimulationMessage]
    turn_number: int
    max_turns: int
    prompt_context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "flowData": flow_data_to_dict(self.flow_data),
            "persona": lead_persona_to_dict(self.persona),
            "history": [simulation_message_to_dict(m) for m in self.history],
            "turnNumber": self.turn_number,
            "maxTurns": self.max_turns,
        }
        if self.prompt_context:
            result["promptContext"] = self.prompt_context
        return result


@dataclass
class TurnResult:
    """Structured outcome of one turn.

    ``outcome`` is only meaningful when ``is_complete`` is True.
    """

    lead_message: Optional[str] = None
    agent_response: Optional[str] = None
    current_node_id: Optional[str] = None
    next_node_id: Optional[str] = None
    annotation: Optional[str] = None
    issues: List[SimulationIssue] = field(default_factory=list)
    is_complete: bool = False
    outcome: Optional[SimulationOutcome] = None


def _issues_from_payload(issues: Any) -> List[SimulationIssue]:
    if issues is None:
        return []
    if not isinstance(issues, list):
        raise ValueError(f"Turn result issues must be a list, got {type(issues).__name__}")
    for index, issue in enumerate(issues):
        if not isinstance(issue, dict):
            raise ValueError(f"Turn result issue {index} must be an object, got {type(issue).__name__}")
    return [simulation_issue_from_dict(i) for i in issues]


def turn_result_from_dict(data: Dict[str, Any]) -> TurnResult:
    """Parse a TurnResult from the resolver's JSON response.

    Raises:
        ValueError: If the payload is not an object, its issues are not a
            list of objects, or it carries an unknown outcome.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Turn result must be an object, got {type(data).__name__}")
    outcome = data.get("outcome")
    return TurnResult(
        lead_message=data.get("leadMessage"),
        agent_response=data.get("agentResponse"),
        current_node_id=data.get("currentNodeId"),
        next_node_id=data.get("nextNodeId"),
        annotation=data.get("annotation"),
        issues=_issues_from_payload(data.get("issues")),
        is_complete=bool(data.get("isComplete", False)),
        outcome=SimulationOutcome(outcome) if outcome else None,
    )


def turn_result_to_dict(result: TurnResult) -> Dict[str, Any]:
    return {
        "leadMessage": result.lead_message,
        "agentResponse": result.agent_response,
        "currentNodeId": result.current_node_id,
        "nextNodeId": result.next_node_id,
        "annotation": result.annotation,
        "issues": [simulation_issue_to_dict(i) for i in result.issues],
        "isComplete": result.is_complete,
        "outcome": result.outcome.value if result.outcome else None,
    }


# =============================================================================
# Contracts
# =============================================================================


class TurnResolver(ABC):
    """Plays one conversation turn for a persona against a flow."""

    @abstractmethod
    async def resolve_turn(self, request: TurnRequest) -> TurnResult:
        """Resolve a single turn.

        Raises:
            TurnResolutionError: On transport or protocol failure. The
                orchestrator fails the run and does not retry.
        """
        ...


class BatchSummarizer(ABC):
    """Writes a free-text note per persona for a finished batch."""

    @abstractmethod
    async def summarize(self, runs: List[SimulationRun], flow_data: FlowData) -> Dict[str, str]:
        """Return ``{persona_id: note}``. Missing personas get no note."""
        ...


# =============================================================================
# Scripted resolver
# =============================================================================


class ScriptedTurnResolver(TurnResolver):
    """Replays a fixed script of results.

    Script entries are returned in order; an entry that is an exception is
    raised instead. Once the script is exhausted every turn continues the
    conversation without completing it.

    Attributes:
        requests: Every request received, in order.
    """

    def __init__(self, script: Optional[Sequence[Union[TurnResult, Exception]]] = None):
        self._script = list(script or [])
        self.requests: List[TurnRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def resolve_turn(self, request: TurnRequest) -> TurnResult:
        self.requests.append(request)
        index = len(self.requests) - 1
        if index >= len(self._script):
            return TurnResult(
                lead_message=f"Lead message {request.turn_number}",
                agent_response=f"Agent response {request.turn_number}",
            )
        entry = self._script[index]
        if isinstance(entry, Exception):
            raise entry
        return entry


# =============================================================================
# Graph-walk stub
# =============================================================================


class GraphWalkTurnResolver(TurnResolver):
    """Deterministic resolver that walks the flow without any model.

    Turn N sits on the node reached after N-1 steps from the first start
    node. Decisions take the "yes" branch for personas expected to convert
    and the "no" branch otherwise; other nodes follow their first outgoing
    edge. Reaching an end node completes the run with the outcome mapped
    from the persona's expected outcome. A dead end completes the run as
    lost with a warning issue.
    """

    async def resolve_turn(self, request: TurnRequest) -> TurnResult:
        flow = request.flow_data
        persona = request.persona
        issues: List[SimulationIssue] = []

        node = self._position(flow, persona, request.turn_number, issues)
        if node is None:
            issues.append(
                SimulationIssue(
                    id="",
                    severity=IssueSeverity.CRITICAL,
                    message="The flow has no start node to begin the conversation",
                )
            )
            return TurnResult(
                lead_message="Hi!",
                issues=issues,
                is_complete=True,
                outcome=SimulationOutcome.LOST,
            )

        lead_message = self._lead_line(node, persona)
        agent_response = self._agent_line(node)

        if node.type == NodeType.END or (node.linked_flow_id and not self._outgoing(flow, node.id)):
            annotation = f'Reached end "{node.label}"'
            if node.linked_flow_id:
                annotation += f" (redirects to flow {node.linked_flow_id})"
            return TurnResult(
                lead_message=lead_message,
                agent_response=agent_response,
                current_node_id=node.id,
                annotation=annotation,
                issues=issues,
                is_complete=True,
                outcome=EXPECTED_TO_OUTCOME[persona.expected_outcome],
            )

        nxt = self._step(flow, node, persona, issues)
        if nxt is None:
            issues.append(
                SimulationIssue(
                    id="",
                    severity=IssueSeverity.WARNING,
                    message=f'Conversation stalled at "{node.label}": no way forward',
                    node_id=node.id,
                )
            )
            return TurnResult(
                lead_message=lead_message,
                agent_response=agent_response,
                current_node_id=node.id,
                annotation="Dead end",
                issues=issues,
                is_complete=True,
                outcome=SimulationOutcome.LOST,
            )

        return TurnResult(
            lead_message=lead_message,
            agent_response=agent_response,
            current_node_id=node.id,
            next_node_id=nxt.id,
            annotation=f"{node.type.value}: {node.label}",
            issues=issues,
        )

    def _position(
        self,
        flow: FlowData,
        persona: LeadPersona,
        turn_number: int,
        issues: List[SimulationIssue],
    ) -> Optional[FlowNode]:
        start = next((n for n in flow.nodes if n.type == NodeType.START), None)
        if start is None:
            return None
        node = start
        for _ in range(max(turn_number - 1, 0)):
            if node.type == NodeType.END:
                break
            # Issues are only reported for the step taken this turn
            nxt = self._step(flow, node, persona, [])
            if nxt is None:
                break
            node = nxt
        return node

    @staticmethod
    def _outgoing(flow: FlowData, node_id: str) -> List[FlowEdge]:
        ids = set(flow.node_ids())
        return [e for e in flow.edges if e.source == node_id and e.target in ids]

    def _step(
        self,
        flow: FlowData,
        node: FlowNode,
        persona: LeadPersona,
        issues: List[SimulationIssue],
    ) -> Optional[FlowNode]:
        outgoing = self._outgoing(flow, node.id)
        if not outgoing:
            return None
        edge = outgoing[0]
        if node.type == NodeType.DECISION:
            wanted = BRANCH_YES if persona.expected_outcome == ExpectedOutcome.CONVERSION else BRANCH_NO
            matching = [e for e in outgoing if e.branch == wanted]
            if matching:
                edge = matching[0]
            else:
                issues.append(
                    SimulationIssue(
                        id="",
                        severity=IssueSeverity.WARNING,
                        message=(
                            f'Decision "{node.label}" has no "{wanted}" branch; '
                            f'followed "{edge.branch or edge.target}" instead'
                        ),
                        node_id=node.id,
                    )
                )
        return flow.get_node(edge.target)

    @staticmethod
    def _lead_line(node: FlowNode, persona: LeadPersona) -> str:
        if node.type == NodeType.START:
            keywords = node.data.keywords if node.data else []
            return keywords[0] if keywords else "Hi!"
        if node.type == NodeType.DECISION:
            return "Yes" if persona.expected_outcome == ExpectedOutcome.CONVERSION else "Not really"
        if node.type == NodeType.END:
            return "Thanks!"
        return "Ok"

    @staticmethod
    def _agent_line(node: FlowNode) -> str:
        if node.data is not None:
            for text in (node.data.instructions, node.data.action, node.data.description, node.data.condition):
                if text:
                    return text
        return node.label


# =============================================================================
# HTTP collaborators
# =============================================================================


class HttpTurnResolver(TurnResolver):
    """Resolve turns by POSTing to ``{base_url}/api/simulate``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the resolver.

        Args:
            base_url: Root URL of the simulation service.
            timeout: HTTP request timeout in seconds.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def resolve_turn(self, request: TurnRequest) -> TurnResult:
        url = f"{self.base_url}{SIMULATE_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=request.to_dict())
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise TurnResolutionError(
                f"Simulation service returned {e.response.status_code} for turn {request.turn_number}"
            ) from e
        except httpx.RequestError as e:
            raise TurnResolutionError(f"Failed to reach simulation service at {url}: {e}") from e
        except ValueError as e:
            raise TurnResolutionError(f"Simulation service returned invalid JSON: {e}") from e

        try:
            return turn_result_from_dict(payload)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TurnResolutionError(f"Malformed turn result: {e}") from e


class HttpBatchSummarizer(BatchSummarizer):
    """Summarize batches by POSTing to ``{base_url}/api/simulate/batch``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def summarize(self, runs: List[SimulationRun], flow_data: FlowData) -> Dict[str, str]:
        url = f"{self.base_url}{SIMULATE_BATCH_PATH}"
        body = {
            "runs": [simulation_run_to_dict(r, include_flow=False) for r in runs],
            "flowData": flow_data_to_dict(flow_data),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=body)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise SummarizationError(f"Batch summary request failed: {e}") from e
        except ValueError as e:
            raise SummarizationError(f"Batch summary returned invalid JSON: {e}") from e

        summaries = ((payload or {}).get("report") or {}).get("personaSummaries") or {}
        if not isinstance(summaries, dict):
            raise SummarizationError("report.personaSummaries must be an object")
        return {str(k): str(v) for k, v in summaries.items() if v}


# =============================================================================
# Factories
# =============================================================================


def create_turn_resolver(mode: Optional[str] = None) -> TurnResolver:
    """Build the configured turn resolver.

    Args:
        mode: "stub" or "http". Defaults to the runtime configuration.

    Raises:
        ValueError: If ``mode`` is not recognized.
    """
    resolved = mode or ("stub" if is_stub_mode() else "http")
    if resolved == "stub":
        logger.debug("Using graph-walk turn resolver")
        return GraphWalkTurnResolver()
    if resolved == "http":
        base_url = get_resolver_base_url()
        logger.debug("Using HTTP turn resolver at %s", base_url)
        return HttpTurnResolver(base_url, timeout=get_resolver_timeout_seconds())
    raise ValueError(f"Unknown resolver mode: {mode}")


def create_batch_summarizer(mode: Optional[str] = None) -> Optional[BatchSummarizer]:
    """Build the configured summarizer. The stub mode has none."""
    resolved = mode or ("stub" if is_stub_mode() else "http")
    if resolved == "http":
        return HttpBatchSummarizer(get_resolver_base_url(), timeout=get_resolver_timeout_seconds())
    return None
