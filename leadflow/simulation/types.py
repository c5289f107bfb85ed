"""Core types for persona simulation and batch testing.

This module contains the run, message, issue, persona, test case and batch
report types, plus the serdes helpers mapping them to their camelCase JSON
wire shape (the same shape the turn-resolution service speaks).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from leadflow.flow.types import FlowData, flow_data_from_dict, flow_data_to_dict


class SimulationStatus(str, Enum):
    """Lifecycle of a single simulation run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SimulationOutcome(str, Enum):
    """Terminal outcome of a conversation."""

    CONVERTED = "converted"
    NURTURE = "nurture"
    LOST = "lost"
    BLOCKED = "blocked"
    TIMEOUT = "timeout"


class ExpectedOutcome(str, Enum):
    """Outcome a persona is expected to reach on a well-built flow."""

    CONVERSION = "conversion"
    NURTURE = "nurture"
    DISQUALIFIED = "disqualified"
    BLOCKED = "blocked"


class MessageRole(str, Enum):
    LEAD = "lead"
    AGENT = "agent"


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class Verdict(str, Enum):
    """Per-persona verdict in a batch report."""

    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


TERMINAL_STATUSES = (SimulationStatus.COMPLETED, SimulationStatus.FAILED)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class SimulationMessage:
    """One line of a simulated conversation.

    Attributes:
        id: ``lead-<turn>`` or ``agent-<turn>``.
        role: Who spoke.
        content: Message text.
        timestamp: Epoch milliseconds.
        current_node_id: Flow node the conversation was at.
        annotation: Resolver commentary on this exchange (lead messages only).
    """

    id: str
    role: MessageRole
    content: str
    timestamp: int = field(default_factory=now_ms)
    current_node_id: Optional[str] = None
    annotation: Optional[str] = None


@dataclass
class SimulationIssue:
    """Problem spotted while simulating (or a transport failure)."""

    id: str
    severity: IssueSeverity
    message: str
    node_id: Optional[str] = None


@dataclass
class LeadPersona:
    """Synthetic lead profile driven through the flow."""

    id: str
    name: str
    description: str
    behavior: str
    expected_outcome: ExpectedOutcome


@dataclass
class SimulationRun:
    """A single persona's walk through a frozen copy of a flow."""

    id: str
    persona_id: str
    flow_data: FlowData
    messages: List[SimulationMessage] = field(default_factory=list)
    status: SimulationStatus = SimulationStatus.RUNNING
    outcome: Optional[SimulationOutcome] = None
    issues: List[SimulationIssue] = field(default_factory=list)
    nodes_visited: List[str] = field(default_factory=list)
    nodes_coverage: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def has_critical_issue(self) -> bool:
        return any(i.severity == IssueSeverity.CRITICAL for i in self.issues)


@dataclass
class TestCase:
    """Scripted scenario re-run against a flow."""

    __test__ = False

    id: str
    name: str
    persona_id: str
    expected_outcome: SimulationOutcome
    description: str = ""
    trigger_message: str = ""
    expected_behavior: str = ""
    red_flags: List[str] = field(default_factory=list)
    nodes_expected_to_visit: List[str] = field(default_factory=list)


@dataclass
class PersonaResult:
    """Verdict for one run of a batch."""

    persona_id: str
    outcome: SimulationOutcome
    messages_count: int
    issues: List[SimulationIssue]
    nodes_visited: List[str]
    verdict: Verdict
    notes: str = ""


@dataclass
class BatchTestResult:
    """Aggregated report over the runs of a batch."""

    id: str
    timestamp: int
    runs: List[SimulationRun]
    total_runs: int
    conversion_rate: float
    avg_messages: float
    node_coverage: int
    total_node_coverage_percent: float
    persona_results: List[PersonaResult]


@dataclass
class BatchProgress:
    """Position of a running batch: persona ``current`` of ``total``."""

    current: int = 0
    total: int = 0
    current_persona: str = ""


# =============================================================================
# Serdes
# =============================================================================


def simulation_message_to_dict(message: SimulationMessage) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "id": message.id,
        "role": message.role.value,
        "content": message.content,
        "timestamp": message.timestamp,
    }
    if message.current_node_id is not None:
        result["currentNodeId"] = message.current_node_id
    if message.annotation is not None:
        result["annotation"] = message.annotation
    return result


def simulation_message_from_dict(data: Dict[str, Any]) -> SimulationMessage:
    return SimulationMessage(
        id=str(data["id"]),
        role=MessageRole(data["role"]),
        content=data.get("content", ""),
        timestamp=int(data.get("timestamp") or now_ms()),
        current_node_id=data.get("currentNodeId"),
        annotation=data.get("annotation"),
    )


def simulation_issue_to_dict(issue: SimulationIssue) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "id": issue.id,
        "severity": issue.severity.value,
        "message": issue.message,
    }
    if issue.node_id is not None:
        result["nodeId"] = issue.node_id
    return result


def simulation_issue_from_dict(data: Dict[str, Any]) -> SimulationIssue:
    """Parse a SimulationIssue. A missing id is left empty for the caller to assign.

    Unknown severities are read as warnings.
    """
    try:
        severity = IssueSeverity(data.get("severity", IssueSeverity.WARNING.value))
    except ValueError:
        severity = IssueSeverity.WARNING
    return SimulationIssue(
        id=str(data.get("id") or ""),
        severity=severity,
        message=data.get("message", ""),
        node_id=data.get("nodeId"),
    )


def lead_persona_to_dict(persona: LeadPersona) -> Dict[str, Any]:
    return {
        "id": persona.id,
        "name": persona.name,
        "description": persona.description,
        "behavior": persona.behavior,
        "expectedOutcome": persona.expected_outcome.value,
    }


def lead_persona_from_dict(data: Dict[str, Any]) -> LeadPersona:
    return LeadPersona(
        id=data["id"],
        name=data.get("name", data["id"]),
        description=data.get("description", ""),
        behavior=data.get("behavior", ""),
        expected_outcome=ExpectedOutcome(data["expectedOutcome"]),
    )


def simulation_run_to_dict(run: SimulationRun, include_flow: bool = True) -> Dict[str, Any]:
    """Convert a SimulationRun to a dictionary for JSON serialization.

    Args:
        run: The run to convert.
        include_flow: Include the frozen ``flowData`` copy.
    """
    result: Dict[str, Any] = {
        "id": run.id,
        "personaId": run.persona_id,
        "messages": [simulation_message_to_dict(m) for m in run.messages],
        "status": run.status.value,
        "outcome": run.outcome.value if run.outcome else None,
        "issues": [simulation_issue_to_dict(i) for i in run.issues],
        "nodesVisited": list(run.nodes_visited),
        "nodesCoverage": run.nodes_coverage,
    }
    if include_flow:
        result["flowData"] = flow_data_to_dict(run.flow_data)
    return result


def simulation_run_from_dict(data: Dict[str, Any]) -> SimulationRun:
    outcome = data.get("outcome")
    return SimulationRun(
        id=str(data["id"]),
        persona_id=data["personaId"],
        flow_data=flow_data_from_dict(data.get("flowData") or {}),
        messages=[simulation_message_from_dict(m) for m in data.get("messages") or []],
        status=SimulationStatus(data.get("status", SimulationStatus.RUNNING.value)),
        outcome=SimulationOutcome(outcome) if outcome else None,
        issues=[simulation_issue_from_dict(i) for i in data.get("issues") or []],
        nodes_visited=list(data.get("nodesVisited") or []),
        nodes_coverage=float(data.get("nodesCoverage") or 0.0),
    )


def test_case_to_dict(test_case: TestCase) -> Dict[str, Any]:
    return {
        "id": test_case.id,
        "name": test_case.name,
        "description": test_case.description,
        "triggerMessage": test_case.trigger_message,
        "personaId": test_case.persona_id,
        "expectedBehavior": test_case.expected_behavior,
        "expectedOutcome": test_case.expected_outcome.value,
        "redFlags": list(test_case.red_flags),
        "nodesExpectedToVisit": list(test_case.nodes_expected_to_visit),
    }


def persona_result_to_dict(result: PersonaResult) -> Dict[str, Any]:
    return {
        "personaId": result.persona_id,
        "outcome": result.outcome.value,
        "messagesCount": result.messages_count,
        "issues": [simulation_issue_to_dict(i) for i in result.issues],
        "nodesVisited": list(result.nodes_visited),
        "verdict": result.verdict.value,
        "notes": result.notes,
    }


def batch_test_result_to_dict(result: BatchTestResult, include_flow: bool = False) -> Dict[str, Any]:
    """Convert a BatchTestResult to a dictionary for JSON serialization.

    Run flow copies are left out by default since every run carries the
    same flow.
    """
    return {
        "id": result.id,
        "timestamp": result.timestamp,
        "runs": [simulation_run_to_dict(r, include_flow=include_flow) for r in result.runs],
        "totalRuns": result.total_runs,
        "conversionRate": result.conversion_rate,
        "avgMessages": result.avg_messages,
        "nodeCoverage": result.node_coverage,
        "totalNodeCoveragePercent": result.total_node_coverage_percent,
        "personaResults": [persona_result_to_dict(p) for p in result.persona_results],
    }


def batch_progress_to_dict(progress: BatchProgress) -> Dict[str, Any]:
    return {
        "current": progress.current,
        "total": progress.total,
        "currentPersona": progress.current_persona,
    }
