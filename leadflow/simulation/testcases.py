"""Scripted test cases: load them from disk and re-run them against a flow.

A test case file is JSON or YAML holding either a list of test cases or an
object with a ``testCases`` list, each entry in the camelCase wire shape::

    testCases:
      - id: tc-1
        name: Ideal lead books a call
        personaId: ideal
        expectedOutcome: converted
        nodesExpectedToVisit: [start001, dec001]
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from leadflow.flow.types import FlowData

from .cancellation import CancellationToken
from .orchestrator import SimulationOrchestrator
from .personas import DEFAULT_PERSONAS, get_persona_by_id
from .types import (
    LeadPersona,
    SimulationOutcome,
    SimulationRun,
    SimulationStatus,
    TestCase,
    simulation_run_to_dict,
)

logger = logging.getLogger(__name__)


@dataclass
class TestCaseResult:
    """Result of re-running one test case."""

    __test__ = False

    test_case: TestCase
    run: SimulationRun
    passed: bool
    missing_nodes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "testCaseId": self.test_case.id,
            "passed": self.passed,
            "expectedOutcome": self.test_case.expected_outcome.value,
            "outcome": self.run.outcome.value if self.run.outcome else None,
            "missingNodes": list(self.missing_nodes),
            "run": simulation_run_to_dict(self.run, include_flow=False),
        }


def test_case_from_dict(data: Dict[str, Any]) -> TestCase:
    """Parse a TestCase from its wire shape.

    Raises:
        ValueError: If a required key is missing or the outcome is unknown.
    """
    missing = [k for k in ("id", "name", "personaId", "expectedOutcome") if not data.get(k)]
    if missing:
        raise ValueError(f"Test case is missing required field(s): {', '.join(missing)}")
    return TestCase(
        id=str(data["id"]),
        name=data["name"],
        persona_id=data["personaId"],
        expected_outcome=SimulationOutcome(data["expectedOutcome"]),
        description=data.get("description", ""),
        trigger_message=data.get("triggerMessage", ""),
        expected_behavior=data.get("expectedBehavior", ""),
        red_flags=list(data.get("redFlags") or []),
        nodes_expected_to_visit=list(data.get("nodesExpectedToVisit") or []),
    )


def load_test_cases(path: Union[str, Path]) -> List[TestCase]:
    """Load test cases from a JSON or YAML file.

    Raises:
        ValueError: If the file does not hold a list of valid test cases.
    """
    source = Path(path)
    text = source.read_text(encoding="utf-8")
    if source.suffix.lower() == ".json":
        document = json.loads(text)
    else:
        document = yaml.safe_load(text)

    if isinstance(document, dict):
        document = document.get("testCases")
    if not isinstance(document, list):
        raise ValueError(f"{source}: expected a list of test cases")

    test_cases = [test_case_from_dict(entry) for entry in document]
    logger.debug("Loaded %d test case(s) from %s", len(test_cases), source)
    return test_cases


async def run_test_case(
    orchestrator: SimulationOrchestrator,
    test_case: TestCase,
    flow_data: FlowData,
    personas: Optional[List[LeadPersona]] = None,
    token: Optional[CancellationToken] = None,
) -> TestCaseResult:
    """Re-run a scripted scenario and check it against its expectations.

    The case passes when the run completes with the expected outcome and
    without a critical issue. Expected nodes that were never visited are
    reported but do not fail the case.

    Raises:
        ValueError: If the test case names an unknown persona.
    """
    persona = get_persona_by_id(test_case.persona_id, personas if personas is not None else DEFAULT_PERSONAS)
    if persona is None:
        raise ValueError(f"Unknown persona: {test_case.persona_id}")

    prompt_context = f"Trigger message: {test_case.trigger_message}" if test_case.trigger_message else None
    orchestrator.reset()
    run = await orchestrator.run(persona, flow_data, token, prompt_context)

    missing = [n for n in test_case.nodes_expected_to_visit if n not in run.nodes_visited]
    passed = (
        run.status == SimulationStatus.COMPLETED
        and run.outcome == test_case.expected_outcome
        and not run.has_critical_issue()
    )
    logger.info(
        "Test case %s %s (outcome=%s, expected=%s)",
        test_case.id,
        "passed" if passed else "failed",
        run.outcome.value if run.outcome else None,
        test_case.expected_outcome.value,
    )
    return TestCaseResult(test_case=test_case, run=run, passed=passed, missing_nodes=missing)
