# leadflow/simulation package
# Persona simulation and batch testing of conversation flows.
#
# Core components:
#   - types: Run, message, issue, persona and report dataclasses
#   - personas: Built-in lead personas
#   - resolvers: Turn resolver / batch summarizer contracts and implementations
#   - orchestrator: SimulationOrchestrator, one persona through one flow
#   - batch: BatchRunner and report aggregation
#   - testcases: Scripted scenarios
#
# Usage:
#     from leadflow.simulation import BatchRunner, SimulationOrchestrator, create_turn_resolver
#     orchestrator = SimulationOrchestrator(create_turn_resolver())
#     report = asyncio.run(BatchRunner(orchestrator).run(flow))

from .batch import BatchRunner, compute_batch_result, persona_verdict
from .cancellation import CancellationToken
from .orchestrator import SimulationOrchestrator
from .personas import DEFAULT_PERSONAS, get_persona_by_id
from .resolvers import (
    BatchSummarizer,
    CollaboratorError,
    GraphWalkTurnResolver,
    HttpBatchSummarizer,
    HttpTurnResolver,
    ScriptedTurnResolver,
    SummarizationError,
    TurnRequest,
    TurnResolutionError,
    TurnResolver,
    TurnResult,
    create_batch_summarizer,
    create_turn_resolver,
)
from .testcases import TestCaseResult, load_test_cases, run_test_case
from .types import (
    BatchProgress,
    BatchTestResult,
    ExpectedOutcome,
    IssueSeverity,
    LeadPersona,
    MessageRole,
    PersonaResult,
    SimulationIssue,
    SimulationMessage,
    SimulationOutcome,
    SimulationRun,
    SimulationStatus,
    TestCase,
    Verdict,
)

__all__ = [
    # Types
    "SimulationStatus",
    "SimulationOutcome",
    "ExpectedOutcome",
    "MessageRole",
    "IssueSeverity",
    "Verdict",
    "SimulationMessage",
    "SimulationIssue",
    "SimulationRun",
    "LeadPersona",
    "TestCase",
    "PersonaResult",
    "BatchTestResult",
    "BatchProgress",
    # Personas
    "DEFAULT_PERSONAS",
    "get_persona_by_id",
    # Collaborators
    "CollaboratorError",
    "TurnResolutionError",
    "SummarizationError",
    "TurnRequest",
    "TurnResult",
    "TurnResolver",
    "BatchSummarizer",
    "ScriptedTurnResolver",
    "GraphWalkTurnResolver",
    "HttpTurnResolver",
    "HttpBatchSummarizer",
    "create_turn_resolver",
    "create_batch_summarizer",
    # Orchestration
    "CancellationToken",
    "SimulationOrchestrator",
    "BatchRunner",
    "compute_batch_result",
    "persona_verdict",
    # Test cases
    "TestCaseResult",
    "load_test_cases",
    "run_test_case",
]
