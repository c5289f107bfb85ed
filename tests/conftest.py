"""
Test fixtures for leadflow tests.

Provides sample flows, deterministic id generators and config isolation
(every test starts from the packaged runtime.yaml with no LEADFLOW_*
overrides).
"""

from __future__ import annotations

import pytest

from leadflow.config.runtime_config import reset_config
from leadflow.flow._ids import SequentialIdGenerator
from leadflow.flow.types import (
    FlowData,
    FlowEdge,
    FlowNode,
    FlowNodeData,
    FlowPosition,
    NodeType,
)

LEADFLOW_ENV_VARS = (
    "LEADFLOW_MAX_TURNS",
    "LEADFLOW_TURN_DELAY",
    "LEADFLOW_BATCH_DELAY",
    "LEADFLOW_HISTORY_CAP",
    "LEADFLOW_RESOLVER_MODE",
    "LEADFLOW_RESOLVER_URL",
    "LEADFLOW_RESOLVER_TIMEOUT",
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Clear LEADFLOW_* overrides and the config cache around every test."""
    for name in LEADFLOW_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def sequential_ids():
    """Deterministic id generator yielding id-1, id-2, ..."""
    return SequentialIdGenerator()


@pytest.fixture
def linear_flow() -> FlowData:
    """start -> greet -> end"""
    return FlowData(
        nodes=[
            FlowNode(id="start", type=NodeType.START, label="Start", position=FlowPosition(250, 50)),
            FlowNode(
                id="greet",
                type=NodeType.ACTION,
                label="Greet",
                position=FlowPosition(250, 200),
                data=FlowNodeData(description="Say hello"),
            ),
            FlowNode(id="end", type=NodeType.END, label="End", position=FlowPosition(250, 350)),
        ],
        edges=[
            FlowEdge(id="e1", source="start", target="greet"),
            FlowEdge(id="e2", source="greet", target="end"),
        ],
    )


@pytest.fixture
def decision_flow() -> FlowData:
    """start -> qualify? -(yes)-> book -> booked ; -(no)-> lost"""
    return FlowData(
        nodes=[
            FlowNode(id="start", type=NodeType.START, label="Start", position=FlowPosition(250, 50)),
            FlowNode(
                id="qualify",
                type=NodeType.DECISION,
                label="Qualifies?",
                position=FlowPosition(250, 200),
                data=FlowNodeData(condition="Lead has a business"),
            ),
            FlowNode(
                id="book",
                type=NodeType.ACTION,
                label="Send booking link",
                position=FlowPosition(100, 350),
                data=FlowNodeData(description="Send the calendar link"),
            ),
            FlowNode(id="booked", type=NodeType.END, label="Call booked", position=FlowPosition(100, 500)),
            FlowNode(id="lost", type=NodeType.END, label="Not a fit", position=FlowPosition(400, 350)),
        ],
        edges=[
            FlowEdge(id="e1", source="start", target="qualify"),
            FlowEdge(id="e2", source="qualify", target="book", label="Yes", source_handle="yes"),
            FlowEdge(id="e3", source="qualify", target="lost", label="No", source_handle="no"),
            FlowEdge(id="e4", source="book", target="booked"),
        ],
    )
