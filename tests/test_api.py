"""
Tests for the leadflow FastAPI backend.

These tests verify:
1. Health check and router mounting under /api
2. Flow validation and layout endpoints, including 422 on malformed flows
3. Template listing and lookup (404 for unknown ids)
4. Simulation endpoints driven by the graph-walk resolver
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from leadflow.api import create_app
from leadflow.flow.templates import get_template
from leadflow.flow.types import flow_data_to_dict
from leadflow.simulation.resolvers import (
    GraphWalkTurnResolver,
    ScriptedTurnResolver,
    TurnResolutionError,
)


@pytest.fixture
def client():
    app = create_app(resolver=GraphWalkTurnResolver(), turn_delay=0, run_delay=0)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def decision_doc(decision_flow):
    return flow_data_to_dict(decision_flow)


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["resolver_mode"] == "stub"
        assert "version" in data


class TestFlowEndpoints:
    def test_validate_clean_flow(self, client, decision_doc):
        response = client.post("/api/flows/validate", json={"flow": decision_doc})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["status"] == "PASS"
        assert data["warnings"] == []

    def test_validate_reports_findings(self, client, decision_doc):
        decision_doc["edges"] = [e for e in decision_doc["edges"] if e["id"] != "e3"]
        data = client.post("/api/flows/validate", json={"flow": decision_doc}).json()
        assert data["valid"] is False
        assert data["counts"] == {"error": 1, "warning": 1, "info": 0}
        assert data["warnings"][0]["rule"] == "decision-missing-branch"

    def test_malformed_flow_is_422(self, client):
        response = client.post("/api/flows/validate", json={"flow": {"nodes": [{"id": "a"}]}})
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "invalid_flow"
        assert detail["details"]["errors"]

    def test_layout(self, client, decision_doc):
        response = client.post("/api/flows/layout", json={"flow": decision_doc})
        assert response.status_code == 200
        nodes = {n["id"]: n for n in response.json()["flow"]["nodes"]}
        assert nodes["book"]["position"] == {"x": 100.0, "y": 370.0}
        assert len(response.json()["flow"]["edges"]) == 4

    def test_export_mermaid(self, client, decision_doc):
        response = client.post(
            "/api/flows/export",
            json={"flow": decision_doc, "name": "Sales", "format": "mermaid"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["format"] == "mermaid"
        assert "    decision -- Yes --> action" in data["text"].splitlines()

    def test_export_names_linked_flows(self, client, decision_doc):
        decision_doc["nodes"][4]["data"] = {"linkedFlowId": "nurture"}
        data = client.post(
            "/api/flows/export",
            json={"flow": decision_doc, "available_flows": {"nurture": "Nurture sequence"}},
        ).json()
        assert data["format"] == "structured"
        assert data["text"].startswith("## Flow\n")
        assert "   -> Continues in: Nurture sequence" in data["text"]

    def test_export_malformed_flow_is_422(self, client):
        response = client.post("/api/flows/export", json={"flow": {"nodes": [{"id": "a"}]}})
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "invalid_flow"

    def test_list_templates(self, client):
        data = client.get("/api/flows/templates").json()
        assert [t["id"] for t in data["templates"]] == ["lead-qualification", "vsl-funnel", "direct-close"]

    def test_list_templates_by_category(self, client):
        data = client.get("/api/flows/templates", params={"category": "direct"}).json()
        assert [t["id"] for t in data["templates"]] == ["direct-close"]

    def test_get_template(self, client):
        data = client.get("/api/flows/templates/vsl-funnel").json()
        assert data["id"] == "vsl-funnel"
        assert len(data["flow"]["nodes"]) == data["nodeCount"]

    def test_unknown_template_is_404(self, client):
        response = client.get("/api/flows/templates/nope")
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "template_not_found"


class TestSimulationEndpoints:
    def test_list_personas(self, client):
        data = client.get("/api/simulations/personas").json()
        assert [p["id"] for p in data["personas"]] == [
            "ideal",
            "skeptic",
            "price_shopper",
            "freeloader",
            "minor",
        ]

    def test_run_simulation(self, client, decision_doc):
        response = client.post(
            "/api/simulations/run",
            json={"flow": decision_doc, "persona_id": "ideal"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["outcome"] == "converted"
        assert data["nodesVisited"] == ["start", "qualify", "book", "booked"]
        assert "flowData" not in data

    def test_run_with_turn_cap(self, client, decision_doc):
        data = client.post(
            "/api/simulations/run",
            json={"flow": decision_doc, "persona_id": "ideal", "max_turns": 2},
        ).json()
        assert data["outcome"] == "timeout"

    def test_unknown_persona_is_404(self, client, decision_doc):
        response = client.post("/api/simulations/run", json={"flow": decision_doc, "persona_id": "ghost"})
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "persona_not_found"

    def test_empty_flow_is_422(self, client):
        response = client.post(
            "/api/simulations/run",
            json={"flow": {"nodes": [], "edges": []}, "persona_id": "ideal"},
        )
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "empty_flow"

    def test_batch(self, client, decision_doc):
        response = client.post("/api/simulations/batch", json={"flow": decision_doc})
        assert response.status_code == 200
        data = response.json()
        assert data["totalRuns"] == 5
        assert data["conversionRate"] == pytest.approx(40.0)
        assert data["totalNodeCoveragePercent"] == pytest.approx(100.0)

    def test_batch_persona_subset(self, client):
        flow = flow_data_to_dict(get_template("direct-close").flow)
        data = client.post(
            "/api/simulations/batch",
            json={"flow": flow, "persona_ids": ["minor", "ideal"]},
        ).json()
        assert [p["personaId"] for p in data["personaResults"]] == ["minor", "ideal"]

    def test_run_test_case(self, client, decision_doc):
        response = client.post(
            "/api/simulations/test-cases/run",
            json={
                "flow": decision_doc,
                "test_case": {
                    "id": "tc-1",
                    "name": "Shopper",
                    "personaId": "price_shopper",
                    "expectedOutcome": "nurture",
                },
            },
        )
        assert response.status_code == 200
        assert response.json()["passed"] is True

    def test_invalid_test_case_is_422(self, client, decision_doc):
        response = client.post(
            "/api/simulations/test-cases/run",
            json={"flow": decision_doc, "test_case": {"id": "tc-1"}},
        )
        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "invalid_test_case"


class TestResolverFailure:
    def test_failed_run_is_reported_not_raised(self, decision_flow):
        """A resolver failure comes back as a failed run with a critical issue."""
        app = create_app(
            resolver=ScriptedTurnResolver([TurnResolutionError("service down")]),
            turn_delay=0,
            run_delay=0,
        )
        with TestClient(app) as client:
            data = client.post(
                "/api/simulations/run",
                json={"flow": flow_data_to_dict(decision_flow), "persona_id": "ideal"},
            ).json()
        assert data["status"] == "failed"
        assert data["issues"][0]["severity"] == "critical"
