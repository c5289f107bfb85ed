"""Tests for structural flow validation.

These tests verify that:
1. A well-formed flow yields no findings
2. Each rule fires on its own, with a deterministic id
3. Findings are grouped error, warning, info
4. Validation is pure and idempotent
5. ValidationReport renders counts and PASS/FAIL status
"""

from __future__ import annotations

import copy

from leadflow.flow.types import FlowData, FlowEdge, FlowNode, FlowNodeData, NodeType
from leadflow.validator import (
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_WARNING,
    ValidationReport,
    is_flow_valid,
    summarize_warnings,
    validate_flow,
)


def _rules(flow: FlowData):
    return [w.rule for w in validate_flow(flow)]


class TestCleanFlows:
    def test_linear_flow_is_clean(self, linear_flow):
        assert validate_flow(linear_flow) == []

    def test_decision_flow_is_clean(self, decision_flow):
        assert validate_flow(decision_flow) == []

    def test_empty_flow_has_no_findings(self):
        assert validate_flow(FlowData()) == []
        assert is_flow_valid(FlowData())


class TestRules:
    """Each rule in isolation."""

    def test_missing_start_and_end(self):
        flow = FlowData(nodes=[FlowNode(id="a", type=NodeType.ACTION, label="Alone")])
        rules = _rules(flow)
        assert rules[:2] == ["missing-start", "missing-end"]

    def test_dangling_edge(self, linear_flow):
        linear_flow.edges.append(FlowEdge(id="e9", source="greet", target="ghost"))
        findings = validate_flow(linear_flow)
        assert [w.id for w in findings] == ["dangling-edge-e9"]
        assert findings[0].edge_id == "e9"
        assert '"ghost"' in findings[0].message

    def test_decision_missing_no_branch_is_single_error(self, decision_flow):
        """Removing the "no" edge produces exactly one error."""
        decision_flow.edges = [e for e in decision_flow.edges if e.id != "e3"]
        findings = validate_flow(decision_flow)
        errors = [w for w in findings if w.severity == SEVERITY_ERROR]
        assert len(errors) == 1
        assert errors[0].id == "decision-missing-branch-qualify"
        assert errors[0].message == 'Decision node "Qualifies?" is missing its "no" branch'

    def test_decision_branch_from_label(self, decision_flow):
        """Edges without a handle fall back to their label."""
        for edge in decision_flow.edges:
            edge.source_handle = None
        assert validate_flow(decision_flow) == []

    def test_decision_unmatched_handle(self, decision_flow):
        decision_flow.edges.append(
            FlowEdge(id="e5", source="qualify", target="lost", label="Maybe", source_handle="maybe")
        )
        findings = validate_flow(decision_flow)
        assert [w.id for w in findings] == ["decision-unmatched-handle-e5"]
        assert findings[0].node_id == "qualify"

    def test_node_without_incoming_edge_is_unreachable(self, linear_flow):
        linear_flow.nodes.append(FlowNode(id="orphan", type=NodeType.END, label="Orphan"))
        findings = validate_flow(linear_flow)
        assert [w.id for w in findings] == ["unreachable-node-orphan"]
        assert findings[0].severity == SEVERITY_WARNING

    def test_island_cycle_is_unreachable(self, linear_flow):
        """Nodes with incoming edges but no path from start are flagged."""
        linear_flow.nodes.extend(
            [
                FlowNode(id="x", type=NodeType.ACTION, label="X"),
                FlowNode(id="y", type=NodeType.ACTION, label="Y"),
            ]
        )
        linear_flow.edges.extend(
            [
                FlowEdge(id="e3", source="x", target="y"),
                FlowEdge(id="e4", source="y", target="x"),
            ]
        )
        rules = _rules(linear_flow)
        assert rules == ["unreachable-node", "unreachable-node"]

    def test_dead_end(self, linear_flow):
        linear_flow.edges = [e for e in linear_flow.edges if e.id != "e2"]
        ids = [w.id for w in validate_flow(linear_flow)]
        assert "dead-end-node-greet" in ids
        assert "unreachable-node-end" in ids

    def test_linked_flow_is_not_a_dead_end(self, linear_flow):
        linear_flow.edges = [e for e in linear_flow.edges if e.id != "e2"]
        linear_flow.nodes[1].data = FlowNodeData(linked_flow_id="follow-up")
        ids = [w.id for w in validate_flow(linear_flow)]
        assert "dead-end-node-greet" not in ids

    def test_self_loop(self, linear_flow):
        linear_flow.edges.append(FlowEdge(id="loop", source="greet", target="greet"))
        findings = validate_flow(linear_flow)
        assert [w.id for w in findings] == ["self-loop-loop"]

    def test_empty_label_is_info(self, linear_flow):
        linear_flow.nodes[1].label = "   "
        findings = validate_flow(linear_flow)
        assert [(w.rule, w.severity) for w in findings] == [("empty-label", SEVERITY_INFO)]


class TestOrderingAndPurity:
    def test_findings_grouped_by_severity(self):
        """Errors come before warnings, warnings before info."""
        flow = FlowData(
            nodes=[
                FlowNode(id="a", type=NodeType.ACTION, label=""),
                FlowNode(id="b", type=NodeType.DECISION, label="Decide?"),
            ],
            edges=[FlowEdge(id="e1", source="a", target="b")],
        )
        severities = [w.severity for w in validate_flow(flow)]
        assert severities == sorted(
            severities, key=[SEVERITY_ERROR, SEVERITY_WARNING, SEVERITY_INFO].index
        )
        assert severities[0] == SEVERITY_ERROR
        assert severities[-1] == SEVERITY_INFO

    def test_validation_is_idempotent(self, decision_flow):
        decision_flow.edges.pop()
        assert validate_flow(decision_flow) == validate_flow(decision_flow)

    def test_validation_does_not_mutate(self, decision_flow):
        before = copy.deepcopy(decision_flow)
        decision_flow.edges.append(FlowEdge(id="bad", source="x", target="y"))
        before.edges.append(FlowEdge(id="bad", source="x", target="y"))
        validate_flow(decision_flow)
        assert decision_flow == before


class TestReport:
    def test_summary_counts(self, linear_flow):
        linear_flow.nodes[1].label = ""
        linear_flow.nodes.append(FlowNode(id="orphan", type=NodeType.END, label="Orphan"))
        counts = summarize_warnings(validate_flow(linear_flow))
        assert counts == {"error": 0, "warning": 1, "info": 1}

    def test_report_format_and_dict(self, decision_flow):
        decision_flow.edges = [e for e in decision_flow.edges if e.id != "e3"]
        report = ValidationReport(validate_flow(decision_flow))
        assert report.has_errors()
        text = report.format()
        assert text.splitlines()[0].startswith("[ERROR] decision-missing-branch: node qualify ")
        assert text.endswith("FAIL: 1 error(s), 1 warning(s), 0 info")

        result = report.to_dict()
        assert result["valid"] is False
        assert result["status"] == "FAIL"
        assert result["warnings"][0]["nodeId"] == "qualify"

    def test_clean_report_passes(self, linear_flow):
        report = ValidationReport(validate_flow(linear_flow))
        assert report.format() == "PASS: 0 error(s), 0 warning(s), 0 info"
