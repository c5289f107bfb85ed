"""Tests for flow types, JSON persistence and <flow> prompt embedding.

These tests verify that:
1. FlowData round-trips through JSON without loss (camelCase wire keys)
2. Malformed documents raise FlowDataError with schema messages
3. <flow> tags are extracted, replaced, appended and removed from prompts
4. Packaged templates load and are well-formed
"""

from __future__ import annotations

import json

import pytest

from leadflow.flow.serializer import (
    FlowDataError,
    check_flow_document,
    create_initial_flow,
    dump_flow_data,
    extract_flow_from_prompt,
    has_flow_in_prompt,
    is_flow_empty,
    load_flow_data,
    read_flow_file,
    remove_flow_from_prompt,
    update_prompt_with_flow,
    write_flow_file,
)
from leadflow.flow.templates import get_template, list_templates, template_to_dict
from leadflow.flow.types import (
    FlowData,
    FlowEdge,
    FlowNode,
    FlowNodeData,
    NodeType,
    flow_data_from_dict,
    flow_data_to_dict,
)
from leadflow.validator import is_flow_valid


class TestWireShape:
    """Tests for the dict form of flow types."""

    def test_edge_uses_camel_case_handle(self):
        """sourceHandle is the wire key for the branch discriminator."""
        flow = FlowData(
            nodes=[],
            edges=[FlowEdge(id="e1", source="a", target="b", label="Yes", source_handle="yes")],
        )
        edge = flow_data_to_dict(flow)["edges"][0]
        assert edge == {"id": "e1", "source": "a", "target": "b", "label": "Yes", "sourceHandle": "yes"}

    def test_node_data_omits_unset_fields(self):
        """Only populated node data fields are serialized."""
        node = FlowNode(
            id="n1",
            type=NodeType.END,
            label="Redirect",
            data=FlowNodeData(linked_flow_id="other-flow"),
        )
        result = flow_data_to_dict(FlowData(nodes=[node]))["nodes"][0]
        assert result["data"] == {"linkedFlowId": "other-flow"}
        assert result["type"] == "end"

    def test_node_without_data_has_no_data_key(self):
        node = FlowNode(id="n1", type=NodeType.START, label="Start")
        assert "data" not in flow_data_to_dict(FlowData(nodes=[node]))["nodes"][0]

    def test_missing_lists_read_as_empty(self):
        assert flow_data_from_dict({}) == FlowData()

    def test_edge_branch_falls_back_to_label(self):
        """Branch is the handle when present, else the normalized label."""
        assert FlowEdge(id="e", source="a", target="b", label=" Yes ").branch == "yes"
        assert FlowEdge(id="e", source="a", target="b", label="Yes", source_handle="no").branch == "no"
        assert FlowEdge(id="e", source="a", target="b").branch is None


class TestJsonRoundTrip:
    """Tests for dump/load of FlowData."""

    def test_round_trip_is_lossless(self, decision_flow):
        """dump then load yields an equal FlowData."""
        assert load_flow_data(dump_flow_data(decision_flow)) == decision_flow

    def test_positions_are_floats(self):
        """Integer positions in a document load as floats."""
        flow = load_flow_data(
            json.dumps({"nodes": [{"id": "a", "type": "start", "label": "S", "position": {"x": 1, "y": 2}}], "edges": []})
        )
        assert flow.nodes[0].position.x == 1.0
        assert isinstance(flow.nodes[0].position.y, float)

    def test_file_round_trip(self, tmp_path, linear_flow):
        path = write_flow_file(linear_flow, tmp_path / "flows" / "linear.json")
        assert path.exists()
        assert read_flow_file(path) == linear_flow


class TestMalformedDocuments:
    """Tests for schema checking of incoming documents."""

    def test_invalid_json_raises(self):
        with pytest.raises(FlowDataError, match="not valid JSON"):
            load_flow_data("{nodes: ")

    def test_unknown_node_type_is_reported(self):
        """Node types outside start/end/action/decision fail the schema."""
        document = {"nodes": [{"id": "a", "type": "loop"}], "edges": []}
        errors = check_flow_document(document)
        assert len(errors) == 1
        assert errors[0].startswith("Validation error at $.nodes[0].type")

    def test_missing_edges_key(self):
        with pytest.raises(FlowDataError) as exc_info:
            load_flow_data(json.dumps({"nodes": []}))
        assert any("edges" in e for e in exc_info.value.errors)

    def test_valid_document_has_no_errors(self, decision_flow):
        assert check_flow_document(flow_data_to_dict(decision_flow)) == []


class TestPromptEmbedding:
    """Tests for <flow> tags inside agent prompts."""

    def test_append_when_absent(self, linear_flow):
        """A prompt without a tag gets one appended after a blank line."""
        prompt = update_prompt_with_flow("You are a helpful agent.\n", linear_flow)
        assert prompt.startswith("You are a helpful agent.\n\n<flow>\n")
        assert prompt.endswith("</flow>")
        assert extract_flow_from_prompt(prompt) == linear_flow

    def test_replace_existing_tag(self, linear_flow, decision_flow):
        """An existing tag is replaced in place; surrounding text is kept."""
        prompt = f"Intro\n\n<flow>{dump_flow_data(linear_flow)}</flow>\n\nOutro"
        updated = update_prompt_with_flow(prompt, decision_flow)
        assert updated.startswith("Intro")
        assert updated.endswith("Outro")
        assert updated.count("<flow>") == 1
        assert extract_flow_from_prompt(updated) == decision_flow

    def test_empty_prompt_is_just_the_tag(self, linear_flow):
        assert update_prompt_with_flow("", linear_flow).startswith("<flow>")

    def test_extract_returns_none_without_tag(self):
        assert extract_flow_from_prompt("No flow here") is None
        assert not has_flow_in_prompt("")

    def test_extract_invalid_content_raises(self):
        with pytest.raises(FlowDataError):
            extract_flow_from_prompt("<flow>not json</flow>")

    def test_remove_collapses_blank_lines(self, linear_flow):
        prompt = update_prompt_with_flow("Intro", linear_flow) + "\n\n\n\nOutro"
        assert remove_flow_from_prompt(prompt) == "Intro\n\nOutro"


class TestHelpers:
    def test_initial_flow_has_start_and_end(self):
        flow = create_initial_flow()
        assert [n.type for n in flow.nodes] == [NodeType.START, NodeType.END]
        assert flow.edges == []

    def test_is_flow_empty(self, linear_flow):
        assert is_flow_empty(None)
        assert is_flow_empty(FlowData())
        assert not is_flow_empty(linear_flow)


class TestTemplates:
    """Tests for packaged starter templates."""

    def test_three_templates_in_file_order(self):
        assert [t.id for t in list_templates()] == ["lead-qualification", "vsl-funnel", "direct-close"]

    def test_category_filter(self):
        assert [t.id for t in list_templates(category="funnel")] == ["vsl-funnel"]

    def test_unknown_template_is_none(self):
        assert get_template("nope") is None

    @pytest.mark.parametrize("template_id", ["lead-qualification", "vsl-funnel", "direct-close"])
    def test_templates_are_valid_flows(self, template_id):
        """Every template passes validation with no errors."""
        assert is_flow_valid(get_template(template_id).flow)

    def test_templates_are_fresh_copies(self):
        """Mutating a returned template does not affect the next lookup."""
        first = get_template("direct-close")
        first.flow.nodes.clear()
        assert len(get_template("direct-close").flow.nodes) == 12

    def test_template_dict(self):
        result = template_to_dict(get_template("vsl-funnel"), include_flow=False)
        assert result["categoryLabel"] == "Funnel"
        assert result["nodeCount"] == 12
        assert "flow" not in result
