"""Tests for the editable flow graph and its undo/redo history.

These tests verify that:
1. Every structural mutation is undoable and redo restores it exactly
2. Deleting a node removes its incident edges
3. Duplicate edges are ignored without a history entry
4. Drag gestures commit a single snapshot
5. History is capped and a new mutation clears the redo stack
6. Listeners and the unsaved-changes flag track mutations
"""

from __future__ import annotations

import pytest

from leadflow.flow.history import FlowHistory
from leadflow.flow.model import (
    PLACEMENT_BASE_X,
    PLACEMENT_BASE_Y,
    FlowGraph,
    find_available_position,
)
from leadflow.flow.types import FlowData, FlowNode, FlowNodeData, FlowPosition, NodeType
from leadflow.validator.rules import validate_flow


class TestFlowHistory:
    """Tests for the bounded snapshot stacks."""

    def test_cap_must_be_positive(self):
        with pytest.raises(ValueError):
            FlowHistory(cap=0)

    def test_push_evicts_oldest(self, linear_flow):
        history = FlowHistory(cap=2)
        for _ in range(3):
            history.push(linear_flow)
        assert history.undo_depth == 2

    def test_push_clears_future(self, linear_flow, decision_flow):
        history = FlowHistory()
        history.push(linear_flow)
        history.undo(decision_flow)
        assert history.can_redo
        history.push(decision_flow)
        assert not history.can_redo

    def test_snapshots_are_copies(self, linear_flow):
        """Mutating the pushed flow afterwards does not change the snapshot."""
        history = FlowHistory()
        history.push(linear_flow)
        linear_flow.nodes.clear()
        restored = history.undo(FlowData())
        assert len(restored.nodes) == 3

    def test_undo_on_empty_is_none(self):
        assert FlowHistory().undo(FlowData()) is None
        assert FlowHistory().redo(FlowData()) is None


class TestNodeMutations:
    """Tests for adding, updating and deleting nodes."""

    def test_add_node_defaults(self, sequential_ids):
        graph = FlowGraph(id_generator=sequential_ids)
        node_id = graph.add_node(NodeType.DECISION)
        node = graph.get_node(node_id)
        assert node_id == "id-1"
        assert node.label == "Condition?"
        assert node.position == FlowPosition(PLACEMENT_BASE_X, PLACEMENT_BASE_Y)
        assert graph.has_unsaved_changes

    def test_add_node_accepts_string_type(self, sequential_ids):
        graph = FlowGraph(id_generator=sequential_ids)
        assert graph.get_node(graph.add_node("action")).type == NodeType.ACTION

    def test_add_node_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            FlowGraph().add_node("loop")

    def test_new_nodes_do_not_overlap(self, sequential_ids):
        """Auto-placed nodes never land within the snap radius of another."""
        graph = FlowGraph(id_generator=sequential_ids)
        for _ in range(5):
            graph.add_node(NodeType.ACTION)
        positions = [(n.position.x, n.position.y) for n in graph.nodes]
        assert len(set(positions)) == 5

    def test_find_available_position_stacks_below_lowest(self):
        nodes = [
            FlowNode(id="a", type=NodeType.ACTION, position=FlowPosition(250, 100)),
            FlowNode(id="b", type=NodeType.START, position=FlowPosition(600, 20)),
        ]
        # 100 + 80 (action height) + 120
        assert find_available_position(nodes) == FlowPosition(250, 300)

    def test_update_node_keeps_id(self, linear_flow):
        graph = FlowGraph(linear_flow)
        graph.update_node("greet", {"id": "other", "label": "Welcome", "data": FlowNodeData(action="wave")})
        node = graph.get_node("greet")
        assert node.label == "Welcome"
        assert node.data.action == "wave"
        assert graph.get_node("other") is None

    def test_update_node_label(self, linear_flow):
        graph = FlowGraph(linear_flow)
        graph.update_node_label("end", "Done")
        assert graph.get_node("end").label == "Done"

    def test_update_node_parses_wire_shape(self, linear_flow):
        """Plain mappings for data and position become typed values."""
        graph = FlowGraph(linear_flow)
        graph.update_node(
            "greet",
            {"data": {"linkedFlowId": "other", "keywords": ["hi"]}, "position": {"x": 10, "y": 20}},
        )
        node = graph.get_node("greet")
        assert node.data == FlowNodeData(linked_flow_id="other", keywords=["hi"])
        assert node.position == FlowPosition(10.0, 20.0)
        assert isinstance(validate_flow(graph.get_flow_data()), list)

    def test_delete_node_cascades_edges(self, decision_flow):
        """Deleting a node removes every edge touching it."""
        graph = FlowGraph(decision_flow)
        graph.delete_node("qualify")
        assert graph.get_node("qualify") is None
        assert [e.id for e in graph.edges] == ["e4"]

    def test_mutations_tolerate_unknown_ids(self, linear_flow):
        graph = FlowGraph(linear_flow)
        graph.update_node("missing", {"label": "x"})
        graph.delete_node("missing")
        assert graph.get_flow_data() == linear_flow


class TestEdgeMutations:
    """Tests for connecting and disconnecting nodes."""

    def test_add_edge_prefixes_id(self, sequential_ids):
        graph = FlowGraph(id_generator=sequential_ids)
        a = graph.add_node(NodeType.START)
        b = graph.add_node(NodeType.END)
        assert graph.add_edge(a, b) == "e-id-3"

    def test_duplicate_edge_is_ignored(self, linear_flow):
        """Same source, target and handle: no edge, no history entry."""
        graph = FlowGraph(linear_flow)
        assert graph.add_edge("start", "greet") == ""
        assert len(graph.edges) == 2
        assert not graph.can_undo

    def test_empty_handle_counts_as_no_handle(self, linear_flow):
        graph = FlowGraph(linear_flow)
        assert graph.add_edge("start", "greet", source_handle="") == ""
        assert [(e.source, e.target) for e in graph.edges] == [("start", "greet"), ("greet", "end")]
        assert not graph.can_undo

    def test_same_pair_different_handle_is_allowed(self, decision_flow):
        graph = FlowGraph(decision_flow)
        assert graph.add_edge("qualify", "book", label="No", source_handle="no") != ""

    def test_edges_to_missing_nodes_are_accepted(self):
        graph = FlowGraph()
        edge_id = graph.add_edge("ghost", "phantom")
        assert graph.get_edge(edge_id).target == "phantom"

    def test_update_edge(self, decision_flow):
        graph = FlowGraph(decision_flow)
        graph.update_edge("e3", {"target": "book", "source_handle": "yes"})
        edge = graph.get_edge("e3")
        assert edge.target == "book"
        assert edge.source_handle == "yes"
        assert edge.label == "No"

    def test_delete_edge(self, linear_flow):
        graph = FlowGraph(linear_flow)
        graph.delete_edge("e1")
        assert [e.id for e in graph.edges] == ["e2"]


class TestUndoRedo:
    """Tests for the undo/redo round trip."""

    def test_undo_then_redo_restores_exact_state(self, decision_flow, sequential_ids):
        graph = FlowGraph(decision_flow, id_generator=sequential_ids)
        before = graph.get_flow_data()
        graph.add_node(NodeType.ACTION, label="Follow up")
        after = graph.get_flow_data()

        assert graph.undo()
        assert graph.get_flow_data() == before
        assert graph.redo()
        assert graph.get_flow_data() == after

    def test_round_trip_over_mixed_mutations(self, decision_flow, sequential_ids):
        """N undos restore the initial flow; N redos restore the final one."""
        graph = FlowGraph(decision_flow, id_generator=sequential_ids)
        initial = graph.get_flow_data()
        follow_up = graph.add_node(NodeType.ACTION, label="Follow up")
        graph.add_edge("lost", follow_up)
        graph.update_node("qualify", {"label": "Has budget?", "data": {"condition": "Budget over 5k"}})
        graph.delete_node("book")
        final = graph.get_flow_data()

        for _ in range(4):
            assert graph.undo()
        assert graph.get_flow_data() == initial
        assert not graph.can_undo

        for _ in range(4):
            assert graph.redo()
        assert graph.get_flow_data() == final
        assert not graph.can_redo

    def test_undo_delete_restores_edges(self, decision_flow):
        graph = FlowGraph(decision_flow)
        graph.delete_node("book")
        graph.undo()
        assert graph.get_flow_data() == decision_flow

    def test_undo_with_empty_history(self):
        graph = FlowGraph()
        assert graph.undo() is False
        assert graph.redo() is False

    def test_new_mutation_clears_redo(self, linear_flow):
        graph = FlowGraph(linear_flow)
        graph.update_node_label("greet", "Hi")
        graph.undo()
        assert graph.can_redo
        graph.delete_edge("e2")
        assert not graph.can_redo

    def test_history_is_capped(self, linear_flow):
        """Only the most recent cap snapshots are kept."""
        graph = FlowGraph(linear_flow, history_cap=3)
        for i in range(5):
            graph.update_node_label("greet", f"Label {i}")
        undone = 0
        while graph.undo():
            undone += 1
        assert undone == 3
        assert graph.get_node("greet").label == "Label 1"

    def test_initial_load_is_not_undoable(self, linear_flow, decision_flow):
        graph = FlowGraph()
        graph.set_flow_data(linear_flow)
        assert not graph.can_undo
        graph.set_flow_data(decision_flow)
        assert graph.undo()
        assert graph.get_flow_data() == linear_flow

    def test_clear_flow_is_undoable(self, linear_flow):
        graph = FlowGraph(linear_flow)
        graph.clear_flow()
        assert graph.get_flow_data().is_empty()
        graph.undo()
        assert graph.get_flow_data() == linear_flow


class TestDragGesture:
    """Tests for position updates during a drag."""

    def test_position_updates_record_no_history(self, linear_flow):
        graph = FlowGraph(linear_flow)
        graph.update_node_position("greet", FlowPosition(10, 10))
        graph.update_node_position("greet", FlowPosition(20, 20))
        assert not graph.can_undo
        assert graph.get_node("greet").position == FlowPosition(20, 20)

    def test_drag_commits_one_snapshot(self, linear_flow):
        """A whole drag gesture undoes in a single step."""
        graph = FlowGraph(linear_flow)
        graph.begin_node_drag()
        for step in range(10):
            graph.update_node_position("greet", FlowPosition(step, step))
        graph.commit_node_positions()

        assert graph.history.undo_depth == 1
        graph.undo()
        assert graph.get_node("greet").position == FlowPosition(250, 200)

    def test_commit_without_begin_records_current_state(self, linear_flow):
        graph = FlowGraph(linear_flow)
        graph.commit_node_positions()
        assert graph.history.undo_depth == 1


class TestHostIntegration:
    """Tests for listeners and the unsaved-changes flag."""

    def test_listener_receives_copies(self, linear_flow):
        graph = FlowGraph(linear_flow)
        received = []
        graph.add_listener(received.append)
        graph.delete_edge("e1")

        assert len(received) == 1
        received[0].nodes.clear()
        assert len(graph.nodes) == 3

    def test_removed_listener_is_not_called(self, linear_flow):
        graph = FlowGraph(linear_flow)
        received = []
        graph.add_listener(received.append)
        graph.remove_listener(received.append)
        graph.delete_edge("e1")
        assert received == []

    def test_dirty_flag_lifecycle(self, linear_flow):
        graph = FlowGraph()
        assert not graph.has_unsaved_changes
        graph.set_flow_data(linear_flow)
        assert not graph.has_unsaved_changes
        graph.update_node_label("greet", "Hi")
        assert graph.has_unsaved_changes
        graph.mark_as_saved()
        assert not graph.has_unsaved_changes
        graph.mark_as_changed()
        assert graph.has_unsaved_changes

    def test_constructor_copies_input(self, linear_flow):
        graph = FlowGraph(linear_flow)
        graph.delete_node("greet")
        assert len(linear_flow.nodes) == 3
