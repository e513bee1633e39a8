"""Tests for BehaviorGraph editing, node ids and variables."""

import pytest

from vscript.errors import (
    DuplicateConnectionError,
    GraphEditError,
    InvalidPortError,
    UnknownConnectionError,
    UnknownNodeError,
    UnknownNodeTypeError,
)
from vscript.graph.builtin import BranchOut, OnUpdateOut
from vscript.graph.model import BehaviorGraph, NodeArena, NodeId, NodeInstance, VariableTable


class TestNodeId:
    """Tests for NodeId formatting and parsing."""

    def test_str_round_trip(self):
        node_id = NodeId(3, 2)
        assert str(node_id) == "node_3_2"
        assert NodeId.parse("node_3_2") == node_id

    def test_parse_passes_through_ids(self):
        node_id = NodeId(1)
        assert NodeId.parse(node_id) is node_id

    @pytest.mark.parametrize("text", ["node_1", "node_a_0", "conn_0", ""])
    def test_parse_rejects_malformed(self, text):
        with pytest.raises(ValueError):
            NodeId.parse(text)


class TestAddNode:
    """Tests for BehaviorGraph.add_node."""

    def test_seeds_declared_properties(self, graph):
        node_id = graph.add_node("Add", (120, 40))
        node = graph.node(node_id)

        assert node.type_name == "Add"
        assert node.position == (120.0, 40.0)
        assert node.values() == {"A": 0.0, "B": 0.0, "Result": 0.0}

    def test_ids_are_unique(self, graph):
        ids = {graph.add_node("Add") for _ in range(5)}
        assert len(ids) == 5
        assert len(graph) == 5

    def test_position_from_dict(self, graph):
        node_id = graph.add_node("Branch", {"x": 5, "y": 7})
        assert graph.node(node_id).position == (5.0, 7.0)

    def test_unknown_type_leaves_graph_unchanged(self, graph):
        graph.add_node("OnUpdate")
        with pytest.raises(UnknownNodeTypeError) as exc_info:
            graph.add_node("Teleport")

        assert exc_info.value.type_name == "Teleport"
        assert "OnUpdate" in exc_info.value.available
        assert len(graph) == 1

    def test_edit_errors_share_base(self, graph):
        with pytest.raises(GraphEditError):
            graph.add_node("Teleport")


class TestConnect:
    """Tests for BehaviorGraph.connect."""

    def test_connect_flow(self, graph):
        tick = graph.add_node("OnUpdate")
        branch = graph.add_node("Branch")
        conn_id = graph.connect(tick, "Next", branch, "Exec")

        connection = graph.connection(conn_id)
        assert connection.source_node == tick
        assert connection.target_port == "Exec"
        assert graph.connections_from(tick, "Next") == [connection]
        assert graph.connections_to(branch) == [connection]

    def test_connect_accepts_port_enums_and_string_ids(self, graph):
        tick = graph.add_node("OnUpdate")
        add = graph.add_node("Add")
        conn_id = graph.connect(str(tick), OnUpdateOut.DELTA_TIME, str(add), "A")
        assert graph.connection(conn_id).source_port == "deltaTime"

    def test_connection_ids_are_sequential(self, graph):
        tick = graph.add_node("OnUpdate")
        first = graph.add_node("Branch")
        second = graph.add_node("Branch")
        assert graph.connect(tick, "Next", first, "Exec") == "conn_0"
        assert graph.connect(tick, "Next", second, "Exec") == "conn_1"

    def test_unknown_endpoint(self, graph):
        tick = graph.add_node("OnUpdate")
        with pytest.raises(UnknownNodeError):
            graph.connect(tick, "Next", NodeId(99), "Exec")
        assert graph.connections() == []

    def test_ids_from_another_graph_rejected(self, graph, registry):
        other = BehaviorGraph("enemy", registry)
        tick = graph.add_node("OnUpdate")
        graph.add_node("Branch")
        other.add_node("OnUpdate")
        foreign = other.add_node("Branch")

        with pytest.raises(UnknownNodeError):
            graph.connect(tick, "Next", foreign, "Exec")
        assert graph.connections() == []
        assert graph.node(foreign) is None
        assert foreign not in graph
        # Text ids carry no owner and resolve by slot
        assert graph.node(str(foreign)).type_name == "Branch"

    def test_invalid_output_port(self, graph):
        tick = graph.add_node("OnUpdate")
        branch = graph.add_node("Branch")
        with pytest.raises(InvalidPortError) as exc_info:
            graph.connect(tick, "Exec", branch, "Exec")
        assert exc_info.value.direction == "output"

    def test_invalid_input_port(self, graph):
        branch = graph.add_node("Branch")
        add = graph.add_node("Add")
        with pytest.raises(InvalidPortError) as exc_info:
            graph.connect(branch, BranchOut.TRUE, add, "Exec")
        assert exc_info.value.direction == "input"
        assert exc_info.value.type_name == "Add"

    def test_duplicate_connection(self, graph):
        tick = graph.add_node("OnUpdate")
        branch = graph.add_node("Branch")
        conn_id = graph.connect(tick, "Next", branch, "Exec")

        with pytest.raises(DuplicateConnectionError) as exc_info:
            graph.connect(tick, "Next", branch, "Exec")
        assert exc_info.value.connection_id == conn_id
        assert len(graph.connections()) == 1

    def test_fan_out_and_fan_in_allowed(self, graph):
        tick = graph.add_node("OnUpdate")
        first = graph.add_node("Add")
        second = graph.add_node("Add")
        graph.connect(tick, "deltaTime", first, "A")
        graph.connect(tick, "deltaTime", second, "A")
        graph.connect(first, "Result", second, "B")
        assert len(graph.connections()) == 3


class TestDisconnect:
    """Tests for BehaviorGraph.disconnect."""

    def test_disconnect_removes_connection(self, graph):
        tick = graph.add_node("OnUpdate")
        branch = graph.add_node("Branch")
        conn_id = graph.connect(tick, "Next", branch, "Exec")

        graph.disconnect(conn_id)

        assert graph.connection(conn_id) is None
        assert graph.connections_from(tick) == []
        assert graph.connections_to(branch) == []

    def test_disconnect_unknown(self, graph):
        with pytest.raises(UnknownConnectionError):
            graph.disconnect("conn_42")

    def test_connection_ids_not_reused(self, graph):
        tick = graph.add_node("OnUpdate")
        branch = graph.add_node("Branch")
        graph.disconnect(graph.connect(tick, "Next", branch, "Exec"))
        assert graph.connect(tick, "Next", branch, "Exec") == "conn_1"


class TestRemoveNode:
    """Tests for BehaviorGraph.remove_node."""

    def test_cascades_connections(self, graph):
        tick = graph.add_node("OnUpdate")
        branch = graph.add_node("Branch")
        seq = graph.add_node("Sequence")
        graph.connect(tick, "Next", branch, "Exec")
        kept = graph.connect(tick, "Next", seq, "Exec")
        graph.connect(branch, "True", seq, "Exec")

        graph.remove_node(branch)

        assert branch not in graph
        assert [c.id for c in graph.connections()] == [kept]

    def test_remove_unknown(self, graph):
        with pytest.raises(UnknownNodeError):
            graph.remove_node(NodeId(7))

    def test_stale_id_does_not_resolve_to_reused_slot(self, graph):
        old = graph.add_node("Add")
        graph.remove_node(old)
        new = graph.add_node("Branch")

        assert new.index == old.index
        assert new.generation == old.generation + 1
        assert graph.node(old) is None
        assert graph.node(new).type_name == "Branch"
        with pytest.raises(UnknownNodeError):
            graph.connect(old, "Result", new, "Condition")

    def test_node_accepts_malformed_string(self, graph):
        assert graph.node("garbage") is None


class TestNodeInstance:
    """Tests for property access on node instances."""

    def test_set_only_declared(self, registry):
        node = NodeInstance.from_type(NodeId(0), registry.lookup("Add"))
        assert node.set("A", 4.0) is True
        assert node.set("Unknown", 1) is False
        assert node.get_input("A") == 4.0
        assert "Unknown" not in node.values()

    def test_reseed_keeps_matching_values(self, registry):
        node = NodeInstance.from_type(NodeId(0), registry.lookup("Add"))
        node.set("A", 2.5)
        node.reseed(registry.lookup("Multiply"))
        assert node.get("A") == 2.5
        assert node.get("Result") == 0.0

    def test_graph_reseed_after_registry_change(self, graph, registry):
        from vscript.graph.types import NodeType, PropertyKind, prop

        node_id = graph.add_node("NumberSink")
        graph.node(node_id).set("input", 3.0)
        registry.register("NumberSink", NodeType(
            name="NumberSink",
            category="Debug",
            inputs=("input",),
            properties={"input": prop(PropertyKind.FLOAT, 0.0, "input"),
                        "label": prop(PropertyKind.STRING, "sink")},
        ))

        assert graph.reseed() == 1
        node = graph.node(node_id)
        assert node.values() == {"input": 3.0, "label": "sink"}


class TestNodeArena:
    """Tests for generation-checked slot storage."""

    def test_free_slots_are_reused(self):
        arena = NodeArena()
        first = arena.allocate()
        arena.insert(NodeInstance(first, "X"))
        arena.remove(first)

        again = arena.allocate()
        assert again == NodeId(first.index, first.generation + 1)

    def test_remove_twice(self):
        arena = NodeArena()
        node_id = arena.allocate()
        arena.insert(NodeInstance(node_id, "X"))
        assert arena.remove(node_id) is not None
        assert arena.remove(node_id) is None
        assert len(arena) == 0

    def test_insert_occupied_slot(self):
        arena = NodeArena()
        arena.insert(NodeInstance(NodeId(0), "X"))
        with pytest.raises(ValueError):
            arena.insert(NodeInstance(NodeId(0), "Y"))


class TestVariableTable:
    """Tests for graph-scoped variables."""

    def test_set_get_delete(self):
        table = VariableTable()
        table.set("score", 10)
        assert table.get("score") == 10
        assert "score" in table
        assert table.delete("score") is True
        assert table.delete("score") is False
        assert table.get("score", 0) == 0

    def test_pairs_keep_order(self):
        table = VariableTable([["b", 1], ["a", 2]])
        assert table.names() == ["b", "a"]
        assert table.to_pairs() == [["b", 1], ["a", 2]]

    def test_equality(self):
        assert VariableTable([["x", 1]]) == VariableTable([("x", 1)])
        assert VariableTable([["x", 1]]) != VariableTable([["x", 2]])

    def test_fresh_graph_has_empty_table(self, graph):
        assert len(graph.variables) == 0
