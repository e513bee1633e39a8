"""Tests for GraphStore."""

import pytest

from vscript.errors import GraphExistsError, UnknownGraphError
from vscript.graph.model import BehaviorGraph
from vscript.graph.store import GraphStore


@pytest.fixture
def store(registry):
    return GraphStore(registry)


class TestGraphStore:
    """One graph per entity, no implicit replacement."""

    def test_create_and_get(self, store):
        graph = store.create("player")
        assert store.get("player") is graph
        assert graph.id == "player"
        assert "player" in store

    def test_custom_graph_id(self, store):
        graph = store.create("player", graph_id="player-behavior")
        assert graph.id == "player-behavior"
        assert graph.entity_id == "player"

    def test_create_twice_raises(self, store):
        first = store.create("player")
        with pytest.raises(GraphExistsError):
            store.create("player")
        assert store.get("player") is first

    def test_attach(self, store, registry):
        graph = BehaviorGraph("enemy", registry)
        store.attach(graph)
        assert store.require("enemy") is graph
        with pytest.raises(GraphExistsError):
            store.attach(BehaviorGraph("enemy", registry))

    def test_require_missing(self, store):
        with pytest.raises(UnknownGraphError):
            store.require("nobody")

    def test_remove(self, store):
        graph = store.create("player")
        assert store.remove("player") is graph
        assert store.remove("player") is None
        assert store.get("player") is None

    def test_remove_then_create(self, store):
        store.create("player")
        store.remove("player")
        assert store.create("player") is store.get("player")

    def test_iteration_order(self, store):
        for entity_id in ("a", "b", "c"):
            store.create(entity_id)
        assert [g.entity_id for g in store] == ["a", "b", "c"]
        assert store.entity_ids() == ["a", "b", "c"]
        assert len(store) == 3

    def test_clear(self, store):
        store.create("a")
        store.clear()
        assert len(store) == 0
