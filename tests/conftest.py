"""Shared fixtures for vscript tests."""

import os

os.environ.setdefault('VSCRIPT_LOG_LEVEL', 'ERROR')

import pytest

from vscript.entity import Entity, Vector3
from vscript.graph.model import BehaviorGraph
from vscript.graph.registry import NodeRegistry
from vscript.graph.types import (
    NO_OP,
    Binding,
    Flow,
    NodeType,
    PropertyKind,
    prop,
)


class RigidBody:
    """Force-capable component that records what it receives."""

    def __init__(self):
        self.forces = []

    def apply_force(self, force: Vector3) -> None:
        self.forces.append(force.as_tuple())


def make_sink_type(name: str = "NumberSink") -> NodeType:
    """Pure node that counts how often it is evaluated."""

    def execute(node, context):
        node.set('hits', node.get('hits') + 1)
        return NO_OP

    return NodeType(
        name=name,
        category="Debug",
        inputs=('input',),
        properties={
            'input': prop(PropertyKind.FLOAT, 0.0, Binding.INPUT),
            'hits': prop(PropertyKind.INT, 0),
        },
        execute=execute,
    )


@pytest.fixture
def registry():
    reg = NodeRegistry.with_builtins()
    reg.register("NumberSink", make_sink_type())
    return reg


@pytest.fixture
def calls():
    """Labels of Record nodes in the order they ran."""
    return []


@pytest.fixture
def recording_registry(registry, calls):
    """Registry with a flow-through 'Record' node that logs its label."""

    def execute(node, context):
        calls.append(node.get('label'))
        return Flow('Next')

    registry.register("Record", NodeType(
        name="Record",
        category="Debug",
        inputs=('Exec',),
        outputs=('Next',),
        properties={'label': prop(PropertyKind.STRING, "")},
        execute=execute,
    ))
    return registry


@pytest.fixture
def graph(registry):
    return BehaviorGraph("player", registry)


@pytest.fixture
def player():
    entity = Entity(id="player", entity_type="player", position=Vector3(1.0, 2.0, 3.0))
    entity.add_component("RigidBody", RigidBody())
    return entity


@pytest.fixture
def record_node(recording_registry, graph):
    """Factory adding a labelled Record node to `graph`."""

    def add(label: str, target: BehaviorGraph = None):
        if target is None:
            target = graph
        node_id = target.add_node("Record")
        target.node(node_id).set('label', label)
        return node_id
    return add
