"""
Behavior graphs: node types, the graph data model, execution and
serialization.

Nodes are instances of registered node types. Event nodes (OnStart,
OnUpdate, OnCollision, ...) are traversal roots; their results decide which
connections are followed and which values flow into downstream inputs.
"""

from .types import (
    EVENT_CATEGORY,
    NO_OP,
    Binding,
    ExecutionContext,
    ExecutionResult,
    Flow,
    MultiFlow,
    NodeType,
    NoOp,
    PropertyKind,
    PropertySpec,
    Values,
    prop,
)
from .registry import NodeRegistry, node_type
from .builtin import Builtin, builtin_types, register_builtins
from .model import BehaviorGraph, Connection, NodeId, NodeInstance, VariableTable
from .executor import ExecutionReport, Executor
from .store import GraphStore
from .serializer import (
    PortableConnection,
    PortableGraph,
    PortableNode,
    deserialize,
    from_json,
    serialize,
    to_json,
)

__all__ = [
    'EVENT_CATEGORY',
    'NO_OP',
    'Binding',
    'ExecutionContext',
    'ExecutionResult',
    'Flow',
    'MultiFlow',
    'NodeType',
    'NoOp',
    'PropertyKind',
    'PropertySpec',
    'Values',
    'prop',
    'NodeRegistry',
    'node_type',
    'Builtin',
    'builtin_types',
    'register_builtins',
    'BehaviorGraph',
    'Connection',
    'NodeId',
    'NodeInstance',
    'VariableTable',
    'ExecutionReport',
    'Executor',
    'GraphStore',
    'PortableConnection',
    'PortableGraph',
    'PortableNode',
    'deserialize',
    'from_json',
    'serialize',
    'to_json',
]
