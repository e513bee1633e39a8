"""
Error types for the behavior graph interpreter.

Structural errors (GraphEditError and subclasses) are raised synchronously
by editing operations before the graph is mutated, so an editor can show
why an edit was rejected. Runtime errors raised inside node functions are
caught by the executor and never cross a node boundary.
"""

from typing import Any, List, Optional


class ScriptError(Exception):
    """Base class for all vscript errors."""


class GraphEditError(ScriptError):
    """An editing operation was rejected; the graph is unchanged."""


class UnknownNodeTypeError(GraphEditError):
    """Referenced node type is not registered."""

    def __init__(self, type_name: str, available: Optional[List[str]] = None):
        self.type_name = type_name
        self.available = available or []
        message = f"Unknown node type: {type_name!r}"
        if self.available:
            message += f". Registered: {', '.join(self.available)}"
        super().__init__(message)


class UnknownNodeError(GraphEditError):
    """Referenced node is not (or no longer) part of the graph."""

    def __init__(self, node_id: Any, graph_id: Optional[str] = None):
        self.node_id = node_id
        self.graph_id = graph_id
        where = f" in graph {graph_id!r}" if graph_id else ""
        super().__init__(f"Unknown node {node_id}{where}")


class InvalidPortError(GraphEditError):
    """Port is not declared on the node's type with the required direction."""

    def __init__(self, type_name: str, port: str, direction: str):
        self.type_name = type_name
        self.port = port
        self.direction = direction
        super().__init__(f"{type_name!r} has no {direction} port {port!r}")


class UnknownConnectionError(GraphEditError):
    """Referenced connection does not exist in the graph."""

    def __init__(self, connection_id: Any):
        self.connection_id = connection_id
        super().__init__(f"Unknown connection {connection_id}")


class DuplicateConnectionError(GraphEditError):
    """An identical connection already exists."""

    def __init__(self, connection_id: Any):
        self.connection_id = connection_id
        super().__init__(f"Connection already exists as {connection_id}")


class GraphExistsError(GraphEditError):
    """The entity already owns a behavior graph."""

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"Entity {entity_id!r} already has a behavior graph")


class UnknownGraphError(GraphEditError):
    """The entity has no behavior graph attached."""

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"No behavior graph for entity {entity_id!r}")


class MissingCapability(ScriptError):
    """A node expected a component on its target entity that is absent.

    Raised inside node functions; the executor degrades it to a no-op.
    """

    def __init__(self, capability: str, target: Any = None):
        self.capability = capability
        self.target = target
        super().__init__(f"Target {target!r} lacks capability {capability!r}")


class DeserializationTypeMismatch(ScriptError):
    """A serialized node references a type that is no longer registered."""

    def __init__(self, node_id: str, type_name: str):
        self.node_id = node_id
        self.type_name = type_name
        super().__init__(f"Node {node_id} has unregistered type {type_name!r}")


class GraphFormatError(ScriptError):
    """Portable graph data could not be parsed."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class ConfigError(ScriptError):
    """Runtime configuration is invalid."""

    def __init__(self, message: str, errors: Optional[List[str]] = None, path: Any = None):
        super().__init__(message)
        self.errors = errors or []
        self.path = path
