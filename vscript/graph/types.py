"""
Core types for behavior graphs: node type definitions, property specs,
execution results and the per-tick execution context.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Optional, Union

if TYPE_CHECKING:
    from vscript.entity import CollisionEvent
    from vscript.graph.builtin import Builtin


EVENT_CATEGORY = "event"
EXEC_PORT = "Exec"


class PropertyKind(Enum):
    """Semantic kind of a node property (informational, not enforced)."""
    FLOAT = "float"
    INT = "int"
    BOOL = "boolean"
    STRING = "string"
    VECTOR = "vector"
    OBJECT = "object"
    ANY = "any"


class Binding(Enum):
    """How a property relates to the node's ports."""
    INPUT = "input"
    OUTPUT = "output"
    INTERNAL = "internal"


@dataclass(frozen=True)
class PropertySpec:
    """Declared property: kind, default value, port binding."""
    kind: PropertyKind = PropertyKind.ANY
    default: Any = None
    binding: Binding = Binding.INTERNAL

    def fresh_default(self) -> Any:
        """Deep copy of the default so instances never share mutable state."""
        return copy.deepcopy(self.default)


def prop(kind: PropertyKind = PropertyKind.ANY, default: Any = None,
         binding: Union[Binding, str] = Binding.INTERNAL) -> PropertySpec:
    """Shorthand for declaring properties in node catalogs."""
    return PropertySpec(kind=kind, default=default, binding=Binding(binding))


# =============================================================================
# Execution results
# =============================================================================

class ExecutionResult:
    """Base for the outcomes a node function can return."""

    __slots__ = ()

    @property
    def payload(self) -> Mapping[str, Any]:
        """Values published on output ports with this result."""
        return {}


@dataclass(frozen=True)
class NoOp(ExecutionResult):
    """The node did not fire."""


@dataclass(frozen=True)
class Flow(ExecutionResult):
    """Continue along every connection of one output port.

    `values` are published before control continues.
    """
    port: str
    values: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, 'port', port_name(self.port))

    @property
    def payload(self) -> Mapping[str, Any]:
        return self.values or {}


@dataclass(frozen=True)
class MultiFlow(ExecutionResult):
    """Continue along several output ports in order.

    With `sequential`, only the first live connection of the first
    connected port is taken.
    """
    ports: tuple[str, ...]
    sequential: bool = False
    values: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, 'ports', tuple(port_name(p) for p in self.ports))

    @property
    def payload(self) -> Mapping[str, Any]:
        return self.values or {}


@dataclass(frozen=True)
class Values(ExecutionResult):
    """Publish computed values on output ports without continuing flow."""
    values: Mapping[str, Any]

    @property
    def payload(self) -> Mapping[str, Any]:
        return self.values


NO_OP = NoOp()


# =============================================================================
# Execution context
# =============================================================================

@dataclass
class ExecutionContext:
    """What the host hands the executor for one tick of one graph.

    Attributes:
        delta_time: Seconds since the previous tick
        entity: The entity owning the graph ("self" for transform nodes)
        collision: Collision seen by `entity` this tick, if any
        elapsed: Seconds since play()
        first_tick: True on the first tick after play()
        variables: The graph's VariableTable (filled in by the executor)
        resolve_entity: Host lookup from entity id to entity
    """
    delta_time: float = 0.0
    entity: Any = None
    collision: Optional["CollisionEvent"] = None
    elapsed: float = 0.0
    first_tick: bool = False
    variables: Any = None
    resolve_entity: Optional[Callable[[str], Any]] = None


NodeFunction = Callable[[Any, ExecutionContext], Optional[ExecutionResult]]


# =============================================================================
# Node types
# =============================================================================

def port_name(port: Union[str, Enum]) -> str:
    """Normalize a port given as a string or a port enum member."""
    if isinstance(port, Enum):
        return str(port.value)
    return port


def _port_names(ports: Union[Iterable[Union[str, Enum]], type]) -> tuple[str, ...]:
    return tuple(port_name(p) for p in ports)


@dataclass(frozen=True)
class NodeType:
    """
    Immutable template for a node kind.

    Attributes:
        name: Unique registry key
        category: Grouping label; EVENT_CATEGORY marks traversal roots
        inputs: Ordered input port names (or a str Enum of ports)
        outputs: Ordered output port names (or a str Enum of ports)
        properties: Declared properties by name
        execute: Node function (node_instance, context) -> ExecutionResult
        builtin: Built-in kind for catalog nodes, None for custom nodes
    """
    name: str
    category: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    properties: Mapping[str, PropertySpec] = field(default_factory=dict)
    execute: Optional[NodeFunction] = field(default=None, compare=False)
    builtin: Optional["Builtin"] = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("node type name must be non-empty")

        inputs = _port_names(self.inputs)
        outputs = _port_names(self.outputs)
        for label, ports in (("input", inputs), ("output", outputs)):
            if len(set(ports)) != len(ports):
                raise ValueError(f"{self.name}: duplicate {label} port in {ports}")

        for prop_name, spec in self.properties.items():
            if spec.binding is Binding.INPUT and prop_name not in inputs:
                raise ValueError(f"{self.name}: input property {prop_name!r} has no input port")
            if spec.binding is Binding.OUTPUT and prop_name not in outputs:
                raise ValueError(f"{self.name}: output property {prop_name!r} has no output port")

        object.__setattr__(self, 'inputs', inputs)
        object.__setattr__(self, 'outputs', outputs)
        object.__setattr__(self, 'properties', MappingProxyType(dict(self.properties)))

    @property
    def is_event(self) -> bool:
        return self.category.lower() == EVENT_CATEGORY

    @property
    def is_pure(self) -> bool:
        """Pure nodes have no Exec input; pushing values into them evaluates them."""
        return not self.is_event and EXEC_PORT not in self.inputs

    def has_input(self, port: Union[str, Enum]) -> bool:
        return port_name(port) in self.inputs

    def has_output(self, port: Union[str, Enum]) -> bool:
        return port_name(port) in self.outputs

    def default_properties(self) -> dict[str, Any]:
        return {name: spec.fresh_default() for name, spec in self.properties.items()}
