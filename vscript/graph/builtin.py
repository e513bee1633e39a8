"""
Built-in node catalog.

Built-in kinds form a closed enum (Builtin); every member must have an
executor in _EXECUTORS, which is checked when this module is imported.
Custom kinds go through NodeType.execute instead (see registry.node_type).

Output ports of built-ins are str enums, so results name ports by member
(Flow(FlowOut.NEXT)) and a typo fails at import time instead of during
traversal.
"""

from enum import Enum
from typing import Any, Optional

from vscript.entity import Vector3, as_xyz
from vscript.errors import MissingCapability
from vscript.graph.types import (
    EVENT_CATEGORY,
    EXEC_PORT,
    NO_OP,
    Binding,
    ExecutionContext,
    ExecutionResult,
    Flow,
    MultiFlow,
    NodeFunction,
    NodeType,
    PropertyKind,
    Values,
    prop,
)
from vscript.logging import get_logger

log = get_logger('builtin')

RIGID_BODY = "RigidBody"


class Builtin(Enum):
    """Every node kind that ships with the interpreter."""
    ON_START = "OnStart"
    ON_UPDATE = "OnUpdate"
    ON_COLLISION = "OnCollision"
    BRANCH = "Branch"
    SEQUENCE = "Sequence"
    ADD = "Add"
    MULTIPLY = "Multiply"
    GET_POSITION = "GetPosition"
    SET_POSITION = "SetPosition"
    APPLY_FORCE = "ApplyForce"
    GET_VARIABLE = "GetVariable"
    SET_VARIABLE = "SetVariable"


class FlowOut(str, Enum):
    NEXT = "Next"


class OnUpdateOut(str, Enum):
    NEXT = "Next"
    DELTA_TIME = "deltaTime"


class OnCollisionOut(str, Enum):
    NEXT = "Next"
    OTHER_OBJECT = "otherObject"


class BranchOut(str, Enum):
    TRUE = "True"
    FALSE = "False"


class SequenceOut(str, Enum):
    FIRST = "First"
    SECOND = "Second"
    THIRD = "Third"


class MathOut(str, Enum):
    RESULT = "Result"


class PositionOut(str, Enum):
    POSITION = "Position"
    X = "X"
    Y = "Y"
    Z = "Z"


class VariableOut(str, Enum):
    NEXT = "Next"
    VALUE = "Value"


_FLOAT_IN = prop(PropertyKind.FLOAT, 0.0, Binding.INPUT)
_FLOAT_OUT = prop(PropertyKind.FLOAT, 0.0, Binding.OUTPUT)
_OBJECT_IN = prop(PropertyKind.OBJECT, None, Binding.INPUT)
_VECTOR_IN = prop(PropertyKind.VECTOR, None, Binding.INPUT)


# =============================================================================
# Helpers
# =============================================================================

def _number(node, name: str) -> Any:
    return node.get_input(name) or 0


def _target(node, context: ExecutionContext) -> Any:
    """The node's Object input, falling back to the ticking entity.

    Object references restored from a saved graph are entity ids; they are
    resolved through the context when the host provides a resolver.
    """
    target = node.get_input('Object')
    if isinstance(target, str) and context.resolve_entity is not None:
        target = context.resolve_entity(target)
    return target or context.entity


def _component(target: Any, name: str) -> Any:
    getter = getattr(target, 'get_component', None)
    component = getter(name) if getter is not None else None
    if component is None:
        raise MissingCapability(name, getattr(target, 'id', target))
    return component


# =============================================================================
# Executors
# =============================================================================

_EXECUTORS: dict[Builtin, NodeFunction] = {}


def _executes(kind: Builtin):
    def decorator(fn: NodeFunction) -> NodeFunction:
        _EXECUTORS[kind] = fn
        return fn
    return decorator


@_executes(Builtin.ON_START)
def _on_start(node, context: ExecutionContext) -> ExecutionResult:
    if not context.first_tick:
        return NO_OP
    return Flow(FlowOut.NEXT)


@_executes(Builtin.ON_UPDATE)
def _on_update(node, context: ExecutionContext) -> ExecutionResult:
    node.set('deltaTime', context.delta_time)
    return Flow(OnUpdateOut.NEXT, values={OnUpdateOut.DELTA_TIME: context.delta_time})


@_executes(Builtin.ON_COLLISION)
def _on_collision(node, context: ExecutionContext) -> ExecutionResult:
    if context.collision is None:
        return NO_OP
    other = context.collision.other
    node.set('otherObject', other)
    return Flow(OnCollisionOut.NEXT, values={OnCollisionOut.OTHER_OBJECT: other})


@_executes(Builtin.BRANCH)
def _branch(node, context: ExecutionContext) -> ExecutionResult:
    return Flow(BranchOut.TRUE if node.get_input('Condition') else BranchOut.FALSE)


@_executes(Builtin.SEQUENCE)
def _sequence(node, context: ExecutionContext) -> ExecutionResult:
    return MultiFlow(tuple(SequenceOut), sequential=True)


@_executes(Builtin.ADD)
def _add(node, context: ExecutionContext) -> ExecutionResult:
    result = _number(node, 'A') + _number(node, 'B')
    node.set('Result', result)
    return Values({MathOut.RESULT: result})


@_executes(Builtin.MULTIPLY)
def _multiply(node, context: ExecutionContext) -> ExecutionResult:
    result = _number(node, 'A') * _number(node, 'B')
    node.set('Result', result)
    return Values({MathOut.RESULT: result})


@_executes(Builtin.GET_POSITION)
def _get_position(node, context: ExecutionContext) -> ExecutionResult:
    target = _target(node, context)
    position = getattr(target, 'position', None)
    if position is None:
        return Values({PositionOut.POSITION: None, PositionOut.X: 0,
                       PositionOut.Y: 0, PositionOut.Z: 0})

    x, y, z = as_xyz(position)
    node.set('X', x)
    node.set('Y', y)
    node.set('Z', z)
    return Values({
        PositionOut.POSITION: Vector3(x, y, z),
        PositionOut.X: x,
        PositionOut.Y: y,
        PositionOut.Z: z,
    })


@_executes(Builtin.SET_POSITION)
def _set_position(node, context: ExecutionContext) -> ExecutionResult:
    target = _target(node, context)
    position = getattr(target, 'position', None)
    if position is None:
        log.warning("SetPosition<%s>: target %r has no position", node.id, target)
        return Flow(FlowOut.NEXT)

    new_position = node.get_input('Position')
    if new_position is not None:
        position.assign(new_position)
    else:
        position.set(_number(node, 'X'), _number(node, 'Y'), _number(node, 'Z'))
    return Flow(FlowOut.NEXT)


@_executes(Builtin.APPLY_FORCE)
def _apply_force(node, context: ExecutionContext) -> ExecutionResult:
    target = _target(node, context)
    force = node.get_input('Force')
    if force is None:
        force = Vector3(_number(node, 'ForceX'), _number(node, 'ForceY'), _number(node, 'ForceZ'))
    elif not isinstance(force, Vector3):
        force = Vector3(*as_xyz(force))

    if target is not None:
        try:
            body = _component(target, RIGID_BODY)
            if not hasattr(body, 'apply_force'):
                raise MissingCapability(f"{RIGID_BODY}.apply_force", getattr(target, 'id', target))
            body.apply_force(force)
        except MissingCapability as e:
            log.warning("ApplyForce<%s>: %s", node.id, e)
    return Flow(FlowOut.NEXT)


@_executes(Builtin.GET_VARIABLE)
def _get_variable(node, context: ExecutionContext) -> ExecutionResult:
    value = None
    if context.variables is not None:
        value = context.variables.get(node.get_input('Name'))
    node.set('Value', value)
    return Flow(VariableOut.NEXT, values={VariableOut.VALUE: value})


@_executes(Builtin.SET_VARIABLE)
def _set_variable(node, context: ExecutionContext) -> ExecutionResult:
    name = node.get_input('Name')
    if context.variables is not None and name:
        context.variables.set(name, node.get_input('Value'))
    return Flow(FlowOut.NEXT)


_missing = [kind.value for kind in Builtin if kind not in _EXECUTORS]
if _missing:
    raise RuntimeError(f"Built-in node kinds without executors: {_missing}")


# =============================================================================
# Catalog
# =============================================================================

def _define(kind: Builtin, category: str, inputs=(), outputs=(),
            properties: Optional[dict] = None, description: str = "") -> NodeType:
    return NodeType(
        name=kind.value,
        category=category,
        inputs=tuple(inputs),
        outputs=tuple(outputs),
        properties=properties or {},
        execute=_EXECUTORS[kind],
        builtin=kind,
        description=description,
    )


def builtin_types() -> list[NodeType]:
    """Fresh NodeType definitions for the whole built-in catalog."""
    return [
        _define(Builtin.ON_START, EVENT_CATEGORY, outputs=FlowOut,
                description="Fires once on the first tick after play()"),
        _define(Builtin.ON_UPDATE, EVENT_CATEGORY, outputs=OnUpdateOut,
                properties={'deltaTime': prop(PropertyKind.FLOAT, 0.0, Binding.OUTPUT)},
                description="Fires every tick and publishes the frame delta"),
        _define(Builtin.ON_COLLISION, EVENT_CATEGORY, outputs=OnCollisionOut,
                properties={'otherObject': prop(PropertyKind.OBJECT, None, Binding.OUTPUT)},
                description="Fires on ticks that carry a collision for the entity"),
        _define(Builtin.BRANCH, "Logic", inputs=(EXEC_PORT, 'Condition'), outputs=BranchOut,
                properties={'Condition': prop(PropertyKind.BOOL, False, Binding.INPUT)}),
        _define(Builtin.SEQUENCE, "Logic", inputs=(EXEC_PORT,), outputs=SequenceOut,
                description="Takes the first connected output only"),
        _define(Builtin.ADD, "Math", inputs=('A', 'B'), outputs=MathOut,
                properties={'A': _FLOAT_IN, 'B': _FLOAT_IN, 'Result': _FLOAT_OUT}),
        _define(Builtin.MULTIPLY, "Math", inputs=('A', 'B'), outputs=MathOut,
                properties={'A': _FLOAT_IN, 'B': _FLOAT_IN, 'Result': _FLOAT_OUT}),
        _define(Builtin.GET_POSITION, "Transform", inputs=('Object',), outputs=PositionOut,
                properties={
                    'Object': _OBJECT_IN,
                    'X': _FLOAT_OUT,
                    'Y': _FLOAT_OUT,
                    'Z': _FLOAT_OUT,
                }),
        _define(Builtin.SET_POSITION, "Transform",
                inputs=(EXEC_PORT, 'Object', 'Position', 'X', 'Y', 'Z'), outputs=FlowOut,
                properties={
                    'Object': _OBJECT_IN,
                    'Position': _VECTOR_IN,
                    'X': _FLOAT_IN,
                    'Y': _FLOAT_IN,
                    'Z': _FLOAT_IN,
                }),
        _define(Builtin.APPLY_FORCE, "Physics",
                inputs=(EXEC_PORT, 'Object', 'Force', 'ForceX', 'ForceY', 'ForceZ'),
                outputs=FlowOut,
                properties={
                    'Object': _OBJECT_IN,
                    'Force': _VECTOR_IN,
                    'ForceX': _FLOAT_IN,
                    'ForceY': _FLOAT_IN,
                    'ForceZ': _FLOAT_IN,
                }),
        _define(Builtin.GET_VARIABLE, "Variables", inputs=(EXEC_PORT, 'Name'),
                outputs=VariableOut,
                properties={
                    'Name': prop(PropertyKind.STRING, "", Binding.INPUT),
                    'Value': prop(PropertyKind.ANY, None, Binding.OUTPUT),
                }),
        _define(Builtin.SET_VARIABLE, "Variables", inputs=(EXEC_PORT, 'Name', 'Value'),
                outputs=FlowOut,
                properties={
                    'Name': prop(PropertyKind.STRING, "", Binding.INPUT),
                    'Value': prop(PropertyKind.ANY, None, Binding.INPUT),
                }),
    ]


def register_builtins(registry) -> None:
    for definition in builtin_types():
        registry.register(definition.name, definition)
