"""
Entity - the host object a behavior graph is attached to.

The interpreter only needs a small contract from the host:
- a stable `id`
- a mutable `position` (Vector3)
- `get_component(name)` returning a component or None

`Entity` below is a reference implementation used by tests and simple
hosts; scene graphs can pass their own objects as long as they follow
the same shape.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable


@dataclass
class Vector3:
    """Mutable 3D vector."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def copy(self) -> "Vector3":
        return Vector3(self.x, self.y, self.z)

    def set(self, x: float, y: float, z: float) -> "Vector3":
        self.x, self.y, self.z = x, y, z
        return self

    def assign(self, other: Any) -> "Vector3":
        """Copy components from another vector-like object."""
        return self.set(*as_xyz(other))

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


def as_xyz(value: Any) -> tuple[float, float, float]:
    """Coerce a vector-like value (Vector3, mapping, 3-sequence) to a tuple."""
    if isinstance(value, Vector3):
        return value.as_tuple()
    if isinstance(value, dict):
        return (float(value.get('x', 0.0)), float(value.get('y', 0.0)), float(value.get('z', 0.0)))
    if hasattr(value, 'x') and hasattr(value, 'y'):
        return (float(value.x), float(value.y), float(getattr(value, 'z', 0.0)))
    x, y, z = value
    return (float(x), float(y), float(z))


@runtime_checkable
class ScriptTarget(Protocol):
    """What node functions may rely on when touching an entity."""

    id: str
    position: Vector3

    def get_component(self, name: str) -> Optional[Any]:
        ...


@runtime_checkable
class ForceReceiver(Protocol):
    """A component that accepts forces (e.g. a rigid body)."""

    def apply_force(self, force: Vector3) -> None:
        ...


@dataclass
class Entity:
    """A scene entity that behavior graphs can manipulate."""

    id: str
    entity_type: str = "object"
    position: Vector3 = field(default_factory=Vector3)
    components: dict[str, Any] = field(default_factory=dict)

    def get_component(self, name: str) -> Optional[Any]:
        return self.components.get(name)

    def add_component(self, name: str, component: Any) -> None:
        self.components[name] = component


@dataclass(frozen=True)
class CollisionEvent:
    """A collision seen from `entity`'s side; `other` is the entity it hit."""

    entity: Any
    other: Any
