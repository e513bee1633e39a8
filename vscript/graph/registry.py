"""
Node Type Registry: type name -> NodeType.

- register(type_name, definition) adds or replaces (last write wins)
- lookup(type_name) -> NodeType or None
- node_type(...) decorator turns a plain function into a custom node kind
"""

import dataclasses
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional

from vscript.graph.types import NodeFunction, NodeType, PropertySpec
from vscript.logging import get_logger

log = get_logger('registry')


class NodeRegistry:
    """
    Catalog of node kinds. Pure lookup table; holds no per-instance state.

    Re-registering a name replaces its definition. Existing node instances
    keep their property shape until they are reseeded.
    """

    _global: Optional["NodeRegistry"] = None

    def __init__(self) -> None:
        self._types: dict[str, NodeType] = {}

    @classmethod
    def with_builtins(cls) -> "NodeRegistry":
        """A registry preloaded with the built-in catalog."""
        from vscript.graph.builtin import register_builtins

        registry = cls()
        register_builtins(registry)
        return registry

    @classmethod
    def global_registry(cls) -> "NodeRegistry":
        if cls._global is None:
            cls._global = cls.with_builtins()
        return cls._global

    def register(self, type_name: str, definition: NodeType) -> NodeType:
        if not type_name or not type_name.strip():
            raise ValueError("type_name must be non-empty")
        type_name = type_name.strip()
        if definition.name != type_name:
            definition = dataclasses.replace(definition, name=type_name)

        if type_name in self._types:
            log.debug("Replacing node type %s", type_name)
        self._types[type_name] = definition
        return definition

    def unregister(self, type_name: str) -> bool:
        return self._types.pop(type_name, None) is not None

    def lookup(self, type_name: str) -> Optional[NodeType]:
        return self._types.get(type_name)

    def names(self) -> list[str]:
        return sorted(self._types)

    def by_category(self, category: str) -> list[NodeType]:
        return [t for t in self._types.values() if t.category.lower() == category.lower()]

    def __contains__(self, type_name: str) -> bool:
        return type_name in self._types

    def __iter__(self) -> Iterator[NodeType]:
        return iter(list(self._types.values()))

    def __len__(self) -> int:
        return len(self._types)


def node_type(
    name: str,
    category: str = "Custom",
    inputs: Iterable[Any] = (),
    outputs: Iterable[Any] = (),
    properties: Optional[Mapping[str, PropertySpec]] = None,
    registry: Optional[NodeRegistry] = None,
) -> Callable[[NodeFunction], NodeFunction]:
    """Decorator: register a function as the execute step of a custom node kind.

    Example:
        @node_type("Log", category="Debug", inputs=["Exec", "Message"],
                   outputs=["Next"],
                   properties={"Message": prop(PropertyKind.STRING, "", "input")},
                   registry=registry)
        def log_message(node, context):
            print(node.get_input("Message"))
            return Flow("Next")
    """
    reg = registry if registry is not None else NodeRegistry.global_registry()

    def decorator(fn: NodeFunction) -> NodeFunction:
        reg.register(name, NodeType(
            name=name,
            category=category,
            inputs=tuple(inputs),
            outputs=tuple(outputs),
            properties=dict(properties or {}),
            execute=fn,
            description=(fn.__doc__ or "").strip(),
        ))
        return fn
    return decorator
