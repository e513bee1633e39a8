"""
Behavior graph data model.

A BehaviorGraph owns:
- an arena of NodeInstances addressed by generation-checked NodeIds
- an ordered table of Connections between named ports
- a VariableTable of graph-scoped values

Node ids render as ``node_<index>_<generation>``. A removed node's slot
may be reused, but with a bumped generation, so a stale id never resolves
to the newcomer. Ids handed out by a graph also carry that graph's owner
token; another graph rejects them. The text form omits the token, so text
ids resolve by slot in whichever graph they are given to.
"""

import re
import uuid
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Iterator, Optional, Union

from vscript.errors import (
    DuplicateConnectionError,
    InvalidPortError,
    UnknownConnectionError,
    UnknownNodeError,
    UnknownNodeTypeError,
)
from vscript.graph.types import NodeType, PropertySpec, port_name
from vscript.logging import get_logger

if TYPE_CHECKING:
    from vscript.graph.registry import NodeRegistry

log = get_logger('graph')

_NODE_ID_RE = re.compile(r'^node_(\d+)_(\d+)$')
_CONN_ID_RE = re.compile(r'^conn_(\d+)$')

Position = tuple[float, float]


@dataclass(frozen=True)
class NodeId:
    """Arena slot index plus the slot generation it was issued for.

    `owner` is the issuing graph's token; empty for ids parsed from text.
    """
    index: int
    generation: int = 0
    owner: str = field(default="", repr=False)

    def __str__(self) -> str:
        return f"node_{self.index}_{self.generation}"

    @classmethod
    def parse(cls, text: Union[str, "NodeId"]) -> "NodeId":
        if isinstance(text, NodeId):
            return text
        match = _NODE_ID_RE.match(text)
        if match is None:
            raise ValueError(f"Malformed node id: {text!r}")
        return cls(int(match.group(1)), int(match.group(2)))


ConnectionId = str

NodeRef = Union[NodeId, str]


def _as_position(position: Any) -> Position:
    if position is None:
        return (0.0, 0.0)
    if isinstance(position, dict):
        return (float(position.get('x', 0.0)), float(position.get('y', 0.0)))
    x, y = position
    return (float(x), float(y))


# =============================================================================
# Node instances
# =============================================================================

@dataclass
class Property:
    """One entry of a node's property table."""
    spec: PropertySpec
    value: Any


@dataclass
class NodeInstance:
    """
    A per-graph occurrence of a node type.

    Attributes:
        id: Stable identifier within the graph
        type_name: Registry key of the node's type
        position: Editor position (opaque to execution)
        properties: Property table seeded from the type's declared defaults
        raw_properties: Serialized values kept verbatim when the type was
            unknown at load time (the node is then an inert placeholder)
    """
    id: NodeId
    type_name: str
    position: Position = (0.0, 0.0)
    properties: dict[str, Property] = field(default_factory=dict)
    raw_properties: Optional[dict[str, Any]] = None

    @classmethod
    def from_type(cls, node_id: NodeId, node_type: NodeType,
                  position: Any = None) -> "NodeInstance":
        properties = {
            name: Property(spec, spec.fresh_default())
            for name, spec in node_type.properties.items()
        }
        return cls(node_id, node_type.name, _as_position(position), properties)

    @property
    def is_placeholder(self) -> bool:
        return self.raw_properties is not None

    def get(self, name: str, default: Any = None) -> Any:
        prop = self.properties.get(name)
        return default if prop is None else prop.value

    def set(self, name: str, value: Any) -> bool:
        """Set a declared property. Returns False if it is not declared."""
        prop = self.properties.get(name)
        if prop is None:
            return False
        prop.value = value
        return True

    def get_input(self, name: str) -> Any:
        """Current value of an input: its default or the latest pushed value."""
        return self.get(name)

    def values(self) -> dict[str, Any]:
        """Flat name -> value view of the property table."""
        if self.raw_properties is not None:
            return dict(self.raw_properties)
        return {name: prop.value for name, prop in self.properties.items()}

    def reseed(self, node_type: NodeType) -> None:
        """Rebuild the property table from `node_type`, keeping matching values."""
        current = self.values()
        self.properties = {
            name: Property(spec, current[name] if name in current else spec.fresh_default())
            for name, spec in node_type.properties.items()
        }
        self.raw_properties = None


@dataclass(frozen=True)
class Connection:
    """Directed edge from an output port to an input port."""
    id: ConnectionId
    source_node: NodeId
    source_port: str
    target_node: NodeId
    target_port: str

    def touches(self, node_id: NodeId) -> bool:
        return self.source_node == node_id or self.target_node == node_id


# =============================================================================
# Arena
# =============================================================================

@dataclass
class _Slot:
    generation: int
    node: Optional[NodeInstance] = None


class NodeArena:
    """Generation-checked storage for node instances.

    Iteration follows slot creation order.
    """

    def __init__(self) -> None:
        self._slots: dict[int, _Slot] = {}
        self._free: list[int] = []
        self._next_index = 0
        self._count = 0

    def allocate(self) -> NodeId:
        """Reserve an id for a node that is about to be inserted."""
        if self._free:
            index = self._free[-1]
            return NodeId(index, self._slots[index].generation)
        return NodeId(self._next_index, 0)

    @property
    def next_index(self) -> int:
        """Index the next never-used slot will get."""
        return self._next_index

    def reserve(self, next_index: int) -> None:
        """Keep slots below `next_index` from being handed out fresh."""
        self._next_index = max(self._next_index, next_index)

    def insert(self, node: NodeInstance) -> None:
        """Place `node` in the slot named by its id."""
        node_id = node.id
        slot = self._slots.get(node_id.index)
        if slot is not None and slot.node is not None:
            raise ValueError(f"Slot for {node_id} is occupied by {slot.node.id}")

        if slot is None:
            self._slots[node_id.index] = _Slot(node_id.generation, node)
        else:
            slot.generation = node_id.generation
            slot.node = node
        if node_id.index in self._free:
            self._free.remove(node_id.index)
        self._next_index = max(self._next_index, node_id.index + 1)
        self._count += 1

    def get(self, node_id: NodeId) -> Optional[NodeInstance]:
        slot = self._slots.get(node_id.index)
        if slot is None or slot.generation != node_id.generation:
            return None
        return slot.node

    def remove(self, node_id: NodeId) -> Optional[NodeInstance]:
        node = self.get(node_id)
        if node is None:
            return None
        slot = self._slots[node_id.index]
        slot.node = None
        slot.generation += 1
        self._free.append(node_id.index)
        self._count -= 1
        return node

    def __contains__(self, node_id: NodeId) -> bool:
        return self.get(node_id) is not None

    def __iter__(self) -> Iterator[NodeInstance]:
        for slot in self._slots.values():
            if slot.node is not None:
                yield slot.node

    def __len__(self) -> int:
        return self._count


# =============================================================================
# Variables
# =============================================================================

class VariableTable:
    """Ordered, graph-scoped variables shared by every node of a graph."""

    def __init__(self, pairs: Optional[list] = None):
        self._values: dict[str, Any] = {}
        for name, value in pairs or []:
            self._values[str(name)] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self._values[name] = value

    def delete(self, name: str) -> bool:
        return self._values.pop(name, _MISSING) is not _MISSING

    def clear(self) -> None:
        self._values.clear()

    def names(self) -> list[str]:
        return list(self._values)

    def items(self) -> list[tuple[str, Any]]:
        return list(self._values.items())

    def to_pairs(self) -> list[list[Any]]:
        return [[name, value] for name, value in self._values.items()]

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VariableTable):
            return NotImplemented
        return self.items() == other.items()

    def __repr__(self) -> str:
        return f"VariableTable({self._values!r})"


_MISSING = object()


# =============================================================================
# Graph
# =============================================================================

class BehaviorGraph:
    """
    Mutable node graph owned by one entity.

    Editing operations validate against the registry and raise a
    GraphEditError subclass before touching the graph.

    Usage:
        graph = BehaviorGraph('player', registry)
        on_update = graph.add_node('OnUpdate', (0, 0))
        branch = graph.add_node('Branch', (200, 0))
        graph.connect(on_update, 'Next', branch, 'Exec')
    """

    def __init__(self, entity_id: str, registry: "NodeRegistry",
                 graph_id: Optional[str] = None):
        self.id = graph_id or entity_id
        self.entity_id = entity_id
        self.registry = registry
        self.variables = VariableTable()
        self.uid = uuid.uuid4().hex
        self._nodes = NodeArena()
        self._connections: dict[ConnectionId, Connection] = {}
        self._next_connection = 0

    def __repr__(self) -> str:
        return (f"BehaviorGraph(id={self.id!r}, entity_id={self.entity_id!r}, "
                f"nodes={len(self._nodes)}, connections={len(self._connections)})")

    # --- Queries ---

    def node(self, node_id: NodeRef) -> Optional[NodeInstance]:
        """Resolve an id issued by this graph, or a text id by slot."""
        local = self._local(node_id)
        return None if local is None else self._nodes.get(local)

    def require_node(self, node_id: NodeRef) -> NodeInstance:
        node = self.node(node_id)
        if node is None:
            raise UnknownNodeError(node_id, self.id)
        return node

    def nodes(self) -> list[NodeInstance]:
        return list(self._nodes)

    def connection(self, connection_id: ConnectionId) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    def connections_from(self, node_id: NodeRef, port: Optional[str] = None) -> list[Connection]:
        """Outgoing connections of a node, optionally restricted to one port."""
        node_id = self._local(node_id)
        return [
            c for c in self._connections.values()
            if c.source_node == node_id and (port is None or c.source_port == port)
        ]

    def connections_to(self, node_id: NodeRef, port: Optional[str] = None) -> list[Connection]:
        node_id = self._local(node_id)
        return [
            c for c in self._connections.values()
            if c.target_node == node_id and (port is None or c.target_port == port)
        ]

    def __contains__(self, node_id: NodeRef) -> bool:
        return self.node(node_id) is not None

    def __len__(self) -> int:
        return len(self._nodes)

    # --- Editing ---

    def add_node(self, type_name: str, position: Any = None) -> NodeId:
        """Instantiate a node of a registered type.

        Raises:
            UnknownNodeTypeError: type_name is not registered
        """
        node_type = self.registry.lookup(type_name)
        if node_type is None:
            raise UnknownNodeTypeError(type_name, self.registry.names())

        node_id = self._own(self._nodes.allocate())
        self._nodes.insert(NodeInstance.from_type(node_id, node_type, position))
        log.debug("%s: added %s as %s", self.id, type_name, node_id)
        return node_id

    def connect(self, source: NodeRef, source_port: str,
                target: NodeRef, target_port: str) -> ConnectionId:
        """Connect an output port to an input port.

        Raises:
            UnknownNodeError: either endpoint is not part of this graph
            UnknownNodeTypeError: an endpoint is an inert placeholder
            InvalidPortError: a port is not declared with the right direction
            DuplicateConnectionError: the same edge already exists
        """
        source_port = port_name(source_port)
        target_port = port_name(target_port)
        source_node = self.require_node(source)
        target_node = self.require_node(target)

        source_type = self._type_of(source_node)
        target_type = self._type_of(target_node)
        if not source_type.has_output(source_port):
            raise InvalidPortError(source_type.name, source_port, 'output')
        if not target_type.has_input(target_port):
            raise InvalidPortError(target_type.name, target_port, 'input')

        for existing in self._connections.values():
            if (existing.source_node == source_node.id and existing.source_port == source_port
                    and existing.target_node == target_node.id
                    and existing.target_port == target_port):
                raise DuplicateConnectionError(existing.id)

        connection = Connection(
            id=f"conn_{self._next_connection}",
            source_node=source_node.id,
            source_port=source_port,
            target_node=target_node.id,
            target_port=target_port,
        )
        self._next_connection += 1
        self._connections[connection.id] = connection
        return connection.id

    def disconnect(self, connection_id: ConnectionId) -> Connection:
        """Remove a single connection.

        Raises:
            UnknownConnectionError: no such connection
        """
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            raise UnknownConnectionError(connection_id)
        return connection

    def remove_node(self, node_id: NodeRef) -> NodeInstance:
        """Remove a node and every connection touching it."""
        node = self.require_node(node_id)
        for connection_id in [c.id for c in self._connections.values() if c.touches(node.id)]:
            del self._connections[connection_id]
        self._nodes.remove(node.id)
        log.debug("%s: removed %s", self.id, node.id)
        return node

    def reseed(self) -> int:
        """Rebuild every node's property table from the current registry.

        Placeholders whose type has since been registered come back to
        life. Returns the number of reseeded nodes.
        """
        count = 0
        for node in self._nodes:
            node_type = self.registry.lookup(node.type_name)
            if node_type is not None:
                node.reseed(node_type)
                count += 1
        return count

    # --- Restoration (used by the serializer) ---

    @property
    def next_node_index(self) -> int:
        return self._nodes.next_index

    @property
    def next_connection_index(self) -> int:
        return self._next_connection

    def reserve_ids(self, next_node_index: int = 0, next_connection_index: int = 0) -> None:
        """Never hand out ids below these counters (restores saved counters)."""
        self._nodes.reserve(next_node_index)
        self._next_connection = max(self._next_connection, next_connection_index)

    def insert_node(self, node: NodeInstance) -> None:
        """Insert a fully built node under its existing slot id.

        The id is re-stamped with this graph's owner token.
        """
        node.id = self._own(node.id)
        if self._nodes.get(node.id) is not None:
            raise ValueError(f"Duplicate node id {node.id} in graph {self.id!r}")
        self._nodes.insert(node)

    def insert_connection(self, connection: Connection) -> None:
        """Insert a connection under its existing id; endpoints must exist."""
        connection = replace(
            connection,
            source_node=self._own(connection.source_node),
            target_node=self._own(connection.target_node),
        )
        for endpoint in (connection.source_node, connection.target_node):
            if self._nodes.get(endpoint) is None:
                raise UnknownNodeError(endpoint, self.id)
        self._connections[connection.id] = connection
        match = _CONN_ID_RE.match(connection.id)
        if match:
            self._next_connection = max(self._next_connection, int(match.group(1)) + 1)

    def _own(self, node_id: NodeId) -> NodeId:
        return replace(node_id, owner=self.uid)

    def _local(self, node_id: NodeRef) -> Optional[NodeId]:
        """This graph's stamped form of `node_id`, or None for foreign/malformed ids."""
        try:
            parsed = NodeId.parse(node_id)
        except ValueError:
            return None
        if parsed.owner and parsed.owner != self.uid:
            return None
        return self._own(parsed)

    def _type_of(self, node: NodeInstance) -> NodeType:
        node_type = self.registry.lookup(node.type_name)
        if node_type is None:
            raise UnknownNodeTypeError(node.type_name)
        return node_type
