"""
Graph serialization - the portable form of a behavior graph.

The portable form is what a project file embeds for each graph:

    {
      "id": "player",
      "objectId": "player",
      "nodes": [{"id": "node_0_0", "type": "OnUpdate",
                 "position": {"x": 0, "y": 0}, "properties": {"deltaTime": 0.0}}],
      "connections": [{"id": "conn_0", "sourceNodeId": "node_0_0",
                       "sourceOutput": "deltaTime", "targetNodeId": "node_1_0",
                       "targetInput": "A"}],
      "variables": [["score", 0], ["spawn", {"$vector": [0.0, 1.5, 0.0]}]],
      "nextNodeIndex": 2,
      "nextConnection": 1
    }

Only property values are stored; kinds, defaults and bindings come from the
registry at load time. Keys the current type no longer declares are dropped
and newly declared keys keep their defaults.

Unknown types on load are retained as inert placeholders that keep their
raw property values, so re-exporting the graph loses nothing. With
strict=True they raise DeserializationTypeMismatch instead.

Vectors are tagged as {"$vector": [x, y, z]} wherever they appear, so
property values of any kind and variables come back as Vector3. The id
counters are saved too, so ids of nodes removed before saving are never
handed out again after a load.
"""

from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vscript.entity import Vector3, as_xyz
from vscript.errors import DeserializationTypeMismatch, GraphFormatError
from vscript.graph.model import (
    BehaviorGraph,
    Connection,
    NodeId,
    NodeInstance,
    VariableTable,
)
from vscript.graph.registry import NodeRegistry
from vscript.graph.types import PropertyKind, PropertySpec
from vscript.logging import get_logger

log = get_logger('serializer')


class PortablePosition(BaseModel):
    """Editor position of a node."""
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0


class PortableNode(BaseModel):
    """A node instance: identity, type, position and property values."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Node id, node_<index>_<generation>")
    type: str = Field(..., description="Registry key of the node type")
    position: PortablePosition = Field(default_factory=PortablePosition)
    properties: Dict[str, Any] = Field(default_factory=dict, description="Property values only")


class PortableConnection(BaseModel):
    """A connection between an output port and an input port."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    source_node_id: str = Field(..., alias="sourceNodeId")
    source_output: str = Field(..., alias="sourceOutput")
    target_node_id: str = Field(..., alias="targetNodeId")
    target_input: str = Field(..., alias="targetInput")


class PortableGraph(BaseModel):
    """The persisted representation of one behavior graph."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    entity_id: str = Field(..., alias="objectId")
    nodes: List[PortableNode] = Field(default_factory=list)
    connections: List[PortableConnection] = Field(default_factory=list)
    variables: List[Tuple[str, Any]] = Field(default_factory=list)
    next_node_index: int = Field(0, alias="nextNodeIndex", ge=0)
    next_connection: int = Field(0, alias="nextConnection", ge=0)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible dict using the wire field names."""
        return self.model_dump(by_alias=True, mode='json')


# =============================================================================
# Value encoding
# =============================================================================

VECTOR_TAG = "$vector"


def _encode(value: Any) -> Any:
    """Make a property value JSON-friendly.

    Vectors are tagged; entity-like objects are stored by id.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Vector3):
        return {VECTOR_TAG: [value.x, value.y, value.z]}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _encode(v) for k, v in value.items()}
    ref = getattr(value, 'id', None)
    if isinstance(ref, str):
        return ref
    log.warning("Cannot encode %r; storing its repr", value)
    return repr(value)


def _decode(value: Any) -> Any:
    """Inverse of _encode for tagged vectors, at any nesting depth."""
    if isinstance(value, dict):
        if set(value) == {VECTOR_TAG}:
            try:
                x, y, z = value[VECTOR_TAG]
                return Vector3(float(x), float(y), float(z))
            except (TypeError, ValueError) as e:
                raise GraphFormatError(f"Malformed vector {value!r}") from e
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


def _decode_property(spec: PropertySpec, value: Any) -> Any:
    # Untagged {x, y, z} is still accepted for vector-kind properties
    if (spec.kind is PropertyKind.VECTOR and isinstance(value, dict)
            and VECTOR_TAG not in value):
        return Vector3(*as_xyz(value))
    return _decode(value)


# =============================================================================
# Serialize / deserialize
# =============================================================================

def serialize(graph: BehaviorGraph) -> PortableGraph:
    """Convert a graph to its portable form."""
    nodes = [
        PortableNode(
            id=str(node.id),
            type=node.type_name,
            position=PortablePosition(x=node.position[0], y=node.position[1]),
            properties={name: _encode(value) for name, value in node.values().items()},
        )
        for node in graph.nodes()
    ]
    connections = [
        PortableConnection(
            id=c.id,
            source_node_id=str(c.source_node),
            source_output=c.source_port,
            target_node_id=str(c.target_node),
            target_input=c.target_port,
        )
        for c in graph.connections()
    ]
    variables = [(name, _encode(value)) for name, value in graph.variables.items()]
    return PortableGraph(
        id=graph.id,
        entity_id=graph.entity_id,
        nodes=nodes,
        connections=connections,
        variables=variables,
        next_node_index=graph.next_node_index,
        next_connection=graph.next_connection_index,
    )


def _parse_id(text: str) -> NodeId:
    try:
        return NodeId.parse(text)
    except ValueError as e:
        raise GraphFormatError(str(e)) from e


def _restore_node(data: PortableNode, registry: NodeRegistry, strict: bool) -> NodeInstance:
    node_id = _parse_id(data.id)
    position = (data.position.x, data.position.y)
    node_type = registry.lookup(data.type)

    if node_type is None:
        if strict:
            raise DeserializationTypeMismatch(data.id, data.type)
        log.warning("Node %s: type %r is not registered; keeping it as an inert placeholder",
                    data.id, data.type)
        return NodeInstance(node_id, data.type, position, {},
                            raw_properties=_decode(dict(data.properties)))

    node = NodeInstance.from_type(node_id, node_type, position)
    for name, prop in node.properties.items():
        if name in data.properties:
            prop.value = _decode_property(prop.spec, data.properties[name])

    dropped = sorted(set(data.properties) - set(node.properties))
    if dropped:
        log.debug("Node %s: dropping properties no longer declared by %s: %s",
                  data.id, data.type, dropped)
    return node


def _check_ports(graph: BehaviorGraph, connection: Connection) -> None:
    """Reject connections naming ports their endpoint types do not declare.

    Placeholders are exempt: their ports are unknown until the type returns.
    """
    source = graph.node(connection.source_node)
    target = graph.node(connection.target_node)
    source_type = graph.registry.lookup(source.type_name)
    target_type = graph.registry.lookup(target.type_name)
    if source_type is not None and not source_type.has_output(connection.source_port):
        raise GraphFormatError(
            f"Connection {connection.id}: {source_type.name} has no output "
            f"{connection.source_port!r}")
    if target_type is not None and not target_type.has_input(connection.target_port):
        raise GraphFormatError(
            f"Connection {connection.id}: {target_type.name} has no input "
            f"{connection.target_port!r}")


def deserialize(
    portable: Union[PortableGraph, Dict[str, Any]],
    registry: NodeRegistry,
    strict: bool = False,
) -> BehaviorGraph:
    """Rebuild a graph from its portable form.

    Raises:
        GraphFormatError: malformed data (bad ids, duplicates, ports the
            endpoint types do not declare)
        UnknownNodeError: a connection references a node not in the graph
        DeserializationTypeMismatch: unknown node type with strict=True
    """
    if not isinstance(portable, PortableGraph):
        try:
            portable = PortableGraph.model_validate(portable)
        except ValidationError as e:
            raise GraphFormatError("Invalid portable graph", errors=[str(e)]) from e

    graph = BehaviorGraph(portable.entity_id, registry, graph_id=portable.id)

    for node_data in portable.nodes:
        node = _restore_node(node_data, registry, strict)
        try:
            graph.insert_node(node)
        except ValueError as e:
            raise GraphFormatError(str(e)) from e

    for conn_data in portable.connections:
        if graph.connection(conn_data.id) is not None:
            raise GraphFormatError(f"Duplicate connection id {conn_data.id!r}")
        connection = Connection(
            id=conn_data.id,
            source_node=_parse_id(conn_data.source_node_id),
            source_port=conn_data.source_output,
            target_node=_parse_id(conn_data.target_node_id),
            target_port=conn_data.target_input,
        )
        graph.insert_connection(connection)
        _check_ports(graph, connection)

    graph.variables = VariableTable([(name, _decode(value)) for name, value in portable.variables])
    graph.reserve_ids(portable.next_node_index, portable.next_connection)
    return graph


def to_json(graph: BehaviorGraph, indent: Optional[int] = None) -> str:
    """Serialize a graph straight to JSON text."""
    return serialize(graph).model_dump_json(by_alias=True, indent=indent)


def from_json(text: str, registry: NodeRegistry, strict: bool = False) -> BehaviorGraph:
    """Parse JSON text produced by to_json()."""
    try:
        portable = PortableGraph.model_validate_json(text)
    except ValidationError as e:
        raise GraphFormatError("Invalid graph JSON", errors=[str(e)]) from e
    return deserialize(portable, registry, strict=strict)
