"""
Script Engine - the host-facing facade of the behavior graph interpreter.

The engine:
1. Owns the node registry, the graph store and the executor
2. Exposes graph editing (create/add/connect/disconnect/remove)
3. Runs every attached graph once per host tick while playing
4. Queues collisions reported by the host for the next tick
5. Serializes and loads graphs in their portable form
6. Notifies listeners of play/stop and graph lifecycle events

Usage:
    engine = ScriptEngine(resolve_entity=scene.get_entity)
    graph = engine.create_graph(player)
    tick = engine.add_node(player, 'OnUpdate')
    move = engine.add_node(player, 'SetPosition')
    engine.connect(player, tick, 'Next', move, 'Exec')

    engine.play()
    # In game loop:
    engine.update(dt)
"""

from typing import Any, Callable, Optional, Union

from vscript.config import RuntimeConfig
from vscript.entity import CollisionEvent
from vscript.errors import UnknownGraphError
from vscript.graph.executor import ExecutionReport, Executor
from vscript.graph.model import BehaviorGraph, ConnectionId, NodeId, NodeInstance
from vscript.graph.registry import NodeRegistry
from vscript.graph.serializer import PortableGraph, deserialize, from_json, serialize
from vscript.graph.store import GraphStore
from vscript.graph.types import ExecutionContext
from vscript.logging import create_sink, get_logger, get_module_config, has_sink, register_sink

log = get_logger('engine')

EntityRef = Any
Listener = Callable[[dict[str, Any]], None]

EVENT_TYPES = ('play', 'stop', 'graph_created', 'graph_removed')


def entity_id_of(entity: EntityRef) -> str:
    """Accept an entity object or a bare entity id."""
    if isinstance(entity, str):
        return entity
    return entity.id


class ScriptEngine:
    """
    Manages behavior graphs for a scene and runs them every frame.

    Args:
        resolve_entity: Host lookup from entity id to entity. Graphs whose
            entity cannot be resolved are skipped for the tick. Without a
            resolver, graphs run with no entity in their context.
        registry: Node registry (default: a fresh one with built-ins)
        config: Runtime settings (default: from environment)
    """

    def __init__(
        self,
        resolve_entity: Optional[Callable[[str], Any]] = None,
        registry: Optional[NodeRegistry] = None,
        config: Optional[RuntimeConfig] = None,
    ):
        self.config = config if config is not None else RuntimeConfig.from_env()
        self.config.apply_logging()

        self.registry = registry if registry is not None else NodeRegistry.with_builtins()
        self.store = GraphStore(self.registry)
        self.executor = Executor(self.registry, max_depth=self.config.max_depth)

        self._resolve_entity = resolve_entity
        self._playing = False
        self.elapsed_time = 0.0
        self.frame = 0

        # Entities whose graph has had its first tick since play()
        self._started: set[str] = set()
        # Collisions reported since the last tick, per entity id
        self._pending_collisions: dict[str, list[CollisionEvent]] = {}
        self._listeners: dict[str, list[Listener]] = {}

        if get_module_config('executor').get('enabled') and not has_sink('executor'):
            register_sink('executor', create_sink('executor'))

    # --- Play state ---

    @property
    def is_playing(self) -> bool:
        return self._playing

    def play(self) -> None:
        """Start executing graphs on update()."""
        if self._playing:
            return
        self._playing = True
        self._started.clear()
        self.elapsed_time = 0.0
        self.frame = 0
        log.info("Playing %d graph(s)", len(self.store))
        self._dispatch('play')

    def stop(self) -> None:
        """Stop executing graphs; update() becomes a no-op."""
        if not self._playing:
            return
        self._playing = False
        self._pending_collisions.clear()
        log.info("Stopped")
        self._dispatch('stop')

    def update(self, dt: float) -> dict[str, ExecutionReport]:
        """
        Run every attached graph for one frame.

        Args:
            dt: Delta time in seconds

        Returns:
            Execution report per entity id (empty when stopped)
        """
        if not self._playing:
            return {}

        self.elapsed_time += dt
        self.frame += 1
        reports: dict[str, ExecutionReport] = {}

        for graph in self.store:
            entity = None
            if self._resolve_entity is not None:
                entity = self._resolve_entity(graph.entity_id)
                if entity is None:
                    log.trace("Entity %s not in scene; skipping its graph", graph.entity_id)
                    continue
            reports[graph.entity_id] = self._tick_graph(graph, entity, dt)

        return reports

    def _tick_graph(self, graph: BehaviorGraph, entity: Any, dt: float) -> ExecutionReport:
        first_tick = graph.entity_id not in self._started
        self._started.add(graph.entity_id)
        collisions = self._pending_collisions.pop(graph.entity_id, [])

        context = ExecutionContext(
            delta_time=dt,
            entity=entity,
            collision=collisions[0] if collisions else None,
            elapsed=self.elapsed_time,
            first_tick=first_tick,
            resolve_entity=self._resolve_entity,
        )
        report = self.executor.execute_graph(graph, context)

        # Further collisions this tick only re-run collision events
        for collision in collisions[1:]:
            context = ExecutionContext(
                delta_time=dt,
                entity=entity,
                collision=collision,
                elapsed=self.elapsed_time,
                resolve_entity=self._resolve_entity,
            )
            report.merge(self.executor.execute_graph(graph, context, event_types=('OnCollision',)))
        return report

    def notify_collision(self, entity: EntityRef, other: EntityRef, mutual: bool = False) -> None:
        """
        Report a collision; OnCollision nodes see it on the next update().

        Args:
            entity: The entity whose graph should react
            other: The entity it collided with
            mutual: Also report the collision from `other`'s side
        """
        if not self._playing:
            return
        self._pending_collisions.setdefault(entity_id_of(entity), []).append(
            CollisionEvent(entity, other))
        if mutual:
            self._pending_collisions.setdefault(entity_id_of(other), []).append(
                CollisionEvent(other, entity))

    def execute_graph(self, entity: EntityRef,
                      context: Optional[ExecutionContext] = None) -> Optional[ExecutionReport]:
        """Run one graph outside update(); ignored while stopped."""
        if not self._playing:
            return None
        graph = self.store.require(entity_id_of(entity))
        if context is None:
            context = ExecutionContext(
                entity=None if isinstance(entity, str) else entity,
                elapsed=self.elapsed_time,
                resolve_entity=self._resolve_entity,
            )
        return self.executor.execute_graph(graph, context)

    # --- Graph CRUD ---

    def create_graph(self, entity: EntityRef) -> BehaviorGraph:
        """Create the behavior graph for an entity.

        Raises:
            GraphExistsError: the entity already has one
        """
        graph = self.store.create(entity_id_of(entity))
        self._dispatch('graph_created', entity_id=graph.entity_id, graph_id=graph.id)
        return graph

    def remove_graph(self, entity: EntityRef) -> bool:
        """Detach an entity's graph. Returns False if it had none."""
        entity_id = entity_id_of(entity)
        graph = self.store.remove(entity_id)
        if graph is None:
            return False
        self._started.discard(entity_id)
        self._pending_collisions.pop(entity_id, None)
        self._dispatch('graph_removed', entity_id=entity_id, graph_id=graph.id)
        return True

    def graph_for(self, entity: EntityRef) -> Optional[BehaviorGraph]:
        return self.store.get(entity_id_of(entity))

    def _graph(self, target: Union[BehaviorGraph, EntityRef]) -> BehaviorGraph:
        if isinstance(target, BehaviorGraph):
            if self.store.get(target.entity_id) is not target:
                raise UnknownGraphError(target.entity_id)
            return target
        return self.store.require(entity_id_of(target))

    def add_node(self, target: Union[BehaviorGraph, EntityRef], type_name: str,
                 position: Any = None) -> NodeId:
        return self._graph(target).add_node(type_name, position)

    def connect(self, target: Union[BehaviorGraph, EntityRef],
                source: Any, source_port: str, dest: Any, dest_port: str) -> ConnectionId:
        return self._graph(target).connect(source, source_port, dest, dest_port)

    def disconnect(self, target: Union[BehaviorGraph, EntityRef],
                   connection_id: ConnectionId) -> None:
        self._graph(target).disconnect(connection_id)

    def remove_node(self, target: Union[BehaviorGraph, EntityRef], node_id: Any) -> NodeInstance:
        return self._graph(target).remove_node(node_id)

    def reseed(self) -> int:
        """Rebuild property tables of every graph after registry changes."""
        return sum(graph.reseed() for graph in self.store)

    # --- Serialization ---

    def serialize_graph(self, entity: EntityRef) -> PortableGraph:
        return serialize(self.store.require(entity_id_of(entity)))

    def load_graph(self, data: Union[PortableGraph, dict, str]) -> BehaviorGraph:
        """Deserialize a graph and attach it to its entity.

        Accepts a PortableGraph, its dict form or JSON text.

        Raises:
            GraphExistsError: the entity already has a graph
            GraphFormatError: malformed data
            DeserializationTypeMismatch: unknown node type with strict_load
        """
        strict = self.config.strict_load
        if isinstance(data, str):
            graph = from_json(data, self.registry, strict=strict)
        else:
            graph = deserialize(data, self.registry, strict=strict)
        self.store.attach(graph)
        self._dispatch('graph_created', entity_id=graph.entity_id, graph_id=graph.id)
        return graph

    # --- Listeners ---

    def add_listener(self, event_type: str, callback: Listener) -> None:
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type {event_type!r}; expected one of {EVENT_TYPES}")
        self._listeners.setdefault(event_type, []).append(callback)

    def remove_listener(self, event_type: str, callback: Listener) -> bool:
        callbacks = self._listeners.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)
            return True
        return False

    def _dispatch(self, event_type: str, **data: Any) -> None:
        event = {'type': event_type, **data}
        for callback in list(self._listeners.get(event_type, [])):
            try:
                callback(event)
            except Exception:
                log.exception("Listener for %r failed", event_type)
