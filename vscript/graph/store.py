"""Graph store: each entity owns at most one behavior graph."""

from typing import Iterator, Optional

from vscript.errors import GraphExistsError, UnknownGraphError
from vscript.graph.model import BehaviorGraph
from vscript.graph.registry import NodeRegistry
from vscript.logging import get_logger

log = get_logger('store')


class GraphStore:
    """
    Maps entity ids to their behavior graphs.

    There is no implicit replacement: creating or attaching a graph for an
    entity that already has one raises GraphExistsError. Detach first.
    """

    def __init__(self, registry: NodeRegistry):
        self.registry = registry
        self._graphs: dict[str, BehaviorGraph] = {}

    def create(self, entity_id: str, graph_id: Optional[str] = None) -> BehaviorGraph:
        if entity_id in self._graphs:
            raise GraphExistsError(entity_id)
        graph = BehaviorGraph(entity_id, self.registry, graph_id=graph_id)
        self._graphs[entity_id] = graph
        log.debug("Created graph %s for %s", graph.id, entity_id)
        return graph

    def attach(self, graph: BehaviorGraph) -> BehaviorGraph:
        """Attach an already built graph (e.g. a deserialized one)."""
        if graph.entity_id in self._graphs:
            raise GraphExistsError(graph.entity_id)
        self._graphs[graph.entity_id] = graph
        return graph

    def get(self, entity_id: str) -> Optional[BehaviorGraph]:
        return self._graphs.get(entity_id)

    def require(self, entity_id: str) -> BehaviorGraph:
        graph = self._graphs.get(entity_id)
        if graph is None:
            raise UnknownGraphError(entity_id)
        return graph

    def remove(self, entity_id: str) -> Optional[BehaviorGraph]:
        """Detach and discard an entity's graph. Missing entities are ignored."""
        graph = self._graphs.pop(entity_id, None)
        if graph is not None:
            log.debug("Removed graph %s for %s", graph.id, entity_id)
        return graph

    def entity_ids(self) -> list[str]:
        return list(self._graphs)

    def clear(self) -> None:
        self._graphs.clear()

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._graphs

    def __iter__(self) -> Iterator[BehaviorGraph]:
        return iter(list(self._graphs.values()))

    def __len__(self) -> int:
        return len(self._graphs)
