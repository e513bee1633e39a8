"""
Graph executor - walks a behavior graph from its event nodes.

Per tick, every node whose type category is "event" is a root. A node's
ExecutionResult drives the rest of the walk:

1. Published values (Values, or the payload on Flow/MultiFlow) are
   written into the connected input properties, in connection order.
   Each distinct pure target (no Exec input) is then evaluated once.
2. Flow(port) executes every node connected to that port.
3. MultiFlow(ports, sequential) walks ports in order; when sequential,
   only the first live connection of the first connected port is taken.

Before a non-event node runs, pure nodes feeding its inputs that have not
been evaluated during the current root dispatch are pulled first.

Termination: a node is never re-entered while it is already on the
execution stack of the current root dispatch, and the stack depth is
capped at max_depth. Node failures never escape: unknown types, missing
capabilities and exceptions all turn into NoOp for that node only.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Optional

from vscript.errors import MissingCapability
from vscript.graph.model import BehaviorGraph, NodeId, NodeInstance
from vscript.graph.registry import NodeRegistry
from vscript.graph.types import (
    NO_OP,
    ExecutionContext,
    ExecutionResult,
    Flow,
    MultiFlow,
    NodeType,
    port_name,
)
from vscript.logging import emit_record, get_logger, has_sink

log = get_logger('executor')

DEFAULT_MAX_DEPTH = 64


@dataclass
class ExecutionReport:
    """What happened during one execute_graph() call."""
    roots: int = 0
    executed: list[NodeId] = field(default_factory=list)
    refused: int = 0
    failures: int = 0

    def merge(self, other: "ExecutionReport") -> "ExecutionReport":
        self.roots += other.roots
        self.executed.extend(other.executed)
        self.refused += other.refused
        self.failures += other.failures
        return self

    def ran(self, node_id: NodeId) -> bool:
        return node_id in self.executed


@dataclass
class _Dispatch:
    """State of one root dispatch."""
    report: ExecutionReport
    stack: list[NodeId] = field(default_factory=list)
    evaluated: set[NodeId] = field(default_factory=set)


class Executor:
    """
    Runs behavior graphs synchronously within the caller's tick.

    Usage:
        executor = Executor(registry)
        report = executor.execute_graph(graph, ExecutionContext(delta_time=dt, entity=player))
    """

    def __init__(self, registry: NodeRegistry, max_depth: int = DEFAULT_MAX_DEPTH):
        self.registry = registry
        self.max_depth = max_depth

    def execute_graph(
        self,
        graph: BehaviorGraph,
        context: ExecutionContext,
        event_types: Optional[Iterable[str]] = None,
    ) -> ExecutionReport:
        """Run every event node of `graph` as a root.

        Args:
            graph: Graph to execute
            context: Tick context; its variables default to the graph's table
            event_types: Restrict roots to these event type names
        """
        if context.variables is None:
            context = replace(context, variables=graph.variables)
        only = set(event_types) if event_types is not None else None

        report = ExecutionReport()
        for node in graph.nodes():
            node_type = self.registry.lookup(node.type_name)
            if node_type is None or not node_type.is_event:
                continue
            if only is not None and node_type.name not in only:
                continue
            report.roots += 1
            self._execute(graph, node, context, _Dispatch(report))
        return report

    def execute_node(self, graph: BehaviorGraph, node_id: Any,
                     context: ExecutionContext) -> ExecutionReport:
        """Run a single node as if it were a root (editor "run from here")."""
        if context.variables is None:
            context = replace(context, variables=graph.variables)
        node = graph.require_node(node_id)
        report = ExecutionReport(roots=1)
        self._execute(graph, node, context, _Dispatch(report))
        return report

    # --- Traversal ---

    def _execute(self, graph: BehaviorGraph, node: NodeInstance,
                 context: ExecutionContext, dispatch: _Dispatch) -> None:
        if node.id in dispatch.stack:
            dispatch.report.refused += 1
            log.debug("%s: refusing re-entry into %s", graph.id, node.id)
            return
        if len(dispatch.stack) >= self.max_depth:
            dispatch.report.refused += 1
            log.warning("%s: max depth %d reached at %s", graph.id, self.max_depth, node.id)
            return

        dispatch.stack.append(node.id)
        try:
            node_type = self.registry.lookup(node.type_name)
            if node_type is None:
                log.warning("%s: node %s has unknown type %r; skipping",
                            graph.id, node.id, node.type_name)
                return

            if not node_type.is_event:
                self._pull_inputs(graph, node, context, dispatch)

            result = self._invoke(node_type, node, context, dispatch.report)
            dispatch.evaluated.add(node.id)
            self._follow(graph, node, node_type, result, context, dispatch)
        finally:
            dispatch.stack.pop()

    def _invoke(self, node_type: NodeType, node: NodeInstance,
                context: ExecutionContext, report: ExecutionReport) -> ExecutionResult:
        report.executed.append(node.id)
        execute: Optional[Callable] = node_type.execute
        if execute is None:
            return NO_OP

        try:
            result = execute(node, context)
        except MissingCapability as e:
            log.warning("%s<%s>: %s", node_type.name, node.id, e)
            return NO_OP
        except Exception:
            report.failures += 1
            log.exception("%s<%s> raised; treating as NoOp", node_type.name, node.id)
            return NO_OP

        if result is None:
            result = NO_OP
        elif not isinstance(result, ExecutionResult):
            report.failures += 1
            log.error("%s<%s> returned %r, not an ExecutionResult",
                      node_type.name, node.id, result)
            result = NO_OP

        log.node_call(node_type.name, node.id, type(result).__name__)
        if has_sink('executor'):
            emit_record('executor', {
                'type': 'node',
                'node': str(node.id),
                'node_type': node_type.name,
                'result': type(result).__name__,
            })
        return result

    def _follow(self, graph: BehaviorGraph, node: NodeInstance, node_type: NodeType,
                result: ExecutionResult, context: ExecutionContext,
                dispatch: _Dispatch) -> None:
        payload = result.payload
        if payload:
            self._publish(graph, node, node_type, payload, context, dispatch)

        if isinstance(result, Flow):
            if self._check_output(node_type, node, result.port):
                for target in self._targets(graph, node.id, result.port):
                    self._execute(graph, target, context, dispatch)

        elif isinstance(result, MultiFlow):
            for port in result.ports:
                if not self._check_output(node_type, node, port):
                    continue
                targets = self._targets(graph, node.id, port)
                if result.sequential:
                    if targets:
                        self._execute(graph, targets[0], context, dispatch)
                        return
                    continue
                for target in targets:
                    self._execute(graph, target, context, dispatch)

    def _publish(self, graph: BehaviorGraph, node: NodeInstance, node_type: NodeType,
                 payload: Any, context: ExecutionContext, dispatch: _Dispatch) -> None:
        """Write output values into connected inputs, then evaluate pure targets."""
        pure_targets: list[NodeInstance] = []
        for raw_port, value in payload.items():
            port = port_name(raw_port)
            if not self._check_output(node_type, node, port):
                continue
            for connection in graph.connections_from(node.id, port):
                target = graph.node(connection.target_node)
                if target is None:
                    continue
                if not target.set(connection.target_port, value):
                    log.trace("%s: %s has no property %r; value dropped",
                              graph.id, target.id, connection.target_port)
                    continue
                target_type = self.registry.lookup(target.type_name)
                if (target_type is not None and target_type.is_pure
                        and target.id not in dispatch.stack
                        and all(t.id != target.id for t in pure_targets)):
                    pure_targets.append(target)

        for target in pure_targets:
            self._execute(graph, target, context, dispatch)

    def _pull_inputs(self, graph: BehaviorGraph, node: NodeInstance,
                     context: ExecutionContext, dispatch: _Dispatch) -> None:
        """Evaluate pure upstream nodes not yet evaluated in this dispatch."""
        for connection in graph.connections_to(node.id):
            source_id = connection.source_node
            if source_id in dispatch.evaluated or source_id in dispatch.stack:
                continue
            source = graph.node(source_id)
            if source is None:
                continue
            source_type = self.registry.lookup(source.type_name)
            if source_type is not None and source_type.is_pure:
                self._execute(graph, source, context, dispatch)

    def _targets(self, graph: BehaviorGraph, node_id: NodeId, port: str) -> list[NodeInstance]:
        """Live target nodes of a port, in connection order."""
        targets = []
        for connection in graph.connections_from(node_id, port):
            target = graph.node(connection.target_node)
            if target is not None:
                targets.append(target)
        return targets

    def _check_output(self, node_type: NodeType, node: NodeInstance, port: str) -> bool:
        if node_type.has_output(port):
            return True
        log.warning("%s<%s>: result names undeclared output %r",
                    node_type.name, node.id, port)
        return False
