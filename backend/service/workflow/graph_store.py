"""
Graph Store — in-memory owner of the graph open in the editor.

All writes to the live ``GraphDefinition`` go through this class.
Every mutation commits a *new* list for ``nodes`` / ``edges`` (existing
lists are never modified), so observers can detect changes by identity.

The store enforces exactly one structural invariant: no edge refers to
a node that is not in the graph once a node removal completes. Semantic
checks (schemas, topology) belong to ``workflow_validator``.
"""

from __future__ import annotations

from logging import getLogger
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from service.workflow.workflow_model import (
    CONTRACT_VERSION,
    DEFAULT_GRAPH_ID,
    GraphDefinition,
    NodeStatus,
    WorkflowEdge,
    WorkflowNodeInstance,
)

logger = getLogger(__name__)

NodesUpdater = Callable[[List[WorkflowNodeInstance]], Iterable[WorkflowNodeInstance]]
EdgesUpdater = Callable[[List[WorkflowEdge]], Iterable[WorkflowEdge]]
Listener = Callable[["GraphStore"], None]


def _as_node(value: Union[WorkflowNodeInstance, Dict[str, Any]]) -> WorkflowNodeInstance:
    if isinstance(value, WorkflowNodeInstance):
        return value
    return WorkflowNodeInstance.model_validate(value)


def _as_edge(value: Union[WorkflowEdge, Dict[str, Any]]) -> WorkflowEdge:
    if isinstance(value, WorkflowEdge):
        return value
    return WorkflowEdge.model_validate(value)


class GraphStore:
    """Mutable holder of one GraphDefinition with change notification."""

    def __init__(self, graph: Optional[GraphDefinition] = None) -> None:
        self._graph_id = DEFAULT_GRAPH_ID
        self._contract_version = CONTRACT_VERSION
        self._nodes: List[WorkflowNodeInstance] = []
        self._edges: List[WorkflowEdge] = []
        self._selected_node_id: Optional[str] = None
        self._listeners: List[Listener] = []
        if graph is not None:
            self.replace(graph)

    # ── Read access ──

    @property
    def graph_id(self) -> str:
        return self._graph_id

    @property
    def contract_version(self) -> int:
        return self._contract_version

    @property
    def nodes(self) -> List[WorkflowNodeInstance]:
        return self._nodes

    @property
    def edges(self) -> List[WorkflowEdge]:
        return self._edges

    @property
    def selected_node_id(self) -> Optional[str]:
        return self._selected_node_id

    def get_node(self, node_id: str) -> Optional[WorkflowNodeInstance]:
        for n in self._nodes:
            if n.id == node_id:
                return n
        return None

    def snapshot(self) -> GraphDefinition:
        """Deep copy of the current graph, safe to hand to other tasks."""
        return GraphDefinition(
            graph_id=self._graph_id,
            contract_version=self._contract_version,
            nodes=list(self._nodes),
            edges=list(self._edges),
        ).model_copy(deep=True)

    # ── Bulk replacement ──

    def set_nodes(
        self,
        nodes_or_updater: Union[Iterable[WorkflowNodeInstance], NodesUpdater, None],
    ) -> None:
        """Replace all nodes, or apply a transform to the current list."""
        if callable(nodes_or_updater):
            result = nodes_or_updater(list(self._nodes))
        else:
            result = nodes_or_updater
        self._commit(nodes=[_as_node(n) for n in (result or [])])

    def set_edges(
        self,
        edges_or_updater: Union[Iterable[WorkflowEdge], EdgesUpdater, None],
    ) -> None:
        """Replace all edges, or apply a transform to the current list."""
        if callable(edges_or_updater):
            result = edges_or_updater(list(self._edges))
        else:
            result = edges_or_updater
        self._commit(edges=[_as_edge(e) for e in (result or [])])

    def replace(self, graph: GraphDefinition) -> None:
        """Swap in a whole graph (import, flow switch)."""
        self._graph_id = graph.graph_id
        self._contract_version = graph.contract_version
        self._selected_node_id = None
        self._commit(nodes=list(graph.nodes), edges=list(graph.edges))

    def reset(self) -> None:
        """Back to an empty, unsaved graph."""
        self.replace(GraphDefinition())

    def set_graph_id(self, graph_id: str) -> None:
        self._graph_id = graph_id
        self._notify()

    def select_node(self, node_id: Optional[str]) -> None:
        self._selected_node_id = node_id
        self._notify()

    # ── Node operations ──

    def upsert_node(self, node: Union[WorkflowNodeInstance, Dict[str, Any]]) -> None:
        """Insert ``node`` or replace the node with the same id. Edges are untouched."""
        node = _as_node(node)
        updated = list(self._nodes)
        for i, existing in enumerate(updated):
            if existing.id == node.id:
                updated[i] = node
                break
        else:
            updated.append(node)
        self._commit(nodes=updated)

    def update_node_config(self, node_id: str, patch: Dict[str, Any]) -> None:
        """Shallow-merge ``patch`` into the node's config.

        Unknown ``node_id`` is a no-op; check ``get_node`` if it matters.
        """
        if self.get_node(node_id) is None:
            logger.debug(f"update_node_config ignored, no node {node_id}")
            return
        self._commit(nodes=[
            n.model_copy(update={"config": {**n.config, **patch}}) if n.id == node_id else n
            for n in self._nodes
        ])

    def set_node_status(self, node_id: str, status: NodeStatus) -> None:
        if self.get_node(node_id) is None:
            return
        self._commit(nodes=[
            n.model_copy(update={"status": status}) if n.id == node_id else n
            for n in self._nodes
        ])

    def reset_statuses(self) -> None:
        if all(n.status == NodeStatus.IDLE for n in self._nodes):
            return
        self._commit(nodes=[
            n if n.status == NodeStatus.IDLE else n.model_copy(update={"status": NodeStatus.IDLE})
            for n in self._nodes
        ])

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge attached to it, in one commit."""
        nodes = [n for n in self._nodes if n.id != node_id]
        edges = [e for e in self._edges if e.source != node_id and e.target != node_id]
        removed_edges = len(self._edges) - len(edges)
        if self._selected_node_id == node_id:
            self._selected_node_id = None
        self._commit(nodes=nodes, edges=edges)
        if removed_edges:
            logger.debug(f"Removed node {node_id} and {removed_edges} attached edge(s)")

    # ── Edge operations ──

    def add_edge(
        self,
        edge: Union[WorkflowEdge, Dict[str, Any], Iterable[Union[WorkflowEdge, Dict[str, Any]]]],
    ) -> None:
        """Append one edge or a batch. No semantic checks are made here."""
        if isinstance(edge, (WorkflowEdge, dict)):
            new_edges = [_as_edge(edge)]
        else:
            new_edges = [_as_edge(e) for e in edge]
        self._commit(edges=[*self._edges, *new_edges])

    def remove_edge(self, edge_id: str) -> None:
        self._commit(edges=[e for e in self._edges if e.id != edge_id])

    # ── Observers ──

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ── Internals ──

    def _commit(
        self,
        nodes: Optional[List[WorkflowNodeInstance]] = None,
        edges: Optional[List[WorkflowEdge]] = None,
    ) -> None:
        if nodes is not None:
            self._nodes = nodes
        if edges is not None:
            self._edges = edges
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
