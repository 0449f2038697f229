"""
Tab Manager — open flows, their saved snapshots and cached validation.

Each open tab is keyed by flow id. For every tab the manager remembers
the last saved (or loaded) nodes/edges and the last ValidationResult,
so the tab bar can show "unsaved" and "has errors" badges without
re-running anything.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from logging import getLogger
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from service.workflow.workflow_model import (
    DEFAULT_GRAPH_ID,
    ValidationResult,
    WorkflowEdge,
    WorkflowNodeInstance,
)

logger = getLogger(__name__)

EdgeKey = Tuple[str, str, Optional[str], Optional[str]]


@dataclass
class FlowTabState:
    """Per-tab bookkeeping.

    ``saved_nodes`` / ``saved_edges`` are ``None`` until the flow has
    been saved or loaded at least once.
    """
    flow_id: str
    name: str = ""
    graph_id: str = DEFAULT_GRAPH_ID
    saved_nodes: Optional[List[WorkflowNodeInstance]] = None
    saved_edges: Optional[List[WorkflowEdge]] = None
    validation: Optional[ValidationResult] = None


def _edge_keys(edges: Iterable[WorkflowEdge]) -> FrozenSet[EdgeKey]:
    return frozenset(
        (e.source, e.target, e.source_handle, e.target_handle) for e in edges
    )


def _node_key(node: WorkflowNodeInstance, with_position: bool) -> Tuple:
    key: Tuple = (node.type_id, json.dumps(node.config, sort_keys=True, default=str))
    if with_position:
        key += (node.position.x, node.position.y)
    return key


def _node_map(nodes: Iterable[WorkflowNodeInstance], with_position: bool) -> Dict[str, Tuple]:
    return {n.id: _node_key(n, with_position) for n in nodes}


class TabManager:
    """Ordered set of open flow tabs."""

    def __init__(self, dirty_on_position: bool = False):
        self.dirty_on_position = dirty_on_position
        self._tabs: List[str] = []
        self._states: Dict[str, FlowTabState] = {}
        self._active: Optional[str] = None

    @property
    def open_tabs(self) -> List[str]:
        return list(self._tabs)

    @property
    def active_flow_id(self) -> Optional[str]:
        return self._active

    def get_state(self, flow_id: str) -> Optional[FlowTabState]:
        return self._states.get(flow_id)

    # ── Tab lifecycle ──

    def open_tab(self, flow_id: str, name: str = "") -> FlowTabState:
        """Open (or focus) the tab for ``flow_id`` and make it active."""
        if flow_id not in self._tabs:
            self._tabs.append(flow_id)
            self._states[flow_id] = FlowTabState(flow_id=flow_id, name=name)
        elif name:
            self._states[flow_id].name = name
        self._active = flow_id
        return self._states[flow_id]

    def activate(self, flow_id: str) -> None:
        if flow_id in self._tabs:
            self._active = flow_id

    def close_tab(self, flow_id: str) -> Optional[str]:
        """Close a tab and return the flow id that is active afterwards.

        Closing the active tab activates its left neighbour (or the new
        first tab); closing any other tab keeps the active one.
        """
        if flow_id not in self._tabs:
            return self._active
        idx = self._tabs.index(flow_id)
        self._tabs.remove(flow_id)
        self._states.pop(flow_id, None)

        if self._active == flow_id:
            self._active = self._tabs[max(0, idx - 1)] if self._tabs else None
        logger.debug(f"Closed tab {flow_id}, active is now {self._active}")
        return self._active

    def rename_tab(self, flow_id: str, name: str) -> None:
        state = self._states.get(flow_id)
        if state is not None:
            state.name = name

    # ── Saved snapshots ──

    def set_saved_state(
        self,
        flow_id: str,
        nodes: Iterable[WorkflowNodeInstance],
        edges: Iterable[WorkflowEdge],
        graph_id: Optional[str] = None,
    ) -> None:
        state = self._states.get(flow_id) or self.open_tab(flow_id)
        state.saved_nodes = [n.model_copy(deep=True) for n in nodes]
        state.saved_edges = [e.model_copy(deep=True) for e in edges]
        if graph_id is not None:
            state.graph_id = graph_id

    def check_flow_has_unsaved_changes(
        self,
        flow_id: str,
        nodes: Iterable[WorkflowNodeInstance],
        edges: Iterable[WorkflowEdge],
    ) -> bool:
        """Compare the live graph with the saved snapshot.

        A flow that has never been saved has no snapshot and reports
        ``False``. Statuses and display names never count; positions
        count only with ``dirty_on_position``.
        """
        state = self._states.get(flow_id)
        if state is None or state.saved_nodes is None or state.saved_edges is None:
            return False

        with_position = self.dirty_on_position
        if _node_map(nodes, with_position) != _node_map(state.saved_nodes, with_position):
            return True
        return _edge_keys(edges) != _edge_keys(state.saved_edges)

    # ── Validation cache ──

    def set_validation(self, flow_id: str, result: Optional[ValidationResult]) -> None:
        state = self._states.get(flow_id)
        if state is None:
            return
        state.validation = result

    def get_validation(self, flow_id: str) -> Optional[ValidationResult]:
        state = self._states.get(flow_id)
        return state.validation if state else None

    def check_flow_has_errors(self, flow_id: str) -> bool:
        """Cached flag; never re-validates."""
        result = self.get_validation(flow_id)
        return result is not None and not result.valid
