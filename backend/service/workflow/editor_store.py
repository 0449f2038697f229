"""
Editor Store — the object a UI (or script) talks to.

``EditorStore`` is built once and handed to every consumer. It owns the
graph store, tab manager, run orchestrator and gateway client, and
exposes flow-level operations on top of them::

    store = EditorStore(EditorConfig.get_default_instance())
    await store.check_connection()
    await store.load_flow("flow-123")
    store.graph_store.update_node_config("t1", {"message": "hi"})
    result = await store.execute_flow()
    ...
    await store.teardown()

Every public coroutine returns an ``OperationResult`` (or a model that
carries its own status, such as ``HealthCheck``) and never raises for
validation, transport or backend errors.
"""

from __future__ import annotations

from logging import getLogger
from typing import List, Optional

from service.config.editor_config import EditorConfig
from service.gateway.client import PersistenceGateway
from service.gateway.errors import GatewayError, TransportError
from service.gateway.models import ConnectionStatus, Flow, HealthCheck, Project
from service.logging import setup_logging
from service.workflow import graph_io
from service.workflow.graph_store import GraphStore
from service.workflow.nodes import register_all_nodes
from service.workflow.nodes.base import NodeRegistry, get_node_registry
from service.workflow.run_orchestrator import RunOrchestrator
from service.workflow.tab_manager import TabManager
from service.workflow.templates import get_example
from service.workflow.workflow_model import (
    DEFAULT_GRAPH_ID,
    GraphDefinition,
    OperationResult,
    ValidationResult,
)
from service.workflow.workflow_validator import validate_local, validate_remote

logger = getLogger(__name__)

UNTITLED_FLOW_NAME = "Untitled flow"


class EditorStore:
    """Facade wiring registry, graph, tabs, runs and the backend client."""

    def __init__(
        self,
        config: Optional[EditorConfig] = None,
        gateway: Optional[PersistenceGateway] = None,
        registry: Optional[NodeRegistry] = None,
        graph_store: Optional[GraphStore] = None,
    ):
        self.config = config or EditorConfig.get_default_instance()
        self.registry = registry or get_node_registry()
        self.graph_store = graph_store or GraphStore()
        self._owns_gateway = gateway is None
        self.gateway = gateway or PersistenceGateway.from_config(self.config)
        self.tabs = TabManager(dirty_on_position=self.config.dirty_on_position)
        self.orchestrator = RunOrchestrator(
            self.graph_store,
            self.gateway,
            registry=self.registry,
            poll_interval=self.config.poll_interval,
            on_connection_change=self._set_connection_status,
        )

        self.connection_status = ConnectionStatus.OFFLINE
        self.flows: List[Flow] = []
        self.projects: List[Project] = []
        self.selected_flow_id: Optional[str] = None
        self.selected_project_id: Optional[str] = self.config.project_id or None

        self._load_request_id = 0

    @classmethod
    def from_env(cls) -> "EditorStore":
        """Store configured from FLOW_EDITOR_* variables, with console logging."""
        config = EditorConfig.get_default_instance()
        setup_logging(config.log_level)
        register_all_nodes()
        logger.info(f"Editor config: {config.to_dict()}")
        return cls(config)

    def _set_connection_status(self, status: ConnectionStatus) -> None:
        if status != self.connection_status:
            logger.info(f"Connection status: {self.connection_status.value} → {status.value}")
        self.connection_status = status

    def _transport_failed(self, action: str, error: TransportError) -> OperationResult:
        logger.warning(f"{action} failed, backend unreachable: {error}")
        self._set_connection_status(ConnectionStatus.OFFLINE)
        return OperationResult.fail(f"connection error: {error}")

    # ========================================================================
    # Connection
    # ========================================================================

    async def check_connection(self) -> HealthCheck:
        health = await self.gateway.health()
        self._set_connection_status(health.status)
        return health

    # ========================================================================
    # Flows
    # ========================================================================

    async def load_flows(self) -> OperationResult:
        try:
            flows = await self.gateway.list_flows(self.selected_project_id)
        except TransportError as e:
            self.flows = []
            return self._transport_failed("Loading flows", e)
        except GatewayError as e:
            self.flows = []
            return OperationResult.fail(f"could not load flows: {e}")
        self.flows = flows
        return OperationResult.ok(flows)

    async def load_flow(self, flow_id: str) -> OperationResult:
        """Make ``flow_id`` the active graph.

        If several loads overlap, only the most recent one is applied;
        earlier ones return ``cancelled=True``. An unknown flow opens an
        empty canvas.
        """
        self._load_request_id += 1
        request_id = self._load_request_id

        flow: Optional[Flow] = None
        try:
            flow = await self.gateway.get_flow(flow_id)
        except TransportError as e:
            if request_id != self._load_request_id:
                return OperationResult(success=False, cancelled=True)
            return self._transport_failed(f"Loading flow {flow_id}", e)
        except GatewayError as e:
            if request_id != self._load_request_id:
                return OperationResult(success=False, cancelled=True)
            if not e.not_found:
                return OperationResult.fail(f"could not load flow {flow_id}: {e}")
            logger.info(f"Flow {flow_id} not found on the backend, opening an empty canvas")

        if request_id != self._load_request_id:
            logger.debug(f"Discarding stale load of flow {flow_id}")
            return OperationResult(success=False, cancelled=True)

        graph = flow.graph if flow and flow.graph else GraphDefinition()
        graph = graph.model_copy(update={
            "graph_id": flow_id,
            "nodes": [self.registry.migrate_node(n) for n in graph.nodes],
        })

        self.orchestrator.stop_polling()
        self.graph_store.replace(graph)
        self.graph_store.reset_statuses()
        self.selected_flow_id = flow_id

        self.tabs.open_tab(flow_id, flow.name if flow else "")
        self.tabs.set_saved_state(flow_id, self.graph_store.nodes, self.graph_store.edges, flow_id)
        self.tabs.set_validation(flow_id, ValidationResult(valid=True))

        logger.info(f"Loaded flow {flow_id}: {len(graph.nodes)} nodes, {len(graph.edges)} edges")
        return OperationResult.ok(flow)

    def new_flow(self) -> None:
        """Start an empty, unsaved graph."""
        self._load_request_id += 1
        self.orchestrator.stop_polling()
        self.graph_store.reset()
        self.selected_flow_id = None

    async def save_flow(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> OperationResult:
        """Persist the active graph, creating the flow if it is new."""
        graph = self.graph_store.snapshot()
        previous_id = self.selected_flow_id
        state = self.tabs.get_state(previous_id) if previous_id else None
        flow_name = name or (state.name if state and state.name else UNTITLED_FLOW_NAME)

        try:
            flow = await self._write_flow(previous_id, flow_name, graph, description)
        except TransportError as e:
            return self._transport_failed("Saving flow", e)
        except GatewayError as e:
            return OperationResult.fail(f"save failed: {e}")

        if previous_id and previous_id != flow.id:
            self.tabs.close_tab(previous_id)
        self.selected_flow_id = flow.id
        self.graph_store.set_graph_id(flow.id)

        self.tabs.open_tab(flow.id, flow.name or flow_name)
        self.tabs.set_saved_state(flow.id, self.graph_store.nodes, self.graph_store.edges, flow.id)
        self.tabs.set_validation(flow.id, None)

        self.flows = [f for f in self.flows if f.id != flow.id]
        self.flows.insert(0, flow)
        logger.info(f"Saved flow {flow.id} ({flow.name})")
        return OperationResult.ok(flow)

    async def _write_flow(
        self,
        flow_id: Optional[str],
        name: str,
        graph: GraphDefinition,
        description: Optional[str],
    ) -> Flow:
        if flow_id and flow_id != DEFAULT_GRAPH_ID:
            try:
                return await self.gateway.update_flow(flow_id, name, graph, description)
            except GatewayError as e:
                if not e.not_found:
                    raise
                logger.info(f"Flow {flow_id} no longer exists, creating it anew")
        return await self.gateway.create_flow(name, graph, description, self.selected_project_id)

    async def rename_flow(self, flow_id: str, name: str) -> OperationResult:
        name = name.strip()
        if not name:
            return OperationResult.fail("flow name cannot be empty")
        try:
            flow = await self.gateway.update_flow(flow_id, name)
        except TransportError as e:
            return self._transport_failed("Renaming flow", e)
        except GatewayError as e:
            return OperationResult.fail(f"rename failed: {e}")
        self.flows = [flow if f.id == flow_id else f for f in self.flows]
        self.tabs.rename_tab(flow_id, name)
        return OperationResult.ok(flow)

    async def delete_flow(self, flow_id: str) -> OperationResult:
        try:
            await self.gateway.delete_flow(flow_id)
        except TransportError as e:
            return self._transport_failed("Deleting flow", e)
        except GatewayError as e:
            return OperationResult.fail(f"delete failed: {e}")
        self.flows = [f for f in self.flows if f.id != flow_id]
        if flow_id in self.tabs.open_tabs:
            await self.close_flow_tab(flow_id)
        return OperationResult.ok()

    # ========================================================================
    # Tabs
    # ========================================================================

    async def open_flow_tab(self, flow_id: str) -> OperationResult:
        if flow_id == self.selected_flow_id and flow_id in self.tabs.open_tabs:
            self.tabs.activate(flow_id)
            return OperationResult.ok()
        return await self.load_flow(flow_id)

    async def close_flow_tab(self, flow_id: str) -> OperationResult:
        """Close a tab; if it was active, switch to its left neighbour."""
        was_active = flow_id == self.selected_flow_id
        next_id = self.tabs.close_tab(flow_id)
        if not was_active:
            return OperationResult.ok(next_id)
        if next_id is None:
            self.new_flow()
            return OperationResult.ok(None)
        result = await self.load_flow(next_id)
        if not result.success and not result.cancelled:
            return result
        return OperationResult.ok(next_id)

    def has_unsaved_changes(self, flow_id: Optional[str] = None) -> bool:
        """Only the active flow's live graph is compared."""
        flow_id = flow_id or self.selected_flow_id
        if not flow_id or flow_id != self.selected_flow_id:
            return False
        return self.tabs.check_flow_has_unsaved_changes(
            flow_id, self.graph_store.nodes, self.graph_store.edges,
        )

    def has_errors(self, flow_id: Optional[str] = None) -> bool:
        flow_id = flow_id or self.selected_flow_id
        return bool(flow_id) and self.tabs.check_flow_has_errors(flow_id)

    # ========================================================================
    # Projects
    # ========================================================================

    async def load_projects(self) -> OperationResult:
        try:
            self.projects = await self.gateway.list_projects()
        except TransportError as e:
            return self._transport_failed("Loading projects", e)
        except GatewayError as e:
            return OperationResult.fail(f"could not load projects: {e}")
        return OperationResult.ok(self.projects)

    async def select_project(self, project_id: Optional[str]) -> OperationResult:
        """Scope the gateway to ``project_id`` and reload its flows."""
        self.selected_project_id = project_id
        self.gateway.project_id = project_id
        return await self.load_flows()

    async def create_project(self, name: str, description: Optional[str] = None) -> OperationResult:
        try:
            project = await self.gateway.create_project(name, description)
        except TransportError as e:
            return self._transport_failed("Creating project", e)
        except GatewayError as e:
            return OperationResult.fail(f"could not create project: {e}")
        self.projects.append(project)
        return OperationResult.ok(project)

    async def update_project(
        self,
        project_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> OperationResult:
        try:
            project = await self.gateway.update_project(project_id, name, description)
        except TransportError as e:
            return self._transport_failed("Updating project", e)
        except GatewayError as e:
            return OperationResult.fail(f"could not update project: {e}")
        self.projects = [project if p.id == project_id else p for p in self.projects]
        return OperationResult.ok(project)

    async def delete_project(self, project_id: str) -> OperationResult:
        try:
            await self.gateway.delete_project(project_id)
        except TransportError as e:
            return self._transport_failed("Deleting project", e)
        except GatewayError as e:
            return OperationResult.fail(f"could not delete project: {e}")
        self.projects = [p for p in self.projects if p.id != project_id]
        if self.selected_project_id == project_id:
            await self.select_project(None)
        return OperationResult.ok()

    # ========================================================================
    # Validation, import / export
    # ========================================================================

    def validate_local(self) -> ValidationResult:
        result = validate_local(self.graph_store.snapshot(), self.registry)
        if self.selected_flow_id:
            self.tabs.set_validation(self.selected_flow_id, result)
        return result

    async def validate_remote(self) -> ValidationResult:
        flow_id = self.selected_flow_id
        result = await validate_remote(self.graph_store.snapshot(), self.gateway)
        if flow_id and flow_id == self.selected_flow_id:
            self.tabs.set_validation(flow_id, result)
        return result

    def export_graph(self) -> str:
        return graph_io.export_graph(self.graph_store.snapshot())

    def import_graph(self, json_string: str) -> OperationResult:
        result = graph_io.import_graph(json_string, self.graph_store, self.registry)
        if result.success:
            self.orchestrator.stop_polling()
            if self.selected_flow_id:
                self.tabs.set_validation(self.selected_flow_id, ValidationResult(valid=True))
        return result

    def load_example(self, name: str) -> OperationResult:
        graph = get_example(name)
        if graph is None:
            return OperationResult.fail(f"unknown example: {name}")
        return self.import_graph(graph_io.export_graph(graph))

    # ========================================================================
    # Runs
    # ========================================================================

    async def execute_flow(self, timeout_seconds: Optional[float] = None) -> OperationResult:
        result = await self.orchestrator.execute_flow(self.selected_flow_id, timeout_seconds)
        if isinstance(result.data, ValidationResult) and self.selected_flow_id:
            self.tabs.set_validation(self.selected_flow_id, result.data)
        return result

    async def cancel_run(self, run_id: Optional[str] = None) -> OperationResult:
        return await self.orchestrator.cancel_run(run_id)

    async def load_run(self, run_id: str) -> OperationResult:
        return await self.orchestrator.load_run(run_id)

    async def load_runs(self, flow_id: Optional[str] = None) -> OperationResult:
        flow_id = flow_id or self.selected_flow_id
        if not flow_id:
            return OperationResult.fail("no flow selected")
        return await self.orchestrator.load_runs(flow_id)

    async def rerun_flow(self, run_id: str) -> OperationResult:
        return await self.orchestrator.rerun_flow(run_id)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def teardown(self) -> None:
        """Stop polling and release the HTTP client if this store created it."""
        await self.orchestrator.teardown()
        if self._owns_gateway:
            await self.gateway.aclose()
