"""
Run Orchestrator — submits the active graph and observes the run.

State machine::

    idle → submitting → running → completed | error | cancelled | timeout

At most one polling task exists per orchestrator. Starting to observe
another run cancels the previous task before the new one is created,
and every poll response is checked against the run id currently being
observed; answers for any other run are dropped. Once a run reaches a
terminal status it is frozen: later responses for it are ignored and
it is never polled again. A submission reply that arrives after
``stop_polling`` has been called is dropped the same way.

The orchestrator never raises for gateway failures. Public coroutines
return an ``OperationResult``; transport failures additionally degrade
the connection status reported through ``on_connection_change``.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from logging import getLogger
from typing import Any, Callable, Dict, List, Optional

from service.gateway.errors import FlowEditorError, GatewayError, TransportError
from service.gateway.models import ConnectionStatus, Run, RunStatus
from service.workflow.graph_store import GraphStore
from service.workflow.nodes.base import NodeRegistry, get_node_registry, resolve_type_id
from service.workflow.workflow_model import (
    DEFAULT_GRAPH_ID,
    GraphDefinition,
    OperationResult,
)
from service.workflow.workflow_validator import validate_local

logger = getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.5


class RunState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.ERROR, RunState.CANCELLED, RunState.TIMEOUT)


_STATE_FOR_STATUS: Dict[RunStatus, RunState] = {
    RunStatus.PENDING: RunState.RUNNING,
    RunStatus.RUNNING: RunState.RUNNING,
    RunStatus.COMPLETED: RunState.COMPLETED,
    RunStatus.ERROR: RunState.ERROR,
    RunStatus.CANCELLED: RunState.CANCELLED,
    RunStatus.TIMEOUT: RunState.TIMEOUT,
}


def _status_rank(status: RunStatus) -> int:
    if status.is_terminal:
        return 2
    return 1 if status == RunStatus.RUNNING else 0


def manual_trigger_input(graph: GraphDefinition) -> Optional[Dict[str, Any]]:
    """``{"message": …}`` from the graph's manual trigger, if it has one."""
    for node in graph.get_entry_nodes():
        if resolve_type_id(node.type_id) == "trigger.manual":
            return {"message": node.config.get("message") or ""}
    return None


class RunOrchestrator:
    """Executes the graph held by a ``GraphStore`` and tracks its run."""

    def __init__(
        self,
        graph_store: GraphStore,
        gateway: Any,
        registry: Optional[NodeRegistry] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_connection_change: Optional[Callable[[ConnectionStatus], None]] = None,
    ):
        self._graph_store = graph_store
        self._gateway = gateway
        self._registry = registry or get_node_registry()
        self.poll_interval = poll_interval
        self._on_connection_change = on_connection_change

        self.state: RunState = RunState.IDLE
        self.current_run: Optional[Run] = None
        self.runs: List[Run] = []
        self.active_node_id: Optional[str] = None
        self.last_error: Optional[str] = None

        self._poll_task: Optional[asyncio.Task] = None
        self._polling_run_id: Optional[str] = None
        self._submission_id = 0
        self._listeners: List[Callable[["RunOrchestrator"], None]] = []

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def polling_run_id(self) -> Optional[str]:
        return self._polling_run_id

    def subscribe(self, listener: Callable[["RunOrchestrator"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ========================================================================
    # Submission
    # ========================================================================

    async def execute_flow(
        self,
        flow_id: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> OperationResult:
        """Validate the active graph, submit it and start observing the run.

        A persisted flow runs through ``POST /runs``; an unsaved graph is
        sent whole to ``POST /runs/test``. An invalid graph is rejected
        before any network call.
        """
        if self.state == RunState.SUBMITTING:
            return OperationResult.fail("a run is already being submitted")

        graph = self._graph_store.snapshot()
        validation = validate_local(graph, self._registry)
        if not validation.valid:
            logger.info(f"Execution blocked: {len(validation.errors)} validation error(s)")
            return OperationResult(success=False, errors=validation.errors, data=validation)

        self.stop_polling()
        self._graph_store.reset_statuses()
        self.active_node_id = None
        self.last_error = None
        self._set_state(RunState.SUBMITTING)
        submission_id = self._submission_id

        run_input = manual_trigger_input(graph)
        try:
            if flow_id and flow_id != DEFAULT_GRAPH_ID:
                ticket = await self._gateway.create_run(flow_id, run_input or {}, timeout_seconds)
                run = Run(id=ticket.run_id, flow_id=flow_id, status=ticket.status)
            else:
                run = await self._gateway.create_test_run(graph, run_input, timeout_seconds)
        except TransportError as e:
            return self._submission_failed(f"connection error: {e}", submission_id, offline=True)
        except FlowEditorError as e:
            return self._submission_failed(f"run submission failed: {e}", submission_id)

        if submission_id != self._submission_id:
            return self._submission_superseded(run)

        self._report_connection(ConnectionStatus.CONNECTED)
        logger.info(f"Run {run.id} submitted ({run.status.value})")

        self.current_run = None
        self._apply_run(run)
        self.runs.insert(0, run)
        if not run.is_terminal:
            self.start_polling_run(run.id)
        return OperationResult.ok(run)

    def _submission_superseded(self, run: Run) -> OperationResult:
        # Something else took over the run view while the request was in flight.
        logger.info(f"Dropping reply for run {run.id}: submission was superseded")
        if self.state == RunState.SUBMITTING:
            self._set_state(RunState.IDLE)
        return OperationResult(success=False, cancelled=True, data=run)

    def _submission_failed(self, message: str, submission_id: int, offline: bool = False) -> OperationResult:
        logger.warning(message)
        if offline:
            self._report_connection(ConnectionStatus.OFFLINE)
        if submission_id != self._submission_id:
            if self.state == RunState.SUBMITTING:
                self._set_state(RunState.IDLE)
            return OperationResult(success=False, errors=[message], cancelled=True)
        self.last_error = message
        self._set_state(RunState.ERROR)
        return OperationResult.fail(message)

    # ========================================================================
    # Polling
    # ========================================================================

    def start_polling_run(self, run_id: str) -> None:
        """Observe ``run_id``; replaces any polling already in progress.

        Must be called from within a running event loop.
        """
        self.stop_polling()
        self._polling_run_id = run_id
        if self.state != RunState.RUNNING:
            self._set_state(RunState.RUNNING)
        self._poll_task = asyncio.create_task(self._poll_loop(run_id), name=f"poll-run-{run_id}")
        logger.debug(f"Polling run {run_id} every {self.poll_interval}s")

    def stop_polling(self) -> None:
        self._submission_id += 1
        task, self._poll_task = self._poll_task, None
        self._polling_run_id = None
        if task is not None and not task.done():
            task.cancel()

    async def wait_for_completion(self, timeout: Optional[float] = None) -> Optional[Run]:
        """Wait until the current polling task ends (or ``timeout`` passes).

        Polling is not cancelled on timeout. Returns the last observed run.
        """
        task = self._poll_task
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return self.current_run

    async def _poll_loop(self, run_id: str) -> None:
        try:
            while True:
                try:
                    run = await self._gateway.get_run(run_id)
                except TransportError as e:
                    if self._polling_run_id == run_id:
                        logger.warning(f"Lost connection while polling run {run_id}: {e}")
                        self._polling_run_id = None
                        self.last_error = f"connection error: {e}"
                        self._report_connection(ConnectionStatus.OFFLINE)
                        self._notify()
                    return
                except GatewayError as e:
                    if self._polling_run_id == run_id:
                        logger.error(f"Polling run {run_id} failed: {e}")
                        self._polling_run_id = None
                        self.last_error = f"run polling failed: {e}"
                        self.active_node_id = None
                        self._set_state(RunState.ERROR)
                    return

                if self._polling_run_id != run_id:
                    logger.debug(f"Discarding stale response for run {run_id}")
                    return

                self._report_connection(ConnectionStatus.CONNECTED)
                self._apply_run(run)
                if run.is_terminal:
                    self._polling_run_id = None
                    logger.info(f"Run {run_id} finished: {run.status.value}")
                    return

                await asyncio.sleep(self.poll_interval)
        except Exception as e:
            # Unexpected failures end polling in the error state.
            logger.exception(f"Polling run {run_id} crashed: {e}")
            if self._polling_run_id == run_id:
                self._polling_run_id = None
                self.last_error = f"run polling failed: {e}"
                self.active_node_id = None
                self._set_state(RunState.ERROR)
        finally:
            if self._poll_task is asyncio.current_task():
                self._poll_task = None

    # ========================================================================
    # Run operations
    # ========================================================================

    async def cancel_run(self, run_id: Optional[str] = None) -> OperationResult:
        """Ask the backend to cancel a run. Safe to call repeatedly."""
        run_id = run_id or (self.current_run.id if self.current_run else None)
        if not run_id:
            return OperationResult.fail("no run to cancel")

        if self.current_run and self.current_run.id == run_id and self.current_run.is_terminal:
            return OperationResult.ok(self.current_run)

        if self._polling_run_id == run_id:
            self.stop_polling()

        try:
            ticket = await self._gateway.cancel_run(run_id)
        except TransportError as e:
            self._report_connection(ConnectionStatus.OFFLINE)
            return OperationResult.fail(f"connection error: {e}")
        except GatewayError as e:
            # The run may have finished between the last poll and the cancel.
            logger.info(f"Cancel of run {run_id} rejected ({e}), reloading it")
            loaded = await self.load_run(run_id)
            if loaded.success and loaded.data.is_terminal:
                return loaded
            return OperationResult.fail(f"cancel failed: {e}")

        loaded = await self.load_run(run_id)
        if loaded.success:
            return loaded
        if self.current_run and self.current_run.id == run_id:
            self._apply_run(self.current_run.model_copy(update={"status": ticket.status}))
        return OperationResult.ok(self.current_run)

    async def load_run(self, run_id: str) -> OperationResult:
        """Fetch a run, show it, and keep observing it while it is active."""
        if self._polling_run_id and self._polling_run_id != run_id:
            self.stop_polling()
        try:
            run = await self._gateway.get_run(run_id)
        except TransportError as e:
            self._report_connection(ConnectionStatus.OFFLINE)
            return OperationResult.fail(f"connection error: {e}")
        except GatewayError as e:
            return OperationResult.fail(f"could not load run {run_id}: {e}")

        self._report_connection(ConnectionStatus.CONNECTED)
        if self.current_run is None or self.current_run.id != run_id:
            self.current_run = None
            self._graph_store.reset_statuses()
        self._apply_run(run)
        if not self.current_run.is_terminal and self._polling_run_id != run_id:
            self.start_polling_run(run_id)
        return OperationResult.ok(self.current_run)

    async def load_runs(self, flow_id: str) -> OperationResult:
        """Run history of a flow, newest first as the backend returns it."""
        try:
            runs = await self._gateway.list_runs(flow_id)
        except TransportError as e:
            self._report_connection(ConnectionStatus.OFFLINE)
            return OperationResult.fail(f"connection error: {e}")
        except GatewayError as e:
            return OperationResult.fail(f"could not load runs: {e}")
        self.runs = runs
        self._notify()
        return OperationResult.ok(runs)

    async def rerun_flow(self, run_id: str) -> OperationResult:
        """Start a new run from ``run_id``'s inputs; the original is untouched."""
        submission_id = self._submission_id
        try:
            run = await self._gateway.rerun(run_id)
        except TransportError as e:
            self._report_connection(ConnectionStatus.OFFLINE)
            return OperationResult.fail(f"connection error: {e}")
        except GatewayError as e:
            return OperationResult.fail(f"rerun failed: {e}")

        if submission_id != self._submission_id:
            return self._submission_superseded(run)

        self.stop_polling()
        self._graph_store.reset_statuses()
        self.current_run = None
        self._apply_run(run)
        self.runs.insert(0, run)
        if not run.is_terminal:
            self.start_polling_run(run.id)
        return OperationResult.ok(run)

    async def teardown(self) -> None:
        """Cancel the polling task and wait for it to unwind."""
        task = self._poll_task
        self.stop_polling()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ========================================================================
    # Internals
    # ========================================================================

    def _apply_run(self, run: Run) -> None:
        """Fold a run snapshot into orchestrator and node state."""
        current = self.current_run
        if current is not None and current.id == run.id:
            if current.is_terminal:
                return
            if _status_rank(run.status) < _status_rank(current.status):
                logger.debug(f"Ignoring out-of-order status {run.status.value} for run {run.id}")
                return

        self.current_run = run
        self.active_node_id = run.active_node_id
        for entry in run.trace:
            self._graph_store.set_node_status(entry.node_id, entry.node_status)
        if run.error:
            self.last_error = run.error

        self.runs = [run if r.id == run.id else r for r in self.runs]
        self._set_state(_STATE_FOR_STATUS[run.status])

    def _set_state(self, state: RunState) -> None:
        self.state = state
        self._notify()

    def _report_connection(self, status: ConnectionStatus) -> None:
        if self._on_connection_change is not None:
            self._on_connection_change(status)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
