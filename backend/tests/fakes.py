"""Test helpers: graph builders and an in-memory gateway."""

import asyncio
from collections import Counter
from typing import Any, Dict, List, Optional

from service.gateway.errors import GatewayError
from service.gateway.models import (
    ConnectionStatus,
    Flow,
    HealthCheck,
    Project,
    Run,
    RunStatus,
    RunTicket,
)
from service.workflow.workflow_model import (
    GraphDefinition,
    ValidationResult,
    WorkflowEdge,
    WorkflowNodeInstance,
)


def node(node_id: str, type_id: str, **config: Any) -> WorkflowNodeInstance:
    return WorkflowNodeInstance(id=node_id, type_id=type_id, config=config)


def edge(edge_id: str, source: str, target: str, **kwargs: Any) -> WorkflowEdge:
    return WorkflowEdge(id=edge_id, source=source, target=target, **kwargs)


def trigger_to_end_graph(graph_id: str = "default") -> GraphDefinition:
    """trigger.manual t1 → response.end r1"""
    return GraphDefinition(
        graph_id=graph_id,
        nodes=[
            node("t1", "trigger.manual", message="hi"),
            node("r1", "response.end", output={}),
        ],
        edges=[edge("e1", "t1", "r1")],
    )


class FakeGateway:
    """Async stand-in for PersistenceGateway that counts every call.

    ``run_responses[run_id]`` is the sequence of Run snapshots returned
    by ``get_run``; the last one repeats. ``fail_with[method]`` makes a
    method raise. ``blocks[key]`` holds a call until the event is set.
    """

    def __init__(self) -> None:
        self.calls: Counter = Counter()
        self.fail_with: Dict[str, Exception] = {}
        self.blocks: Dict[str, asyncio.Event] = {}
        self.run_responses: Dict[str, List[Run]] = {}
        self.next_run_id = "run-1"
        self.submitted: List[Dict[str, Any]] = []
        self.flows: Dict[str, Flow] = {}
        self.projects: Dict[str, Project] = {}
        self.validation = ValidationResult(valid=True)
        self.project_id: Optional[str] = None
        self._flow_seq = 0

    async def _enter(self, name: str, key: Optional[str] = None) -> None:
        self.calls[name] += 1
        block = self.blocks.get(key or name)
        if block is not None:
            await block.wait()
        exc = self.fail_with.get(name)
        if exc is not None:
            raise exc

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    # ── health ──

    async def health(self) -> HealthCheck:
        await self._enter("health")
        return HealthCheck(status=ConnectionStatus.CONNECTED, version="test")

    # ── runs ──

    async def create_run(self, flow_id, input=None, timeout_seconds=None) -> RunTicket:
        await self._enter("create_run")
        self.submitted.append({"flow_id": flow_id, "input": input, "timeout": timeout_seconds})
        return RunTicket(run_id=self.next_run_id, status=RunStatus.RUNNING)

    async def create_test_run(self, graph, input=None, timeout_seconds=None) -> Run:
        await self._enter("create_test_run")
        self.submitted.append({"graph": graph, "input": input, "timeout": timeout_seconds})
        return Run(id=self.next_run_id, status=RunStatus.RUNNING)

    async def get_run(self, run_id: str) -> Run:
        await self._enter("get_run", key=f"get_run:{run_id}")
        seq = self.run_responses.get(run_id)
        if not seq:
            raise GatewayError(404, f"run {run_id} not found")
        return seq.pop(0) if len(seq) > 1 else seq[0]

    async def list_runs(self, flow_id: str) -> List[Run]:
        await self._enter("list_runs")
        return [seq[-1] for seq in self.run_responses.values() if seq[-1].flow_id == flow_id]

    async def cancel_run(self, run_id: str) -> RunTicket:
        await self._enter("cancel_run")
        self.run_responses[run_id] = [Run(id=run_id, status=RunStatus.CANCELLED)]
        return RunTicket(run_id=run_id, status=RunStatus.CANCELLED)

    async def rerun(self, run_id: str) -> Run:
        await self._enter("rerun")
        new_id = f"{run_id}-rerun"
        return Run(id=new_id, status=RunStatus.RUNNING)

    async def validate_graph(self, graph: GraphDefinition) -> ValidationResult:
        await self._enter("validate_graph")
        return self.validation

    # ── flows ──

    async def list_flows(self, project_id=None) -> List[Flow]:
        await self._enter("list_flows")
        return list(self.flows.values())

    async def get_flow(self, flow_id: str) -> Flow:
        await self._enter("get_flow", key=f"get_flow:{flow_id}")
        if flow_id not in self.flows:
            raise GatewayError(404, "Flow not found")
        return self.flows[flow_id]

    async def create_flow(self, name, graph, description=None, project_id=None) -> Flow:
        await self._enter("create_flow")
        self._flow_seq += 1
        flow = Flow(id=f"flow-{self._flow_seq}", name=name, graph=graph, description=description)
        self.flows[flow.id] = flow
        return flow

    async def update_flow(self, flow_id, name, graph=None, description=None) -> Flow:
        await self._enter("update_flow")
        if flow_id not in self.flows:
            raise GatewayError(404, "Flow not found")
        current = self.flows[flow_id]
        flow = current.model_copy(update={
            "name": name,
            "graph": graph if graph is not None else current.graph,
        })
        self.flows[flow_id] = flow
        return flow

    async def delete_flow(self, flow_id: str) -> None:
        await self._enter("delete_flow")
        self.flows.pop(flow_id, None)

    # ── projects ──

    async def list_projects(self) -> List[Project]:
        await self._enter("list_projects")
        return list(self.projects.values())

    async def create_project(self, name, description=None) -> Project:
        await self._enter("create_project")
        project = Project(id=f"p-{len(self.projects) + 1}", name=name, description=description)
        self.projects[project.id] = project
        return project

    async def update_project(self, project_id, name=None, description=None) -> Project:
        await self._enter("update_project")
        project = self.projects[project_id].model_copy(update={"name": name})
        self.projects[project_id] = project
        return project

    async def delete_project(self, project_id: str) -> None:
        await self._enter("delete_project")
        self.projects.pop(project_id, None)

    async def aclose(self) -> None:
        self.calls["aclose"] += 1


