"""Tests for the HTTP persistence gateway, using httpx.MockTransport."""

import json

import httpx
import pytest

from service.gateway import (
    ConnectionStatus,
    GatewayError,
    PersistenceGateway,
    RunStatus,
    TransportError,
)
from service.workflow.workflow_model import NodeStatus
from tests.fakes import trigger_to_end_graph


class _Recorder:
    """Routes requests to canned responses and remembers what was sent."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"detail": "not found"})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)


def _gateway(routes, **kwargs):
    recorder = _Recorder(routes)
    gateway = PersistenceGateway(
        "http://backend.test/",
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )
    return gateway, recorder


class TestHeaders:
    @pytest.mark.asyncio
    async def test_scoped_requests_carry_token_and_project(self):
        gateway, recorder = _gateway(
            {("GET", "/api/v1/flows"): (200, [])},
            token="secret",
            project_id="p1",
        )
        await gateway.list_flows()
        await gateway.aclose()

        request = recorder.requests[0]
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["X-Project-Id"] == "p1"

    @pytest.mark.asyncio
    async def test_health_and_projects_are_unscoped(self):
        gateway, recorder = _gateway(
            {
                ("GET", "/api/v1/health"): (200, {"status": "ok"}),
                ("GET", "/api/v1/projects"): (200, {"projects": []}),
            },
            token="secret",
            project_id="p1",
        )
        await gateway.health()
        await gateway.list_projects()
        await gateway.aclose()

        for request in recorder.requests:
            assert "X-Project-Id" not in request.headers
            assert request.headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_explicit_project_overrides_default(self):
        gateway, recorder = _gateway(
            {("GET", "/api/v1/flows"): (200, {"flows": []})},
            project_id="p1",
        )
        await gateway.list_flows(project_id="p2")
        await gateway.aclose()
        assert recorder.requests[0].headers["X-Project-Id"] == "p2"


class TestNormalization:
    @pytest.mark.asyncio
    async def test_run_with_alternate_spellings(self):
        payload = {
            "runId": "r9",
            "flowId": "f1",
            "status": "SUCCESS",
            "node_runs": [
                {"nodeId": "t1", "status": "completed", "durationMs": 12},
                {"nodeId": "r1", "status": "failed", "error": {"message": "bad"}},
            ],
        }
        gateway, _ = _gateway({("GET", "/api/v1/runs/r9"): (200, payload)})
        run = await gateway.get_run("r9")
        await gateway.aclose()

        assert run.id == "r9"
        assert run.flow_id == "f1"
        assert run.status == RunStatus.COMPLETED
        assert run.is_terminal
        assert [t.node_id for t in run.trace] == ["t1", "r1"]
        assert run.trace[0].duration_ms == 12
        assert run.trace[0].node_status == NodeStatus.SUCCESS
        assert run.trace[1].error == "bad"
        assert run.trace[1].node_status == NodeStatus.ERROR

    @pytest.mark.asyncio
    async def test_active_node_is_last_running_entry(self):
        payload = {
            "id": "r1",
            "status": "running",
            "trace": [
                {"node_id": "t1", "status": "success"},
                {"node_id": "a1", "status": "running"},
            ],
        }
        gateway, _ = _gateway({("GET", "/api/v1/runs/r1"): (200, payload)})
        run = await gateway.get_run("r1")
        await gateway.aclose()
        assert run.active_node_id == "a1"

    @pytest.mark.asyncio
    async def test_flow_with_legacy_graph_json_string(self):
        graph_json = json.dumps({
            "id": "g-old",
            "nodes": [{"id": "t1", "type": "ap.trigger.manual", "config": {"message": "x"}}],
            "edges": [],
        })
        gateway, _ = _gateway({
            ("GET", "/api/v1/flows/f1"): (200, {"flow_id": "f1", "name": "Old", "graph_json": graph_json}),
        })
        flow = await gateway.get_flow("f1")
        await gateway.aclose()

        assert flow.id == "f1"
        assert flow.graph.graph_id == "g-old"
        assert flow.graph.nodes[0].type_id == "trigger.manual"

    @pytest.mark.asyncio
    async def test_unreadable_graph_becomes_none(self):
        gateway, _ = _gateway({
            ("GET", "/api/v1/flows/f1"): (200, {"id": "f1", "graph_json": "{broken"}),
        })
        flow = await gateway.get_flow("f1")
        await gateway.aclose()
        assert flow.graph is None

    @pytest.mark.asyncio
    async def test_create_run_sends_flow_and_input(self):
        gateway, recorder = _gateway({
            ("POST", "/api/v1/runs"): (202, {"run_id": "r1", "status": "pending"}),
        })
        ticket = await gateway.create_run("f1", {"message": "hi"}, timeout_seconds=5)
        await gateway.aclose()

        assert ticket.run_id == "r1"
        assert ticket.status == RunStatus.PENDING
        body = json.loads(recorder.requests[0].content)
        assert body == {"flow_id": "f1", "input": {"message": "hi"}, "timeout_seconds": 5}

    @pytest.mark.asyncio
    async def test_test_run_sends_wire_graph(self):
        gateway, recorder = _gateway({
            ("POST", "/api/v1/runs/test"): (200, {"id": "r2", "status": "running"}),
        })
        await gateway.create_test_run(trigger_to_end_graph("g1"), {"message": "hi"})
        await gateway.aclose()

        body = json.loads(recorder.requests[0].content)
        assert body["graph"]["graphId"] == "g1"
        assert body["graph"]["nodes"][0]["typeId"] == "trigger.manual"
        assert body["input"] == {"message": "hi"}

    @pytest.mark.asyncio
    async def test_list_runs_filters_by_flow(self):
        gateway, recorder = _gateway({
            ("GET", "/api/v1/runs"): (200, {"runs": [{"id": "r1", "status": "completed"}]}),
        })
        runs = await gateway.list_runs("f1")
        await gateway.aclose()

        assert [r.id for r in runs] == ["r1"]
        assert recorder.requests[0].url.params["flowId"] == "f1"

    @pytest.mark.asyncio
    async def test_remote_validation_messages(self):
        gateway, _ = _gateway({
            ("POST", "/api/v1/graphs/validate"): (
                200,
                {"valid": False, "errors": [{"nodeId": "t1", "message": "bad"}, "loose"]},
            ),
        })
        result = await gateway.validate_graph(trigger_to_end_graph())
        await gateway.aclose()

        assert not result.valid
        assert result.errors == ["Node t1: bad", "loose"]

    @pytest.mark.asyncio
    async def test_delete_returns_none_on_204(self):
        def handler(request):
            return httpx.Response(204)

        gateway = PersistenceGateway("http://backend.test", transport=httpx.MockTransport(handler))
        assert await gateway.delete_flow("f1") is None
        await gateway.aclose()


class TestErrors:
    @pytest.mark.asyncio
    async def test_detail_string(self):
        gateway, _ = _gateway({("GET", "/api/v1/flows/f1"): (404, {"detail": "Flow not found"})})
        with pytest.raises(GatewayError) as exc_info:
            await gateway.get_flow("f1")
        await gateway.aclose()

        assert exc_info.value.status == 404
        assert exc_info.value.not_found
        assert exc_info.value.message == "Flow not found"

    @pytest.mark.asyncio
    async def test_detail_dict(self):
        gateway, _ = _gateway({
            ("POST", "/api/v1/runs"): (409, {"detail": {"error": "run already active"}}),
        })
        with pytest.raises(GatewayError) as exc_info:
            await gateway.create_run("f1")
        await gateway.aclose()

        assert exc_info.value.status == 409
        assert not exc_info.value.not_found
        assert str(exc_info.value) == "[409] run already active"

    @pytest.mark.asyncio
    async def test_run_without_id_is_invalid_response(self):
        gateway, _ = _gateway({("POST", "/api/v1/runs/test"): (200, {"status": "running"})})
        with pytest.raises(GatewayError) as exc_info:
            await gateway.create_test_run(trigger_to_end_graph())
        await gateway.aclose()

        assert exc_info.value.status == 200
        assert exc_info.value.message.startswith("invalid response: id:")

    @pytest.mark.asyncio
    async def test_unknown_run_status_is_invalid_response(self):
        gateway, _ = _gateway({("GET", "/api/v1/runs/r1"): (200, {"id": "r1", "status": "paused"})})
        with pytest.raises(GatewayError) as exc_info:
            await gateway.get_run("r1")
        await gateway.aclose()

        assert exc_info.value.message.startswith("invalid response: status:")

    @pytest.mark.asyncio
    async def test_non_object_flow_is_invalid_response(self):
        gateway, _ = _gateway({("GET", "/api/v1/flows/f1"): (200, ["not", "a", "flow"])})
        with pytest.raises(GatewayError) as exc_info:
            await gateway.get_flow("f1")
        await gateway.aclose()

        assert exc_info.value.message.startswith("invalid response")

    @pytest.mark.asyncio
    async def test_get_run_falls_back_to_requested_id(self):
        gateway, _ = _gateway({("GET", "/api/v1/runs/r1"): (200, {"status": "running"})})
        run = await gateway.get_run("r1")
        await gateway.aclose()
        assert run.id == "r1"

    @pytest.mark.asyncio
    async def test_connection_failure_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        gateway = PersistenceGateway("http://backend.test", transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError) as exc_info:
            await gateway.list_flows()
        await gateway.aclose()
        assert "http://backend.test" in str(exc_info.value)


class TestHealth:
    @pytest.mark.asyncio
    async def test_connected(self):
        gateway, _ = _gateway({
            ("GET", "/api/v1/health"): (200, {"status": "ok", "version": "1.2.0", "contract_version": 1}),
        })
        health = await gateway.health()
        await gateway.aclose()

        assert health.status == ConnectionStatus.CONNECTED
        assert health.version == "1.2.0"

    @pytest.mark.asyncio
    async def test_contract_mismatch(self):
        gateway, _ = _gateway({
            ("GET", "/api/v1/health"): (200, {"status": "ok", "contractVersion": 7}),
        })
        health = await gateway.health()
        await gateway.aclose()
        assert health.status == ConnectionStatus.MISMATCH

    @pytest.mark.asyncio
    async def test_unreachable_is_offline(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        gateway = PersistenceGateway("http://backend.test", transport=httpx.MockTransport(handler))
        health = await gateway.health()
        await gateway.aclose()

        assert health.status == ConnectionStatus.OFFLINE
        assert health.error

    @pytest.mark.asyncio
    async def test_server_error_is_offline(self):
        gateway, _ = _gateway({("GET", "/api/v1/health"): (503, {"detail": "starting"})})
        health = await gateway.health()
        await gateway.aclose()
        assert health.status == ConnectionStatus.OFFLINE
