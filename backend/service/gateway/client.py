"""
Persistence Gateway — async HTTP client for the flow backend.

All endpoints live under ``{base_url}/api/v1``. Requests carry an
optional ``Authorization: Bearer`` token and, except for health,
project and auth endpoints, an ``X-Project-Id`` header.

Usage::

    async with PersistenceGateway("http://localhost:8000", token="…") as gw:
        flows = await gw.list_flows()
        ticket = await gw.create_run(flows[0].id, {"message": "hi"})
        run = await gw.get_run(ticket.run_id)

Non-2xx answers raise ``GatewayError``; network failures raise
``TransportError``. Payloads are returned as the canonical models in
``service.gateway.models``.
"""

from __future__ import annotations

import json
from logging import getLogger
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from service.gateway.errors import FlowEditorError, GatewayError, TransportError
from service.gateway.models import (
    ConnectionStatus,
    Flow,
    HealthCheck,
    Project,
    Run,
    RunTicket,
)
from service.workflow.graph_io import graph_to_wire
from service.workflow.workflow_model import CONTRACT_VERSION, GraphDefinition, ValidationResult

if TYPE_CHECKING:
    from service.config.editor_config import EditorConfig

logger = getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

API_PREFIX = "/api/v1"
DEFAULT_TIMEOUT = 30.0

# Endpoints that are not scoped to a project.
_UNSCOPED_PREFIXES = ("/health", "/projects", "/auth")

__all__ = [
    "API_PREFIX",
    "PersistenceGateway",
    "FlowEditorError",
    "GatewayError",
    "TransportError",
]


def _error_message(response: httpx.Response) -> str:
    """Best human-readable message from an error response.

    The backend answers ``{"detail": "msg"}``, ``{"detail": {"error": …}}``
    or ``{"message": …}``; anything else falls back to the status code.
    """
    fallback = f"HTTP error {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return response.text or fallback
    if not isinstance(body, dict):
        return fallback
    detail = body.get("detail")
    if isinstance(detail, str):
        return detail
    if isinstance(detail, dict):
        return detail.get("error") or detail.get("message") or fallback
    if isinstance(detail, list) and detail:
        # FastAPI request validation errors
        first = detail[0]
        if isinstance(first, dict) and first.get("msg"):
            return str(first["msg"])
    return body.get("message") or fallback


def _unwrap_list(payload: Any, *keys: str) -> List[Any]:
    """Accept a bare list or ``{key: [...]}`` for any of ``keys``."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


def _invalid_response(status: int, model: Type[BaseModel], error: Exception) -> GatewayError:
    if isinstance(error, ValidationError):
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or model.__name__}: {err['msg']}"
            for err in error.errors()[:3]
        )
    else:
        detail = str(error)
    return GatewayError(status, f"invalid response: {detail}")


def _validation_message(item: Any) -> str:
    if isinstance(item, dict):
        message = item.get("message") or item.get("error") or json.dumps(item)
        node_id = item.get("nodeId") or item.get("node_id")
        return f"Node {node_id}: {message}" if node_id else message
    return str(item)


class PersistenceGateway:
    """Typed async client for the persistence backend."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        project_id: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        contract_version: int = CONTRACT_VERSION,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.project_id = project_id
        self.contract_version = contract_version
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}{API_PREFIX}",
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_config(
        cls,
        config: "EditorConfig",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "PersistenceGateway":
        return cls(
            base_url=config.api_url,
            token=config.api_token or None,
            project_id=config.project_id or None,
            timeout=config.request_timeout,
            contract_version=config.contract_version,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "PersistenceGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ── Transport ──

    def _headers(self, path: str, project_id: Optional[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.token and not path.startswith("/auth"):
            headers["Authorization"] = f"Bearer {self.token}"
        if project_id and not path.startswith(_UNSCOPED_PREFIXES):
            headers["X-Project-Id"] = project_id
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        _, data = await self._send(method, path, **kwargs)
        return data

    async def _request_model(
        self,
        model: Type[M],
        method: str,
        path: str,
        *,
        defaults: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> M:
        """Send a request and parse the body as ``model``.

        A 2xx body that does not fit the model raises ``GatewayError``.
        """
        status, data = await self._send(method, path, **kwargs)
        if defaults is not None and (data is None or isinstance(data, dict)):
            data = {**defaults, **(data or {})}
        try:
            return model.model_validate(data)
        except (ValueError, TypeError) as e:
            logger.warning(f"{method} {path}: unreadable {model.__name__} payload: {e}")
            raise _invalid_response(status, model, e) from e

    async def _request_list(
        self,
        model: Type[M],
        keys: tuple,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> List[M]:
        status, data = await self._send(method, path, **kwargs)
        try:
            return [model.model_validate(item) for item in _unwrap_list(data, *keys)]
        except (ValueError, TypeError) as e:
            logger.warning(f"{method} {path}: unreadable {model.__name__} list: {e}")
            raise _invalid_response(status, model, e) from e

    async def _send(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        project_id: Optional[str] = None,
    ) -> Tuple[int, Any]:
        headers = self._headers(path, project_id or self.project_id)
        try:
            response = await self._client.request(
                method,
                path,
                json=body,
                params=params,
                headers=headers,
            )
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} failed: {e!r}")
            raise TransportError(
                f"Failed to connect to server at {self.base_url}: {e}"
            ) from e

        logger.debug(f"{method} {path} -> {response.status_code}")

        if response.is_error:
            raise GatewayError(response.status_code, _error_message(response))

        if response.status_code == 204 or not response.content:
            return response.status_code, None
        try:
            return response.status_code, response.json()
        except ValueError as e:
            raise GatewayError(response.status_code, "invalid JSON in response") from e

    # ── Health & contracts ──

    async def health(self) -> HealthCheck:
        """Connection status; never raises."""
        try:
            data = await self._request("GET", "/health")
        except FlowEditorError as e:
            return HealthCheck(status=ConnectionStatus.OFFLINE, error=str(e))

        data = data if isinstance(data, dict) else {}
        version = data.get("version")
        if data.get("status") != "ok":
            return HealthCheck(
                status=ConnectionStatus.OFFLINE,
                version=version,
                error=f"backend status: {data.get('status')}",
            )

        server_contract = data.get("contract_version", data.get("contractVersion"))
        if server_contract is not None and str(server_contract) != str(self.contract_version):
            return HealthCheck(
                status=ConnectionStatus.MISMATCH,
                version=version,
                error=(
                    f"backend contract version {server_contract}, "
                    f"editor expects {self.contract_version}"
                ),
            )
        return HealthCheck(status=ConnectionStatus.CONNECTED, version=version)

    async def get_contract_version(self) -> str:
        data = await self._request("GET", "/contracts/version")
        return str(data.get("version", "")) if isinstance(data, dict) else ""

    # ── Flows ──

    async def list_flows(self, project_id: Optional[str] = None) -> List[Flow]:
        return await self._request_list(
            Flow, ("flows", "items"), "GET", "/flows", project_id=project_id,
        )

    async def get_flow(self, flow_id: str) -> Flow:
        return await self._request_model(Flow, "GET", f"/flows/{flow_id}")

    async def create_flow(
        self,
        name: str,
        graph: GraphDefinition,
        description: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> Flow:
        body: Dict[str, Any] = {"name": name, "graph": graph_to_wire(graph)}
        if description is not None:
            body["description"] = description
        if project_id or self.project_id:
            body["projectId"] = project_id or self.project_id
        return await self._request_model(Flow, "POST", "/flows", body=body, project_id=project_id)

    async def update_flow(
        self,
        flow_id: str,
        name: str,
        graph: Optional[GraphDefinition] = None,
        description: Optional[str] = None,
    ) -> Flow:
        body: Dict[str, Any] = {"name": name}
        if graph is not None:
            body["graph"] = graph_to_wire(graph)
        if description is not None:
            body["description"] = description
        return await self._request_model(Flow, "PUT", f"/flows/{flow_id}", body=body)

    async def delete_flow(self, flow_id: str) -> None:
        await self._request("DELETE", f"/flows/{flow_id}")

    # ── Runs ──

    async def create_run(
        self,
        flow_id: str,
        input: Optional[Dict[str, Any]] = None,
        timeout_seconds: Optional[float] = None,
    ) -> RunTicket:
        """Start a run of a persisted flow. Returns immediately."""
        body: Dict[str, Any] = {"flow_id": flow_id, "input": input or {}}
        if timeout_seconds is not None:
            body["timeout_seconds"] = timeout_seconds
        return await self._request_model(RunTicket, "POST", "/runs", body=body)

    async def create_test_run(
        self,
        graph: GraphDefinition,
        input: Optional[Dict[str, Any]] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Run:
        """Run an unsaved graph in memory on the server."""
        body: Dict[str, Any] = {"graph": graph_to_wire(graph)}
        if input is not None:
            body["input"] = input
        if timeout_seconds is not None:
            body["timeout_seconds"] = timeout_seconds
        return await self._request_model(Run, "POST", "/runs/test", body=body)

    async def list_runs(self, flow_id: str) -> List[Run]:
        return await self._request_list(
            Run, ("runs", "items"), "GET", "/runs", params={"flowId": flow_id},
        )

    async def get_run(self, run_id: str) -> Run:
        return await self._request_model(
            Run, "GET", f"/runs/{run_id}", defaults={"id": run_id},
        )

    async def cancel_run(self, run_id: str) -> RunTicket:
        return await self._request_model(
            RunTicket, "POST", f"/runs/{run_id}/cancel", body={}, defaults={"run_id": run_id},
        )

    async def rerun(self, run_id: str) -> Run:
        """Start a new run with the inputs of ``run_id``."""
        return await self._request_model(Run, "POST", f"/runs/{run_id}/rerun", body={})

    # ── Validation ──

    async def validate_graph(self, graph: GraphDefinition) -> ValidationResult:
        data = await self._request("POST", "/graphs/validate", body=graph_to_wire(graph))
        data = data if isinstance(data, dict) else {}
        raw_errors = data.get("errors") or []
        if not isinstance(raw_errors, list):
            raw_errors = [raw_errors]
        errors = [_validation_message(e) for e in raw_errors]
        return ValidationResult(valid=bool(data.get("valid")) and not errors, errors=errors)

    # ── Projects ──

    async def list_projects(self) -> List[Project]:
        return await self._request_list(Project, ("projects", "items"), "GET", "/projects")

    async def get_project(self, project_id: str) -> Project:
        return await self._request_model(Project, "GET", f"/projects/{project_id}")

    async def create_project(self, name: str, description: Optional[str] = None) -> Project:
        body: Dict[str, Any] = {"name": name}
        if description is not None:
            body["description"] = description
        return await self._request_model(Project, "POST", "/projects", body=body)

    async def update_project(
        self,
        project_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Project:
        body: Dict[str, Any] = {}
        if name is not None:
            body["name"] = name
        if description is not None:
            body["description"] = description
        return await self._request_model(Project, "PUT", f"/projects/{project_id}", body=body)

    async def delete_project(self, project_id: str) -> None:
        await self._request("DELETE", f"/projects/{project_id}")
