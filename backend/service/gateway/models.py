"""
Gateway Models — canonical shapes of backend payloads.

The backend has shipped several spellings of the same fields
(``runId`` / ``run_id``, ``trace`` / ``node_runs``, ``graph_json`` as a
JSON string …). Each model normalizes them in a ``before`` validator, so
the rest of the editor only ever sees one shape.
"""

from __future__ import annotations

import json
from enum import Enum
from logging import getLogger
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from service.workflow.graph_io import normalize_graph_payload
from service.workflow.workflow_model import GraphDefinition, NodeStatus

logger = getLogger(__name__)


def _first(data: Dict[str, Any], *keys: str) -> Any:
    """Value of the first key present with a non-None value."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _status_text(value: Any, default: str) -> str:
    if isinstance(value, Enum):
        value = value.value
    return str(value or default).lower()


def _error_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, dict):
        return _first(value, "message", "error", "detail") or json.dumps(value)
    return str(value)


# ============================================================================
# Runs
# ============================================================================


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_RUN_STATUSES


TERMINAL_RUN_STATUSES = frozenset({
    RunStatus.COMPLETED,
    RunStatus.ERROR,
    RunStatus.CANCELLED,
    RunStatus.TIMEOUT,
})

_RUN_STATUS_ALIASES = {
    "success": "completed",
    "succeeded": "completed",
    "failed": "error",
    "failure": "error",
    "canceled": "cancelled",
    "timed_out": "timeout",
    "queued": "pending",
}

_TRACE_TO_NODE_STATUS = {
    "running": NodeStatus.RUNNING,
    "success": NodeStatus.SUCCESS,
    "completed": NodeStatus.SUCCESS,
    "error": NodeStatus.ERROR,
    "failed": NodeStatus.ERROR,
    "skipped": NodeStatus.SKIPPED,
}


class TraceEntry(BaseModel):
    """One node's execution inside a run, in execution order."""

    node_id: str
    status: str = "pending"
    input: Any = None
    output: Any = None
    error: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    duration_ms: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            "node_id": _first(data, "node_id", "nodeId"),
            "status": _status_text(data.get("status"), "pending"),
            "input": data.get("input"),
            "output": data.get("output"),
            "error": _error_text(data.get("error")),
            "started_at": _first(data, "started_at", "startedAt"),
            "ended_at": _first(data, "ended_at", "endedAt", "finished_at"),
            "duration_ms": _first(data, "duration_ms", "durationMs", "duration"),
        }

    @property
    def node_status(self) -> NodeStatus:
        """The status to paint on the node in the graph."""
        return _TRACE_TO_NODE_STATUS.get(self.status, NodeStatus.IDLE)


class Run(BaseModel):
    """A server-side execution of a flow, observed by polling."""

    id: str
    flow_id: Optional[str] = None
    status: RunStatus = RunStatus.PENDING
    trace: List[TraceEntry] = Field(default_factory=list)
    input: Any = None
    output: Any = None
    error: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        status = _status_text(data.get("status"), "pending")
        return {
            "id": _first(data, "id", "runId", "run_id"),
            "flow_id": _first(data, "flow_id", "flowId"),
            "status": _RUN_STATUS_ALIASES.get(status, status),
            "trace": _first(data, "trace", "node_runs", "nodeRuns") or [],
            "input": data.get("input"),
            "output": data.get("output"),
            "error": _error_text(data.get("error")),
            "started_at": _first(data, "started_at", "startedAt", "created_at", "createdAt"),
            "ended_at": _first(data, "ended_at", "endedAt", "finished_at"),
        }

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def active_node_id(self) -> Optional[str]:
        """Node currently executing, if any (last ``running`` trace entry)."""
        if self.is_terminal:
            return None
        for entry in reversed(self.trace):
            if entry.status == "running":
                return entry.node_id
        return None


class RunTicket(BaseModel):
    """Immediate answer to a run submission or cancel request."""

    run_id: str
    status: RunStatus = RunStatus.RUNNING

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        status = _status_text(data.get("status"), "running")
        return {
            "run_id": _first(data, "run_id", "runId", "id"),
            "status": _RUN_STATUS_ALIASES.get(status, status),
        }


# ============================================================================
# Flows & projects
# ============================================================================


def _parse_graph_field(data: Dict[str, Any]) -> Any:
    raw = _first(data, "graph", "graph_json", "graphJson")
    if isinstance(raw, GraphDefinition):
        return raw
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Flow {data.get('id')} has unreadable graph_json: {e}")
            return None
    if not isinstance(raw, dict):
        return None
    normalized = normalize_graph_payload(raw)
    for key in ("nodes", "edges"):
        if normalized[key] is None:
            normalized[key] = []
    try:
        GraphDefinition.model_validate(normalized)
    except ValidationError as e:
        logger.warning(f"Flow {data.get('id')} has a malformed graph: {e.error_count()} error(s)")
        return None
    return normalized


class Flow(BaseModel):
    """A named, persisted graph."""

    id: str
    name: str = ""
    description: Optional[str] = None
    graph: Optional[GraphDefinition] = None
    project_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            "id": _first(data, "id", "flow_id", "flowId"),
            "name": data.get("name") or "",
            "description": data.get("description"),
            "graph": _parse_graph_field(data),
            "project_id": _first(data, "project_id", "projectId"),
            "created_at": _first(data, "created_at", "createdAt"),
            "updated_at": _first(data, "updated_at", "updatedAt"),
        }


class Project(BaseModel):
    id: str
    name: str = ""
    description: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            "id": _first(data, "id", "project_id", "projectId"),
            "name": data.get("name") or "",
            "description": data.get("description"),
            "created_at": _first(data, "created_at", "createdAt"),
            "updated_at": _first(data, "updated_at", "updatedAt"),
        }


# ============================================================================
# Health
# ============================================================================


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    OFFLINE = "offline"
    MISMATCH = "mismatch"


class HealthCheck(BaseModel):
    status: ConnectionStatus
    version: Optional[str] = None
    error: Optional[str] = None
