"""
Persistence Gateway — typed client for the flow backend.

    client  — PersistenceGateway (httpx.AsyncClient over /api/v1)
    models  — Flow, Run, TraceEntry, Project, HealthCheck
    errors  — FlowEditorError, GatewayError, TransportError
"""

from service.gateway.errors import FlowEditorError, GatewayError, TransportError
from service.gateway.models import (
    ConnectionStatus,
    Flow,
    HealthCheck,
    Project,
    Run,
    RunStatus,
    RunTicket,
    TraceEntry,
    TERMINAL_RUN_STATUSES,
)
from service.gateway.client import PersistenceGateway

__all__ = [
    "FlowEditorError",
    "GatewayError",
    "TransportError",
    "ConnectionStatus",
    "Flow",
    "HealthCheck",
    "Project",
    "Run",
    "RunStatus",
    "RunTicket",
    "TraceEntry",
    "TERMINAL_RUN_STATUSES",
    "PersistenceGateway",
]
