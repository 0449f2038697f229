"""
Tool Nodes — external calls an agent can make.

``tool.http`` also exposes an ``error`` port so failed requests can be
routed separately from the main output.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import AnyUrl

from service.workflow.nodes.base import (
    IN,
    OUT,
    NodeCategory,
    NodeConfig,
    NodeDefinition,
    NodeParameter,
    Port,
    PortKind,
    register_node,
)
from service.workflow.nodes.trigger_nodes import HTTP_METHODS, HttpMethod


class ToolHttpConfig(NodeConfig):
    method: HttpMethod
    url: AnyUrl
    headers: Optional[Dict[str, str]] = None
    body: Any = None


class ToolPostgresConfig(NodeConfig):
    connectionRef: str
    query: str


@register_node
class ToolHttpNode(NodeDefinition):
    """Send an HTTP request and return the response."""

    type_id = "tool.http"
    label = "HTTP Request"
    description = "Sends an HTTP request and returns the response"
    category = NodeCategory.TOOL
    tags = ["tool", "http", "api", "request"]

    input_ports = [IN]
    output_ports = [
        OUT,
        Port(id="error", label="Error", kind=PortKind.ERROR),
    ]
    parameters = [
        NodeParameter(
            name="method",
            label="Method",
            type="enum",
            default="GET",
            required=True,
            options=HTTP_METHODS,
        ),
        NodeParameter(
            name="url",
            label="URL",
            type="string",
            default="",
            required=True,
        ),
        NodeParameter(name="headers", label="Headers", type="json", default={}),
        NodeParameter(name="body", label="Body", type="json", default=None),
    ]
    config_model = ToolHttpConfig


@register_node
class ToolPostgresNode(NodeDefinition):
    """Read-only SQL query against a named connection."""

    type_id = "tool.postgres"
    label = "Postgres Query"
    description = "Read-only database query"
    category = NodeCategory.TOOL
    tags = ["tool", "postgres", "database", "sql"]

    parameters = [
        NodeParameter(
            name="connectionRef",
            label="Connection Reference",
            type="string",
            default="",
            required=True,
        ),
        NodeParameter(
            name="query",
            label="Query",
            type="code",
            default="",
            required=True,
        ),
    ]
    config_model = ToolPostgresConfig
