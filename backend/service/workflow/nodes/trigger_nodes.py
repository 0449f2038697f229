"""
Trigger Nodes — workflow entry points.

Triggers have no input ports; the validator rejects any edge that
points into one.
"""

from __future__ import annotations

from typing import Any, Dict, Literal

from pydantic import Field

from service.workflow.nodes.base import (
    OUT,
    NodeCategory,
    NodeConfig,
    NodeDefinition,
    NodeParameter,
    register_node,
)

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
HTTP_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


class ManualTriggerConfig(NodeConfig):
    message: str


class WebhookTriggerConfig(NodeConfig):
    path: str = Field(pattern=r"^/")
    method: HttpMethod


class InputTriggerConfig(NodeConfig):
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="schema")


@register_node
class ManualTriggerNode(NodeDefinition):
    """Start a run by hand with a fixed message (local testing)."""

    type_id = "trigger.manual"
    label = "Manual Trigger"
    description = "Entry point for local test runs"
    category = NodeCategory.TRIGGER
    tags = ["trigger", "manual", "test"]

    input_ports = []
    output_ports = [OUT]
    parameters = [
        NodeParameter(
            name="message",
            label="Message",
            type="string",
            default="",
            required=True,
            description="Input message passed to the first node.",
        ),
    ]
    config_model = ManualTriggerConfig


@register_node
class WebhookTriggerNode(NodeDefinition):
    """Start a run when an HTTP request hits ``path``."""

    type_id = "trigger.webhook"
    label = "Webhook Trigger"
    description = "Starts the flow when an HTTP request is received"
    category = NodeCategory.TRIGGER
    tags = ["trigger", "webhook", "http"]

    input_ports = []
    output_ports = [OUT]
    parameters = [
        NodeParameter(
            name="method",
            label="Method",
            type="enum",
            default="POST",
            required=True,
            options=HTTP_METHODS,
        ),
        NodeParameter(
            name="path",
            label="Path",
            type="string",
            default="/webhook",
            required=True,
            description="Must start with '/'.",
        ),
    ]
    config_model = WebhookTriggerConfig


@register_node
class InputTriggerNode(NodeDefinition):
    type_id = "trigger.input"
    label = "Input Trigger"
    description = "Starts the flow with structured input"
    category = NodeCategory.TRIGGER
    tags = ["trigger", "input", "form"]

    input_ports = []
    output_ports = [OUT]
    parameters = [
        NodeParameter(
            name="schema",
            label="Input Schema",
            type="json",
            default={},
            description="JSON Schema describing the expected input.",
        ),
    ]
    config_model = InputTriggerConfig
