"""
Output Nodes — terminal nodes that produce the run's result.

Output nodes have no output ports; the validator rejects any edge
leaving one.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import Field

from service.workflow.nodes.base import (
    IN,
    NodeCategory,
    NodeConfig,
    NodeDefinition,
    NodeParameter,
    register_node,
)


class ResponseChatConfig(NodeConfig):
    format: Literal["text", "json"]
    template: Optional[str] = None


class ResponseEndConfig(NodeConfig):
    output: Any = Field(default_factory=dict)


@register_node
class ResponseChatNode(NodeDefinition):
    type_id = "response.chat"
    label = "Chat Response"
    description = "Reply to the user"
    category = NodeCategory.OUTPUT
    tags = ["response", "chat", "output"]

    input_ports = [IN]
    output_ports = []
    parameters = [
        NodeParameter(
            name="format",
            label="Format",
            type="enum",
            default="text",
            required=True,
            options=["text", "json"],
        ),
        NodeParameter(name="template", label="Template", type="string", default=""),
    ]
    config_model = ResponseChatConfig


@register_node
class ResponseEndNode(NodeDefinition):
    """Finish the run and set its final output."""

    type_id = "response.end"
    label = "End"
    description = "Ends execution and sets the final output"
    category = NodeCategory.OUTPUT
    tags = ["response", "end", "output", "final"]

    input_ports = [IN]
    output_ports = []
    parameters = [
        NodeParameter(
            name="output",
            label="Output",
            type="json",
            default={},
            description='May reference variables, e.g. {"result": "{{answer}}"}.',
        ),
    ]
    config_model = ResponseEndConfig
