"""
Logic Nodes — routing nodes.

These nodes make pure data-based decisions without invoking a model.
``condition.expr`` evaluates its rules in order and routes to the first
matching ``to`` node; the validator checks that every ``to`` exists.
"""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

from service.workflow.nodes.base import (
    NodeCategory,
    NodeConfig,
    NodeDefinition,
    NodeParameter,
    register_node,
)


class ConditionRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    if_: str = Field(alias="if", min_length=1)
    to: str = Field(min_length=1)  # target node instance ID


class ConditionExprConfig(NodeConfig):
    engine: Literal["jexl", "jmespath"]
    rules: List[ConditionRule] = Field(min_length=1)


@register_node
class ConditionExprNode(NodeDefinition):
    """Route execution by expression rules."""

    type_id = "condition.expr"
    label = "Condition"
    description = "Route based on expression rules"
    category = NodeCategory.ROUTER
    tags = ["condition", "router", "branch"]

    parameters = [
        NodeParameter(
            name="engine",
            label="Expression Engine",
            type="enum",
            default="jexl",
            required=True,
            options=["jexl", "jmespath"],
        ),
        NodeParameter(
            name="rules",
            label="Rules",
            type="json",
            default=[],
            required=True,
            description=(
                'Ordered list of {"if": <expression>, "to": <node id>}. '
                "The first matching rule wins."
            ),
        ),
    ]
    config_model = ConditionExprConfig
