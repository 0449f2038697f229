"""
Memory Nodes — key/value memory load and save.
"""

from __future__ import annotations

from typing import Literal

from service.workflow.nodes.base import (
    NodeCategory,
    NodeConfig,
    NodeDefinition,
    NodeParameter,
    register_node,
)


class MemoryKvConfig(NodeConfig):
    mode: Literal["load", "save"]
    scope: Literal["conversation", "run"]
    backend: Literal["postgres", "memory"]


@register_node
class MemoryKvNode(NodeDefinition):
    type_id = "memory.kv"
    label = "Memory KV"
    description = "Load or save key/value memory"
    category = NodeCategory.MEMORY
    tags = ["memory", "kv", "state"]

    parameters = [
        NodeParameter(
            name="mode",
            label="Mode",
            type="enum",
            default="load",
            required=True,
            options=["load", "save"],
        ),
        NodeParameter(
            name="scope",
            label="Scope",
            type="enum",
            default="conversation",
            required=True,
            options=["conversation", "run"],
        ),
        NodeParameter(
            name="backend",
            label="Backend",
            type="enum",
            default="memory",
            required=True,
            options=["postgres", "memory"],
        ),
    ]
    config_model = MemoryKvConfig
