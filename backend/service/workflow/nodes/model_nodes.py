"""
Model Nodes — nodes that invoke a language model.

``agent.core`` runs a reactive agent loop over the tools wired into it;
``model.llm`` is a single model call.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import Field

from service.workflow.nodes.base import (
    NodeCategory,
    NodeConfig,
    NodeDefinition,
    NodeParameter,
    register_node,
)


# ============================================================================
# Agent Core
# ============================================================================


class AgentCoreConfig(NodeConfig):
    strategy: Literal["reactive"]
    instructions: str


@register_node
class AgentCoreNode(NodeDefinition):
    """Reactive agent: picks tools until it decides to answer."""

    type_id = "agent.core"
    label = "Agent Core"
    description = "Reactive agent that orchestrates connected tools"
    category = NodeCategory.AGENT
    tags = ["agent", "core", "ai"]

    parameters = [
        NodeParameter(
            name="strategy",
            label="Strategy",
            type="enum",
            default="reactive",
            required=True,
            options=["reactive"],
        ),
        NodeParameter(
            name="instructions",
            label="Instructions",
            type="string",
            default="",
            required=True,
            description="System instructions for the agent.",
        ),
    ]
    config_model = AgentCoreConfig


# ============================================================================
# Model LLM
# ============================================================================


class ModelLlmConfig(NodeConfig):
    provider: Literal["azure", "openai", "local"]
    model: str
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    prompt: Optional[str] = None


def _llm_v2(config: Dict[str, Any]) -> Dict[str, Any]:
    # v1 stored the prompt under "system"
    migrated = dict(config)
    if "system" in migrated and "prompt" not in migrated:
        migrated["prompt"] = migrated.pop("system")
    return migrated


@register_node
class ModelLlmNode(NodeDefinition):
    type_id = "model.llm"
    version = 2
    label = "Model LLM"
    description = "Single language-model call"
    category = NodeCategory.AGENT
    tags = ["model", "llm", "ai"]

    parameters = [
        NodeParameter(
            name="provider",
            label="Provider",
            type="enum",
            default="openai",
            required=True,
            options=["azure", "openai", "local"],
        ),
        NodeParameter(
            name="model",
            label="Model",
            type="string",
            default="gpt-4o-mini",
            required=True,
        ),
        NodeParameter(
            name="temperature",
            label="Temperature",
            type="number",
            default=0.7,
            description="Sampling temperature between 0 and 2.",
        ),
        NodeParameter(
            name="prompt",
            label="Prompt",
            type="string",
            default="",
        ),
    ]
    config_model = ModelLlmConfig
    migrations = {2: _llm_v2}
