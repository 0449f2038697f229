"""
Workflow Data Models — graph definitions, node instances, and edges.

These are the serializable data structures that describe the graph
currently open in the editor. They are owned by ``GraphStore``,
checked by ``workflow_validator`` and serialized by ``graph_io``.

The wire names (``typeId``, ``graphId``, ``sourceHandle`` …) are the
backend contract; Python code uses the snake_case attribute names.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_GRAPH_ID = "default"
CONTRACT_VERSION = 1


class NodeStatus(str, Enum):
    """Execution status shown on a node while a run is observed."""
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class NodePosition(_WireModel):
    x: float = 0.0
    y: float = 0.0


class WorkflowNodeInstance(_WireModel):
    """A single node placed on the workflow canvas.

    ``type_id`` references a registered ``NodeDefinition.type_id``.
    ``config`` holds user-set parameter values.
    """

    id: str = Field(default_factory=lambda: f"n_{uuid.uuid4().hex[:12]}")
    type_id: str = Field(alias="typeId")
    version: int = Field(default=1, ge=1)
    config: Dict[str, Any] = Field(default_factory=dict)
    display_name: str = Field(default="", alias="displayName")
    status: NodeStatus = NodeStatus.IDLE
    position: NodePosition = Field(default_factory=NodePosition)


class WorkflowEdge(_WireModel):
    """A directed edge between two node instances.

    ``source_handle`` / ``target_handle`` name ports on the source and
    target nodes; ``None`` means the node's default port.
    """

    id: str = Field(default_factory=lambda: f"e_{uuid.uuid4().hex[:12]}")
    source: str  # source node instance ID
    target: str  # target node instance ID
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")
    label: str = ""


class GraphDefinition(_WireModel):
    """The complete graph of one workflow.

    ``graph_id`` identifies the workflow across save/load and
    ``contract_version`` pins the schema generation it was built for.
    """

    graph_id: str = Field(default=DEFAULT_GRAPH_ID, alias="graphId")
    contract_version: int = Field(default=CONTRACT_VERSION, ge=1, alias="contractVersion")
    nodes: List[WorkflowNodeInstance] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[WorkflowNodeInstance]:
        """Find a node instance by ID."""
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def get_edges_from(self, node_id: str) -> List[WorkflowEdge]:
        """Get all edges originating from a node."""
        return [e for e in self.edges if e.source == node_id]

    def get_edges_to(self, node_id: str) -> List[WorkflowEdge]:
        """Get all edges pointing to a node."""
        return [e for e in self.edges if e.target == node_id]

    def get_entry_nodes(self) -> List[WorkflowNodeInstance]:
        """Nodes without incoming edges, in graph order."""
        targets = {e.target for e in self.edges}
        return [n for n in self.nodes if n.id not in targets]


class ValidationResult(BaseModel):
    """Outcome of a validation pass. ``errors`` is empty when valid."""

    valid: bool
    errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=list(errors))


class OperationResult(BaseModel):
    """Structured return value of every public editor operation."""

    success: bool
    errors: List[str] = Field(default_factory=list)
    cancelled: bool = False
    data: Any = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, *errors: str) -> "OperationResult":
        return cls(success=False, errors=list(errors))
