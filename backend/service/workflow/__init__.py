"""
Workflow Editor Core — headless model of a visual agent-workflow editor.

Architecture:
    nodes/            — NodeDefinition schemas + the NodeRegistry
    workflow_model    — Graph, node, edge and result models
    graph_store       — In-memory owner of the active graph
    workflow_validator — Local and remote graph validation
    graph_io          — Canonical JSON export / atomic import
    tab_manager       — Open tabs, saved snapshots, validation cache
    templates         — Example graphs
    run_orchestrator  — Run submission and polling (imports the gateway)
    editor_store      — Facade wiring everything together

``run_orchestrator`` and ``editor_store`` depend on ``service.gateway``
and are imported from their modules directly.
"""

from service.workflow.nodes.base import (
    NodeCategory,
    NodeDefinition,
    NodeParameter,
    NodeRegistry,
    Port,
    get_node_registry,
    register_node,
)
from service.workflow.workflow_model import (
    GraphDefinition,
    NodeStatus,
    OperationResult,
    ValidationResult,
    WorkflowEdge,
    WorkflowNodeInstance,
)
from service.workflow.graph_store import GraphStore
from service.workflow.workflow_validator import validate_local, validate_remote
from service.workflow.graph_io import export_graph, import_graph, parse_graph
from service.workflow.tab_manager import FlowTabState, TabManager
from service.workflow.templates import get_example, list_examples

__all__ = [
    "NodeCategory",
    "NodeDefinition",
    "NodeParameter",
    "NodeRegistry",
    "Port",
    "get_node_registry",
    "register_node",
    "GraphDefinition",
    "NodeStatus",
    "OperationResult",
    "ValidationResult",
    "WorkflowEdge",
    "WorkflowNodeInstance",
    "GraphStore",
    "validate_local",
    "validate_remote",
    "export_graph",
    "import_graph",
    "parse_graph",
    "FlowTabState",
    "TabManager",
    "get_example",
    "list_examples",
]
