"""
Workflow Validator — structural and schema checks for a GraphDefinition.

``validate_local`` is a pure function over a graph and the node
registry. It runs every check and accumulates all violations, so a
single call reports everything the user has to fix:

    0. the graph is not empty
    1. node and edge ids are unique
    2. every edge resolves to existing nodes; no self-loops
    3. each node's config matches the schema for its ``type_id``;
       edge handles name real ports; condition rules target real nodes
    4. topology: triggers have no incoming edges, outputs have no
       outgoing edges, and at least one entry point is a trigger

``validate_remote`` asks the backend for the authoritative answer
(used when the local contract version may be stale) and never raises.
"""

from __future__ import annotations

from collections import Counter
from logging import getLogger
from typing import TYPE_CHECKING, Dict, List, Optional

from service.workflow.nodes.base import (
    NodeDefinition,
    NodeRegistry,
    get_node_registry,
    resolve_type_id,
)
from service.workflow.workflow_model import (
    GraphDefinition,
    ValidationResult,
    WorkflowNodeInstance,
)

if TYPE_CHECKING:
    from service.gateway.client import PersistenceGateway

logger = getLogger(__name__)

EMPTY_GRAPH_ERROR = "empty graph: add at least one trigger node"
NO_ENTRY_POINT_ERROR = (
    "no entry point: the graph needs a trigger node without incoming edges"
)


def validate_local(
    graph: GraphDefinition,
    registry: Optional[NodeRegistry] = None,
) -> ValidationResult:
    """Validate ``graph`` without touching the network."""
    reg = registry or get_node_registry()

    if not graph.nodes:
        return ValidationResult.from_errors([EMPTY_GRAPH_ERROR])

    errors: List[str] = []
    errors.extend(_check_unique_ids(graph))

    node_map: Dict[str, WorkflowNodeInstance] = {n.id: n for n in graph.nodes}
    errors.extend(_check_edge_references(graph, node_map))

    definitions: Dict[str, NodeDefinition] = {}
    for node in graph.nodes:
        definition = reg.get(node.type_id)
        if definition is None:
            errors.append(f"Node {node.id}: unknown node type '{node.type_id}'")
            continue
        definitions[node.id] = definition
        for problem in definition.validate_config(node.config):
            errors.append(f"Node {node.id}: {problem}")

    errors.extend(_check_handles(graph, definitions))
    errors.extend(_check_condition_targets(graph, node_map))
    errors.extend(_check_topology(graph, node_map, definitions))

    if errors:
        logger.debug(f"Graph {graph.graph_id} failed validation with {len(errors)} error(s)")
    return ValidationResult.from_errors(errors)


async def validate_remote(
    graph: GraphDefinition,
    gateway: "PersistenceGateway",
) -> ValidationResult:
    """Validate ``graph`` on the server.

    Transport and HTTP failures are reported as an invalid result.
    """
    from service.gateway.errors import FlowEditorError, TransportError

    try:
        return await gateway.validate_graph(graph)
    except TransportError as e:
        logger.warning(f"Remote validation unreachable: {e}")
        return ValidationResult(valid=False, errors=[f"connection error: {e}"])
    except FlowEditorError as e:
        logger.warning(f"Remote validation rejected: {e}")
        return ValidationResult(valid=False, errors=[f"remote validation failed: {e}"])


# ====================================================================
# Individual checks
# ====================================================================


def _check_unique_ids(graph: GraphDefinition) -> List[str]:
    errors: List[str] = []
    node_counts = Counter(n.id for n in graph.nodes)
    for node_id, count in node_counts.items():
        if count > 1:
            errors.append(f"Duplicate node id: {node_id} ({count} nodes)")
    edge_counts = Counter(e.id for e in graph.edges)
    for edge_id, count in edge_counts.items():
        if count > 1:
            errors.append(f"Duplicate edge id: {edge_id} ({count} edges)")
    return errors


def _check_edge_references(
    graph: GraphDefinition,
    node_map: Dict[str, WorkflowNodeInstance],
) -> List[str]:
    errors: List[str] = []
    for edge in graph.edges:
        if edge.source not in node_map:
            errors.append(f"Edge {edge.id}: source node '{edge.source}' does not exist")
        if edge.target not in node_map:
            errors.append(f"Edge {edge.id}: target node '{edge.target}' does not exist")
        if edge.source == edge.target:
            errors.append(f"Edge {edge.id}: self-loops are not allowed")
    return errors


def _check_handles(
    graph: GraphDefinition,
    definitions: Dict[str, NodeDefinition],
) -> List[str]:
    errors: List[str] = []
    for edge in graph.edges:
        src_def = definitions.get(edge.source)
        if src_def and edge.source_handle and not src_def.has_output_port(edge.source_handle):
            errors.append(
                f"Edge {edge.id}: '{edge.source_handle}' is not an output port "
                f"of node '{edge.source}'"
            )
        tgt_def = definitions.get(edge.target)
        if tgt_def and edge.target_handle and not tgt_def.has_input_port(edge.target_handle):
            errors.append(
                f"Edge {edge.id}: '{edge.target_handle}' is not an input port "
                f"of node '{edge.target}'"
            )
    return errors


def _check_condition_targets(
    graph: GraphDefinition,
    node_map: Dict[str, WorkflowNodeInstance],
) -> List[str]:
    errors: List[str] = []
    for node in graph.nodes:
        if resolve_type_id(node.type_id) != "condition.expr":
            continue
        rules = node.config.get("rules") if isinstance(node.config, dict) else None
        if not isinstance(rules, list):
            continue
        for rule in rules:
            target = rule.get("to") if isinstance(rule, dict) else None
            if target is not None and not isinstance(target, str):
                errors.append(f"Node {node.id}: rule target must be a node id, got {type(target).__name__}")
            elif target and target not in node_map:
                errors.append(f"Node {node.id}: rule target '{target}' does not exist")
    return errors


def _check_topology(
    graph: GraphDefinition,
    node_map: Dict[str, WorkflowNodeInstance],
    definitions: Dict[str, NodeDefinition],
) -> List[str]:
    errors: List[str] = []

    for edge in graph.edges:
        tgt_def = definitions.get(edge.target)
        if tgt_def and tgt_def.is_trigger:
            errors.append(
                f"Node {edge.target}: trigger nodes cannot have incoming edges "
                f"(edge {edge.id})"
            )
        src_def = definitions.get(edge.source)
        if src_def and src_def.is_terminal:
            errors.append(
                f"Node {edge.source}: output nodes cannot have outgoing edges "
                f"(edge {edge.id})"
            )

    # Only edges between existing nodes count towards entry-point detection.
    targets = {
        e.target for e in graph.edges
        if e.source in node_map and e.target in node_map
    }
    entry_ids = [n.id for n in graph.nodes if n.id not in targets]
    if not any(
        definitions.get(node_id) is not None and definitions[node_id].is_trigger
        for node_id in entry_ids
    ):
        errors.append(NO_ENTRY_POINT_ERROR)

    return errors
