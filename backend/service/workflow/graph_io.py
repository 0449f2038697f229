"""
Graph Import / Export.

Serializes a ``GraphDefinition`` to the backend wire shape::

    {"graphId": str, "contractVersion": int,
     "nodes": [{"id", "typeId", "version", "config", "displayName", "ui"}],
     "edges": [{"id", "source", "target", "sourceHandle"?, "targetHandle"?}]}

Export output is canonical (sorted keys, graph order for nodes/edges)
so the same graph always produces the same text.

Import is all-or-nothing: the payload is parsed, shape-checked,
normalized, migrated and fully validated before it touches the
``GraphStore``. Older payloads using ``id`` / ``version`` / ``type`` /
``typeVersion`` / ``label`` and ``ap.*`` type ids are accepted.
"""

from __future__ import annotations

import json
from logging import getLogger
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from service.workflow.graph_store import GraphStore
from service.workflow.nodes.base import NodeRegistry, get_node_registry, resolve_type_id
from service.workflow.workflow_model import (
    CONTRACT_VERSION,
    DEFAULT_GRAPH_ID,
    GraphDefinition,
    OperationResult,
    WorkflowEdge,
    WorkflowNodeInstance,
)
from service.workflow.workflow_validator import validate_local

logger = getLogger(__name__)


class GraphFormatError(ValueError):
    """Raised when a payload cannot be turned into a GraphDefinition."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


# ====================================================================
# Export
# ====================================================================


def node_to_wire(node: WorkflowNodeInstance) -> Dict[str, Any]:
    wire: Dict[str, Any] = {
        "id": node.id,
        "typeId": node.type_id,
        "version": node.version,
        "config": node.config,
        "ui": {"x": node.position.x, "y": node.position.y},
    }
    if node.display_name:
        wire["displayName"] = node.display_name
    return wire


def edge_to_wire(edge: WorkflowEdge) -> Dict[str, Any]:
    wire: Dict[str, Any] = {
        "id": edge.id,
        "source": edge.source,
        "target": edge.target,
    }
    if edge.source_handle:
        wire["sourceHandle"] = edge.source_handle
    if edge.target_handle:
        wire["targetHandle"] = edge.target_handle
    if edge.label:
        wire["label"] = edge.label
    return wire


def graph_to_wire(graph: GraphDefinition) -> Dict[str, Any]:
    """The dict sent to the backend and written by ``export_graph``."""
    return {
        "graphId": graph.graph_id,
        "contractVersion": graph.contract_version,
        "nodes": [node_to_wire(n) for n in graph.nodes],
        "edges": [edge_to_wire(e) for e in graph.edges],
    }


def export_graph(graph: GraphDefinition) -> str:
    """Canonical JSON text for ``graph``."""
    return json.dumps(graph_to_wire(graph), sort_keys=True, indent=2, ensure_ascii=False)


# ====================================================================
# Normalization of incoming payloads
# ====================================================================


def _as_version(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return int(float(value))
        except (ValueError, OverflowError):
            return value
    return value


def _normalize_node(raw: Any) -> Any:
    if not isinstance(raw, dict):
        return raw
    node = dict(raw)

    legacy_type = node.pop("type", None)
    if "typeId" not in node:
        node["typeId"] = node.pop("type_id", legacy_type)
    if isinstance(node.get("typeId"), str):
        node["typeId"] = resolve_type_id(node["typeId"])

    type_version = node.pop("typeVersion", None)
    if "version" not in node and type_version is not None:
        node["version"] = type_version
    if "version" in node:
        node["version"] = _as_version(node["version"])
        if node["version"] is None:
            del node["version"]

    label = node.pop("label", None)
    if not node.get("displayName") and not node.get("display_name") and label:
        node["displayName"] = label
    if node.get("displayName") is None:
        node.pop("displayName", None)

    ui = node.pop("ui", None)
    if "position" not in node and isinstance(ui, dict):
        node["position"] = {"x": ui.get("x", 0), "y": ui.get("y", 0)}

    # Statuses belong to a run, never to a stored graph.
    node.pop("status", None)
    if node.get("config") is None:
        node["config"] = {}
    return node


def _normalize_edge(raw: Any) -> Any:
    if not isinstance(raw, dict):
        return raw
    edge = dict(raw)
    for snake, camel in (("source_handle", "sourceHandle"), ("target_handle", "targetHandle")):
        if snake in edge and camel not in edge:
            edge[camel] = edge.pop(snake)
    if edge.get("label") is None:
        edge.pop("label", None)
    return edge


def normalize_graph_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map any accepted graph shape onto the canonical wire keys."""
    graph_id = data.get("graphId", data.get("graph_id", data.get("id")))
    contract_version = data.get(
        "contractVersion",
        data.get("contract_version", data.get("version", CONTRACT_VERSION)),
    )
    nodes = data.get("nodes")
    edges = data.get("edges")
    return {
        "graphId": str(graph_id) if graph_id is not None else DEFAULT_GRAPH_ID,
        "contractVersion": _as_version(contract_version),
        "nodes": [_normalize_node(n) for n in nodes] if isinstance(nodes, list) else nodes,
        "edges": [_normalize_edge(e) for e in edges] if isinstance(edges, list) else edges,
    }


def parse_graph(payload: Any) -> GraphDefinition:
    """Turn JSON text or an already-decoded dict into a GraphDefinition.

    Raises:
        GraphFormatError: If the payload is not a well-formed graph.
    """
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise GraphFormatError([
                f"invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})"
            ]) from e
        except UnicodeDecodeError as e:
            raise GraphFormatError([f"invalid JSON: not valid UTF-8 text ({e.reason})"]) from e
    else:
        data = payload

    if not isinstance(data, dict):
        raise GraphFormatError(["graph must be a JSON object"])

    errors: List[str] = []
    for key in ("nodes", "edges"):
        if key in data and data[key] is not None and not isinstance(data[key], list):
            errors.append(f"'{key}' must be a list")
    if "nodes" not in data:
        errors.append("'nodes' is required")
    if errors:
        raise GraphFormatError(errors)

    normalized = normalize_graph_payload(data)
    if normalized["nodes"] is None:
        normalized["nodes"] = []
    if normalized["edges"] is None:
        normalized["edges"] = []

    try:
        return GraphDefinition.model_validate(normalized)
    except ValidationError as e:
        raise GraphFormatError([
            f"invalid graph: {'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]) from e


# ====================================================================
# Import
# ====================================================================


def import_graph(
    json_string: Union[str, bytes],
    store: GraphStore,
    registry: Optional[NodeRegistry] = None,
) -> OperationResult:
    """Parse, validate and commit ``json_string`` into ``store``.

    On any failure the store is left exactly as it was.
    """
    reg = registry or get_node_registry()

    try:
        graph = parse_graph(json_string)
    except GraphFormatError as e:
        logger.info(f"Import rejected: {e}")
        return OperationResult.fail(*e.errors)

    graph = graph.model_copy(update={"nodes": [reg.migrate_node(n) for n in graph.nodes]})

    result = validate_local(graph, reg)
    if not result.valid:
        logger.info(f"Import rejected: {len(result.errors)} validation error(s)")
        return OperationResult.fail(*result.errors)

    store.replace(graph)
    logger.info(
        f"Imported graph {graph.graph_id}: "
        f"{len(graph.nodes)} nodes, {len(graph.edges)} edges"
    )
    return OperationResult.ok(graph)
