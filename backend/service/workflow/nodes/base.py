"""
Node Base — the Schema Registry for workflow node types.

Every node type the editor can place on a canvas is described by a
``NodeDefinition`` subclass:

    - identity (``type_id``, ``version``) and display metadata
    - a ``category`` that drives the topology rules
    - input / output ports that edges may attach to
    - editable ``parameters`` with defaults
    - a pydantic ``config_model`` used to validate ``node.config``
    - optional per-version ``migrations`` for stored configs

Concrete definitions register themselves with ``@register_node`` into
the process-wide ``NodeRegistry`` returned by ``get_node_registry()``.
The registry is the dispatch table from ``type_id`` to config schema.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from logging import getLogger
from typing import Any, Callable, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from service.workflow.workflow_model import WorkflowNodeInstance

logger = getLogger(__name__)

# Type ids used by older graphs and the canonical id they map to.
LEGACY_TYPE_IDS: Dict[str, str] = {
    "ap.action.http": "tool.http",
}
_LEGACY_PREFIX = "ap."


class NodeCategory(str, Enum):
    """Structural role of a node type."""
    TRIGGER = "trigger"     # Entry point, no incoming edges
    AGENT = "agent"
    TOOL = "tool"
    MEMORY = "memory"
    ROUTER = "router"
    OUTPUT = "output"       # Terminal, no outgoing edges


class PortKind(str, Enum):
    MAIN = "main"
    ERROR = "error"


@dataclass
class Port:
    """A connection handle on a node."""
    id: str
    label: str = ""
    kind: PortKind = PortKind.MAIN
    description: str = ""


@dataclass
class NodeParameter:
    """An editable configuration field shown in the properties panel."""
    name: str
    label: str
    type: str = "string"          # string | number | boolean | enum | json | code
    default: Any = None
    required: bool = False
    description: str = ""
    options: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "type": self.type,
            "default": self.default,
            "required": self.required,
            "description": self.description,
            "options": list(self.options),
        }


class NodeConfig(BaseModel):
    """Base class for per-type config schemas.

    Unknown keys are tolerated so that configs written by newer
    editors still load.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)


IN = Port(id="in", label="Input")
OUT = Port(id="out", label="Output")


class NodeDefinition:
    """Schema and structural rules for one node type."""

    type_id: ClassVar[str] = ""
    version: ClassVar[int] = 1
    label: ClassVar[str] = ""
    description: ClassVar[str] = ""
    category: ClassVar[NodeCategory] = NodeCategory.AGENT
    tags: ClassVar[List[str]] = []

    input_ports: ClassVar[List[Port]] = [IN]
    output_ports: ClassVar[List[Port]] = [OUT]
    parameters: ClassVar[List[NodeParameter]] = []
    config_model: ClassVar[Type[NodeConfig]] = NodeConfig

    # {target_version: fn(config_of_previous_version) -> config}
    migrations: ClassVar[Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]]] = {}

    @property
    def is_trigger(self) -> bool:
        return self.category == NodeCategory.TRIGGER

    @property
    def is_terminal(self) -> bool:
        return self.category == NodeCategory.OUTPUT

    def has_input_port(self, port_id: str) -> bool:
        return any(p.id == port_id for p in self.input_ports)

    def has_output_port(self, port_id: str) -> bool:
        return any(p.id == port_id for p in self.output_ports)

    def default_config(self) -> Dict[str, Any]:
        """Parameter defaults, as a fresh dict."""
        config: Dict[str, Any] = {}
        for param in self.parameters:
            default = param.default
            if isinstance(default, (dict, list)):
                default = type(default)(default)
            config[param.name] = default
        return config

    def validate_config(self, config: Any) -> List[str]:
        """Check ``config`` against ``config_model``.

        Returns one message per failing field (empty = valid).
        """
        try:
            self.config_model.model_validate(config)
        except ValidationError as exc:
            return [_format_error(err) for err in exc.errors()]
        return []

    def migrate_config(self, config: Dict[str, Any], from_version: int) -> Dict[str, Any]:
        """Apply migrations from ``from_version`` up to ``self.version``."""
        migrated = dict(config)
        for target in range(from_version + 1, self.version + 1):
            fn = self.migrations.get(target)
            if fn is not None:
                migrated = fn(migrated)
        return migrated

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for a node palette."""
        return {
            "type_id": self.type_id,
            "version": self.version,
            "label": self.label,
            "description": self.description,
            "category": self.category.value,
            "tags": list(self.tags),
            "inputs": [p.id for p in self.input_ports],
            "outputs": [p.id for p in self.output_ports],
            "parameters": [p.to_dict() for p in self.parameters],
        }


def _format_error(err: Dict[str, Any]) -> str:
    loc = ".".join(str(part) for part in err.get("loc", ()))
    msg = err.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg


def resolve_type_id(type_id: str) -> str:
    """Map a legacy ``ap.*`` type id to its canonical form."""
    if type_id in LEGACY_TYPE_IDS:
        return LEGACY_TYPE_IDS[type_id]
    if type_id.startswith(_LEGACY_PREFIX):
        return type_id[len(_LEGACY_PREFIX):]
    return type_id


# ============================================================================
# Registry
# ============================================================================


class NodeRegistry:
    """Lookup table ``type_id`` → ``NodeDefinition``."""

    def __init__(self) -> None:
        self._definitions: Dict[str, NodeDefinition] = {}

    def register(self, definition: NodeDefinition) -> None:
        if not definition.type_id:
            raise ValueError(f"{type(definition).__name__} has no type_id")
        if definition.type_id in self._definitions:
            logger.warning(f"Node type re-registered: {definition.type_id}")
        self._definitions[definition.type_id] = definition

    def get(self, type_id: str) -> Optional[NodeDefinition]:
        return self._definitions.get(resolve_type_id(type_id))

    def list_all(self) -> List[NodeDefinition]:
        return list(self._definitions.values())

    def list_by_category(self, category: NodeCategory) -> List[NodeDefinition]:
        return [d for d in self._definitions.values() if d.category == category]

    def search(self, query: str) -> List[NodeDefinition]:
        """Case-insensitive match on label, description and tags."""
        q = query.lower()
        return [
            d for d in self._definitions.values()
            if q in d.label.lower()
            or q in d.description.lower()
            or any(q in tag.lower() for tag in d.tags)
        ]

    def default_config(self, type_id: str) -> Dict[str, Any]:
        definition = self.get(type_id)
        return definition.default_config() if definition else {}

    def validate_config(self, type_id: str, config: Any) -> List[str]:
        definition = self.get(type_id)
        if definition is None:
            return [f"unknown node type '{type_id}'"]
        return definition.validate_config(config)

    def create_node(
        self,
        type_id: str,
        config: Optional[Dict[str, Any]] = None,
        node_id: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> WorkflowNodeInstance:
        """Instantiate a node with defaults merged under ``config``.

        Raises:
            KeyError: If ``type_id`` is not registered.
        """
        definition = self.get(type_id)
        if definition is None:
            raise KeyError(f"Unknown node type: {type_id}")

        merged = {**definition.default_config(), **(config or {})}
        problems = definition.validate_config(merged)
        if problems:
            logger.debug(f"New {definition.type_id} node has config issues: {problems}")

        return WorkflowNodeInstance(
            id=node_id or f"n_{uuid.uuid4().hex[:12]}",
            type_id=definition.type_id,
            version=definition.version,
            config=merged,
            display_name=display_name or definition.label,
        )

    def migrate_node(self, node: WorkflowNodeInstance) -> WorkflowNodeInstance:
        """Return ``node`` upgraded to its definition's current version."""
        definition = self.get(node.type_id)
        if definition is None or node.version >= definition.version:
            return node
        return node.model_copy(update={
            "version": definition.version,
            "config": definition.migrate_config(node.config, node.version),
        })


# ── Singleton ──

_registry_instance: Optional[NodeRegistry] = None


def get_node_registry() -> NodeRegistry:
    """Return the global NodeRegistry singleton."""
    global _registry_instance
    if _registry_instance is None:
        _registry_instance = NodeRegistry()
    return _registry_instance


def register_node(cls: Type[NodeDefinition]) -> Type[NodeDefinition]:
    """Class decorator: instantiate and add to the global registry."""
    get_node_registry().register(cls())
    return cls
