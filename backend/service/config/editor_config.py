"""
Flow Editor Configuration.

Backend location, credentials, polling cadence and editor policies.
Every field can be overridden from the environment (see ``_ENV_MAP``).
"""

from __future__ import annotations

import os
from dataclasses import MISSING, Field, dataclass, fields
from logging import getLogger
from typing import Any, ClassVar, Dict

from service.workflow.workflow_model import CONTRACT_VERSION

logger = getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _coerce(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return raw.strip().lower() in _TRUE_VALUES
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def read_env_defaults(env_map: Dict[str, str], dataclass_fields: Dict[str, Field]) -> Dict[str, Any]:
    """Collect field values from the environment, typed like their defaults.

    Unparseable values are logged and skipped so the default applies.
    """
    values: Dict[str, Any] = {}
    for field_name, env_name in env_map.items():
        raw = os.environ.get(env_name)
        if raw is None or raw == "":
            continue
        f = dataclass_fields[field_name]
        default = f.default if f.default is not MISSING else None
        try:
            values[field_name] = _coerce(raw, default)
        except ValueError:
            logger.warning(f"Ignoring {env_name}={raw!r}: expected {type(default).__name__}")
    return values


@dataclass
class EditorConfig:
    """Settings shared by the gateway client and the editor store."""

    api_url: str = "http://localhost:8000"
    api_token: str = ""
    project_id: str = ""
    poll_interval: float = 1.5
    request_timeout: float = 30.0
    contract_version: int = CONTRACT_VERSION
    dirty_on_position: bool = False
    log_level: str = "INFO"

    _ENV_MAP: ClassVar[Dict[str, str]] = {
        "api_url": "FLOW_EDITOR_API_URL",
        "api_token": "FLOW_EDITOR_API_TOKEN",
        "project_id": "FLOW_EDITOR_PROJECT_ID",
        "poll_interval": "FLOW_EDITOR_POLL_INTERVAL",
        "request_timeout": "FLOW_EDITOR_REQUEST_TIMEOUT",
        "contract_version": "FLOW_EDITOR_CONTRACT_VERSION",
        "dirty_on_position": "FLOW_EDITOR_DIRTY_ON_POSITION",
        "log_level": "FLOW_EDITOR_LOG_LEVEL",
    }

    @classmethod
    def get_default_instance(cls) -> "EditorConfig":
        defaults = read_env_defaults(cls._ENV_MAP, {f.name: f for f in fields(cls)})
        return cls(**defaults)

    @classmethod
    def get_config_name(cls) -> str:
        return "editor"

    def to_dict(self) -> Dict[str, Any]:
        """Field values with the token masked, for logs."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if data["api_token"]:
            data["api_token"] = "***"
        return data
