"""
Configuration for the flow editor core.
"""

from service.config.editor_config import EditorConfig, read_env_defaults

__all__ = ["EditorConfig", "read_env_defaults"]
