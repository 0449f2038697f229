"""
Gateway errors.

Every failure talking to the persistence backend surfaces as a
``FlowEditorError`` subclass. Editor operations catch these and turn
them into ``OperationResult`` values; nothing above the gateway sees a
raw ``httpx`` exception.
"""

from __future__ import annotations

from typing import Any, Optional


class FlowEditorError(Exception):
    """Base class for flow editor failures."""
    pass


class GatewayError(FlowEditorError):
    """The backend answered with a non-2xx status or an unreadable body."""

    def __init__(self, status: int, message: str, detail: Any = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.detail = detail
        self.code = code

    @property
    def not_found(self) -> bool:
        return self.status == 404

    def __str__(self) -> str:
        return f"[{self.status}] {self.message}"


class TransportError(FlowEditorError):
    """The backend could not be reached (DNS, refused, timeout …)."""
    pass
