"""Top-level package for codechat-engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import ensure_config_dir, load_config
    from .engine import SessionEngine
    from .exceptions import (
        ApprovalProtocolError,
        CodechatError,
        ConfigValidationError,
        InitializationError,
        ProtocolViolationError,
    )
    from .history import MessageHistory
    from .managers.approval import ApprovalResult
    from .managers.attachment import AttachmentStore, ContextItem
    from .reconciler import reconcile
    from .state import AppStatus, SessionState

__all__ = [
    "AppStatus",
    "ApprovalProtocolError",
    "ApprovalResult",
    "AttachmentStore",
    "CodechatError",
    "ConfigValidationError",
    "ContextItem",
    "InitializationError",
    "MessageHistory",
    "ProtocolViolationError",
    "SessionEngine",
    "SessionState",
    "ensure_config_dir",
    "load_config",
    "reconcile",
]


def __getattr__(name: str) -> Any:
    """Lazily import symbols so importing the package stays cheap."""
    if name == "SessionEngine":
        from .engine import SessionEngine

        return SessionEngine
    if name in {"ensure_config_dir", "load_config"}:
        from .config import ensure_config_dir, load_config

        return {"ensure_config_dir": ensure_config_dir, "load_config": load_config}[name]
    if name in {
        "ApprovalProtocolError",
        "CodechatError",
        "ConfigValidationError",
        "InitializationError",
        "ProtocolViolationError",
    }:
        from .exceptions import (
            ApprovalProtocolError,
            CodechatError,
            ConfigValidationError,
            InitializationError,
            ProtocolViolationError,
        )

        return {
            "ApprovalProtocolError": ApprovalProtocolError,
            "CodechatError": CodechatError,
            "ConfigValidationError": ConfigValidationError,
            "InitializationError": InitializationError,
            "ProtocolViolationError": ProtocolViolationError,
        }[name]
    if name in {"AppStatus", "SessionState"}:
        from .state import AppStatus, SessionState

        return {"AppStatus": AppStatus, "SessionState": SessionState}[name]
    if name == "MessageHistory":
        from .history import MessageHistory

        return MessageHistory
    if name == "reconcile":
        from .reconciler import reconcile

        return reconcile
    if name == "ApprovalResult":
        from .managers.approval import ApprovalResult

        return ApprovalResult
    if name in {"AttachmentStore", "ContextItem"}:
        from .managers.attachment import AttachmentStore, ContextItem

        return {"AttachmentStore": AttachmentStore, "ContextItem": ContextItem}[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
