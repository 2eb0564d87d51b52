"""Collaborators the session engine delegates to.

Available managers:
- AttachmentStore: Context items attached to the next outgoing message
- ApprovalCoordinator: Human-in-the-loop gate for proposed tool calls
- SlashCommandRouter: Input classification and slash-command dispatch
- SessionReporter: Best-effort telemetry and session summaries
"""

from __future__ import annotations

from .approval import ApprovalCoordinator, ApprovalRequest, ApprovalResult, ToolUse
from .attachment import IMAGE_EXTENSIONS, AttachmentStore, ContextItem, ContextType
from .command import SlashCommandRouter
from .summary import SessionReporter

__all__ = [
    "ApprovalCoordinator",
    "ApprovalRequest",
    "ApprovalResult",
    "AttachmentStore",
    "ContextItem",
    "ContextType",
    "IMAGE_EXTENSIONS",
    "SessionReporter",
    "SlashCommandRouter",
    "ToolUse",
]
