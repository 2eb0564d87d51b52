"""Application status enum and the single live session record."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class AppStatus(str, Enum):
    """Finite set of states the UI may observe for the active session."""

    IDLE = "idle"
    PROCESSING = "processing"
    PLANNING = "planning"
    PLAN_APPROVING = "plan_approving"
    TOOL_APPROVING = "tool_approving"
    TOOL_EXECUTING = "tool_executing"
    COMPACTING = "compacting"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SLASH_COMMAND_EXECUTING = "slash_command_executing"
    HELP = "help"
    EXIT = "exit"


# Phases during which the backend is actively working and may be cancelled.
EXECUTING_STATUSES: frozenset[AppStatus] = frozenset(
    {
        AppStatus.PROCESSING,
        AppStatus.PLANNING,
        AppStatus.TOOL_EXECUTING,
        AppStatus.COMPACTING,
    }
)

# Informational sub-phases the backend may announce inside a processing cycle.
CYCLE_PHASES: frozenset[AppStatus] = frozenset(
    {
        AppStatus.PROCESSING,
        AppStatus.PLANNING,
        AppStatus.PLAN_APPROVING,
        AppStatus.TOOL_APPROVING,
        AppStatus.TOOL_EXECUTING,
        AppStatus.COMPACTING,
    }
)


def is_executing(status: AppStatus) -> bool:
    """Return True when ``status`` is one of the cancellable executing phases."""
    return status in EXECUTING_STATUSES


@dataclass
class SessionState:
    """Mutable session record owned by the engine.

    Only ``SessionEngine`` operations write to it; observers read it after a
    bus notification.
    """

    cwd: str | None = None
    session_id: str | None = None
    model: Any = None
    product_name: str | None = None
    version: str | None = None
    approval_mode: str = "default"
    plan_mode: bool = False
    plan_result: str | None = None
    status: AppStatus = AppStatus.IDLE
    processing_tokens: int = 0
    error: str | None = None
    loading: bool = False
    initialized: bool = False
    summary: str | None = None
    queued_messages: list[str] = field(default_factory=list)

    def reset(self) -> None:
        """Restore every field to its initial value."""
        pristine = SessionState()
        for item in fields(self):
            setattr(self, item.name, getattr(pristine, item.name))

    @property
    def is_executing(self) -> bool:
        return is_executing(self.status)
