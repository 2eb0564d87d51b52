from __future__ import annotations

# Names of the events the engine emits on its bus.
STATUS_CHANGED = "status.changed"  # {"old": AppStatus, "new": AppStatus}
HISTORY_CHANGED = "history.changed"  # {"count": int}
TOKENS_CHANGED = "tokens.changed"  # {"tokens": int}
APPROVAL_REQUESTED = "approval.requested"  # {"request": ApprovalRequest}
APPROVAL_RESOLVED = "approval.resolved"  # {"result": ApprovalResult, "approved": bool}
SUMMARY_UPDATED = "summary.updated"  # {"title": str}
SESSION_CHANGED = "session.changed"  # {"initialized": bool}

ALL_EVENTS: tuple[str, ...] = (
    STATUS_CHANGED,
    HISTORY_CHANGED,
    TOKENS_CHANGED,
    APPROVAL_REQUESTED,
    APPROVAL_RESOLVED,
    SUMMARY_UPDATED,
    SESSION_CHANGED,
)
