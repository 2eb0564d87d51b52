"""Observer notifications emitted by the session engine."""

from .bus import Event, EventBus, EventListener
from .domain import (
    ALL_EVENTS,
    APPROVAL_REQUESTED,
    APPROVAL_RESOLVED,
    HISTORY_CHANGED,
    SESSION_CHANGED,
    STATUS_CHANGED,
    SUMMARY_UPDATED,
    TOKENS_CHANGED,
)

__all__ = [
    "ALL_EVENTS",
    "APPROVAL_REQUESTED",
    "APPROVAL_RESOLVED",
    "Event",
    "EventBus",
    "EventListener",
    "HISTORY_CHANGED",
    "SESSION_CHANGED",
    "STATUS_CHANGED",
    "SUMMARY_UPDATED",
    "TOKENS_CHANGED",
]
