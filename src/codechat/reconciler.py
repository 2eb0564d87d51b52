"""Pure reconciliation of backend wire messages into renderable history."""

from __future__ import annotations

from collections.abc import Iterable, MutableSequence
from copy import deepcopy
import logging

from .exceptions import ProtocolViolationError
from .messages import (
    TOOL_PART_TYPE,
    TOOL_RESULT_STATE,
    TOOL_USE_STATE,
    Message,
    has_tool_use,
    is_tool_call,
    tool_result_part,
)

LOGGER = logging.getLogger(__name__)


def _as_tool_calls(message: Message) -> Message:
    content = [
        {**part, "type": TOOL_PART_TYPE, "state": TOOL_USE_STATE}
        if isinstance(part, dict) and part.get("type") == "tool_use"
        else part
        for part in message["content"]
    ]
    return {**message, "content": content}


def _merge_tool_results(last: Message, tool_message: Message) -> Message:
    merged = last
    results = tool_message.get("content")
    if not isinstance(results, list):
        raise ProtocolViolationError("Tool message content must be a list of results")

    # Each result is applied against the copy produced by the previous one.
    for wire_part in results:
        if not isinstance(wire_part, dict):
            raise ProtocolViolationError("Tool result entries must be objects")
        result = tool_result_part(wire_part)
        merged = {
            **merged,
            "content": [
                {**part, **result, "type": TOOL_PART_TYPE, "state": TOOL_RESULT_STATE}
                if is_tool_call(part, TOOL_USE_STATE) and part.get("id") == result["id"]
                else part
                for part in merged["content"]
            ],
        }
    return merged


def reconcile(history: MutableSequence[Message], raw: Message) -> list[Message]:
    """Apply one wire message to ``history`` in place.

    Returns the entries that were appended or merged. A ``tool`` message that
    does not directly follow an assistant message raises
    ``ProtocolViolationError``; it is never swallowed here.
    """
    message = deepcopy(raw)
    role = message.get("role")

    if role == "assistant" and has_tool_use(message):
        entry = _as_tool_calls(message)
        history.append(entry)
        return [entry]

    if role == "tool":
        last = history[-1] if history else None
        if (
            last is None
            or last.get("role") != "assistant"
            or not isinstance(last.get("content"), list)
        ):
            raise ProtocolViolationError("Tool message must be after assistant message")
        merged = _merge_tool_results(last, message)
        history[-1] = merged
        LOGGER.debug(
            "reconciler.tool_results.merged",
            extra={
                "event": "reconciler.tool_results.merged",
                "results": len(message["content"]),
            },
        )
        return [merged]

    history.append(message)
    return [message]


def format_messages(messages: Iterable[Message]) -> list[Message]:
    """Reconcile a full prior history, e.g. when a session is resumed."""
    formatted: list[Message] = []
    for message in messages:
        reconcile(formatted, message)
    return formatted
