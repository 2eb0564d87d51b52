"""Wire and UI message shapes plus small pure helpers over them.

Messages travel as plain JSON-like dicts. The roles the engine knows about:

- ``system`` / ``user``: appended verbatim. A user message may carry
  ``uiContent``, the rich form of the input used for display.
- ``assistant``: ``content`` is a string or a list of ``text``,
  ``reasoning`` and ``tool_use`` parts. In history, ``tool_use`` parts are
  rewritten to ``{"type": "tool", "state": "tool_use", ...}``.
- ``tool``: a list of ``tool-result`` parts that complete earlier tool calls.
- ``ui_display``: engine-local notices (``error``, ``info``, ``compression``)
  that never reach the backend.
"""

from __future__ import annotations

from typing import Any, Literal

Message = dict[str, Any]
Part = dict[str, Any]

DisplayKind = Literal["error", "info", "compression"]

CANCELED_MESSAGE_TEXT = "[Request interrupted by user]"

TOOL_PART_TYPE = "tool"
TOOL_USE_STATE = "tool_use"
TOOL_RESULT_STATE = "tool_result"


def ui_display(kind: DisplayKind, text: str) -> Message:
    """Build a UI-only notice message."""
    return {"role": "ui_display", "content": {"type": kind, "text": text}}


def user_message(content: str | list[Part], ui_content: str | None = None) -> Message:
    """Build a user message, optionally carrying the original rich input."""
    message: Message = {"role": "user", "content": content}
    if ui_content is not None:
        message["uiContent"] = ui_content
    return message


def tool_result_part(wire_part: Part) -> Part:
    """Convert a wire ``tool-result`` entry into the history result shape.

    ``name`` and ``input`` are only carried when present so that merging the
    result over its tool call keeps the call's own values otherwise.
    """
    part: Part = {
        "type": "tool_result",
        "id": wire_part.get("toolCallId"),
        "result": wire_part.get("result"),
    }
    if wire_part.get("toolName") is not None:
        part["name"] = wire_part["toolName"]
    if wire_part.get("input") is not None:
        part["input"] = wire_part["input"]
    return part


def is_tool_call(part: Any, state: str | None = None) -> bool:
    if not isinstance(part, dict) or part.get("type") != TOOL_PART_TYPE:
        return False
    return state is None or part.get("state") == state


def has_tool_use(message: Message) -> bool:
    content = message.get("content")
    return isinstance(content, list) and any(
        isinstance(part, dict) and part.get("type") == "tool_use" for part in content
    )


def get_message_text(message: Message) -> str:
    """Return the display text of a message, preferring its rich form."""
    ui_content = message.get("uiContent")
    if isinstance(ui_content, str) and ui_content:
        return ui_content
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            str(part.get("text", ""))
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""


def is_canceled_message(message: Message) -> bool:
    """Return True for the marker the backend records after an interruption."""
    content = message.get("content")
    return (
        message.get("role") == "user"
        and isinstance(content, list)
        and len(content) == 1
        and isinstance(content[0], dict)
        and content[0].get("type") == "text"
        and content[0].get("text") == CANCELED_MESSAGE_TEXT
    )


def user_to_info_display(message: Message) -> Message:
    """Turn a local command's ``user`` output into an informational notice."""
    content = message.get("content")
    if isinstance(content, str):
        text = content
    else:
        parts = content if isinstance(content, list) else []
        text = "\n".join(
            str(part.get("text", ""))
            if isinstance(part, dict) and part.get("type") == "text"
            else str(part)
            for part in parts
        )
    return ui_display("info", text)
