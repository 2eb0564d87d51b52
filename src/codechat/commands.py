"""Pure parsing helpers for rich-text input and slash commands."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import re
from typing import Any

# Context embeds (files, images, slash commands) picked from the editor are
# serialized into the plain text as ``[[ctx:<value>]]``.
CONTEXT_MARKER_RE = re.compile(r"\[\[ctx:(?P<value>[^\]]+)\]\]")
SLASH_COMMAND_RE = re.compile(r"^\s*/(?P<name>[A-Za-z0-9][\w:.-]*)(?:\s+(?P<args>.*))?$", re.DOTALL)

CONTEXT_EMBED_KEY = "context"

# Quill-style delta: a list of ``{"insert": str}`` or
# ``{"insert": {"context": {"value": ..., "text": ...}}}`` operations.
RichDelta = Sequence[dict[str, Any]]


@dataclass(frozen=True)
class ParsedSlashCommand:
    """A slash command split into its name and raw argument string."""

    command: str
    args: str


def is_rich_text(text: str) -> bool:
    """Return True when the input carries at least one context embed marker."""
    return CONTEXT_MARKER_RE.search(text) is not None


def context_marker(value: str) -> str:
    """Serialize a context value the way the editor embeds it in plain text."""
    return f"[[ctx:{value}]]"


def render_prompt(text: str, delta: RichDelta | None = None) -> str:
    """Render rich input to the prompt sent to the model.

    The delta is authoritative when present; otherwise markers in the plain
    text are replaced by their values.
    """
    if not delta:
        return CONTEXT_MARKER_RE.sub(lambda match: match.group("value"), text).strip()

    pieces: list[str] = []
    for op in delta:
        insert = op.get("insert") if isinstance(op, dict) else None
        if isinstance(insert, str):
            pieces.append(insert)
        elif isinstance(insert, dict):
            embed = insert.get(CONTEXT_EMBED_KEY)
            if isinstance(embed, dict) and embed.get("value"):
                pieces.append(str(embed["value"]))
    return "".join(pieces).strip()


def is_slash_command(prompt: str) -> bool:
    return SLASH_COMMAND_RE.match(prompt) is not None


def parse_slash_command(prompt: str) -> ParsedSlashCommand:
    """Split ``/name args`` into its parts.

    Raises ``ValueError`` when the prompt is not a slash command.
    """
    match = SLASH_COMMAND_RE.match(prompt)
    if match is None:
        raise ValueError(f"Not a slash command: {prompt!r}")
    return ParsedSlashCommand(
        command=match.group("name"),
        args=(match.group("args") or "").strip(),
    )
