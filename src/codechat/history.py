"""Owned, indexable conversation history and deterministic token estimates."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
import json

from .messages import Message
from .reconciler import format_messages, reconcile


def estimate_tokens(text: str) -> int:
    """Estimate the token cost of a text fragment deterministically.

    Roughly four characters per token, with every whitespace-separated word
    counted at least once so short bursts of words are not rounded to zero.
    """
    if not text:
        return 0
    return max(len(text) // 4, len(text.split()), 1)


class MessageHistory:
    """Ordered UI messages for the live session.

    The list is mutated in place (append, replace-last); readers take a
    ``messages`` snapshot per refresh.
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = list(messages)

    @property
    def messages(self) -> list[Message]:
        """Return a shallow copy of the stored messages."""
        return list(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        self._messages.extend(messages)

    def replace_last(self, message: Message) -> None:
        """Replace the most recent entry with an updated copy."""
        if not self._messages:
            raise IndexError("replace_last on empty history")
        self._messages[-1] = message

    def apply(self, raw: Message) -> list[Message]:
        """Reconcile one wire message into the history."""
        return reconcile(self._messages, raw)

    def replace(self, raw_messages: Iterable[Message]) -> None:
        """Rebuild history from a full sequence of wire messages."""
        self._messages = format_messages(raw_messages)

    def clear(self) -> None:
        self._messages = []

    def export_json(self) -> str:
        """Export current history using stable list and field ordering."""
        return json.dumps(
            self._messages, ensure_ascii=False, separators=(",", ":"), sort_keys=True
        )
