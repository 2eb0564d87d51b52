"""Context attachments for the next outgoing message.

Holds the files, images and slash-command references the user attached,
deduplicated by value, and exposes the read-only projections the prompt
builder consumes.
"""

from __future__ import annotations

import base64
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
import logging
import mimetypes
from pathlib import Path
from typing import Any

from ..exceptions import AttachmentError

LOGGER = logging.getLogger(__name__)

# Image file extensions accepted for vision attachments
IMAGE_EXTENSIONS: frozenset[str] = frozenset(
    {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".tiff", ".tif"}
)


class ContextType(str, Enum):
    """Kinds of context the user can attach."""

    FILE = "file"
    IMAGE = "image"
    SLASH_COMMAND = "slashCommand"


@dataclass(frozen=True)
class ContextItem:
    """One attached context entry; ``value`` is its dedup key."""

    type: ContextType
    value: str
    display_text: str
    context: dict[str, Any] = field(default_factory=dict)


class AttachmentStore:
    """Owns attached context items and the draft prompt that references them.

    Responsibilities:
    - Deduplicated insertion by ``value``
    - Removal, which also strips the value from the draft prompt
    - File/image validation (size, type, existence)
    - Derived views: files, slash commands, image parts
    """

    def __init__(
        self,
        *,
        max_image_bytes: int = 10 * 1024 * 1024,  # 10 MB
        max_file_bytes: int = 2 * 1024 * 1024,  # 2 MB
    ) -> None:
        self.max_image_bytes = max_image_bytes
        self.max_file_bytes = max_file_bytes
        self._items: list[ContextItem] = []
        self._prompt = ""
        self._on_prompt_change: list[Callable[[str], None]] = []

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> AttachmentStore:
        """Build a store from the [attachments] config section."""
        section = config.get("attachments", {})
        return cls(
            max_image_bytes=int(section.get("max_image_bytes", 10 * 1024 * 1024)),
            max_file_bytes=int(section.get("max_file_bytes", 2 * 1024 * 1024)),
        )

    # -- draft prompt ----------------------------------------------------

    @property
    def prompt(self) -> str:
        return self._prompt

    def update_prompt(self, prompt: str) -> None:
        self._prompt = prompt
        for callback in list(self._on_prompt_change):
            callback(prompt)

    def on_prompt_change(self, callback: Callable[[str], None]) -> None:
        """Register a callback invoked with the new draft prompt."""
        self._on_prompt_change.append(callback)

    # -- mutation --------------------------------------------------------

    def add(self, item: ContextItem) -> bool:
        """Attach ``item`` unless one with the same value is already attached."""
        if any(existing.value == item.value for existing in self._items):
            return False
        self._items.append(item)
        return True

    def remove(self, value: str) -> bool:
        """Detach the item keyed by ``value`` and strip it from the prompt.

        The prompt is rewritten even when nothing was attached under that
        value, since editor embeds can outlive their context entry.
        """
        before = len(self._items)
        self._items = [item for item in self._items if item.value != value]
        if value:
            self.update_prompt(self._prompt.replace(value, ""))
        return len(self._items) != before

    def clear(self) -> None:
        self._items = []

    # -- projections -----------------------------------------------------

    @property
    def items(self) -> tuple[ContextItem, ...]:
        return tuple(self._items)

    @property
    def files(self) -> list[dict[str, Any]]:
        return [
            {"path": item.context.get("path"), "type": item.context.get("type")}
            for item in self._items
            if item.type is ContextType.FILE
        ]

    @property
    def slash_commands(self) -> list[dict[str, Any]]:
        return [
            {
                "name": item.context.get("name"),
                "description": item.context.get("description"),
            }
            for item in self._items
            if item.type is ContextType.SLASH_COMMAND
        ]

    @property
    def attachments(self) -> list[dict[str, Any]]:
        """Image attachments as message parts."""
        return [
            {
                "type": "image",
                "data": item.context.get("src"),
                "mimeType": item.context.get("mime"),
            }
            for item in self._items
            if item.type is ContextType.IMAGE
        ]

    @property
    def contexts(self) -> dict[str, list[dict[str, Any]]]:
        return {"files": self.files, "slashCommands": self.slash_commands}

    # -- filesystem helpers ----------------------------------------------

    @staticmethod
    def is_image_path(path: str) -> bool:
        return Path(path).suffix.lower() in IMAGE_EXTENSIONS

    @staticmethod
    def validate_attachment(
        path: str,
        *,
        kind: str,  # "image" or "file"
        max_bytes: int,
        allowed_extensions: frozenset[str] | None,
    ) -> tuple[bool, str, Path | None]:
        """Validate attachment path, size, and type.

        Returns:
            Tuple of (success, error_message, resolved_path)
        """
        try:
            resolved = Path(path).expanduser().resolve()

            if not resolved.exists():
                return False, f"{kind.capitalize()} not found: {path}", None

            if not resolved.is_file():
                return False, f"Not a file: {path}", None

            if allowed_extensions:
                if resolved.suffix.lower() not in allowed_extensions:
                    exts = ", ".join(sorted(allowed_extensions))
                    return False, f"Invalid {kind} type. Allowed: {exts}", None

            size = resolved.stat().st_size
            if size > max_bytes:
                max_mb = max_bytes / (1024 * 1024)
                return (
                    False,
                    f"{kind.capitalize()} too large (max {max_mb:.1f}MB)",
                    None,
                )

            return True, "", resolved

        except OSError as exc:
            return False, f"Error validating {kind}: {exc}", None

    def attach_file(self, path: str) -> ContextItem:
        """Validate ``path`` and attach it as a file context.

        Raises:
            AttachmentError: when the file is missing or too large
        """
        ok, message, resolved = self.validate_attachment(
            path, kind="file", max_bytes=self.max_file_bytes, allowed_extensions=None
        )
        if not ok or resolved is None:
            LOGGER.warning(f"File validation failed: {message}")
            raise AttachmentError(message)

        item = ContextItem(
            type=ContextType.FILE,
            value=str(resolved),
            display_text=resolved.name,
            context={"path": str(resolved), "type": "file", "name": resolved.name},
        )
        self.add(item)
        return item

    def attach_image(self, path: str) -> ContextItem:
        """Validate ``path`` and attach it as a base64 data-URL image.

        Raises:
            AttachmentError: when the image is missing, too large or not an image
        """
        ok, message, resolved = self.validate_attachment(
            path,
            kind="image",
            max_bytes=self.max_image_bytes,
            allowed_extensions=IMAGE_EXTENSIONS,
        )
        if not ok or resolved is None:
            LOGGER.warning(f"Image validation failed: {message}")
            raise AttachmentError(message)

        mime = mimetypes.guess_type(resolved.name)[0] or "application/octet-stream"
        try:
            encoded = base64.b64encode(resolved.read_bytes()).decode("ascii")
        except OSError as exc:
            raise AttachmentError(f"Error reading image: {exc}") from exc

        item = ContextItem(
            type=ContextType.IMAGE,
            value=str(resolved),
            display_text=resolved.name,
            context={"src": f"data:{mime};base64,{encoded}", "mime": mime},
        )
        self.add(item)
        return item
