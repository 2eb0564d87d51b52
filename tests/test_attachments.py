"""Tests for the context attachment store."""

from __future__ import annotations

import base64
import tempfile
from pathlib import Path
import unittest

from codechat.config import default_config
from codechat.exceptions import AttachmentError
from codechat.managers.attachment import AttachmentStore, ContextItem, ContextType


def _file_item(path: str) -> ContextItem:
    return ContextItem(
        type=ContextType.FILE,
        value=path,
        display_text=Path(path).name,
        context={"path": path, "type": "file"},
    )


class AttachmentStoreTests(unittest.TestCase):
    """Validate dedup, removal side effects and projections."""

    def test_add_deduplicates_by_value(self) -> None:
        store = AttachmentStore()
        self.assertTrue(store.add(_file_item("src/a.py")))
        self.assertFalse(store.add(_file_item("src/a.py")))
        self.assertEqual(len(store.items), 1)

    def test_remove_strips_value_from_prompt_and_notifies(self) -> None:
        store = AttachmentStore()
        seen: list[str] = []
        store.on_prompt_change(seen.append)
        store.add(_file_item("src/a.py"))
        store.update_prompt("explain src/a.py quickly")

        self.assertTrue(store.remove("src/a.py"))

        self.assertEqual(store.items, ())
        self.assertEqual(store.prompt, "explain  quickly")
        self.assertEqual(seen[-1], "explain  quickly")
        self.assertFalse(store.remove("src/a.py"))

    def test_projections(self) -> None:
        store = AttachmentStore()
        store.add(_file_item("src/a.py"))
        store.add(
            ContextItem(
                type=ContextType.SLASH_COMMAND,
                value="/review",
                display_text="review",
                context={"name": "review", "description": "Review changes"},
            )
        )
        store.add(
            ContextItem(
                type=ContextType.IMAGE,
                value="shot.png",
                display_text="shot.png",
                context={"src": "data:image/png;base64,AAAA", "mime": "image/png"},
            )
        )

        self.assertEqual(store.files, [{"path": "src/a.py", "type": "file"}])
        self.assertEqual(
            store.slash_commands, [{"name": "review", "description": "Review changes"}]
        )
        self.assertEqual(
            store.attachments,
            [{"type": "image", "data": "data:image/png;base64,AAAA", "mimeType": "image/png"}],
        )
        self.assertEqual(
            store.contexts, {"files": store.files, "slashCommands": store.slash_commands}
        )

    def test_attach_image_encodes_data_url(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            image = Path(temp_dir) / "pixel.png"
            image.write_bytes(b"\x89PNG")
            store = AttachmentStore()

            item = store.attach_image(str(image))

            encoded = base64.b64encode(b"\x89PNG").decode("ascii")
            self.assertEqual(item.context["src"], f"data:image/png;base64,{encoded}")
            self.assertEqual(store.attachments[0]["mimeType"], "image/png")

    def test_attach_rejects_missing_wrong_type_and_oversized(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            base = Path(temp_dir)
            store = AttachmentStore(max_file_bytes=4)
            notes = base / "notes.txt"
            notes.write_text("too long", encoding="utf-8")

            with self.assertRaises(AttachmentError):
                store.attach_file(str(base / "missing.txt"))
            with self.assertRaises(AttachmentError):
                store.attach_image(str(notes))
            with self.assertRaises(AttachmentError):
                store.attach_file(str(notes))
            self.assertEqual(store.items, ())

    def test_from_config_uses_attachment_limits(self) -> None:
        config = default_config()
        config["attachments"]["max_file_bytes"] = 123
        store = AttachmentStore.from_config(config)
        self.assertEqual(store.max_file_bytes, 123)


if __name__ == "__main__":
    unittest.main()
