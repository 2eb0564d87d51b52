"""Tests for rich-text rendering and slash command parsing."""

from __future__ import annotations

import unittest

from codechat.commands import (
    ParsedSlashCommand,
    context_marker,
    is_rich_text,
    is_slash_command,
    parse_slash_command,
    render_prompt,
)


class RichTextTests(unittest.TestCase):
    def test_marker_detection(self) -> None:
        self.assertTrue(is_rich_text(f"see {context_marker('src/app.py')}"))
        self.assertFalse(is_rich_text("plain text [ctx:nope]"))

    def test_render_prompt_from_markers(self) -> None:
        self.assertEqual(
            render_prompt("explain [[ctx:src/app.py]] please "),
            "explain src/app.py please",
        )

    def test_render_prompt_prefers_delta(self) -> None:
        delta = [
            {"insert": "review "},
            {"insert": {"context": {"value": "/review", "text": "review"}}},
            {"insert": " now\n"},
            {"insert": {"image": "ignored"}},
        ]
        self.assertEqual(render_prompt("[[ctx:/review]] now", delta), "review /review now")


class SlashCommandParsingTests(unittest.TestCase):
    def test_parse_with_args(self) -> None:
        self.assertEqual(
            parse_slash_command("/commit  fix the parser "),
            ParsedSlashCommand(command="commit", args="fix the parser"),
        )

    def test_parse_without_args(self) -> None:
        self.assertEqual(parse_slash_command("/clear"), ParsedSlashCommand("clear", ""))

    def test_namespaced_command(self) -> None:
        self.assertEqual(parse_slash_command("/plugin:run x").command, "plugin:run")

    def test_non_command_is_rejected(self) -> None:
        self.assertFalse(is_slash_command("hello /world"))
        self.assertFalse(is_slash_command("/"))
        with self.assertRaises(ValueError):
            parse_slash_command("hello")


if __name__ == "__main__":
    unittest.main()
