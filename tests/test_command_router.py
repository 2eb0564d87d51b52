"""Tests for input classification, slash commands and background reporting."""

from __future__ import annotations

import asyncio
import json
import unittest

from fake_transport import FakeTransport

from codechat.engine import SessionEngine
from codechat.events import SUMMARY_UPDATED
from codechat.state import AppStatus

INIT_RESPONSE = {"success": True, "data": {"model": "model-a", "approvalMode": "default"}}


def _command_entry(kind: str, **command: object) -> dict:
    return {"success": True, "data": {"commandEntry": {"command": {"type": kind, **command}}}}


class RouterTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.transport = FakeTransport({"session.initialize": INIT_RESPONSE})
        self.engine = SessionEngine(self.transport)
        await self.engine.initialize("/repo", "s1")
        self.transport.requests.clear()

    async def asyncTearDown(self) -> None:
        await self.engine.tasks.cancel_all()


class RichTextRoutingTests(RouterTestCase):
    async def test_rich_text_is_added_then_turn_continues(self) -> None:
        text = "explain [[ctx:src/app.py]]"

        await self.engine.send(text)
        await self.engine.tasks.drain()

        self.assertEqual(
            self.transport.calls("session.addMessages"),
            [
                {
                    "cwd": "/repo",
                    "sessionId": "s1",
                    "messages": [{"role": "user", "content": "explain src/app.py", "uiContent": text}],
                }
            ],
        )
        sends = self.transport.calls("session.send")
        self.assertEqual(len(sends), 1)
        self.assertIsNone(sends[0]["message"])
        methods = self.transport.methods
        self.assertLess(methods.index("session.addMessages"), methods.index("session.send"))

    async def test_rich_text_uses_delta_when_given(self) -> None:
        delta = [{"insert": "fix "}, {"insert": {"context": {"value": "lib/x.py", "text": "x.py"}}}]

        await self.engine.send("fix [[ctx:x.py]]", delta)

        content = self.transport.calls("session.addMessages")[0]["messages"][0]["content"]
        self.assertEqual(content, "fix lib/x.py")

    async def test_plain_slash_looking_text_goes_straight_to_backend(self) -> None:
        await self.engine.send("/not-marked")

        self.assertEqual(self.transport.calls("slashCommand.get"), [])
        self.assertEqual(self.transport.calls("session.send")[0]["message"], "/not-marked")


class SlashCommandTests(RouterTestCase):
    async def test_unknown_command_appends_one_error(self) -> None:
        await self.engine.send("[[ctx:/nope]]")

        errors = [m for m in self.engine.messages if m.get("role") == "ui_display"]
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0]["content"]["type"], "error")
        self.assertIn("nope", errors[0]["content"]["text"])
        self.assertEqual(self.transport.calls("session.send"), [])
        self.assertEqual(self.transport.calls("slashCommand.get"), [{"cwd": "/repo", "command": "nope"}])
        self.assertIs(self.engine.status, AppStatus.IDLE)

    async def test_prompt_command_feeds_the_model(self) -> None:
        self.transport.respond("slashCommand.get", _command_entry("prompt", model="model-b"))
        expansion = [{"role": "user", "content": "Review the staged diff."}]
        self.transport.respond(
            "slashCommand.execute", {"success": True, "data": {"messages": expansion}}
        )
        statuses: list[AppStatus] = []
        self.engine.subscribe("status.changed", lambda event: statuses.append(event.data["new"]))

        await self.engine.send("[[ctx:/review]] carefully")

        self.assertEqual(
            [m for m in self.transport.methods if m != "utils.telemetry"],
            [
                "slashCommand.get",
                "session.addMessages",
                "slashCommand.execute",
                "session.addMessages",
                "session.send",
            ],
        )
        added = self.transport.calls("session.addMessages")
        self.assertEqual(
            added[0]["messages"],
            [{"role": "user", "content": "/review carefully", "uiContent": "[[ctx:/review]] carefully"}],
        )
        self.assertEqual(added[1]["messages"], expansion)
        self.assertEqual(
            self.transport.calls("slashCommand.execute")[0],
            {"cwd": "/repo", "sessionId": "s1", "command": "review", "args": "carefully"},
        )
        self.assertEqual(self.transport.calls("session.send")[0]["model"], "model-b")
        self.assertEqual(statuses[0], AppStatus.SLASH_COMMAND_EXECUTING)
        self.assertIs(self.engine.status, AppStatus.IDLE)

    async def test_local_command_renders_locally(self) -> None:
        self.transport.respond("slashCommand.get", _command_entry("local"))
        self.transport.respond(
            "slashCommand.execute",
            {
                "success": True,
                "data": {
                    "messages": [
                        {"role": "user", "content": [{"type": "text", "text": "Cleared."}]},
                        {"role": "assistant", "content": "note"},
                    ]
                },
            },
        )

        await self.engine.send("[[ctx:/clear]]")

        self.assertEqual(
            self.engine.messages,
            [
                {"role": "user", "content": "/clear", "uiContent": "[[ctx:/clear]]"},
                {"role": "ui_display", "content": {"type": "info", "text": "Cleared."}},
                {"role": "assistant", "content": "note"},
            ],
        )
        self.assertEqual(self.transport.calls("session.addMessages"), [])
        self.assertEqual(self.transport.calls("session.send"), [])
        self.assertIs(self.engine.status, AppStatus.IDLE)

    async def test_unsupported_command_kind_is_reported(self) -> None:
        self.transport.respond("slashCommand.get", _command_entry("local-jsx"))

        await self.engine.send("[[ctx:/login]]")

        self.assertEqual(self.transport.calls("slashCommand.execute"), [])
        self.assertEqual(self.engine.messages[-1]["content"]["type"], "error")
        self.assertIs(self.engine.status, AppStatus.IDLE)

    async def test_execute_failure_is_a_request_failure(self) -> None:
        self.transport.respond("slashCommand.get", _command_entry("local"))
        self.transport.respond(
            "slashCommand.execute", {"success": False, "error": {"message": "no git repo"}}
        )

        await self.engine.send("[[ctx:/commit]]")

        self.assertIs(self.engine.status, AppStatus.FAILED)
        self.assertEqual(self.engine.session.error, "no git repo")
        self.assertEqual(
            self.engine.messages[-1],
            {"role": "ui_display", "content": {"type": "error", "text": "no git repo"}},
        )

    async def test_command_after_failed_cycle_starts_from_idle(self) -> None:
        self.transport.respond("session.send", {"success": False, "error": "down"})
        await self.engine.send("hello")
        self.assertIs(self.engine.status, AppStatus.FAILED)

        self.transport.respond("slashCommand.get", _command_entry("local"))
        self.transport.respond("slashCommand.execute", {"success": True, "data": {"messages": []}})
        statuses: list[AppStatus] = []
        self.engine.subscribe("status.changed", lambda event: statuses.append(event.data["new"]))

        await self.engine.send("[[ctx:/clear]]")

        self.assertEqual(
            statuses,
            [AppStatus.IDLE, AppStatus.SLASH_COMMAND_EXECUTING, AppStatus.IDLE],
        )


class QueueTests(RouterTestCase):
    async def test_input_during_cycle_is_queued_and_drained(self) -> None:
        released = asyncio.Event()
        entered = asyncio.Event()

        async def slow_send(params: dict) -> dict:
            entered.set()
            await released.wait()
            return {"success": True, "data": {}}

        self.transport.respond("session.send", slow_send)

        first = asyncio.create_task(self.engine.send("first"))
        await entered.wait()
        await self.engine.send("second")
        await self.engine.send("third")
        self.assertEqual(self.engine.session.queued_messages, ["second", "third"])
        self.assertEqual(len(self.transport.calls("session.send")), 1)

        released.set()
        await first
        await self.engine.tasks.drain()

        self.assertEqual(
            [params["message"] for params in self.transport.calls("session.send")],
            ["first", "second\nthird"],
        )
        self.assertEqual(
            [params["payload"]["message"] for params in self.transport.calls("utils.telemetry")],
            ["first", "second", "third"],
        )
        self.assertEqual(self.engine.session.queued_messages, [])
        self.assertIs(self.engine.status, AppStatus.IDLE)

    async def test_queue_kept_after_failed_cycle(self) -> None:
        self.engine.session.queued_messages.append("later")
        self.transport.respond("session.send", {"success": False, "error": "down"})

        await self.engine.send_message("now")
        await self.engine.tasks.drain()

        self.assertEqual(self.engine.session.queued_messages, ["later"])


class ReportingTests(RouterTestCase):
    async def test_every_send_reports_telemetry(self) -> None:
        await self.engine.send("hello")
        await self.engine.tasks.drain()

        self.assertEqual(
            self.transport.calls("utils.telemetry"),
            [{"cwd": "/repo", "name": "send", "payload": {"message": "hello", "sessionId": "s1"}}],
        )

    async def test_telemetry_failure_never_surfaces(self) -> None:
        self.transport.respond("utils.telemetry", RuntimeError("collector down"))

        with self.assertLogs("codechat.managers.summary", level="WARNING") as logs:
            await self.engine.send("hello")
            await self.engine.tasks.drain()

        self.assertIs(self.engine.status, AppStatus.IDLE)
        self.assertTrue(any("telemetry.failed" in line for line in logs.output))

    async def test_summary_is_derived_and_persisted(self) -> None:
        self.transport.respond(
            "utils.query",
            {"success": True, "data": {"text": json.dumps({"title": "Parser refactor"})}},
        )
        titles: list[str] = []
        self.engine.subscribe(SUMMARY_UPDATED, lambda event: titles.append(event.data["title"]))

        await self.engine.send("refactor the parser")
        await self.engine.tasks.drain()

        query = self.transport.calls("utils.query")[0]
        self.assertEqual(query["userPrompt"], "refactor the parser")
        self.assertIn("title", query["systemPrompt"])
        self.assertEqual(
            self.transport.calls("session.config.setSummary"),
            [{"cwd": "/repo", "sessionId": "s1", "summary": "Parser refactor"}],
        )
        self.assertEqual(titles, ["Parser refactor"])

    async def test_unparseable_summary_is_ignored(self) -> None:
        self.transport.respond("utils.query", {"success": True, "data": {"text": "not json"}})

        with self.assertLogs("codechat.managers.summary", level="WARNING"):
            await self.engine.send("hello")
            await self.engine.tasks.drain()

        self.assertEqual(self.transport.calls("session.config.setSummary"), [])
        self.assertIs(self.engine.status, AppStatus.IDLE)
        self.assertIsNone(self.engine.session.error)

    async def test_no_summary_after_failed_send(self) -> None:
        self.transport.respond("session.send", {"success": False, "error": "down"})

        await self.engine.send("hello")
        await self.engine.tasks.drain()

        self.assertEqual(self.transport.calls("utils.query"), [])


if __name__ == "__main__":
    unittest.main()
