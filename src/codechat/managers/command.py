"""Classification and dispatch of user input.

Every ``send`` goes through the router, which decides between three paths:

- plain text, forwarded to the backend as the next user turn
- rich text carrying context embeds, rendered to a prompt and added to the
  backend history before the turn continues
- a slash command, resolved and executed by the backend and then either fed
  back to the model (``prompt`` commands) or shown locally (``local``)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..commands import (
    ParsedSlashCommand,
    RichDelta,
    is_rich_text,
    is_slash_command,
    parse_slash_command,
    render_prompt,
)
from ..exceptions import ProtocolViolationError, RequestError
from ..messages import Message, ui_display, user_message, user_to_info_display
from ..state import AppStatus
from ..transport import SLASH_COMMAND_EXECUTE, SLASH_COMMAND_GET, call

if TYPE_CHECKING:
    from ..engine import SessionEngine
    from .summary import SessionReporter

LOGGER = logging.getLogger(__name__)

PROMPT_COMMAND = "prompt"
LOCAL_COMMAND = "local"


class SlashCommandRouter:
    """Routes one input string to the matching backend interaction.

    Responsibilities:
    - Fire-and-forget telemetry for every input
    - Queueing input that arrives while a cycle is executing
    - Rich-text rendering and slash-command dispatch
    - Scheduling the session summary and the queued-input drain
    """

    def __init__(
        self,
        engine: SessionEngine,
        reporter: SessionReporter,
        *,
        queue_enabled: bool = True,
        queue_separator: str = "\n",
    ) -> None:
        self.engine = engine
        self.reporter = reporter
        self.queue_enabled = queue_enabled
        self.queue_separator = queue_separator

    async def send(self, text: str, delta: RichDelta | None = None) -> None:
        """Classify ``text`` and run it.

        Args:
            text: Plain-text rendering of the input, context embeds serialized
                as ``[[ctx:<value>]]`` markers
            delta: Optional structured form of the same input
        """
        self.reporter.report_send(text)
        await self.dispatch(text, delta)

    async def dispatch(self, text: str, delta: RichDelta | None = None) -> None:
        """Queue or route ``text`` without reporting it again."""
        session = self.engine.session
        if self.queue_enabled and session.is_executing:
            session.queued_messages.append(text)
            LOGGER.info(
                "input.queued",
                extra={"event": "input.queued", "queued": len(session.queued_messages)},
            )
            return

        if not is_rich_text(text):
            response = await self.engine.send_message(text)
            if response.success:
                self.reporter.schedule_summary(text)
                self.schedule_queue_drain()
            return

        prompt = render_prompt(text, delta)
        if not is_slash_command(prompt):
            await self._send_rich(prompt, text)
            return

        await self._run_slash_command(parse_slash_command(prompt), prompt, text)

    async def _send_rich(self, prompt: str, text: str) -> None:
        try:
            await self.engine.add_backend_messages([user_message(prompt, ui_content=text)])
        except ProtocolViolationError:
            raise
        except Exception as exc:
            self.engine.record_failure(str(exc))
            return

        response = await self.engine.send_message(None)
        if response.success:
            self.reporter.schedule_summary(text)
            self.schedule_queue_drain()

    async def _run_slash_command(
        self, parsed: ParsedSlashCommand, prompt: str, text: str
    ) -> None:
        engine = self.engine
        session = engine.session

        try:
            lookup = await call(
                engine.transport,
                SLASH_COMMAND_GET,
                {"cwd": session.cwd, "command": parsed.command},
            )
        except ProtocolViolationError:
            raise
        except Exception as exc:
            engine.record_failure(str(exc))
            return

        entry = lookup.data.get("commandEntry") if lookup.success else None
        if not entry:
            LOGGER.info(
                "slash_command.unknown",
                extra={"event": "slash_command.unknown", "command": parsed.command},
            )
            engine.add_message(ui_display("error", f"Unknown slash command: {parsed.command}"))
            return

        command: dict[str, Any] = entry.get("command") or {}
        kind = command.get("type")
        if kind not in (PROMPT_COMMAND, LOCAL_COMMAND):
            engine.add_message(
                ui_display("error", f"Unsupported slash command type: {kind} (/{parsed.command})")
            )
            return

        LOGGER.info(
            "slash_command.execute",
            extra={"event": "slash_command.execute", "command": parsed.command, "kind": kind},
        )
        if engine.status in (AppStatus.FAILED, AppStatus.CANCELLED):
            # A finished cycle settles before a new one starts.
            engine.set_status(AppStatus.IDLE)
        engine.set_status(AppStatus.SLASH_COMMAND_EXECUTING)
        request = user_message(prompt, ui_content=text)

        try:
            if kind == PROMPT_COMMAND:
                await engine.add_backend_messages([request])
            else:
                engine.add_message(request)

            result = await call(
                engine.transport,
                SLASH_COMMAND_EXECUTE,
                {
                    "cwd": session.cwd,
                    "sessionId": session.session_id,
                    "command": parsed.command,
                    "args": parsed.args,
                },
            )
            if not result.success:
                raise RequestError(result.error_message)

            outputs: list[Message] = list(result.data.get("messages") or [])
            if kind == PROMPT_COMMAND:
                await engine.add_backend_messages(outputs)
        except ProtocolViolationError:
            raise
        except Exception as exc:
            engine.record_failure(str(exc))
            return

        if kind == PROMPT_COMMAND:
            response = await engine.send_message(None, model=command.get("model"))
            if response.success:
                self.schedule_queue_drain()
            return

        engine.add_message(
            [
                user_to_info_display(message) if message.get("role") == "user" else message
                for message in outputs
            ]
        )
        engine.set_status(AppStatus.IDLE)
        self.schedule_queue_drain()

    def schedule_queue_drain(self) -> None:
        """Send everything queued during the last cycle as one message."""
        session = self.engine.session
        if not session.queued_messages:
            return
        queued = list(session.queued_messages)
        session.queued_messages.clear()
        LOGGER.info(
            "queue.drain",
            extra={"event": "queue.drain", "count": len(queued)},
        )
        self.engine.tasks.spawn(
            self.dispatch(self.queue_separator.join(queued)), label="queue"
        )
