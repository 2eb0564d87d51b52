"""Best-effort reporting that must never disturb the send path.

Telemetry for every input and the derived session title both run as
background tasks; their failures are logged and dropped.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from ..events import SUMMARY_UPDATED, EventBus
from ..transport import SESSION_SET_SUMMARY, UTILS_QUERY, UTILS_TELEMETRY, Transport, call

if TYPE_CHECKING:
    from ..state import SessionState
    from ..task_manager import TaskManager

LOGGER = logging.getLogger(__name__)


class SessionReporter:
    """Sends telemetry and derives the session summary in the background."""

    def __init__(
        self,
        transport: Transport,
        session: SessionState,
        bus: EventBus,
        tasks: TaskManager,
        config: dict[str, Any],
    ) -> None:
        self.transport = transport
        self.session = session
        self.bus = bus
        self.tasks = tasks
        telemetry = config.get("telemetry", {})
        summary = config.get("summary", {})
        self.telemetry_enabled = bool(telemetry.get("enabled", True))
        self.telemetry_event = str(telemetry.get("event_name", "send"))
        self.summary_enabled = bool(summary.get("enabled", True))
        self.summary_prompt = str(summary.get("system_prompt", ""))

    def report_send(self, message: str) -> None:
        """Fire-and-forget telemetry for one ``send`` invocation."""
        if not self.telemetry_enabled:
            return
        self.tasks.spawn(
            self._send_telemetry(self.session.cwd, self.session.session_id, message),
            label="telemetry",
        )

    async def _send_telemetry(
        self, cwd: str | None, session_id: str | None, message: str
    ) -> None:
        try:
            await self.transport.request(
                UTILS_TELEMETRY,
                {
                    "cwd": cwd,
                    "name": self.telemetry_event,
                    "payload": {"message": message, "sessionId": session_id},
                },
            )
        except Exception as exc:
            LOGGER.warning(
                "telemetry.failed",
                extra={"event": "telemetry.failed", "error": str(exc)},
            )

    def schedule_summary(self, user_prompt: str) -> None:
        """Derive and persist a topic title after a successful exchange."""
        if not self.summary_enabled:
            return
        self.tasks.spawn(
            self.derive_summary(self.session.cwd, self.session.session_id, user_prompt),
            label="summary",
        )

    async def derive_summary(
        self, cwd: str | None, session_id: str | None, user_prompt: str
    ) -> str | None:
        """Ask the backend for a short title and persist it as the session summary."""
        try:
            response = await call(
                self.transport,
                UTILS_QUERY,
                {
                    "cwd": cwd,
                    "systemPrompt": self.summary_prompt,
                    "userPrompt": user_prompt,
                },
            )
            text = response.data.get("text") if response.success else None
            if not text:
                return None

            parsed = json.loads(text)
            title = parsed.get("title") if isinstance(parsed, dict) else None
            if not isinstance(title, str) or not title.strip():
                return None
            title = title.strip()

            persisted = await call(
                self.transport,
                SESSION_SET_SUMMARY,
                {"cwd": cwd, "sessionId": session_id, "summary": title},
            )
            if not persisted.success:
                LOGGER.warning(
                    "summary.persist.failed",
                    extra={"event": "summary.persist.failed", "error": persisted.error_message},
                )
                return None
        except Exception as exc:
            LOGGER.warning(
                "summary.failed",
                extra={"event": "summary.failed", "error": str(exc)},
            )
            return None

        self.bus.emit(SUMMARY_UPDATED, {"title": title, "sessionId": session_id})
        return title
