"""Session engine: the single owner of conversation state.

The engine wires the transport's ``message`` and ``chunk`` streams into the
reconciled history and token counter, installs the approval coordinator as the
transport's approval handler and exposes the explicit mutation API the UI
drives. Every mutation is followed by a notification on ``engine.bus``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
import logging
from typing import Any

from .commands import RichDelta
from .config import default_config
from .events import (
    HISTORY_CHANGED,
    SESSION_CHANGED,
    STATUS_CHANGED,
    TOKENS_CHANGED,
    EventBus,
    EventListener,
)
from .exceptions import (
    EngineStateError,
    InitializationError,
    ProtocolViolationError,
    RequestError,
)
from .history import MessageHistory, estimate_tokens
from .managers.approval import ApprovalCoordinator
from .managers.attachment import AttachmentStore
from .managers.command import SlashCommandRouter
from .managers.summary import SessionReporter
from .messages import Message, ui_display
from .state import CYCLE_PHASES, AppStatus, SessionState
from .task_manager import TaskManager
from .transport import (
    CHUNK_EVENT,
    MESSAGE_EVENT,
    SESSION_ADD_MESSAGES,
    SESSION_CANCEL,
    SESSION_INITIALIZE,
    SESSION_SEND,
    SLASH_COMMAND_LIST,
    UTILS_FILES_LIST,
    BridgeResponse,
    Transport,
    call,
)

LOGGER = logging.getLogger(__name__)

# Chunk shapes that carry streamed model text.
STREAM_EVENT_CHUNK = "raw_model_stream_event"
STREAM_TEXT_EVENTS = frozenset({"text-delta", "reasoning"})
FLAT_DELTA_CHUNKS = frozenset({"text-delta", "reasoning-delta"})


def _chunk_delta(chunk: Any) -> str | None:
    """Return the streamed text of a chunk, or None if it carries none."""
    if not isinstance(chunk, dict):
        return None
    kind = chunk.get("type")
    if kind == STREAM_EVENT_CHUNK:
        data = chunk.get("data")
        if not isinstance(data, dict) or data.get("type") != "model":
            return None
        event = data.get("event")
        if not isinstance(event, dict) or event.get("type") not in STREAM_TEXT_EVENTS:
            return None
        return str(event.get("textDelta") or "")
    if kind in FLAT_DELTA_CHUNKS:
        return str(chunk.get("delta") or "")
    return None


class SessionEngine:
    """Drives one live chat session against a backend transport.

    Usage:
        engine = SessionEngine(transport)
        teardown = await engine.initialize("/repo", "session-1")
        engine.subscribe("status.changed", on_status)
        await engine.send("hello")
        await engine.destroy()
    """

    def __init__(
        self,
        transport: Transport,
        *,
        config: dict[str, Any] | None = None,
        attachments: AttachmentStore | None = None,
    ) -> None:
        self.transport = transport
        self.config = config if config is not None else default_config()
        self.session = SessionState()
        self.history = MessageHistory()
        self.bus = EventBus()
        self.tasks = TaskManager()
        self.attachments = attachments or AttachmentStore.from_config(self.config)
        self.approvals = ApprovalCoordinator(
            transport, self.session, self.bus, self.set_status
        )
        self.reporter = SessionReporter(
            transport, self.session, self.bus, self.tasks, self.config
        )
        queue = self.config.get("queue", {})
        self.router = SlashCommandRouter(
            self,
            self.reporter,
            queue_enabled=bool(queue.get("enabled", True)),
            queue_separator=str(queue.get("separator", "\n")),
        )
        self._teardown: Callable[[], None] | None = None
        self._cycle = 0
        self._cancelled_cycle = -1
        # Bumped whenever the live session is replaced or torn down.
        self._generation = 0

    # -- read-only views -------------------------------------------------

    @property
    def status(self) -> AppStatus:
        return self.session.status

    @property
    def messages(self) -> list[Message]:
        return self.history.messages

    def subscribe(self, event_name: str, handler: EventListener) -> Callable[[], None]:
        """Observe engine notifications; returns an unsubscribe callable."""
        return self.bus.subscribe(event_name, handler)

    # -- lifecycle -------------------------------------------------------

    async def initialize(
        self,
        cwd: str,
        session_id: str | None,
        messages: Iterable[Message] = (),
    ) -> Callable[[], None]:
        """Connect, perform the handshake and start consuming backend events.

        Args:
            cwd: Working directory the session is bound to
            session_id: Session to resume, or None for a new one
            messages: Prior wire history to seed the reconciled history with

        Returns:
            Callable that stops consuming ``message`` and ``chunk`` events

        Raises:
            InitializationError: when the handshake fails; the transport is
                disconnected and no session state is kept
        """
        if self._teardown is not None:
            self._teardown()
            self._teardown = None

        prior = list(messages)
        await self.transport.connect()
        try:
            response = await call(
                self.transport,
                SESSION_INITIALIZE,
                {"cwd": cwd, "sessionId": session_id, "messages": prior},
            )
        except Exception as exc:
            await self._discard_session()
            raise InitializationError(f"Initialize failed: {exc}") from exc

        if not response.success:
            await self._discard_session()
            message = response.error_message
            LOGGER.error(
                "session.initialize.failed",
                extra={"event": "session.initialize.failed", "error": message},
            )
            raise InitializationError(message)

        data = response.data
        session_config = self.config.get("session", {})
        session = self.session
        session.reset()
        session.cwd = cwd
        session.session_id = session_id
        session.product_name = data.get("productName")
        session.version = data.get("version")
        session.model = data.get("model")
        session.approval_mode = data.get("approvalMode") or session_config.get(
            "default_approval_mode", "default"
        )
        session.plan_mode = bool(session_config.get("plan_mode", False))
        session.summary = data.get("summary")
        session.initialized = True
        self.history.replace(prior)
        self._generation += 1

        self.transport.on_event(MESSAGE_EVENT, self._handle_message)
        self.transport.on_event(CHUNK_EVENT, self._handle_chunk)
        self.transport.set_approval_handler(self.approvals.request_approval)

        def teardown() -> None:
            self.transport.remove_event_handler(MESSAGE_EVENT, self._handle_message)
            self.transport.remove_event_handler(CHUNK_EVENT, self._handle_chunk)

        self._teardown = teardown
        LOGGER.info(
            "session.initialized",
            extra={
                "event": "session.initialized",
                "cwd": cwd,
                "session_id": session_id,
                "messages": len(self.history),
            },
        )
        self.bus.emit(SESSION_CHANGED, {"initialized": True})
        self.bus.emit(HISTORY_CHANGED, {"count": len(self.history)})
        return teardown

    async def destroy(self) -> None:
        """Tear the session down; an outstanding approval is denied first."""
        self.approvals.force_deny()
        await self.tasks.cancel_all()
        await self._discard_session()
        LOGGER.info("session.destroyed", extra={"event": "session.destroyed"})

    async def _discard_session(self) -> None:
        """Drop every trace of the live session and disconnect.

        Requests still in flight for the discarded session see a new
        generation when they complete and leave the session untouched.
        """
        self.approvals.force_deny()
        if self._teardown is not None:
            self._teardown()
            self._teardown = None
        self.transport.set_approval_handler(None)
        self._generation += 1

        old_status = self.session.status
        was_initialized = self.session.initialized
        had_history = len(self.history) > 0
        self.session.reset()
        self.history.clear()
        if old_status is not AppStatus.IDLE:
            self.bus.emit(STATUS_CHANGED, {"old": old_status, "new": AppStatus.IDLE})
        if had_history:
            self.bus.emit(HISTORY_CHANGED, {"count": 0})
        if was_initialized:
            self.bus.emit(SESSION_CHANGED, {"initialized": False})

        await self.transport.disconnect()

    # -- sending ---------------------------------------------------------

    async def send(self, text: str, delta: RichDelta | None = None) -> None:
        """Submit user input; see ``SlashCommandRouter.send``."""
        if not self.session.initialized:
            raise EngineStateError("Session is not initialized")
        await self.router.send(text, delta)

    async def send_message(
        self,
        message: str | None = None,
        plan_mode: bool | None = None,
        model: str | None = None,
    ) -> BridgeResponse:
        """Run one request cycle against the backend.

        Failures are recorded on the session and in history, never raised.
        ``message=None`` continues the turn from the backend's own history.
        """
        session = self.session
        effective_plan_mode = session.plan_mode if plan_mode is None else plan_mode
        self._cycle += 1
        cycle = self._cycle
        generation = self._generation

        self.set_status(AppStatus.PROCESSING)
        self._set_tokens(0)
        session.loading = True
        try:
            response = await call(
                self.transport,
                SESSION_SEND,
                {
                    "message": message,
                    "planMode": effective_plan_mode,
                    "model": model,
                    "cwd": session.cwd,
                    "sessionId": session.session_id,
                    "attachments": self.attachments.attachments,
                },
            )
        except ProtocolViolationError:
            raise
        except Exception as exc:
            LOGGER.warning(
                "session.send.error",
                extra={"event": "session.send.error", "error": str(exc)},
            )
            response = BridgeResponse.failure(str(exc) or type(exc).__name__)
        finally:
            if generation == self._generation:
                session.loading = False
                self._set_tokens(0)

        if generation != self._generation:
            LOGGER.info(
                "session.send.discarded",
                extra={"event": "session.send.discarded", "success": response.success},
            )
            return BridgeResponse.failure("Session ended before the request completed")

        if response.success:
            if effective_plan_mode:
                session.plan_result = response.data.get("text")
            self.set_status(AppStatus.IDLE)
        elif self._cancelled_cycle == cycle:
            LOGGER.info("session.send.cancelled", extra={"event": "session.send.cancelled"})
            self.set_status(AppStatus.CANCELLED)
        else:
            self.record_failure(response.error_message)
        return response

    async def cancel(self) -> None:
        """Ask the backend to stop the executing cycle; no-op otherwise."""
        session = self.session
        if not session.is_executing:
            return
        self._cancelled_cycle = self._cycle
        try:
            await call(
                self.transport,
                SESSION_CANCEL,
                {"cwd": session.cwd, "sessionId": session.session_id},
            )
        except Exception as exc:
            LOGGER.warning(
                "session.cancel.failed",
                extra={"event": "session.cancel.failed", "error": str(exc)},
            )
        self.set_status(AppStatus.IDLE)
        self._set_tokens(0)

    # -- history ---------------------------------------------------------

    def add_message(self, messages: Message | list[Message]) -> None:
        """Append UI messages locally without contacting the backend."""
        batch = messages if isinstance(messages, list) else [messages]
        self.history.extend(batch)
        self.bus.emit(HISTORY_CHANGED, {"count": len(self.history)})

    async def add_backend_messages(self, messages: list[Message]) -> None:
        """Append messages to the backend's history for this session.

        Raises:
            RequestError: when the backend rejects the messages
        """
        response = await call(
            self.transport,
            SESSION_ADD_MESSAGES,
            {
                "cwd": self.session.cwd,
                "sessionId": self.session.session_id,
                "messages": messages,
            },
        )
        if not response.success:
            raise RequestError(response.error_message)

    def record_failure(self, text: str) -> None:
        """Mark the current cycle failed and surface ``text`` in history."""
        LOGGER.warning("request.failed", extra={"event": "request.failed", "error": text})
        self.session.error = text
        self.set_status(AppStatus.FAILED)
        self.add_message(ui_display("error", text))

    # -- queries ---------------------------------------------------------

    async def get_slash_commands(self) -> list[dict[str, Any]]:
        response = await call(
            self.transport, SLASH_COMMAND_LIST, {"cwd": self.session.cwd}
        )
        if not response.success:
            raise RequestError(response.error_message)
        return list(response.data.get("slashCommands") or [])

    async def get_files(self, query: str | None = None) -> list[dict[str, Any]]:
        """List workspace files matching ``query``.

        Raises:
            EngineStateError: when no working directory is set
        """
        if not self.session.cwd:
            raise EngineStateError(
                "Current working directory (cwd) is not set. "
                "Please select or initialize a working directory first."
            )
        response = await call(
            self.transport,
            UTILS_FILES_LIST,
            {"cwd": self.session.cwd, "query": query},
        )
        if not response.success:
            raise RequestError(response.error_message)
        return list(response.data.get("files") or [])

    # -- plan mode -------------------------------------------------------

    def set_plan_mode(self, enabled: bool) -> None:
        self.session.plan_mode = enabled
        if not enabled:
            self.session.plan_result = None

    async def approve_plan(self, plan: str) -> BridgeResponse:
        """Leave plan mode and let the backend carry out ``plan``."""
        self.session.plan_result = None
        self.session.plan_mode = False
        try:
            await self.add_backend_messages(
                [{"role": "user", "content": [{"type": "text", "text": plan}]}]
            )
        except ProtocolViolationError:
            raise
        except Exception as exc:
            LOGGER.warning(
                "plan.approve.failed",
                extra={"event": "plan.approve.failed", "error": str(exc)},
            )
        return await self.send_message(None)

    def deny_plan(self) -> None:
        self.session.plan_result = None

    # -- status ----------------------------------------------------------

    def set_status(self, status: AppStatus) -> None:
        old = self.session.status
        if old is status:
            return
        self.session.status = status
        LOGGER.debug(
            "status.changed",
            extra={"event": "status.changed", "old": old.value, "new": status.value},
        )
        self.bus.emit(STATUS_CHANGED, {"old": old, "new": status})

    def announce_phase(self, status: AppStatus | str) -> bool:
        """Project a backend-reported sub-phase onto the session status.

        Only honored inside a request cycle; returns False when ignored.
        """
        phase = AppStatus(status)
        if phase not in CYCLE_PHASES or self.session.status not in CYCLE_PHASES:
            LOGGER.debug(
                "status.phase.ignored",
                extra={
                    "event": "status.phase.ignored",
                    "phase": phase.value,
                    "status": self.session.status.value,
                },
            )
            return False
        self.set_status(phase)
        return True

    def _set_tokens(self, tokens: int) -> None:
        if self.session.processing_tokens == tokens:
            return
        self.session.processing_tokens = tokens
        self.bus.emit(TOKENS_CHANGED, {"tokens": tokens})

    # -- transport events ------------------------------------------------

    def _handle_message(self, data: dict[str, Any]) -> None:
        raw = data.get("message")
        if not isinstance(raw, dict):
            LOGGER.warning(
                "message.malformed",
                extra={"event": "message.malformed", "payload_type": type(raw).__name__},
            )
            return
        self.history.apply(raw)
        self.bus.emit(HISTORY_CHANGED, {"count": len(self.history)})

    def _handle_chunk(self, data: dict[str, Any]) -> None:
        session = self.session
        if data.get("sessionId") != session.session_id or data.get("cwd") != session.cwd:
            return
        delta = _chunk_delta(data.get("chunk"))
        if not delta:
            return
        self._set_tokens(session.processing_tokens + estimate_tokens(delta))
