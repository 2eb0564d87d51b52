"""Boundary contract for the transport that carries requests and events.

The engine never implements the transport; anything that satisfies
``Transport`` (a websocket bridge, a stdio RPC client, a test fake) can be
plugged in.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

EventHandler = Callable[[dict[str, Any]], None]
ApprovalHandler = Callable[[Any, Any], Awaitable[dict[str, bool]]]

MESSAGE_EVENT = "message"
CHUNK_EVENT = "chunk"

SESSION_INITIALIZE = "session.initialize"
SESSION_SEND = "session.send"
SESSION_ADD_MESSAGES = "session.addMessages"
SESSION_CANCEL = "session.cancel"
SESSION_SET_APPROVAL_MODE = "session.config.setApprovalMode"
SESSION_ADD_APPROVAL_TOOLS = "session.config.addApprovalTools"
SESSION_SET_SUMMARY = "session.config.setSummary"
SLASH_COMMAND_GET = "slashCommand.get"
SLASH_COMMAND_LIST = "slashCommand.list"
SLASH_COMMAND_EXECUTE = "slashCommand.execute"
UTILS_QUERY = "utils.query"
UTILS_FILES_LIST = "utils.files.list"
UTILS_TELEMETRY = "utils.telemetry"


class Transport(Protocol):
    """Request/response plus event subscription, as consumed by the engine."""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def request(self, method: str, params: dict[str, Any]) -> dict[str, Any]: ...

    def on_event(self, name: str, handler: EventHandler) -> None: ...

    def remove_event_handler(self, name: str, handler: EventHandler) -> None: ...

    def set_approval_handler(self, handler: ApprovalHandler | None) -> None: ...


class BridgeResponse(BaseModel):
    """Envelope of every backend response.

    ``error`` is either a bare string or an object with a ``message`` field,
    depending on which backend handler produced it.
    """

    model_config = ConfigDict(extra="allow")

    success: bool = False
    data: dict[str, Any] = Field(default_factory=dict)
    error: Any = None
    message: str | None = None

    @classmethod
    def parse(cls, raw: Any) -> BridgeResponse:
        if isinstance(raw, BridgeResponse):
            return raw
        if not isinstance(raw, dict):
            return cls(success=False, error=f"Malformed response: {raw!r}")
        payload = dict(raw)
        if payload.get("data") is None:
            payload.pop("data", None)
        return cls.model_validate(payload)

    @classmethod
    def failure(cls, text: str) -> BridgeResponse:
        return cls(success=False, error={"message": text})

    @property
    def error_message(self) -> str:
        if isinstance(self.error, dict):
            text = self.error.get("message")
            if text:
                return str(text)
        elif self.error:
            return str(self.error)
        return self.message or "Request failed"


async def call(transport: Transport, method: str, params: dict[str, Any]) -> BridgeResponse:
    """Issue a request and parse its envelope."""
    return BridgeResponse.parse(await transport.request(method, params))
