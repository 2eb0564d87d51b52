"""Human-in-the-loop gate for backend tool proposals.

The backend asks "may I run this tool"; the coordinator publishes the request
to the UI and suspends the asking coroutine on a future until the UI decides.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any

from ..events import APPROVAL_REQUESTED, APPROVAL_RESOLVED, EventBus
from ..exceptions import ApprovalProtocolError
from ..state import AppStatus, SessionState
from ..transport import (
    SESSION_ADD_APPROVAL_TOOLS,
    SESSION_SET_APPROVAL_MODE,
    Transport,
    call,
)

LOGGER = logging.getLogger(__name__)

AUTO_EDIT_MODE = "autoEdit"


class ApprovalResult(str, Enum):
    """The four decisions a human can make about a proposed tool call."""

    APPROVE = "approve"
    DENY = "deny"
    APPROVE_ALWAYS_EDIT = "approve_always_edit"
    APPROVE_ALWAYS_TOOL = "approve_always_tool"

    @classmethod
    def _missing_(cls, value: object) -> ApprovalResult | None:
        if value == "approve_once":
            return cls.APPROVE
        return None

    @property
    def approved(self) -> bool:
        return self is not ApprovalResult.DENY


class ApprovalCategory(str, Enum):
    READ = "read"
    WRITE = "write"
    COMMAND = "command"
    NETWORK = "network"


@dataclass(frozen=True)
class ToolUse:
    """A proposed tool invocation awaiting approval."""

    name: str
    params: dict[str, Any] = field(default_factory=dict)
    call_id: str = ""

    @classmethod
    def coerce(cls, value: ToolUse | Mapping[str, Any]) -> ToolUse:
        if isinstance(value, ToolUse):
            return value
        return cls(
            name=str(value.get("name", "")),
            params=dict(value.get("params") or {}),
            call_id=str(value.get("callId") or value.get("call_id") or ""),
        )


def _coerce_category(value: ApprovalCategory | str | None) -> ApprovalCategory | None:
    if value is None or isinstance(value, ApprovalCategory):
        return value
    try:
        return ApprovalCategory(value)
    except ValueError:
        LOGGER.debug(f"Unknown approval category: {value!r}")
        return None


@dataclass
class ApprovalRequest:
    """An outstanding approval; ``resolve`` may take effect at most once."""

    tool_use: ToolUse
    category: ApprovalCategory | None
    _future: asyncio.Future[bool] = field(repr=False, compare=False)
    _coordinator: ApprovalCoordinator = field(repr=False, compare=False)

    @property
    def done(self) -> bool:
        return self._future.done()

    async def resolve(self, result: ApprovalResult | str) -> bool:
        """Apply the UI decision. Returns False if this request is already gone."""
        return await self._coordinator._resolve(self, ApprovalResult(result))


class ApprovalCoordinator:
    """Bridges backend approval requests to a single UI decision.

    Only one request may be outstanding; a second proposal is a backend
    contract breach and raises ``ApprovalProtocolError``.
    """

    def __init__(
        self,
        transport: Transport,
        session: SessionState,
        bus: EventBus,
        set_status: Callable[[AppStatus], None],
    ) -> None:
        self.transport = transport
        self.session = session
        self.bus = bus
        self._set_status = set_status
        self._pending: ApprovalRequest | None = None
        # Resolved by the UI but still persisting its side effect.
        self._settling: ApprovalRequest | None = None

    @property
    def pending(self) -> ApprovalRequest | None:
        return self._pending

    async def request_approval(
        self,
        tool_use: ToolUse | Mapping[str, Any],
        category: ApprovalCategory | str | None = None,
    ) -> dict[str, bool]:
        """Suspend until the UI resolves the proposal; returns ``{"approved": bool}``."""
        proposal = ToolUse.coerce(tool_use)
        if self._pending is not None:
            raise ApprovalProtocolError(
                f"Approval for {proposal.name!r} requested while "
                f"{self._pending.tool_use.name!r} is still pending"
            )

        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        request = ApprovalRequest(
            tool_use=proposal,
            category=_coerce_category(category),
            _future=future,
            _coordinator=self,
        )
        self._pending = request
        LOGGER.info(
            "approval.requested",
            extra={
                "event": "approval.requested",
                "tool": proposal.name,
                "category": request.category.value if request.category else None,
            },
        )
        if self.session.is_executing:
            self._set_status(AppStatus.TOOL_APPROVING)
        self.bus.emit(APPROVAL_REQUESTED, {"request": request})

        try:
            approved = await future
        except asyncio.CancelledError:
            if self._pending is request:
                self._pending = None
            raise
        return {"approved": approved}

    async def resolve(self, result: ApprovalResult | str) -> bool:
        """Resolve whichever request is currently pending."""
        request = self._pending
        if request is None:
            return False
        return await request.resolve(result)

    async def _resolve(self, request: ApprovalRequest, result: ApprovalResult) -> bool:
        if request is not self._pending or request.done:
            return False
        self._pending = None
        self._settling = request

        try:
            # Persist before the waiting caller resumes.
            if result is ApprovalResult.APPROVE_ALWAYS_EDIT:
                persisted = await self._persist(
                    SESSION_SET_APPROVAL_MODE, {"approvalMode": AUTO_EDIT_MODE}
                )
                # A teardown during the round trip already denied the request.
                if persisted and not request.done:
                    self.session.approval_mode = AUTO_EDIT_MODE
            elif result is ApprovalResult.APPROVE_ALWAYS_TOOL:
                await self._persist(
                    SESSION_ADD_APPROVAL_TOOLS, {"approvalTool": request.tool_use.name}
                )
        finally:
            if self._settling is request:
                self._settling = None
            applied = not request.done
            if applied:
                self._finish(request, result)
        return applied

    def force_deny(self) -> bool:
        """Resolve the outstanding request as denied without consulting the UI.

        A request whose UI decision is still being persisted is denied too.
        """
        request = self._pending or self._settling
        self._pending = None
        self._settling = None
        if request is None or request.done:
            return False
        self._finish(request, ApprovalResult.DENY)
        return True

    def _finish(self, request: ApprovalRequest, result: ApprovalResult) -> None:
        if self.session.status is AppStatus.TOOL_APPROVING:
            self._set_status(
                AppStatus.TOOL_EXECUTING if result.approved else AppStatus.PROCESSING
            )
        if not request.done:
            request._future.set_result(result.approved)
        LOGGER.info(
            "approval.resolved",
            extra={
                "event": "approval.resolved",
                "tool": request.tool_use.name,
                "result": result.value,
            },
        )
        self.bus.emit(
            APPROVAL_RESOLVED,
            {"request": request, "result": result, "approved": result.approved},
        )

    async def _persist(self, method: str, params: dict[str, Any]) -> bool:
        payload = {
            "cwd": self.session.cwd,
            "sessionId": self.session.session_id,
            **params,
        }
        try:
            response = await call(self.transport, method, payload)
        except Exception as exc:
            LOGGER.warning(
                "approval.persist.failed",
                extra={"event": "approval.persist.failed", "method": method, "error": str(exc)},
            )
            return False
        if not response.success:
            LOGGER.warning(
                "approval.persist.failed",
                extra={
                    "event": "approval.persist.failed",
                    "method": method,
                    "error": response.error_message,
                },
            )
        return response.success
