"""Domain exception hierarchy for the conversation engine."""

from __future__ import annotations


class CodechatError(RuntimeError):
    """Base class for all domain-level engine errors."""


class InitializationError(CodechatError):
    """Raised when the session handshake reports failure."""


class RequestError(CodechatError):
    """Raised when a backend request fails and the caller must see it."""


class ProtocolViolationError(CodechatError):
    """Raised when the backend breaks the message or approval contract."""


class ApprovalProtocolError(ProtocolViolationError):
    """Raised when a tool approval is proposed while another is outstanding."""


class EngineStateError(CodechatError):
    """Raised when an operation needs session state that is not established."""


class AttachmentError(CodechatError):
    """Raised when a context attachment cannot be read or validated."""


class ConfigValidationError(CodechatError):
    """Raised when configuration cannot be validated safely."""
