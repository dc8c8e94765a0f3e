"""Exception hierarchy."""

from typing import Optional


class ShieldError(Exception):
    """Base class for all pipeline errors."""


class OracleError(ShieldError):
    """Classification oracle could not produce a usable response."""


class TransportError(OracleError):
    """Network-level failure (connection refused, reset, DNS)."""


class ProtocolError(OracleError):
    """Oracle answered with a non-success status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"server error: {status_code}")


class DecodeError(OracleError):
    """Response body was not the expected JSON structure."""


class ChannelError(ShieldError):
    """Message could not be dispatched to a handler."""


class UnknownMessageError(ChannelError):
    """No handler is registered for the message type."""

    def __init__(self, message_type: Optional[str]) -> None:
        self.message_type = message_type
        super().__init__(f"No handler for message type {message_type!r}")


class UnauthenticatedSenderError(ChannelError):
    """Message came from a sender other than the service itself."""

    def __init__(self, sender_id: Optional[str]) -> None:
        self.sender_id = sender_id
        super().__init__(f"Rejected message from sender {sender_id!r}")


class ClassifierError(ShieldError):
    """Relay classifier subprocess failed or produced unusable output."""
