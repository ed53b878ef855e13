"""
Typed exceptions for pinnode.

Provides structured error handling with:
- PinError: Base exception for all pinnode errors
- PinConfigError: Configuration file and validation errors
- BackendError: Local model server communication errors
- ProtocolError: Inbound frames that cannot be decoded
- PeerError: Fault reported by the coordination service
- TransportError: Connection-level failures

All exceptions include structured attributes for programmatic handling.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PinError(Exception):
    """Base exception for all pinnode errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class PinConfigError(PinError):
    """Configuration or validation error.

    Raised when:
    - The config file is missing or unreadable
    - The config file is not valid JSON
    - Required fields are missing (clientId, apiSecret, nodes)
    - No nodes are configured
    """

    pass


class BackendError(PinError):
    """Local model server communication error.

    Raised by backend adapters when:
    - The backend is unreachable or times out
    - The backend returns a non-success status
    - The backend response cannot be parsed

    Attributes:
        backend: Backend family that failed ("ollama", "openai")
        status_code: HTTP status code if available
    """

    def __init__(
        self,
        message: str,
        *,
        backend: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if backend:
            details["backend"] = backend
        if status_code:
            details["status_code"] = status_code

        self.backend = backend
        self.status_code = status_code

        super().__init__(message, code=code, details=details)


class ProtocolError(PinError):
    """An inbound frame could not be turned into a server message.

    Attributes:
        raw: The offending frame, truncated
    """

    def __init__(
        self,
        message: str,
        *,
        raw: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if raw is not None:
            details["raw"] = raw[:500]
        self.raw = raw
        super().__init__(message, code=code, details=details)


class MessageDecodeError(ProtocolError):
    """Frame is not JSON, not an object, or has invalid fields for its type."""

    pass


class UnknownMessageType(ProtocolError):
    """Frame carries a `type` tag this client does not understand.

    Attributes:
        message_type: The unrecognized tag (None when the tag is missing)
    """

    def __init__(
        self,
        message_type: Optional[str],
        *,
        raw: Optional[str] = None,
    ) -> None:
        self.message_type = message_type
        super().__init__(
            f"Unknown message type: {message_type!r}",
            raw=raw,
            details={"type": message_type},
        )


class PeerError(PinError):
    """The coordination service sent an ERROR message. Fatal to the session."""

    pass


class TransportError(PinError):
    """Connect, read or write failure on the coordination connection."""

    pass


__all__ = [
    "PinError",
    "PinConfigError",
    "BackendError",
    "ProtocolError",
    "MessageDecodeError",
    "UnknownMessageType",
    "PeerError",
    "TransportError",
]
