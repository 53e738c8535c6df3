"""Engine client error taxonomy.

Every error carries a single human-readable ``message`` suitable for display.
"""

from __future__ import annotations

import json


class EngineError(Exception):
    """Base class for all failures talking to the Engine."""

    default_message = "Docker Engine error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class SocketUnavailable(EngineError):
    """No endpoint is resolved; raised before any I/O is attempted."""

    default_message = "No Docker/Colima backend available"


class TransportFailure(EngineError):
    """Connection refused, timeout, or a broken HTTP exchange."""

    default_message = "Could not reach the Docker socket"


class DecodeError(EngineError):
    """The Engine answered with JSON of an unexpected shape."""

    default_message = "Unexpected response from Docker"


class StreamDecodeError(EngineError):
    """A malformed frame inside a multiplexed log stream.

    Never raised out of the log decoder: it is recorded and the decoder falls
    back to raw pass-through.
    """

    default_message = "Malformed log stream frame"


class EngineHTTPError(EngineError):
    """The Engine answered with a status code of 400 or above."""

    def __init__(self, status: int, message: str | None = None) -> None:
        self.status = status
        super().__init__(message or generic_http_message(status))

    @classmethod
    def from_body(cls, status: int, body: bytes) -> EngineHTTPError:
        return cls(status, error_message_from_body(body))


def generic_http_message(status: int) -> str:
    return f"Docker error ({status})"


def error_message_from_body(body: bytes) -> str | None:
    """Extract ``message`` from an Engine JSON error body, if there is one."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        return None
    if isinstance(data, dict):
        message = data.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return None
