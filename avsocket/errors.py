from __future__ import annotations
from enum import StrEnum
from typing import Any, Dict, Optional

# error messages sent over the wire are truncated to this many characters
MAX_MESSAGE_LEN = 4096

class ErrorCode(StrEnum):
    UNKNOWN_METHOD       = "unknown_method"
    MALFORMED_ARGUMENTS  = "malformed_arguments"
    SERIALIZATION_FAILED = "serialization_failed"
    HANDLER_FAILED       = "handler_failed"


class RPCError(Exception):
    """Base exception for everything raised by avsocket."""


class ConnectError(RPCError, ConnectionError):
    """Could not open a connection to a socket path."""

    def __init__(self, path: str, reason: str, detail: str = ""):
        self.path = path
        self.reason = reason  # not_found | refused | permission_denied | other
        msg = f"cannot connect to {path}: {reason}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class FramingError(RPCError):
    """Malformed or truncated frame. Fatal to the connection that produced it."""


class OversizedPayload(RPCError):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"payload of {size} bytes exceeds limit of {limit} bytes")


class ConnectionClosed(RPCError):
    """The dispatcher's connection is gone."""


class ContractError(RPCError):
    """A method contract or handler binding is inconsistent."""


class RemoteError(RPCError):
    """
    Failure reported by the server in an error response.
    Subclasses map 1:1 onto ErrorCode values.
    """
    code: Optional[ErrorCode] = None

    def __init__(self, message: str = "", code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(f"{self.code}: {message}" if message else str(self.code))

    def to_payload(self) -> Dict[str, Any]:
        return {"code": str(self.code), "message": self.message[:MAX_MESSAGE_LEN]}

    @classmethod
    def from_payload(cls, payload: Any) -> "RemoteError":
        row = payload if isinstance(payload, dict) else {}
        code = str(row.get("code") or "remote_error")
        message = str(row.get("message") or "")
        exc_cls = _BY_CODE.get(code)
        if exc_cls is None:
            return RemoteError(message, code=code)
        return exc_cls(message)


class UnknownMethod(RemoteError):
    code = ErrorCode.UNKNOWN_METHOD


class MalformedArguments(RemoteError):
    code = ErrorCode.MALFORMED_ARGUMENTS


class SerializationFailed(RemoteError):
    code = ErrorCode.SERIALIZATION_FAILED


class HandlerFailed(RemoteError):
    code = ErrorCode.HANDLER_FAILED


_BY_CODE: Dict[str, type[RemoteError]] = {
    ErrorCode.UNKNOWN_METHOD:       UnknownMethod,
    ErrorCode.MALFORMED_ARGUMENTS:  MalformedArguments,
    ErrorCode.SERIALIZATION_FAILED: SerializationFailed,
    ErrorCode.HANDLER_FAILED:       HandlerFailed,
}
