from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum

# Frame flags
class FrameKind(IntEnum):
    REQUEST = 0
    OK      = 1
    ERR     = 2

@dataclass(frozen=True)
class Frame:
    """
    One logical message on the wire. 'payload' is codec-encoded bytes:
    the argument tuple (REQUEST), the return value (OK) or an error mapping (ERR).
    """
    correlation_id: int          # u64, unique among in-flight requests on one connection
    method_id: int               # u64, echoed back on responses
    kind: FrameKind
    payload: bytes = b""

    @property
    def is_request(self) -> bool:
        return self.kind == FrameKind.REQUEST

    def reply_ok(self, payload: bytes) -> "Frame":
        return Frame(self.correlation_id, self.method_id, FrameKind.OK, payload)

    def reply_err(self, payload: bytes) -> "Frame":
        return Frame(self.correlation_id, self.method_id, FrameKind.ERR, payload)
