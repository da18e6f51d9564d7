"""
Length-prefixed framing.

    [ frame_length: u32 ][ correlation_id: u64 ][ method_id: u64 ][ flag: u8 ][ payload ]

All integers are big-endian; frame_length covers everything after itself.
"""
from __future__ import annotations
import asyncio
import struct
from typing import List, Optional

from .errors import FramingError, OversizedPayload
from .message import Frame, FrameKind

_LEN = struct.Struct(">I")
_HDR = struct.Struct(">QQB")

LENGTH_PREFIX_SIZE = _LEN.size   # 4
HEADER_SIZE = _HDR.size          # 17
DEFAULT_MAX_PAYLOAD = 8 * 1024 * 1024
U64_MAX = 2**64 - 1


def encode_frame(frame: Frame, max_payload: int = DEFAULT_MAX_PAYLOAD) -> bytes:
    size = len(frame.payload)
    if size > max_payload:
        raise OversizedPayload(size, max_payload)
    header = _HDR.pack(frame.correlation_id, frame.method_id, int(frame.kind))
    return _LEN.pack(HEADER_SIZE + size) + header + frame.payload


def _check_length(length: int, max_payload: int) -> None:
    if length < HEADER_SIZE:
        raise FramingError(f"frame length {length} shorter than header ({HEADER_SIZE})")
    if length - HEADER_SIZE > max_payload:
        raise FramingError(f"frame length {length} exceeds limit of {max_payload + HEADER_SIZE}")


def decode_frame(body: bytes) -> Frame:
    """Decode a frame body (everything after the length prefix)."""
    if len(body) < HEADER_SIZE:
        raise FramingError("frame too short")
    corr, method_id, flag = _HDR.unpack_from(body)
    try:
        kind = FrameKind(flag)
    except ValueError:
        raise FramingError(f"unknown frame flag {flag}") from None
    return Frame(corr, method_id, kind, bytes(body[HEADER_SIZE:]))


class FrameDecoder:
    """
    Incremental decoder for a byte stream delivered in arbitrary chunks.
    feed() returns every frame completed so far; leftovers stay buffered.
    """

    def __init__(self, max_payload: int = DEFAULT_MAX_PAYLOAD):
        self.max_payload = max_payload
        self._buf = bytearray()

    @property
    def buffered(self) -> int:
        return len(self._buf)

    def feed(self, chunk: bytes) -> List[Frame]:
        self._buf += chunk
        frames: List[Frame] = []
        while len(self._buf) >= LENGTH_PREFIX_SIZE:
            (length,) = _LEN.unpack_from(self._buf)
            _check_length(length, self.max_payload)
            end = LENGTH_PREFIX_SIZE + length
            if len(self._buf) < end:
                break
            frames.append(decode_frame(self._buf[LENGTH_PREFIX_SIZE:end]))
            del self._buf[:end]
        return frames

    def eof(self) -> None:
        if self._buf:
            raise FramingError(f"stream closed mid-frame ({len(self._buf)} bytes buffered)")


async def read_frame(reader: asyncio.StreamReader, max_payload: int = DEFAULT_MAX_PAYLOAD) -> Optional[Frame]:
    """
    Read one frame. Returns None on a clean EOF at a frame boundary;
    EOF anywhere else is a FramingError.
    """
    try:
        prefix = await reader.readexactly(LENGTH_PREFIX_SIZE)
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            return None
        raise FramingError("stream closed inside length prefix") from None
    (length,) = _LEN.unpack(prefix)
    _check_length(length, max_payload)
    try:
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise FramingError(f"stream closed mid-frame ({len(e.partial)}/{length} bytes)") from None
    return decode_frame(body)
