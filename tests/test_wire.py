import asyncio

import pytest

from avsocket import Frame, FrameDecoder, FrameKind, FramingError, OversizedPayload, decode_frame, encode_frame, read_frame
from avsocket.wire import HEADER_SIZE, LENGTH_PREFIX_SIZE


def _frame(cid=7, payload=b"\x00\x01binary\xff"):
    return Frame(correlation_id=cid, method_id=0xDEADBEEFCAFEF00D, kind=FrameKind.REQUEST, payload=payload)


def test_encode_layout_is_length_prefixed_big_endian():
    data = encode_frame(Frame(1, 2, FrameKind.OK, b"abc"))
    assert data[:4] == (HEADER_SIZE + 3).to_bytes(4, "big")
    assert data[4:12] == (1).to_bytes(8, "big")
    assert data[12:20] == (2).to_bytes(8, "big")
    assert data[20] == FrameKind.OK
    assert data[21:] == b"abc"


def test_decode_frame_body():
    frame = _frame()
    data = encode_frame(frame)
    assert decode_frame(data[LENGTH_PREFIX_SIZE:]) == frame


def test_decoder_handles_one_byte_chunks():
    frames = [_frame(1), _frame(2, b""), _frame(3, b"x" * 300)]
    stream = b"".join(encode_frame(f) for f in frames)
    decoder = FrameDecoder()
    out = []
    for i in range(len(stream)):
        out.extend(decoder.feed(stream[i:i + 1]))
    assert out == frames
    assert decoder.buffered == 0
    decoder.eof()


def test_decoder_returns_several_frames_from_one_chunk_and_keeps_leftover():
    a, b = encode_frame(_frame(1)), encode_frame(_frame(2))
    decoder = FrameDecoder()
    assert decoder.feed(a + b[:5]) == [_frame(1)]
    assert decoder.buffered == 5
    assert decoder.feed(b[5:]) == [_frame(2)]


def test_decoder_eof_mid_frame_is_framing_error():
    decoder = FrameDecoder()
    decoder.feed(encode_frame(_frame())[:-1])
    with pytest.raises(FramingError):
        decoder.eof()


def test_length_shorter_than_header_is_rejected():
    with pytest.raises(FramingError):
        FrameDecoder().feed((3).to_bytes(4, "big") + b"abc")


def test_length_over_limit_is_rejected_before_buffering_payload():
    decoder = FrameDecoder(max_payload=16)
    with pytest.raises(FramingError):
        decoder.feed((HEADER_SIZE + 17).to_bytes(4, "big"))


def test_unknown_flag_is_rejected():
    data = bytearray(encode_frame(_frame()))
    data[20] = 9
    with pytest.raises(FramingError):
        FrameDecoder().feed(bytes(data))


def test_encode_oversized_payload_fails():
    with pytest.raises(OversizedPayload) as exc_info:
        encode_frame(_frame(payload=b"x" * 11), max_payload=10)
    assert exc_info.value.size == 11
    assert exc_info.value.limit == 10


def test_encode_payload_at_limit_is_fine():
    assert len(encode_frame(_frame(payload=b"x" * 10), max_payload=10)) == LENGTH_PREFIX_SIZE + HEADER_SIZE + 10


@pytest.mark.asyncio
async def test_read_frame_clean_eof_returns_none():
    reader = asyncio.StreamReader()
    reader.feed_data(encode_frame(_frame()))
    reader.feed_eof()
    assert await read_frame(reader) == _frame()
    assert await read_frame(reader) is None


@pytest.mark.asyncio
async def test_read_frame_truncated_body():
    reader = asyncio.StreamReader()
    reader.feed_data(encode_frame(_frame())[:-2])
    reader.feed_eof()
    with pytest.raises(FramingError):
        await read_frame(reader)


@pytest.mark.asyncio
async def test_read_frame_truncated_length_prefix():
    reader = asyncio.StreamReader()
    reader.feed_data(b"\x00\x00")
    reader.feed_eof()
    with pytest.raises(FramingError):
        await read_frame(reader)
