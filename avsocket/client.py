"""
Client side: one Dispatcher per connection.

    from example import proto

    async with await Dispatcher.connect(path) as client:
        goblin = await client.dispatch(proto.hurt(Goblin(health=20, hungry=True), 23))
        total = await client.invoke(proto.add, (5, 23))

Any number of calls may be in flight on one dispatcher; responses are
matched to callers by correlation id, not by arrival order.
"""
from __future__ import annotations
import asyncio
from contextlib import suppress
import itertools
from typing import Any, Dict, Optional, Sequence, TypeVar

from loguru import logger

from .codecs import Codec, Codecs
from .config import RpcConfig
from .errors import ConnectionClosed, FramingError, RemoteError, SerializationFailed
from .message import Frame, FrameKind
from .method import Call, Method
from .transport import PathLike, open_unix
from .wire import U64_MAX, encode_frame, read_frame

R = TypeVar("R")


class Dispatcher:

    # Notes:
    # - The pending map is only touched from the event loop thread: invoke() adds,
    #   the read task pops. Each entry is removed exactly once (pop, never del).
    # - Teardown swaps the whole map out and fails every entry with ConnectionClosed.
    # - No timeouts and no retries; wrap invoke() in asyncio.timeout() if needed.

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, *,
                 config: Optional[RpcConfig] = None, codec: Optional[Codec] = None,
                 path: Optional[str] = None):
        self.config = config or RpcConfig()
        self.codec = codec if codec is not None else Codecs.get(self.config.codec)
        self.path = path
        self._reader = reader
        self._writer = writer
        self._pending: Dict[int, asyncio.Future[Frame]] = {}
        self._ids = itertools.count(1)
        self._write_lock = asyncio.Lock()
        self._closed = False
        self._close_reason = ""
        self._read_task = asyncio.create_task(self._read_loop(), name=f"avsocket-dispatcher:{path}")

    @classmethod
    async def connect(cls, path: PathLike, *, config: Optional[RpcConfig] = None,
                      codec: Optional[Codec] = None) -> "Dispatcher":
        """Open a connection; raises ConnectError if the socket is missing, refused or forbidden."""
        reader, writer = await open_unix(path)
        client = cls(reader, writer, config=config, codec=codec, path=str(path))
        logger.info("Connected to {}", path)
        return client

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def dispatch(self, call: Call[R]) -> R:
        """Send a bound call, e.g. ``await client.dispatch(proto.add(5, 23))``."""
        return await self.invoke(call.method, call.args)

    async def invoke(self, method: Method[..., R], args: Sequence[Any] = ()) -> R:
        """
        Call a remote method and wait for its result.

        Raises ConnectionClosed if the connection is (or becomes) closed,
        OversizedPayload / SerializationFailed before anything is written,
        or the RemoteError subclass the server answered with.
        """
        if self._closed:
            raise ConnectionClosed(self._close_reason)
        bound = method.bind_args(*args)
        try:
            payload = method.encode_args(self.codec, bound)
        except Exception as ex:
            raise SerializationFailed(f"{method.name}: cannot serialize arguments: {ex}") from ex

        cid = self._next_id()
        data = encode_frame(Frame(cid, method.method_id, FrameKind.REQUEST, payload),
                            self.config.max_payload_size)

        fut: asyncio.Future[Frame] = asyncio.get_running_loop().create_future()
        self._pending[cid] = fut
        try:
            await self._send(data)
            response = await fut
        finally:
            self._pending.pop(cid, None)
            if fut.done() and not fut.cancelled():
                fut.exception()  # cancelled before awaiting: keep asyncio from warning
        return self._unpack(method, response)

    def _next_id(self) -> int:
        while True:
            cid = next(self._ids)
            if cid > U64_MAX:
                self._ids = itertools.count(1)
                continue
            if cid not in self._pending:
                return cid

    async def _send(self, data: bytes) -> None:
        # I/O failures tear the connection down, which fails our own pending entry too
        async with self._write_lock:
            if self._closed:
                raise ConnectionClosed(self._close_reason)
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (ConnectionError, OSError) as e:
                logger.warning("Write to {} failed: {!r}", self.path, e)
                self._teardown(f"write failed: {e!r}")

    def _unpack(self, method: Method[..., R], frame: Frame) -> R:
        if frame.kind == FrameKind.OK:
            try:
                return method.decode_result(self.codec, frame.payload)
            except Exception as ex:
                raise SerializationFailed(f"{method.name}: cannot decode result: {ex}") from ex
        try:
            body = self.codec.loads(frame.payload)
        except Exception:
            body = {"code": "remote_error", "message": "undecodable error payload"}
        raise RemoteError.from_payload(body)

    async def _read_loop(self) -> None:
        reason = "connection closed by server"
        try:
            while True:
                frame = await read_frame(self._reader, self.config.max_payload_size)
                if frame is None:
                    break
                if frame.is_request:
                    raise FramingError("unexpected request frame from server")
                fut = self._pending.pop(frame.correlation_id, None)
                if fut is None or fut.done():
                    logger.debug("Discarding response for correlation id {}", frame.correlation_id)
                    continue
                fut.set_result(frame)
        except FramingError as e:
            reason = f"framing error: {e}"
            logger.warning("Closing connection to {}: {}", self.path, reason)
        except (ConnectionError, OSError) as e:
            reason = f"connection lost: {e!r}"
        except asyncio.CancelledError:
            reason = "dispatcher closed"
            raise
        finally:
            self._teardown(reason)

    def _teardown(self, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        self._close_reason = reason
        pending, self._pending = self._pending, {}
        for fut in pending.values():
            if not fut.done():
                fut.set_exception(ConnectionClosed(reason))
        self._writer.close()
        logger.debug("Dispatcher for {} closed ({}), failed {} pending calls", self.path, reason, len(pending))

    async def close(self) -> None:
        self._teardown("dispatcher closed")
        if self._read_task is not asyncio.current_task():
            self._read_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._read_task
        with suppress(ConnectionError, OSError):
            await self._writer.wait_closed()

    async def __aenter__(self) -> "Dispatcher":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


async def connect(path: PathLike, *, config: Optional[RpcConfig] = None,
                  codec: Optional[Codec] = None) -> Dispatcher:
    return await Dispatcher.connect(path, config=config, codec=codec)
