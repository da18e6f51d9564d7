from __future__ import annotations
import asyncio
import itertools
import os
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import AsyncIterator, Optional, Set

from loguru import logger

from .codecs import Codec, Codecs
from .config import RpcConfig
from .errors import FramingError, OversizedPayload
from .handlers import HandlerTable
from .message import Frame
from .transport import PathLike, listen_unix
from .wire import encode_frame, read_frame

_conn_ids = itertools.count(1)


class _Connection:
    """
    One accepted client. Reads request frames in arrival order and answers
    each through the handler table. Holds no state across calls.
    """

    def __init__(self, server: "Server", reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.id = next(_conn_ids)
        self.server = server
        self.reader = reader
        self.writer = writer
        self._write_lock = asyncio.Lock()
        self._inflight: Set[asyncio.Task] = set()
        self._closing = False

    @property
    def closed(self) -> bool:
        return self._closing

    async def run(self) -> None:
        cfg = self.server.config
        logger.debug("conn#{} opened on {}", self.id, self.server.path)
        try:
            while not self._closing:
                frame = await read_frame(self.reader, cfg.max_payload_size)
                if frame is None:
                    # clean EOF: let requests already read finish and reply
                    if self._inflight:
                        await asyncio.gather(*self._inflight, return_exceptions=True)
                    break
                if not frame.is_request:
                    raise FramingError(f"unexpected {frame.kind.name} frame from client")
                if cfg.concurrent_dispatch:
                    task = asyncio.create_task(self._dispatch(frame))
                    self._inflight.add(task)
                    task.add_done_callback(self._inflight.discard)
                else:
                    await self._dispatch(frame)
        except FramingError as e:
            logger.warning("conn#{} framing error, closing: {}", self.id, e)
        except (ConnectionError, OSError) as e:
            logger.debug("conn#{} read failed: {!r}", self.id, e)
        finally:
            await self._shutdown()

    async def _dispatch(self, frame: Frame) -> None:
        server = self.server
        response = await server.handlers.handle(frame, server.codec, server.config.max_payload_size)
        await self._write(response)

    async def _write(self, frame: Frame) -> None:
        try:
            data = encode_frame(frame, self.server.config.max_payload_size)
        except OversizedPayload as e:
            # the caller cannot be answered; closing fails its call with ConnectionClosed
            logger.error("conn#{} cannot send response for correlation id {}, closing: {}",
                         self.id, frame.correlation_id, e)
            self._abort()
            return
        async with self._write_lock:
            if self._closing:
                return
            try:
                self.writer.write(data)
                await self.writer.drain()
            except (ConnectionError, OSError) as e:
                logger.warning("conn#{} write failed, closing: {!r}", self.id, e)
                self._abort()

    def _abort(self) -> None:
        self._closing = True
        self.writer.close()

    async def _shutdown(self) -> None:
        self._closing = True
        for task in list(self._inflight):
            task.cancel()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        self.writer.close()
        with suppress(ConnectionError, OSError):
            await self.writer.wait_closed()
        logger.debug("conn#{} closed", self.id)


class Server:
    """
    Listens on a Unix socket path and serves a HandlerTable.

        table = HandlerTable().add(proto.add, add_impl)
        await Server(path, table).serve_forever()

    The handler table and its method registry are frozen when the server starts.
    """

    def __init__(self, path: PathLike, handlers: HandlerTable, *,
                 config: Optional[RpcConfig] = None, codec: Optional[Codec] = None):
        self.path = Path(os.fspath(path))
        self.handlers = handlers
        self.config = config or RpcConfig()
        self.codec = codec if codec is not None else Codecs.get(self.config.codec)
        self._server: Optional[asyncio.Server] = None
        self._conn_tasks: Set[asyncio.Task] = set()

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def connection_count(self) -> int:
        return len(self._conn_tasks)

    async def start(self) -> None:
        if self._server is not None:
            return
        self.handlers.freeze()
        self.handlers.registry.freeze()
        cfg = self.config
        self._server = await listen_unix(
            self.path,
            self._on_connection,
            backlog=cfg.backlog,
            create_parent_dirs=cfg.create_parent_dirs,
        )
        logger.info("Listening on {} ({} methods, codec={})", self.path, len(self.handlers), self.codec.name)

    async def serve_forever(self) -> None:
        """Serve until cancelled or closed."""
        await self.start()
        try:
            await self._server.serve_forever()
        finally:
            await self.close()

    async def close(self) -> None:
        if self._server is None:
            return
        server, self._server = self._server, None
        server.close()
        tasks = list(self._conn_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await server.wait_closed()
        logger.info("Server on {} stopped", self.path)

    async def _on_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._conn_tasks.add(task)
        try:
            await _Connection(self, reader, writer).run()
        finally:
            if task is not None:
                self._conn_tasks.discard(task)

    async def __aenter__(self) -> "Server":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


async def serve(path: PathLike, handlers: HandlerTable, *,
                config: Optional[RpcConfig] = None, codec: Optional[Codec] = None) -> None:
    """Run a server until shutdown (cancellation) or a fatal listener error."""
    await Server(path, handlers, config=config, codec=codec).serve_forever()


@asynccontextmanager
async def serve_background(path: PathLike, handlers: HandlerTable, *,
                           config: Optional[RpcConfig] = None,
                           codec: Optional[Codec] = None) -> AsyncIterator[Server]:
    """
    Run a server for the duration of an ``async with`` block.

        async with serve_background(path, table):
            async with await Dispatcher.connect(path) as client:
                ...
    """
    server = Server(path, handlers, config=config, codec=codec)
    await server.start()
    try:
        yield server
    finally:
        await server.close()
