from __future__ import annotations
import asyncio
import errno
import os
from pathlib import Path
from typing import Awaitable, Callable, Tuple, Union

from loguru import logger

from .errors import ConnectError

PathLike = Union[str, "os.PathLike[str]"]
StreamPair = Tuple[asyncio.StreamReader, asyncio.StreamWriter]
ConnectionCallback = Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]]


async def open_unix(path: PathLike) -> StreamPair:
    """Connect to a Unix socket, translating OS errors into ConnectError."""
    spath = os.fspath(path)
    try:
        return await asyncio.open_unix_connection(spath)
    except FileNotFoundError as e:
        raise ConnectError(spath, "not_found", e.strerror or "") from e
    except ConnectionRefusedError as e:
        raise ConnectError(spath, "refused", e.strerror or "") from e
    except PermissionError as e:
        raise ConnectError(spath, "permission_denied", e.strerror or "") from e
    except OSError as e:
        reason = "not_found" if e.errno in (errno.ENOENT, errno.ENOTDIR) else "other"
        raise ConnectError(spath, reason, e.strerror or str(e)) from e


async def listen_unix(path: PathLike, on_connection: ConnectionCallback, *,
                      backlog: int = 100, create_parent_dirs: bool = False) -> asyncio.Server:
    """
    Bind a listening Unix socket at path. asyncio unlinks a leftover socket
    file at the same path before binding.
    """
    p = Path(path)
    if create_parent_dirs:
        if p.parent == p:
            raise ValueError(f"socket cannot be at {p}")
        if not p.parent.exists():
            p.parent.mkdir(parents=True)
            logger.debug("created socket directory {}", p.parent)
    return await asyncio.start_unix_server(on_connection, path=str(p), backlog=backlog)
