
from __future__ import annotations
from typing import Any, Callable, Mapping, Optional, Union

from .client import Dispatcher
from .codecs import Codec, Codecs
from .config import RpcConfig
from .handlers import HandlerTable
from .method import Method, MethodRegistry
from .server import Server
from .transport import PathLike

Handlers = Union[HandlerTable, Mapping[Method, Callable[..., Any]]]


def _resolve(codec: Union[str, Codec, None], config: Optional[RpcConfig], options: dict) -> tuple[RpcConfig, Codec]:
    base = config or RpcConfig()
    if isinstance(codec, str):
        options = {**options, "codec": codec}
    cfg = RpcConfig.model_validate({**base.model_dump(), **options}) if options else base
    codec_obj = codec if codec is not None and not isinstance(codec, str) else Codecs.get(cfg.codec)
    return cfg, codec_obj


def build_table(handlers: Handlers, registry: Optional[MethodRegistry] = None) -> HandlerTable:
    """Accept a ready HandlerTable or a {method: implementation} mapping."""
    if isinstance(handlers, HandlerTable):
        return handlers
    table = HandlerTable(registry)
    for method, impl in handlers.items():
        table.bind(method, impl)
    return table


async def create_server(path: PathLike,
                        handlers: Handlers,
                        *,
                        codec: Union[str, Codec, None] = None,
                        config: Optional[RpcConfig] = None,
                        registry: Optional[MethodRegistry] = None,
                        auto_start: bool = True,
                        **options: Any) -> Server:
    """
    One-liner factory:
      await create_server(path, {proto.add: add, proto.sub: sub})
      await create_server(path, table, codec="json", concurrent_dispatch=False)

    - handlers: HandlerTable or mapping method -> implementation
    - codec: "msgpack" | "json" | Codec instance
    - **options: RpcConfig fields overriding `config`
    - auto_start: bind the socket and start accepting immediately
    """
    cfg, codec_obj = _resolve(codec, config, options)
    server = Server(path, build_table(handlers, registry), config=cfg, codec=codec_obj)
    if auto_start:
        await server.start()
    return server


async def create_dispatcher(path: PathLike,
                            *,
                            codec: Union[str, Codec, None] = None,
                            config: Optional[RpcConfig] = None,
                            **options: Any) -> Dispatcher:
    """Connect a Dispatcher; same codec/config resolution as create_server."""
    cfg, codec_obj = _resolve(codec, config, options)
    return await Dispatcher.connect(path, config=cfg, codec=codec_obj)
