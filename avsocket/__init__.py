"""
Public API:
- declare, Method, MethodRegistry: shared method contracts (name + argument/return types -> method id)
- HandlerTable: server-side binding of methods to implementations
- Server, serve, serve_background: Unix-socket server loop
- Dispatcher, connect: client with concurrent in-flight calls matched by correlation id
- Frame, FrameKind, encode_frame, decode_frame, FrameDecoder, read_frame: length-prefixed framing
- Codec, Codecs, MsgPackCodec, JSONCodec: payload serialization
- RpcConfig: limits and options
- create_server, create_dispatcher: one-liner factories
"""

# Contracts
from .method import REGISTRY, Call, Method, MethodRegistry, declare

# Server side
from .handlers import HandlerEntry, HandlerTable
from .server import Server, serve, serve_background

# Client side
from .client import Dispatcher, connect

# Framing & codecs
from .message import Frame, FrameKind
from .wire import DEFAULT_MAX_PAYLOAD, FrameDecoder, decode_frame, encode_frame, read_frame
from .codecs import Codec, Codecs, JSONCodec, MsgPackCodec

from .config import RpcConfig
from .factory import create_dispatcher, create_server

from .errors import (
    ConnectError,
    ConnectionClosed,
    ContractError,
    ErrorCode,
    FramingError,
    HandlerFailed,
    MalformedArguments,
    OversizedPayload,
    RemoteError,
    RPCError,
    SerializationFailed,
    UnknownMethod,
)

__all__ = [
    "declare",
    "Method",
    "Call",
    "MethodRegistry",
    "REGISTRY",
    "HandlerTable",
    "HandlerEntry",
    "Server",
    "serve",
    "serve_background",
    "Dispatcher",
    "connect",
    "Frame",
    "FrameKind",
    "encode_frame",
    "decode_frame",
    "FrameDecoder",
    "read_frame",
    "DEFAULT_MAX_PAYLOAD",
    "Codec",
    "Codecs",
    "JSONCodec",
    "MsgPackCodec",
    "RpcConfig",
    "create_server",
    "create_dispatcher",
    "RPCError",
    "ConnectError",
    "FramingError",
    "OversizedPayload",
    "ConnectionClosed",
    "ContractError",
    "RemoteError",
    "ErrorCode",
    "UnknownMethod",
    "MalformedArguments",
    "SerializationFailed",
    "HandlerFailed",
]

__version__ = "0.1.0"
