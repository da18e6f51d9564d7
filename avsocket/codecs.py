
from __future__ import annotations
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Literal, Protocol as TypingProtocol
from uuid import UUID

import json
import msgpack

class Codec(TypingProtocol):
    name: str
    # pydantic dump mode the codec expects its input in; a "json" codec carries JSON text
    mode: Literal["python", "json"]
    def dumps(self, obj: Any) -> bytes: ...
    def loads(self, data: bytes) -> Any: ...

class JSONCodec:
    name = "json"
    mode = "json"
    def dumps(self, obj: Any) -> bytes:
        return json.dumps(obj, separators=(",", ":")).encode("utf-8")
    def loads(self, data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))

def _msgpack_default(obj: Any) -> Any:
    # values pydantic leaves as python objects in "python" dump mode
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    raise TypeError(f"cannot msgpack-encode {type(obj).__name__}")

class MsgPackCodec:
    name = "msgpack"
    mode = "python"
    def dumps(self, obj: Any) -> bytes:
        return msgpack.packb(obj, use_bin_type=True, default=_msgpack_default)
    def loads(self, data: bytes) -> Any:
        return msgpack.unpackb(data, raw=False, strict_map_key=False)

class Codecs:
    _registry: Dict[str, Codec] = {"json": JSONCodec(), "msgpack": MsgPackCodec()}

    @classmethod
    def get(cls, name: str) -> 'Codec':
        if name not in cls._registry:
            raise ValueError(f"Unknown codec: {name}")
        return cls._registry[name]

    @classmethod
    def register(cls, codec: Codec) -> None:
        cls._registry[codec.name] = codec

    @classmethod
    def names(cls) -> list[str]:
        return sorted(cls._registry)
