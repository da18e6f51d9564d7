"""Runtime options shared by the server and the dispatcher."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .codecs import Codecs
from .wire import DEFAULT_MAX_PAYLOAD, HEADER_SIZE

MAX_FRAME_PAYLOAD = 2**32 - 1 - HEADER_SIZE


class RpcConfig(BaseModel):
    """Options for one server or dispatcher."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_payload_size: int = Field(default=DEFAULT_MAX_PAYLOAD, gt=0, le=MAX_FRAME_PAYLOAD)
    codec: str = "msgpack"  # name registered in Codecs
    concurrent_dispatch: bool = True  # False: one request at a time per connection, responses in order
    create_parent_dirs: bool = False
    backlog: int = Field(default=100, gt=0)

    @field_validator("codec")
    @classmethod
    def _known_codec(cls, value: str) -> str:
        Codecs.get(value)
        return value
