from __future__ import annotations
import asyncio
from dataclasses import dataclass
import inspect
from typing import Any, Callable, Dict, Optional, Tuple, get_type_hints

from loguru import logger

from .codecs import Codec
from .errors import (
    ContractError, HandlerFailed, MalformedArguments, OversizedPayload, RemoteError,
    SerializationFailed, UnknownMethod,
)
from .message import Frame
from .method import Method, MethodRegistry, REGISTRY, type_name
from .wire import DEFAULT_MAX_PAYLOAD


@dataclass(frozen=True)
class HandlerEntry:
    """A method bound to its implementation (sync or async)."""
    method: Method
    implementation: Callable[..., Any]
    blocking: bool = False  # run a sync implementation in a worker thread

    async def invoke(self, args: Tuple[Any, ...]) -> Any:
        if self.blocking:
            result = await asyncio.to_thread(self.implementation, *args)
        else:
            result = self.implementation(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def handle(self, codec: Codec, payload: bytes, max_payload: int = DEFAULT_MAX_PAYLOAD) -> bytes:
        """
        Serialized arguments in, serialized result out.
        Raises MalformedArguments, HandlerFailed or SerializationFailed.
        """
        name = self.method.name
        try:
            args = self.method.decode_args(codec, payload)
        except Exception as ex:
            raise MalformedArguments(f"{name}: {ex}") from ex

        try:
            result = await self.invoke(args)
        except Exception as ex:
            logger.exception("Handler for {} failed", name)
            raise HandlerFailed(f"{type(ex).__name__}: {ex}") from ex

        try:
            out = self.method.encode_result(codec, result)
        except Exception as ex:
            raise SerializationFailed(f"{name}: cannot serialize result: {ex}") from ex
        if len(out) > max_payload:
            raise SerializationFailed(f"{name}: {OversizedPayload(len(out), max_payload)}")
        return out


def _check_signature(method: Method, impl: Callable[..., Any]) -> None:
    """Initialization-time check that impl can stand in for method."""
    try:
        sig = inspect.signature(impl)
    except (TypeError, ValueError):
        # builtins without introspectable signatures are taken on trust
        return
    try:
        sig.bind(*([None] * len(method.params)))
    except TypeError as e:
        raise ContractError(
            f"implementation for {method.signature!r} does not accept {len(method.params)} arguments: {e}"
        ) from None

    try:
        hints = get_type_hints(impl)
    except Exception:
        logger.debug("{}: cannot resolve annotations of {!r}, skipping type check", method.name, impl)
        return
    positional = [p for p in sig.parameters.values()
                  if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
    for declared, p in zip(method.params, positional):
        if p.name in hints and hints[p.name] != declared:
            raise ContractError(
                f"{method.name}: parameter {p.name!r} annotated {type_name(hints[p.name])}, "
                f"contract says {type_name(declared)}"
            )
    if "return" in hints and hints["return"] != method.returns:
        raise ContractError(
            f"{method.name}: returns {type_name(hints['return'])}, contract says {type_name(method.returns)}"
        )


def _error_payload(codec: Codec, err: RemoteError, max_payload: int) -> bytes:
    """Encode an error body, cutting the message down until it fits max_payload."""
    body = err.to_payload()
    data = codec.dumps(body)
    while len(data) > max_payload and body["message"]:
        # every dropped character frees at least one byte
        keep = max(0, len(body["message"]) - (len(data) - max_payload))
        body["message"] = body["message"][:keep]
        data = codec.dumps(body)
    if len(data) > max_payload:
        data = codec.dumps({"code": body["code"]})
    return data


class HandlerTable:
    """
    Server-side map of method id -> implementation.
    Built before serving, then frozen; lookups need no locking.

        table = HandlerTable()
        table.add(proto.add, lambda a, b: a + b).add(proto.sub, lambda a, b: a - b)
    """

    def __init__(self, registry: Optional[MethodRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY
        self._entries: Dict[int, HandlerEntry] = {}
        self._frozen = False

    def bind(self, method: Method, implementation: Callable[..., Any], *, blocking: bool = False) -> HandlerEntry:
        if self._frozen:
            raise ContractError(f"handler table is frozen; cannot bind {method.name!r}")
        if method not in self.registry:
            raise ContractError(f"method {method.signature!r} is not registered")
        if method.method_id in self._entries:
            raise ContractError(f"method {method.name!r} is already bound")
        if not callable(implementation):
            raise ContractError(f"implementation for {method.name!r} is not callable")
        if blocking and inspect.iscoroutinefunction(implementation):
            raise ContractError(f"{method.name}: blocking=True only applies to sync implementations")
        _check_signature(method, implementation)

        entry = HandlerEntry(method=method, implementation=implementation, blocking=blocking)
        self._entries[method.method_id] = entry
        return entry

    def add(self, method: Method, implementation: Callable[..., Any], *, blocking: bool = False) -> "HandlerTable":
        self.bind(method, implementation, blocking=blocking)
        return self

    def lookup(self, method_id: int) -> Optional[HandlerEntry]:
        return self._entries.get(method_id)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, method: object) -> bool:
        if isinstance(method, Method):
            return method.method_id in self._entries
        return method in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        names = ", ".join(sorted(e.method.name for e in self._entries.values()))
        return f"HandlerTable({names})"

    async def handle(self, frame: Frame, codec: Codec, max_payload: int = DEFAULT_MAX_PAYLOAD) -> Frame:
        """Turn one request frame into its response frame. Never raises for protocol-level failures."""
        entry = self.lookup(frame.method_id)
        try:
            if entry is None:
                raise UnknownMethod(f"no handler for method id {frame.method_id:#018x}")
            return frame.reply_ok(await entry.handle(codec, frame.payload, max_payload))
        except RemoteError as err:
            return frame.reply_err(_error_payload(codec, err, max_payload))
