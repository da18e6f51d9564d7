"""
Method contracts.

A contract module declares each remote procedure once, and both the server
and the client import it:

    @declare
    def hurt(goblin: Goblin, damage: int) -> Goblin:
        '''Apply damage to a goblin.'''

The body is never run. The declared name and parameter/return types
determine the method id, so two processes agree on it without a handshake.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from functools import cached_property
from hashlib import blake2b
import inspect
import types
from typing import (
    Any, Callable, Dict, Generic, Iterator, Literal, Optional, ParamSpec, Tuple,
    TypeVar, Union, get_args, get_origin, get_type_hints,
)

from pydantic import ConfigDict, TypeAdapter

from .codecs import Codec
from .errors import ContractError

P = ParamSpec("P")
R = TypeVar("R")

_ADAPTER_CONFIG = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")


def type_name(tp: Any) -> str:
    """Canonical, module-independent rendering of a type annotation."""
    if tp is None or tp is type(None):
        return "None"
    if tp is Any:
        return "Any"
    if tp is Ellipsis:
        return "..."
    origin = get_origin(tp)
    if origin is not None:
        args = get_args(tp)
        if origin is Union or origin is types.UnionType:
            return " | ".join(type_name(a) for a in args)
        if origin is Literal:
            return f"Literal[{', '.join(repr(a) for a in args)}]"
        name = getattr(origin, "__qualname__", None) or repr(origin)
        if not args:
            return name
        return f"{name}[{', '.join(type_name(a) for a in args)}]"
    if isinstance(tp, type):
        return tp.__qualname__
    return repr(tp)


def derive_method_id(signature: str) -> int:
    return int.from_bytes(blake2b(signature.encode("utf-8"), digest_size=8).digest(), "big")


@dataclass(frozen=True)
class Method(Generic[P, R]):
    """
    Static descriptor of one remote procedure: its name, parameter types and
    return type. Calling it binds arguments into a Call for Dispatcher.dispatch.
    """
    name: str
    params: Tuple[Any, ...]
    returns: Any = None
    doc: Optional[str] = field(default=None, compare=False, repr=False)
    py_signature: Optional[inspect.Signature] = field(default=None, compare=False, repr=False)

    @property
    def signature(self) -> str:
        params = ", ".join(type_name(p) for p in self.params)
        return f"{self.name}({params}) -> {type_name(self.returns)}"

    @cached_property
    def method_id(self) -> int:
        return derive_method_id(self.signature)

    @cached_property
    def args_adapter(self) -> TypeAdapter:
        return TypeAdapter(tuple[self.params] if self.params else tuple[()], config=_ADAPTER_CONFIG)

    @cached_property
    def result_adapter(self) -> TypeAdapter:
        # a 1-tuple so the config applies even when the return type is a dataclass or model;
        # the result itself travels bare
        return TypeAdapter(tuple[self.returns], config=_ADAPTER_CONFIG)

    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> "Call[R]":
        return Call(self, self.bind_args(*args, **kwargs))

    def bind_args(self, *args: Any, **kwargs: Any) -> Tuple[Any, ...]:
        if kwargs or self.py_signature is not None:
            if self.py_signature is None:
                raise TypeError(f"{self.name}() takes positional arguments only")
            bound = self.py_signature.bind(*args, **kwargs)
            bound.apply_defaults()
            args = bound.args
        if len(args) != len(self.params):
            raise TypeError(f"{self.name}() takes {len(self.params)} arguments ({len(args)} given)")
        return tuple(args)

    # ---- payload conversion ----
    # Outgoing values are dumped strictly (a wrong type is an error, never coerced);
    # incoming payloads are validated into the declared shape.
    # A "json" mode codec carries JSON text, which pydantic validates directly so
    # base64 bytes come back as bytes.
    def encode_args(self, codec: Codec, args: Tuple[Any, ...]) -> bytes:
        return codec.dumps(self.args_adapter.dump_python(tuple(args), mode=codec.mode, warnings="error"))

    def decode_args(self, codec: Codec, payload: bytes) -> Tuple[Any, ...]:
        if codec.mode == "json":
            return self.args_adapter.validate_json(payload)
        return self.args_adapter.validate_python(codec.loads(payload))

    def encode_result(self, codec: Codec, value: Any) -> bytes:
        return codec.dumps(self.result_adapter.dump_python((value,), mode=codec.mode, warnings="error")[0])

    def decode_result(self, codec: Codec, payload: bytes) -> R:
        if codec.mode == "json":
            return self.result_adapter.validate_json(b"[" + payload + b"]")[0]
        return self.result_adapter.validate_python((codec.loads(payload),))[0]


@dataclass(frozen=True)
class Call(Generic[R]):
    """A method together with its bound argument tuple."""
    method: Method[Any, R]
    args: Tuple[Any, ...]


@dataclass
class MethodRegistry:
    """
    Process-wide table of declared methods keyed by method id.
    Read-only once frozen.
    """
    methods: Dict[int, Method] = field(default_factory=dict)
    _by_name: Dict[str, Method] = field(default_factory=dict, repr=False)
    _frozen: bool = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def register(self, method: Method) -> Method:
        known = self.methods.get(method.method_id) or self._by_name.get(method.name)
        if known is not None:
            # re-importing a contract module registers the same descriptor again
            if known == method:
                return known
            raise ContractError(
                f"method {method.signature!r} conflicts with registered {known.signature!r}"
            )
        if self._frozen:
            raise ContractError(f"registry is frozen; cannot register {method.signature!r}")
        self.methods[method.method_id] = method
        self._by_name[method.name] = method
        return method

    def get(self, method_id: int) -> Optional[Method]:
        return self.methods.get(method_id)

    def by_name(self, name: str) -> Optional[Method]:
        return self._by_name.get(name)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Method):
            return self.methods.get(item.method_id) == item
        return item in self.methods

    def __iter__(self) -> Iterator[Method]:
        return iter(list(self.methods.values()))

    def __len__(self) -> int:
        return len(self.methods)


REGISTRY = MethodRegistry()


def declare(fn: Optional[Callable[..., Any]] = None, *, name: Optional[str] = None,
            registry: Optional[MethodRegistry] = None) -> Any:
    """
    Turn an annotated stub function into a registered Method.
    Usable bare (@declare) or with options (@declare(name="game.hurt")).
    """
    target = registry if registry is not None else REGISTRY

    def wrap(f: Callable[P, R]) -> Method[P, R]:
        method_name = name or f.__name__
        try:
            hints = get_type_hints(f)
        except NameError as e:
            raise ContractError(f"cannot resolve annotations of {method_name!r}: {e}") from e
        sig = inspect.signature(f)
        params = []
        for p in sig.parameters.values():
            if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
                raise ContractError(f"{method_name}: *args/**kwargs are not allowed in a contract")
            if p.name not in hints:
                raise ContractError(f"{method_name}: parameter {p.name!r} has no type annotation")
            params.append(hints[p.name])
        returns = hints.get("return", type(None))
        method = Method(method_name, tuple(params), returns, doc=inspect.getdoc(f), py_signature=sig)
        return target.register(method)

    return wrap if fn is None else wrap(fn)
