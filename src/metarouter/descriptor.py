"""Route descriptor normalization.

Turns a raw descriptor into a :class:`~metarouter.route.CompiledRoute`.
Descriptors come in two shapes::

    "GET,POST /users/:id => app.users#show"

    {
        "path": "/users/:id",
        "methods": ["GET", "POST"],
        "handler": show_user,
        "middleware": [require_login, {"factory": rate_limit, "arguments": [10]}],
        "matchOptions": {"end": False},
        "cache": "private",          # copied verbatim to the route config
    }

A callable handler is attached immediately. A string handler is a deferred
reference that the router loads on first use.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from metarouter._types import Step
from metarouter.chain import Chain, build_chain
from metarouter.decorators import handler_meta, handler_middleware
from metarouter.errors import (
    InvalidDescriptor,
    InvalidHandler,
    InvalidMiddleware,
    MissingHandler,
    MissingPath,
    PatternError,
)
from metarouter.pattern import MatchOptions, compile_pattern
from metarouter.route import CompiledRoute, HandlerCell, HandlerRef, pick_export

ANY_METHOD = "*"

_SHORTHAND_RE = re.compile(r"^(?:([A-Z]+(?:\s*,\s*[A-Z]+)*)\s+)?(.+?)(?:\s*=>\s*(.+?))?\s*$", re.DOTALL)
_COMMA_RE = re.compile(r"\s*,\s*")

RESERVED_KEYS = frozenset({"method", "route", "path", "methods", "handler", "matchOptions"})


class RouteDescriptor(BaseModel):
    """Typed view of a mapping descriptor. Unknown keys are route metadata."""

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True)

    path: str | None = None
    route: str | None = None
    method: str | None = None
    methods: list[str] | None = None
    handler: Any = None
    middleware: list[Any] | None = None
    match_options: MatchOptions | None = Field(default=None, alias="matchOptions")


class MiddlewareDescriptor(BaseModel):
    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    enabled: bool = True
    module: Any = None
    factory: Any = None
    method: str | None = None
    arguments: list[Any] = Field(default_factory=list)


# -- middleware variants ---------------------------------------------------


@dataclass(frozen=True, slots=True)
class Direct:
    """A middleware function used as-is."""

    func: Callable[..., Any]


@dataclass(frozen=True, slots=True)
class FromModule:
    """A middleware taken from a module-like object, optionally by name."""

    module: Any
    method: str | None = None


@dataclass(frozen=True, slots=True)
class FromFactory:
    """A middleware produced by calling ``factory(*arguments)``."""

    factory: Any
    method: str | None = None
    arguments: tuple[Any, ...] = field(default=())


MiddlewareSpec = Direct | FromModule | FromFactory


def parse_middleware(entry: Any) -> MiddlewareSpec | None:
    """Classify one ``middleware`` entry; ``None`` means the entry is dropped."""
    if entry is None:
        return None
    if isinstance(entry, Mapping):
        try:
            desc = MiddlewareDescriptor.model_validate(dict(entry))
        except ValidationError as exc:
            raise InvalidMiddleware(entry, "Malformed middleware descriptor") from exc
        if not desc.enabled:
            return None
        if desc.module is not None:
            return FromModule(desc.module, desc.method)
        if desc.factory is not None:
            return FromFactory(desc.factory, desc.method, tuple(desc.arguments))
        raise InvalidMiddleware(entry, "Expected a module or a factory")
    if callable(entry):
        return Direct(entry)
    raise InvalidMiddleware(entry)


def resolve_middleware(spec: MiddlewareSpec) -> Step:
    """Produce the step callable for a parsed middleware entry."""
    match spec:
        case Direct(func=func):
            step = func
        case FromModule(module=module, method=method):
            step = pick_export(module, method) if method else module
        case FromFactory(factory=factory, method=method, arguments=arguments):
            if method:
                factory = pick_export(factory, method)
            if factory is None:
                raise InvalidMiddleware(spec, "Factory not found")
            if not callable(factory):
                raise InvalidMiddleware(spec, "Factory is not callable")
            step = factory(*arguments)
        case _:
            raise InvalidMiddleware(spec, "Unknown middleware kind")

    if step is None:
        raise InvalidMiddleware(spec, "Middleware not found")
    if not callable(step):
        raise InvalidMiddleware(spec)
    return step


def middleware_steps(entries: Iterable[Any] | None) -> list[Step]:
    steps: list[Step] = []
    for entry in entries or ():
        spec = parse_middleware(entry)
        if spec is not None:
            steps.append(resolve_middleware(spec))
    return steps


# -- methods and handlers -------------------------------------------------


def normalize_methods(methods: Iterable[str] | None) -> frozenset[str] | None:
    """Uppercase *methods*; ``None`` means any method."""
    if not methods:
        return None
    result: set[str] = set()
    for method in methods:
        token = method.strip().upper()
        if token in ("ALL", ANY_METHOD):
            return None
        if token:
            result.add(token)
    return frozenset(result) or None


def split_shorthand(text: str) -> tuple[list[str] | None, str, str | None]:
    """Split ``"GET,POST /path => ref"`` into methods, path and handler ref."""
    m = _SHORTHAND_RE.match(text.strip())
    if m is None:
        return None, text, None
    method_text, path, ref = m.groups()
    methods = _COMMA_RE.split(method_text) if method_text else None
    return methods, path, ref


def _deferred_chain(steps: tuple[Step, ...], handler: Callable[..., Any]) -> Chain:
    return Chain([*steps, *middleware_steps(handler_middleware(handler)), handler])


# -- normalize ---------------------------------------------------------------


def _validate(descriptor: Mapping[str, Any]) -> RouteDescriptor:
    try:
        return RouteDescriptor.model_validate(dict(descriptor))
    except ValidationError as exc:
        msg = f"Invalid route descriptor {descriptor!r}: {exc}"
        raise InvalidDescriptor(msg) from exc


def normalize(descriptor: str | Mapping[str, Any]) -> CompiledRoute:
    """Normalize and compile one route descriptor.

    Raises a :class:`~metarouter.errors.ConfigurationError` subclass when the
    descriptor cannot produce a route.
    """
    if isinstance(descriptor, str):
        raw: Mapping[str, Any] = {}
        fields = RouteDescriptor()
        route_text = descriptor
    elif isinstance(descriptor, Mapping):
        raw = descriptor
        fields = _validate(descriptor)
        route_text = fields.route or fields.path
    else:
        msg = f"Route descriptor must be a string or a mapping, got {type(descriptor).__name__}"
        raise InvalidDescriptor(msg)

    if not route_text or not route_text.strip():
        raise MissingPath(descriptor)

    shorthand_methods, path, ref = split_shorthand(route_text)
    if shorthand_methods:
        raw_methods: list[str] | None = shorthand_methods
    elif fields.method:
        raw_methods = [fields.method]
    else:
        raw_methods = fields.methods
    methods = normalize_methods(raw_methods)

    handler = ref if ref is not None else fields.handler
    if isinstance(handler, str) and not handler.strip():
        handler = None
    if handler is not None and not isinstance(handler, str) and not callable(handler):
        msg = f'Invalid handler for path "{path}". Handler is not a function. Actual: {handler!r}'
        raise InvalidHandler(repr(handler), message=msg)

    steps = middleware_steps(fields.middleware)
    if handler is None and not steps:
        raise MissingHandler(path)

    try:
        pattern = compile_pattern(path, fields.match_options)
    except PatternError as exc:
        msg = f'{exc} (while parsing "{path}" in "{route_text}")'
        raise PatternError(msg) from exc

    config = {key: value for key, value in raw.items() if key not in RESERVED_KEYS}
    chain: Chain | None = None
    cell: HandlerCell | None = None

    if isinstance(handler, str):
        cell = HandlerCell(HandlerRef.parse(handler), partial(_deferred_chain, tuple(steps)))
    else:
        if handler is not None:
            own = handler_middleware(handler)
            if own:
                steps.extend(middleware_steps(own))
                config["middleware"] = [*(config.get("middleware") or ()), *own]
            config.update(handler_meta(handler))
            steps.append(handler)
        chain = build_chain(steps)

    config["methods"] = sorted(methods) if methods is not None else [ANY_METHOD]
    config["path"] = path
    if cell is None:
        config["handler"] = chain

    return CompiledRoute(pattern, methods, config, chain=chain, cell=cell)
