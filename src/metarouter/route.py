"""Compiled routes, match results and lazy handler cells."""

from __future__ import annotations

import asyncio
import concurrent.futures
import enum
import logging
import re
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any
from urllib.parse import unquote

from metarouter._invoke import invoke
from metarouter._types import Loader
from metarouter.chain import Chain
from metarouter.errors import DecodeFailure, InvalidHandler, LoaderFailure, MetaRouterError
from metarouter.pattern import CompiledPattern

logger = logging.getLogger(__name__)

_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_EMPTY: Mapping[str | int, Any] = MappingProxyType({})

Params = Mapping[str | int, str | list[str] | None]


def decode_component(value: str) -> str:
    """Percent-decode one captured value.

    Raises :class:`DecodeFailure` for malformed escapes or invalid UTF-8.
    """
    if "%" not in value:
        return value
    if _BAD_ESCAPE_RE.search(value):
        raise DecodeFailure(value)
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError as exc:
        raise DecodeFailure(value) from exc


@dataclass(frozen=True, slots=True)
class HandlerRef:
    """A deferred handler: a module identifier plus an optional export name."""

    module_id: str
    export: str | None = None

    @classmethod
    def parse(cls, ref: str) -> HandlerRef:
        module_id, sep, export = ref.strip().partition("#")
        return cls(module_id.strip(), export.strip() if sep and export.strip() else None)

    def select(self, module: Any) -> Callable[..., Any]:
        """Pick the handler out of a loaded module-like value."""
        if self.export:
            handler = pick_export(module, self.export)
        else:
            handler = pick_export(module, "default")
            if handler is None:
                handler = module
        if not callable(handler):
            raise InvalidHandler(self.module_id, self.export)
        return handler

    def __str__(self) -> str:
        return f"{self.module_id}#{self.export}" if self.export else self.module_id


def pick_export(value: Any, name: str) -> Any:
    """Look up *name* as a mapping key or an attribute."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


class HandlerState(enum.Enum):
    UNRESOLVED = "unresolved"
    LOADING = "loading"
    RESOLVED = "resolved"
    FAILED = "failed"


class HandlerCell:
    """Single-flight, permanently cached resolution of a deferred handler.

    The first caller claims the cell and starts the loader in its own task;
    every caller, the first included, awaits the shared future through
    :func:`asyncio.shield`, so a cancelled request never aborts the load for
    the others. A failure is cached like a success and re-raised as the same
    exception object; the loader never runs twice.
    """

    __slots__ = ("_build", "_future", "_lock", "_task", "ref")

    def __init__(self, ref: HandlerRef, build: Callable[[Callable[..., Any]], Chain]) -> None:
        self.ref = ref
        self._build = build
        self._lock = threading.Lock()
        self._future: concurrent.futures.Future[Chain] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> HandlerState:
        future = self._future
        if future is None:
            return HandlerState.UNRESOLVED
        if not future.done():
            return HandlerState.LOADING
        if future.cancelled():
            return HandlerState.UNRESOLVED
        if future.exception() is not None:
            return HandlerState.FAILED
        return HandlerState.RESOLVED

    async def resolve(self, load: Loader) -> Chain:
        """Return the route's chain, loading the handler on first use."""
        with self._lock:
            future = self._future
            if future is None:
                future = self._future = concurrent.futures.Future()
                self._task = asyncio.get_running_loop().create_task(self._load(future, load))
        return await asyncio.shield(asyncio.wrap_future(future))

    async def _load(self, future: concurrent.futures.Future[Chain], load: Loader) -> None:
        ref = self.ref
        try:
            module = await invoke(load, ref.module_id)
            chain = self._build(ref.select(module))
        except MetaRouterError as exc:
            logger.warning("Handler %s is invalid: %s", ref, exc)
            future.set_exception(exc)
        except Exception as exc:
            logger.warning("Loading handler %s failed: %s", ref, exc)
            future.set_exception(LoaderFailure(ref.module_id, exc))
        except BaseException:
            # cancelled or interrupted: the next caller starts over
            with self._lock:
                if self._future is future:
                    self._future = None
            future.cancel()
            raise
        else:
            logger.debug("Resolved handler %s", ref)
            future.set_result(chain)


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Result of a successful route match."""

    path: str
    params: Params
    config: Mapping[str, Any]
    route: CompiledRoute = field(compare=False, repr=False)


class CompiledRoute:
    """A normalized, pattern-compiled route. Immutable after construction."""

    __slots__ = (
        "_any",
        "_get",
        "_post",
        "cell",
        "chain",
        "config",
        "methods",
        "pattern",
    )

    def __init__(
        self,
        pattern: CompiledPattern,
        methods: frozenset[str] | None,
        config: Mapping[str, Any],
        *,
        chain: Chain | None = None,
        cell: HandlerCell | None = None,
    ) -> None:
        self.pattern = pattern
        self.methods = methods
        self.config = MappingProxyType(dict(config))
        self.chain = chain
        self.cell = cell
        self._any = methods is None
        self._get = not self._any and "GET" in methods
        self._post = not self._any and "POST" in methods

    @property
    def path(self) -> str:
        return self.pattern.path

    @property
    def deferred(self) -> bool:
        return self.cell is not None

    async def resolve(self, load: Loader) -> Chain:
        """Return this route's chain, resolving a deferred handler with *load*."""
        if self.cell is None:
            return self.chain
        return await self.cell.resolve(load)

    def accepts(self, method: str | None) -> bool:
        if method is None or self._any:
            return True
        if method == "GET":
            return self._get
        if method == "POST":
            return self._post
        return method in self.methods

    def match(self, path: str, method: str | None = None) -> MatchResult | None:
        """Match one request against this route.

        Raises :class:`DecodeFailure` if a captured value cannot be decoded.
        """
        if not self.accepts(method):
            return None

        if self.pattern.everything:
            return MatchResult(path=path, params=_EMPTY, config=self.config, route=self)

        m = self.pattern.regex.search(path)
        if m is None:
            return None

        params: dict[str | int, str | list[str] | None] = {}
        for key, value in zip(self.pattern.keys, m.groups(), strict=True):
            if value is None:
                params[key.name] = None
            elif key.repeat:
                params[key.name] = [decode_component(part) for part in value.split("/")]
            else:
                params[key.name] = decode_component(value)

        return MatchResult(
            path=m.group(0),
            params=MappingProxyType(params),
            config=self.config,
            route=self,
        )

    def __repr__(self) -> str:
        methods = ",".join(self.config["methods"])
        return f"CompiledRoute({methods} {self.path!r})"
