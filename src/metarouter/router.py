"""Router facade: the active matcher, its handler loader, and invocation.

Usage::

    router = Router()
    router.configure([
        "GET /users/:id => app.users#show",
        {"path": "POST /users", "handler": create_user, "audit": True},
    ])

    match = router.get_match("/users/42", "GET")
    if match is not None:
        await router.invoke(match, request, response, next)

Each ``configure`` builds a complete matcher before publishing it together with
its loader as one snapshot, so concurrent lookups never see a partial route
list. Deferred handlers are loaded once per route and the outcome, success or
failure, is cached on the route.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any

from metarouter._invoke import invoke
from metarouter._types import Loader, Next
from metarouter.chain import Chain
from metarouter.errors import NotConfigured
from metarouter.loader import default_loader, load_routes
from metarouter.matcher import Matcher, RouteSource, build_matcher, build_matcher_async
from metarouter.route import CompiledRoute, MatchResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Snapshot:
    matcher: Matcher
    load: Loader


class Router:
    """Holds the active matcher and handler loader.

    Parameters
    ----------
    routes:
        Optional descriptor list; when given, :meth:`configure` runs immediately.
    load:
        ``load(module_id)`` returning a module-like value or an awaitable of one.
        Defaults to :func:`~metarouter.loader.default_loader`.
    """

    __slots__ = ("_active",)

    def __init__(self, routes: RouteSource | Matcher | None = None, *, load: Loader | None = None) -> None:
        self._active: _Snapshot | None = None
        if routes is not None:
            self.configure(routes, load=load)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, routes: RouteSource | Matcher, *, load: Loader | None = None) -> Matcher:
        """Build a matcher from *routes* and make it active.

        *routes* may be a descriptor list, a route file path or a prebuilt
        :class:`Matcher`. On error the previously active matcher stays in place.
        """
        if isinstance(routes, Matcher):
            matcher = routes
        elif isinstance(routes, str | os.PathLike):
            matcher = build_matcher(load_routes(routes))
        else:
            matcher = build_matcher(routes)
        self._publish(matcher, load)
        return matcher

    async def configure_from(self, source: RouteSource, *, load: Loader | None = None) -> Matcher:
        """Like :meth:`configure`, reading route files without blocking."""
        matcher = await build_matcher_async(source)
        self._publish(matcher, load)
        return matcher

    def _publish(self, matcher: Matcher, load: Loader | None) -> None:
        self._active = _Snapshot(matcher, load or default_loader)
        logger.debug("Configured %d routes", len(matcher))

    @property
    def configured(self) -> bool:
        return self._active is not None

    @property
    def matcher(self) -> Matcher:
        return self._snapshot().matcher

    def _snapshot(self) -> _Snapshot:
        active = self._active
        if active is None:
            raise NotConfigured()
        return active

    # ------------------------------------------------------------------
    # Matching and invocation
    # ------------------------------------------------------------------

    def get_match(self, path: str, method: str | None = None) -> MatchResult | None:
        """Return the first matching route for *path* and *method*."""
        return self._snapshot().matcher.match(path, method)

    async def resolve(self, match: MatchResult) -> Chain:
        """Return the chain for *match*, loading a deferred handler once.

        Raises the cached :class:`~metarouter.errors.LoaderFailure` or
        :class:`~metarouter.errors.InvalidHandler` when loading failed.
        """
        return await match.route.resolve(self._snapshot().load)

    async def invoke(self, match: MatchResult, request: Any, response: Any, next: Next) -> None:
        """Run the matched route's chain with ``(request, response, next)``."""
        chain = await self.resolve(match)
        await chain(request, response, next)

    async def dispatch(
        self,
        request: Any,
        response: Any,
        next: Next,
        *,
        path: str,
        method: str | None = None,
    ) -> MatchResult | None:
        """Match and invoke in one call; call ``next()`` when nothing matches."""
        match = self.get_match(path, method)
        if match is None:
            logger.debug("No route for %s %s", method or "*", path)
            await invoke(next)
            return None
        await self.invoke(match, request, response, next)
        return match

    async def preload(self) -> dict[CompiledRoute, BaseException]:
        """Resolve every deferred handler now.

        Returns the failures keyed by route; they stay cached on the routes.
        """
        snapshot = self._snapshot()
        routes = [route for route in snapshot.matcher if route.deferred]
        results = await asyncio.gather(
            *(route.resolve(snapshot.load) for route in routes),
            return_exceptions=True,
        )
        return {
            route: result
            for route, result in zip(routes, results, strict=True)
            if isinstance(result, BaseException)
        }
