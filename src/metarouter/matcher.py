"""First-match-wins route matcher."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from metarouter.descriptor import normalize
from metarouter.errors import DecodeFailure, InvalidDescriptor
from metarouter.route import CompiledRoute, MatchResult

logger = logging.getLogger(__name__)

RouteSource = Sequence[str | Mapping[str, Any]] | str | os.PathLike[str]


class Matcher:
    """Ordered, immutable collection of compiled routes.

    Route order is significant: the first route whose method set and pattern
    both accept a request wins, even if a later route would match "better".
    """

    __slots__ = ("routes",)

    def __init__(self, routes: Iterable[CompiledRoute]) -> None:
        self.routes: tuple[CompiledRoute, ...] = tuple(routes)

    def match(self, path: str, method: str | None = None) -> MatchResult | None:
        """Return the first route matching *path* and *method*, else ``None``.

        ``method=None`` ignores every route's method set. A route whose
        captured values cannot be percent-decoded is skipped.
        """
        for route in self.routes:
            try:
                result = route.match(path, method)
            except DecodeFailure as exc:
                logger.debug("Skipping %r for %r: %s", route, path, exc)
                continue
            if result is not None:
                return result
        return None

    def __iter__(self) -> Iterator[CompiledRoute]:
        return iter(self.routes)

    def __len__(self) -> int:
        return len(self.routes)

    def __repr__(self) -> str:
        return f"Matcher({len(self.routes)} routes)"


def build_matcher(descriptors: Sequence[str | Mapping[str, Any]]) -> Matcher:
    """Normalize every descriptor and return a :class:`Matcher`.

    Any invalid descriptor aborts the whole build.
    """
    if isinstance(descriptors, str | bytes | Mapping) or not isinstance(descriptors, Sequence):
        msg = f"A list of route descriptors is required, got {type(descriptors).__name__}"
        raise InvalidDescriptor(msg)
    matcher = Matcher(normalize(descriptor) for descriptor in descriptors)
    logger.debug("Built matcher with %d routes", len(matcher))
    return matcher


async def build_matcher_async(source: RouteSource) -> Matcher:
    """Build a matcher from a descriptor list or a route file path."""
    if isinstance(source, str | os.PathLike):
        from metarouter.loader import load_routes_async

        source = await load_routes_async(source)
    return build_matcher(source)
