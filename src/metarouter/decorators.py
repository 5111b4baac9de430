"""Decorators that attach route-level metadata to handler functions.

The normalizer reads these attributes when a handler is attached to a route::

    @route_meta(auth="admin", cache=False)
    @route_middleware(require_session)
    def dashboard(request, response, next):
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

META_ATTRS = ("route_meta", "route_metadata")
MIDDLEWARE_ATTR = "route_middleware"


def route_meta(**meta: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Merge *meta* into the handler's ``route_meta`` mapping."""

    def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
        existing = getattr(handler, "route_meta", None) or {}
        handler.route_meta = {**existing, **meta}  # type: ignore[attr-defined]
        return handler

    return decorator


def route_middleware(*steps: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Append *steps* to the handler's own middleware list.

    Entries accept the same forms as a descriptor's ``middleware`` list.
    """

    def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
        existing = list(getattr(handler, MIDDLEWARE_ATTR, None) or ())
        setattr(handler, MIDDLEWARE_ATTR, [*existing, *steps])
        return handler

    return decorator


def handler_meta(handler: Any) -> dict[str, Any]:
    for attr in META_ATTRS:
        meta = getattr(handler, attr, None)
        if meta:
            return dict(meta)
    return {}


def handler_middleware(handler: Any) -> list[Any]:
    steps = getattr(handler, MIDDLEWARE_ATTR, None)
    if isinstance(steps, list | tuple):
        return list(steps)
    return []
