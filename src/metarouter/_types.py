"""ASGI and chain type definitions."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any

Scope = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[dict[str, Any]]]
Send = Callable[[dict[str, Any]], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

# next(error=None) handed to every chain step
Next = Callable[..., Any]
# step(request, response, next) -> None | Awaitable[None]
Step = Callable[[Any, Any, Next], Any]
# load(module_id) -> module-like value or an awaitable of one
Loader = Callable[[str], Any]
