"""ASGI integration.

:class:`MetaRouterApp` looks up each HTTP request, runs the matched chain with
``(request, response, next)`` and sends whatever the chain wrote::

    from metarouter import Router
    from metarouter.asgi import MetaRouterApp

    async def show_user(request, response, next):
        response.json({"id": request.params["id"]})

    app = MetaRouterApp(Router([{"path": "GET /users/:id", "handler": show_user}]))

Steps write to a buffered :class:`Response`, which is sent once the chain
finishes. A chain that falls through (the last step calls ``next()`` without
finishing the response) continues to the *fallback* app, or gets a 404.
"""

from __future__ import annotations

import json
import logging
import traceback
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs

from pydantic import BaseModel

from metarouter.config import Settings
from metarouter.router import Router

if TYPE_CHECKING:
    from metarouter._types import ASGIApp, Receive, Scope, Send
    from metarouter.route import MatchResult

logger = logging.getLogger(__name__)


class Request:
    """Thin wrapper around an ASGI *scope* and *receive* callable."""

    __slots__ = ("_body", "_receive", "_scope", "params", "route", "state")

    def __init__(self, scope: Scope, receive: Receive, route: MatchResult | None = None) -> None:
        self._scope = scope
        self._receive = receive
        self._body: bytes | None = None
        self.route = route
        self.params: dict[str | int, Any] = dict(route.params) if route else {}
        self.state: dict[str, Any] = {}

    @property
    def method(self) -> str:
        return self._scope["method"]

    @property
    def path(self) -> str:
        return self._scope["path"]

    @property
    def query_string(self) -> bytes:
        return self._scope.get("query_string", b"")

    @property
    def query_params(self) -> dict[str, list[str]]:
        return parse_qs(self.query_string.decode("latin-1"))

    @property
    def headers(self) -> dict[str, str]:
        """Headers as a lowercase-keyed dict (last value wins for dupes)."""
        return {k.decode("latin-1"): v.decode("latin-1") for k, v in self._scope.get("headers", [])}

    async def body(self) -> bytes:
        """Read and cache the full request body."""
        if self._body is not None:
            return self._body
        chunks: list[bytes] = []
        while True:
            message = await self._receive()
            chunk = message.get("body", b"")
            if chunk:
                chunks.append(chunk)
            if not message.get("more_body", False):
                break
        self._body = b"".join(chunks)
        return self._body

    async def json(self) -> Any:
        """Parse the request body as JSON."""
        return json.loads(await self.body())


class Response:
    """Buffered HTTP response written by chain steps."""

    __slots__ = ("body", "finished", "headers", "status")

    def __init__(self) -> None:
        self.status = 200
        self.headers: list[tuple[str, str]] = []
        self.body = b""
        self.finished = False

    def set_header(self, name: str, value: str) -> Response:
        lowered = name.lower()
        self.headers = [(k, v) for k, v in self.headers if k != lowered]
        self.headers.append((lowered, value))
        return self

    def send(self, body: bytes | str = b"", *, status: int | None = None, content_type: str | None = None) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        if status is not None:
            self.status = status
        if content_type is not None:
            self.set_header("content-type", content_type)
        self.body = body
        self.finished = True

    def text(self, text: str, *, status: int | None = None) -> None:
        self.send(text, status=status, content_type="text/plain; charset=utf-8")

    def json(self, data: Any, *, status: int | None = None) -> None:
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")
        self.send(json.dumps(data), status=status, content_type="application/json")

    async def send_to(self, send: Send) -> None:
        headers = [(k.encode("latin-1"), v.encode("latin-1")) for k, v in self.headers]
        if not any(k == b"content-length" for k, _ in headers):
            headers.append((b"content-length", str(len(self.body)).encode("latin-1")))
        await send({"type": "http.response.start", "status": self.status, "headers": headers})
        await send({"type": "http.response.body", "body": self.body})


class _Outcome:
    """Final continuation handed to the chain; records how it ended."""

    __slots__ = ("called", "error")

    def __init__(self) -> None:
        self.called = False
        self.error: Any = None

    def __call__(self, error: Any = None) -> None:
        self.called = True
        self.error = error


class MetaRouterApp:
    """ASGI 3.0 application dispatching through a :class:`Router`.

    Parameters
    ----------
    router:
        A configured router.
    fallback:
        ASGI app for unmatched requests and chains that fall through.
    debug:
        When ``True``, 500 responses include the full traceback.
    """

    def __init__(self, router: Router, *, fallback: ASGIApp | None = None, debug: bool = False) -> None:
        self.router = router
        self.fallback = fallback
        self.debug = debug

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await _handle_lifespan(receive, send)
            return
        if scope["type"] != "http":
            return
        await self._handle(scope, receive, send)

    async def _handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        match = self.router.get_match(scope["path"], scope["method"])
        if match is None:
            await self._fall_through(scope, receive, send)
            return

        request = Request(scope, receive, match)
        response = Response()
        outcome = _Outcome()

        try:
            await self.router.invoke(match, request, response, outcome)
        except Exception as exc:
            logger.exception("Unhandled error in route %s", match.config["path"])
            await self._error(exc, send)
            return

        if outcome.error:
            await self._error(outcome.error, send)
        elif outcome.called and not response.finished:
            await self._fall_through(scope, receive, send)
        else:
            await response.send_to(send)

    async def _fall_through(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self.fallback is not None:
            await self.fallback(scope, receive, send)
            return
        response = Response()
        response.json({"detail": "Not Found"}, status=404)
        await response.send_to(send)

    async def _error(self, error: Any, send: Send) -> None:
        body: dict[str, Any] = {"detail": "Internal Server Error"}
        if self.debug:
            body["error"] = str(error)
            if isinstance(error, BaseException):
                body["traceback"] = "".join(traceback.format_exception(error))
        response = Response()
        response.json(body, status=500)
        await response.send_to(send)


# ------------------------------------------------------------------
# Factories
# ------------------------------------------------------------------


def create_app(routes: str, *, debug: bool = False) -> MetaRouterApp:
    """Build an app serving the route file at *routes*."""
    return MetaRouterApp(Router(routes), debug=debug)


def create_app_from_env() -> MetaRouterApp:
    """Granian factory target: settings come from the environment."""
    settings = Settings.from_env()
    return create_app(str(settings.routes), debug=settings.debug)


async def _handle_lifespan(receive: Receive, send: Send) -> None:
    """Accept lifespan startup and shutdown with no-ops."""
    while True:
        message = await receive()
        if message["type"] == "lifespan.startup":
            await send({"type": "lifespan.startup.complete"})
        elif message["type"] == "lifespan.shutdown":
            await send({"type": "lifespan.shutdown.complete"})
            return
