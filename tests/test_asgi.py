"""Tests for the ASGI adapter."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from metarouter import MetaRouterApp, Request, Response, Router
from metarouter.asgi import create_app, create_app_from_env


def _make_client(app: MetaRouterApp) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    )


def _app(routes: list[Any], **kwargs: Any) -> MetaRouterApp:
    return MetaRouterApp(Router(routes), **kwargs)


# =====================================================================
# Handlers used below
# =====================================================================


def show_user(request: Request, response: Response, next: Any) -> None:
    response.json({"id": request.params["id"]})


def load_session(request: Request, response: Response, next: Any) -> None:
    request.state["user"] = "alice"
    next()


async def whoami(request: Request, response: Response, next: Any) -> None:
    response.set_header("X-User", request.state["user"])
    response.text(request.state["user"])


def pass_on(request: Request, response: Response, next: Any) -> None:
    next()


def deny(request: Request, response: Response, next: Any) -> None:
    next(PermissionError("denied"))


def explode(request: Request, response: Response, next: Any) -> None:
    raise RuntimeError("kaboom")


# =====================================================================
# Requests
# =====================================================================


@pytest.mark.asyncio
async def test_path_params() -> None:
    app = _app([{"path": "GET /users/:id", "handler": show_user}])

    async with _make_client(app) as client:
        resp = await client.get("/users/42")
        assert resp.status_code == 200
        assert resp.json() == {"id": "42"}


@pytest.mark.asyncio
async def test_middleware_runs_before_handler() -> None:
    app = _app([{"path": "/me", "middleware": [load_session], "handler": whoami}])

    async with _make_client(app) as client:
        resp = await client.get("/me")
        assert resp.status_code == 200
        assert resp.text == "alice"
        assert resp.headers["x-user"] == "alice"
        assert resp.headers["content-type"] == "text/plain; charset=utf-8"


@pytest.mark.asyncio
async def test_post_with_body() -> None:
    async def echo(request: Request, response: Response, next: Any) -> None:
        response.json(await request.json(), status=201)

    app = _app([{"path": "POST /echo", "handler": echo}])

    async with _make_client(app) as client:
        resp = await client.post("/echo", json={"key": "value"})
        assert resp.status_code == 201
        assert resp.json() == {"key": "value"}


@pytest.mark.asyncio
async def test_query_params() -> None:
    def search(request: Request, response: Response, next: Any) -> None:
        response.json({"q": request.query_params["q"], "method": request.method, "path": request.path})

    app = _app([{"path": "/search", "handler": search}])

    async with _make_client(app) as client:
        resp = await client.get("/search", params={"q": "router"})
        assert resp.json() == {"q": ["router"], "method": "GET", "path": "/search"}


@pytest.mark.asyncio
async def test_pydantic_model_response() -> None:
    class Item(BaseModel):
        name: str
        price: float

    def get_item(request: Request, response: Response, next: Any) -> None:
        response.json(Item(name="Widget", price=9.99))

    app = _app([{"path": "/item", "handler": get_item}])

    async with _make_client(app) as client:
        resp = await client.get("/item")
        assert resp.status_code == 200
        assert resp.json() == {"name": "Widget", "price": 9.99}


@pytest.mark.asyncio
async def test_route_config_on_request() -> None:
    def show_config(request: Request, response: Response, next: Any) -> None:
        assert request.route is not None
        response.json({"auth": request.route.config["auth"]})

    app = _app([{"path": "/admin", "handler": show_config, "auth": "admin"}])

    async with _make_client(app) as client:
        resp = await client.get("/admin")
        assert resp.json() == {"auth": "admin"}


# =====================================================================
# Fall-through and errors
# =====================================================================


@pytest.mark.asyncio
async def test_404() -> None:
    app = _app([{"path": "POST /users", "handler": show_user}])

    async with _make_client(app) as client:
        resp = await client.get("/users")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Not Found"


@pytest.mark.asyncio
async def test_fall_through_to_fallback() -> None:
    async def fallback(scope: Any, receive: Any, send: Any) -> None:
        response = Response()
        response.text("fallback", status=418)
        await response.send_to(send)

    app = _app([{"path": "/x", "handler": pass_on}], fallback=fallback)

    async with _make_client(app) as client:
        assert (await client.get("/x")).status_code == 418
        assert (await client.get("/unknown")).status_code == 418


@pytest.mark.asyncio
async def test_fall_through_without_fallback() -> None:
    app = _app([{"path": "/x", "handler": pass_on}])

    async with _make_client(app) as client:
        assert (await client.get("/x")).status_code == 404


@pytest.mark.asyncio
async def test_next_error_is_500() -> None:
    app = _app([{"path": "/private", "middleware": [deny], "handler": show_user}])

    async with _make_client(app) as client:
        resp = await client.get("/private")
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal Server Error"}


@pytest.mark.asyncio
async def test_500_on_handler_error() -> None:
    app = _app([{"path": "/boom", "handler": explode}])

    async with _make_client(app) as client:
        resp = await client.get("/boom")
        assert resp.status_code == 500
        assert "Internal Server Error" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_debug_includes_traceback() -> None:
    app = _app([{"path": "/boom", "handler": explode}], debug=True)

    async with _make_client(app) as client:
        body = (await client.get("/boom")).json()
        assert body["error"] == "kaboom"
        assert "RuntimeError: kaboom" in body["traceback"]


@pytest.mark.asyncio
async def test_load_failure_is_500() -> None:
    def load(module_id: str) -> Any:
        raise ImportError(module_id)

    app = MetaRouterApp(Router(["/x => missing"], load=load))

    async with _make_client(app) as client:
        assert (await client.get("/x")).status_code == 500
        assert (await client.get("/x")).status_code == 500


# =====================================================================
# Lifespan and factories
# =====================================================================


@pytest.mark.asyncio
async def test_lifespan() -> None:
    app = _app([])
    messages = [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}]
    sent: list[dict[str, Any]] = []

    async def receive() -> dict[str, Any]:
        return messages.pop(0)

    async def send(message: dict[str, Any]) -> None:
        sent.append(message)

    await app({"type": "lifespan"}, receive, send)
    assert [m["type"] for m in sent] == ["lifespan.startup.complete", "lifespan.shutdown.complete"]


@pytest.mark.asyncio
async def test_create_app_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "handlers.py").write_text(
        "def hello(request, response, next):\n    response.json({'hello': request.params['name']})\n"
    )
    routes = tmp_path / "routes.json"
    routes.write_text('["GET /hello/:name => ./handlers.py#hello"]')
    monkeypatch.setenv("METAROUTER_ROUTES", str(routes))
    monkeypatch.setenv("METAROUTER_DEBUG", "1")

    app = create_app_from_env()
    assert app.debug

    async with _make_client(app) as client:
        resp = await client.get("/hello/world")
        assert resp.json() == {"hello": "world"}


def test_create_app(tmp_path: Path) -> None:
    routes = tmp_path / "routes.json"
    routes.write_text('["GET /a => app.a"]')
    app = create_app(str(routes))
    assert len(app.router.matcher) == 1
    assert not app.debug
