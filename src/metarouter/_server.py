import os
from typing import Any

import typer

from metarouter.config import Settings
from metarouter.loader import load_routes
from metarouter.matcher import Matcher, build_matcher

APP_FACTORY = "metarouter.asgi:create_app_from_env"


def serve(
    settings: Settings,
    *,
    host: str = "127.0.0.1",
    port: int = 8000,
    dev: bool = False,
    reload: bool | None = None,
    workers: int = 1,
    log_level: str = "info",
    log_access: bool = False,
    granian_kwargs: dict[str, Any] | None = None,
) -> None:
    """Serve the route file in *settings* with Granian.

    The route file is built once here so configuration errors surface before
    any worker starts; each worker then rebuilds it through
    :func:`metarouter.asgi.create_app_from_env`.

    Parameters
    ----------
    settings:
        Route file and debug flag, handed to workers through the environment.
    dev:
        Turns on reload (unless *reload* is given), debug logs and access logs.
    """
    from granian import Granian

    matcher = build_matcher(load_routes(settings.routes))
    if dev:
        log_level, log_access = "debug", True
    reload = dev if reload is None else reload

    os.environ.update(settings.to_env())
    _print_banner(settings, matcher, address=f"http://{host}:{port}", workers=workers, reload=reload, dev=dev)

    kw: dict[str, Any] = granian_kwargs or {}
    server = Granian(
        target=APP_FACTORY,
        factory=True,
        address=host,
        port=port,
        interface="asgi",
        workers=workers,
        reload=reload,
        log_level=log_level,
        log_access=log_access,
        **kw,
    )
    server.serve()


def _print_banner(settings: Settings, matcher: Matcher, *, address: str, workers: int, reload: bool, dev: bool) -> None:
    deferred = sum(1 for route in matcher if route.deferred)
    typer.secho(f"metarouter {'dev' if dev else 'production'} server", fg=typer.colors.CYAN, bold=True)
    typer.echo(f"  {len(matcher)} routes ({deferred} loaded on first request) from {settings.routes}")
    typer.echo(f"  {address} workers={workers} reload={'on' if reload else 'off'}")
