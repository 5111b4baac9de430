"""metarouter command-line interface powered by Typer."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Any

import typer

from metarouter.errors import MetaRouterError
from metarouter.router import Router

app = typer.Typer(name="metarouter", add_completion=False, no_args_is_help=True)

RoutesFile = Annotated[Path, typer.Argument(help="JSON routes file.", exists=True, dir_okay=False)]


@app.callback()
def main(
    log_level: Annotated[str, typer.Option(help="Python logging level.")] = "warning",
) -> None:
    """Inspect, check and serve declarative route files."""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s %(name)s: %(message)s")


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _load_router(path: Path) -> Router:
    try:
        return Router(path)
    except MetaRouterError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc


def _describe(value: Any) -> Any:
    """Make route config values printable as JSON."""
    if isinstance(value, str | int | float | bool) or value is None:
        return value
    if isinstance(value, dict):
        return {str(k): _describe(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_describe(v) for v in value]
    if callable(value):
        return f"<{getattr(value, '__qualname__', type(value).__name__)}>"
    return repr(value)


def _target(route: Any) -> str:
    if route.cell is not None:
        return str(route.cell.ref)
    return repr(route.chain)


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


@app.command()
def routes(path: RoutesFile) -> None:
    """List routes in match order."""
    router = _load_router(path)
    for index, route in enumerate(router.matcher):
        methods = ",".join(route.config["methods"])
        typer.echo(f"{index:>3}  {methods:<12} {route.path:<32} {_target(route)}")


@app.command()
def match(
    path: RoutesFile,
    request_path: Annotated[str, typer.Argument(help="Request path to match.")],
    method: Annotated[str | None, typer.Option(help="HTTP method; omit to ignore methods.")] = None,
) -> None:
    """Print the route that would handle a request."""
    router = _load_router(path)
    result = router.get_match(request_path, method.upper() if method else None)
    if result is None:
        typer.echo("No matching route.", err=True)
        raise typer.Exit(1)

    payload = {
        "path": result.path,
        "params": {str(k): v for k, v in result.params.items()},
        "config": _describe(dict(result.config)),
        "handler": _target(result.route),
    }
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def check(path: RoutesFile) -> None:
    """Load every deferred handler and report failures."""
    router = _load_router(path)
    failures = asyncio.run(router.preload())
    for route, error in failures.items():
        typer.echo(f"FAIL {','.join(route.config['methods'])} {route.path}: {error}", err=True)
    if failures:
        raise typer.Exit(1)
    typer.echo(f"OK {len(router.matcher)} routes")


@app.command()
def serve(
    path: RoutesFile,
    host: Annotated[str, typer.Option(help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Bind port.")] = 8000,
    workers: Annotated[int, typer.Option(help="Number of worker processes.")] = 1,
    dev: Annotated[bool, typer.Option(help="Reload, debug logging and access logs.")] = False,
    reload: Annotated[bool | None, typer.Option("--reload/--no-reload", help="Auto-reload on code changes.")] = None,
) -> None:
    """Serve a routes file with Granian."""
    from metarouter._server import serve as run_server
    from metarouter.config import Settings

    _load_router(path)
    run_server(
        Settings(routes=path.resolve(), debug=dev),
        host=host,
        port=port,
        dev=dev,
        reload=reload,
        workers=workers,
    )
