"""Route files and handler module loading.

A route file is a JSON array (``//`` and ``/* */`` comments allowed) whose
elements are shorthand strings or descriptor objects::

    [
        // users
        "GET /users/:id => ./handlers/users.py#show",
        {"path": "POST /upload", "handler": "app.upload", "maxSize": "env:MAX_UPLOAD"},
        {"path": "/assets/:file*", "handler": "import:app.static#serve", "root": "path:./public"}
    ]

String values beginning with a registered token prefix are substituted before
the descriptors are normalized:

``path:REL``
    Absolute path, relative to the route file's directory.
``env:NAME``
    The value of environment variable ``NAME``.
``import:module[#attr]``
    The imported module, or one of its attributes.

Handler references starting with ``./`` or ``../`` are made absolute relative
to the route file, so the default loader can import them from anywhere.
"""

from __future__ import annotations

import asyncio
import hashlib
import importlib
import importlib.util
import json
import os
import sys
from collections.abc import Callable
from pathlib import Path
from types import ModuleType
from typing import Any

from metarouter.descriptor import split_shorthand
from metarouter.errors import RouteFileError
from metarouter.route import HandlerRef, pick_export

_RELATIVE_PREFIXES = ("./", "../")


# ------------------------------------------------------------------
# Handler modules
# ------------------------------------------------------------------


def _is_file_ref(module_id: str) -> bool:
    return module_id.endswith(".py") or "/" in module_id or os.sep in module_id


def _module_name_for(path: Path) -> str:
    digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:12]
    return f"metarouter_handlers.{path.stem}_{digest}"


def _import_file(path: Path) -> ModuleType:
    if path.suffix != ".py" and not path.exists():
        path = path.with_suffix(".py")
    name = _module_name_for(path)
    cached = sys.modules.get(name)
    if cached is not None:
        return cached

    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot import handler module from {str(path)!r}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        del sys.modules[name]
        raise
    return module


def default_loader(module_id: str) -> ModuleType:
    """Import a handler module by dotted name or by file path."""
    if _is_file_ref(module_id):
        return _import_file(Path(module_id).resolve())
    return importlib.import_module(module_id)


# ------------------------------------------------------------------
# Route files
# ------------------------------------------------------------------


def strip_comments(text: str) -> str:
    """Remove ``//`` and ``/* */`` comments outside of JSON strings."""
    out: list[str] = []
    i = 0
    size = len(text)
    in_string = False

    while i < size:
        char = text[i]
        if in_string:
            out.append(char)
            if char == "\\" and i + 1 < size:
                out.append(text[i + 1])
                i += 2
                continue
            if char == '"':
                in_string = False
            i += 1
            continue

        if char == '"':
            in_string = True
            out.append(char)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = size if end == -1 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise RouteFileError(f"Unterminated comment at offset {i}")
            i = end + 2
        else:
            out.append(char)
            i += 1

    return "".join(out)


def _env(name: str, base: Path) -> str:
    try:
        return os.environ[name]
    except KeyError:
        raise RouteFileError(f"Environment variable {name!r} is not set") from None


def _path(value: str, base: Path) -> str:
    return str((base / value).resolve())


def _import(value: str, base: Path) -> Any:
    ref = HandlerRef.parse(value)
    try:
        module = importlib.import_module(ref.module_id)
    except ImportError as exc:
        raise RouteFileError(f"Unable to import {ref.module_id!r}: {exc}") from exc
    if ref.export is None:
        return module
    obj = pick_export(module, ref.export)
    if obj is None:
        raise RouteFileError(f"Module {ref.module_id!r} has no attribute {ref.export!r}")
    return obj


TOKEN_HANDLERS: dict[str, Callable[[str, Path], Any]] = {
    "path": _path,
    "env": _env,
    "import": _import,
}


def substitute(value: Any, base: Path) -> Any:
    """Recursively replace ``token:value`` strings inside *value*."""
    if isinstance(value, str):
        token, sep, rest = value.partition(":")
        if sep and token in TOKEN_HANDLERS:
            return TOKEN_HANDLERS[token](rest, base)
        return value
    if isinstance(value, list):
        return [substitute(item, base) for item in value]
    if isinstance(value, dict):
        return {key: substitute(item, base) for key, item in value.items()}
    return value


def _absolute_ref(ref: str, base: Path) -> str:
    if ref.startswith(_RELATIVE_PREFIXES):
        handler = HandlerRef.parse(ref)
        module_id = str((base / handler.module_id).resolve())
        return f"{module_id}#{handler.export}" if handler.export else module_id
    return ref


def _resolve_refs(entry: Any, base: Path) -> Any:
    if isinstance(entry, str):
        methods, path, ref = split_shorthand(entry)
        if ref is None:
            return entry
        prefix = f"{','.join(methods)} " if methods else ""
        return f"{prefix}{path} => {_absolute_ref(ref, base)}"

    if isinstance(entry, dict):
        entry = dict(entry)
        for key in ("route", "path"):
            if isinstance(entry.get(key), str):
                entry[key] = _resolve_refs(entry[key], base)
        if isinstance(entry.get("handler"), str):
            entry["handler"] = _absolute_ref(entry["handler"], base)
        return entry

    raise RouteFileError(f"Invalid route: {entry!r}")


def load_routes(path: str | os.PathLike[str]) -> list[Any]:
    """Read, parse and substitute a route file."""
    file = Path(path).resolve()
    try:
        text = file.read_text(encoding="utf-8")
    except OSError as exc:
        raise RouteFileError(f"Unable to read routes file {str(file)!r}: {exc}") from exc

    try:
        data = json.loads(strip_comments(text))
    except json.JSONDecodeError as exc:
        raise RouteFileError(f"Unable to parse routes JSON file at path {str(file)!r}: {exc}") from exc

    if not isinstance(data, list):
        raise RouteFileError(f"Routes file {str(file)!r} must contain a JSON array")

    base = file.parent
    return [_resolve_refs(substitute(entry, base), base) for entry in data]


async def load_routes_async(path: str | os.PathLike[str]) -> list[Any]:
    """:func:`load_routes` without blocking the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, load_routes, path)
