"""Tests for middleware chain composition."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from metarouter.chain import Chain, build_chain


class Recorder:
    """Final continuation that records how the chain ended."""

    def __init__(self) -> None:
        self.calls: list[Any] = []

    def __call__(self, error: Any = None) -> None:
        self.calls.append(error)


def step(name: str, error: Any = None, *, call_next: bool = True) -> Any:
    def run(request: Any, response: list[str], next: Any) -> None:
        response.append(name)
        if call_next:
            next(error)

    run.__qualname__ = name
    return run


def test_build_chain_without_steps() -> None:
    assert build_chain([]) is None


def test_repr_lists_steps() -> None:
    chain = Chain([step("auth"), step("show")])
    assert len(chain) == 2
    assert repr(chain) == "Chain([auth, show])"


@pytest.mark.asyncio
async def test_runs_steps_in_order() -> None:
    done = Recorder()
    seen: list[str] = []
    await Chain([step("a"), step("b"), step("c")])(None, seen, done)
    assert seen == ["a", "b", "c"]
    assert done.calls == [None]


@pytest.mark.asyncio
async def test_error_short_circuits() -> None:
    done = Recorder()
    seen: list[str] = []
    await Chain([step("a", "boom"), step("b")])(None, seen, done)
    assert seen == ["a"]
    assert done.calls == ["boom"]


@pytest.mark.asyncio
async def test_falsy_error_advances() -> None:
    done = Recorder()
    seen: list[str] = []
    await Chain([step("a", ""), step("b")])(None, seen, done)
    assert seen == ["a", "b"]
    assert done.calls == [None]


@pytest.mark.asyncio
async def test_halts_without_next() -> None:
    done = Recorder()
    seen: list[str] = []
    await Chain([step("a", call_next=False), step("b")])(None, seen, done)
    assert seen == ["a"]
    assert done.calls == []


@pytest.mark.asyncio
async def test_only_first_next_counts() -> None:
    def twice(request: Any, response: Any, next: Any) -> None:
        next("first")
        next()

    done = Recorder()
    await Chain([twice, step("b")])(None, [], done)
    assert done.calls == ["first"]


@pytest.mark.asyncio
async def test_async_steps_and_final_next() -> None:
    seen: list[Any] = []

    async def load_user(request: dict[str, Any], response: Any, next: Any) -> None:
        request["user"] = "alice"
        next()

    async def show(request: dict[str, Any], response: Any, next: Any) -> None:
        seen.append(request["user"])
        next()

    async def final(error: Any = None) -> None:
        seen.append(("final", error))

    await Chain([load_user, show])({}, None, final)
    assert seen == ["alice", ("final", None)]


@pytest.mark.asyncio
async def test_exceptions_propagate() -> None:
    def explode(request: Any, response: Any, next: Any) -> None:
        raise RuntimeError("kaboom")

    done = Recorder()
    with pytest.raises(RuntimeError, match="kaboom"):
        await Chain([explode])(None, None, done)
    assert done.calls == []


@pytest.mark.asyncio
async def test_late_next_is_logged_and_ignored(caplog: pytest.LogCaptureFixture) -> None:
    captured: list[Any] = []

    def deferred(request: Any, response: Any, next: Any) -> None:
        captured.append(next)

    done = Recorder()
    seen: list[str] = []
    await Chain([deferred, step("b")])(None, seen, done)

    with caplog.at_level(logging.DEBUG, logger="metarouter.chain"):
        captured[0]()
    assert seen == []
    assert done.calls == []
    assert "chain has already halted" in caplog.text
