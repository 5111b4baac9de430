"""Middleware chain composition.

A chain runs its steps strictly in order. Every step is called as
``step(request, response, next)`` and may be a plain function or a coroutine
function. ``next`` is a plain callable:

- ``next()`` advances to the following step (or to ``final_next()`` after the
  last step),
- ``next(error)`` with a truthy error stops the chain and calls
  ``final_next(error)``,
- never calling ``next`` halts the chain; ``final_next`` is not called.

Only the first call to ``next`` made by a step counts, and only while the step
is running: a step that returns without calling ``next`` has halted the chain,
and a later call (from a callback or a scheduled task) is logged at DEBUG and
ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from metarouter._invoke import invoke
from metarouter._types import Next, Step

logger = logging.getLogger(__name__)


class _Continuation:
    __slots__ = ("called", "closed", "error")

    def __init__(self) -> None:
        self.called = False
        self.closed = False
        self.error: Any = None

    def __call__(self, error: Any = None) -> None:
        if self.closed and not self.called:
            logger.debug("next() called after its step returned; the chain has already halted")
            return
        if self.called:
            return
        self.called = True
        self.error = error


class Chain:
    """An ordered sequence of steps composed into one awaitable callable."""

    __slots__ = ("steps",)

    def __init__(self, steps: Iterable[Step]) -> None:
        self.steps: tuple[Step, ...] = tuple(steps)

    async def __call__(self, request: Any, response: Any, final_next: Next) -> None:
        for step in self.steps:
            cont = _Continuation()
            await invoke(step, request, response, cont)
            cont.closed = True
            if not cont.called:
                return
            if cont.error:
                await invoke(final_next, cont.error)
                return
        await invoke(final_next)

    def __len__(self) -> int:
        return len(self.steps)

    def __repr__(self) -> str:
        names = ", ".join(getattr(s, "__qualname__", repr(s)) for s in self.steps)
        return f"Chain([{names}])"


def build_chain(steps: Iterable[Step]) -> Chain | None:
    """Compose *steps* into a :class:`Chain`, or ``None`` when there are none."""
    steps = tuple(steps)
    if not steps:
        return None
    return Chain(steps)
