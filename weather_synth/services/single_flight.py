"""Coalesce concurrent calls that share a key into a single execution."""

import asyncio
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any, TypeVar

T = TypeVar("T")


class SingleFlight:
    """At most one running call per key; later callers await the same result.

    Waiters are shielded from each other: cancelling one caller does not
    cancel the shared call, which still completes for everyone else.
    """

    def __init__(self):
        self._calls: dict[str, asyncio.Task[Any]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        task = self._calls.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._calls[key] = task
            task.add_done_callback(partial(self._forget, key))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        if not task.cancelled():
            # retrieve so a failure nobody awaited is not reported as unhandled
            task.exception()
