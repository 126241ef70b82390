"""Serial executor for dialog session mutations."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, AsyncContextManager, TypeVar

T = TypeVar("T")


class SessionMailbox:
    """Runs session actions one at a time, in arrival order.

    Actions hold the mailbox for their whole run, including awaited
    collaborator calls. Background tasks take it only around the writes
    they make to the session.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task[Any] | None = None
        self._waiting = 0

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def pending(self) -> int:
        """Number of actions queued behind the running one."""
        return self._waiting

    def held_by_current_task(self) -> bool:
        return self._owner is not None and self._owner is asyncio.current_task()

    @contextlib.asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        self._waiting += 1
        try:
            await self._lock.acquire()
        finally:
            self._waiting -= 1
        self._owner = asyncio.current_task()
        try:
            yield
        finally:
            self._owner = None
            self._lock.release()

    def guard(self) -> AsyncContextManager[None]:
        """Exclusive access, or a no-op when the caller already holds it."""
        if self.held_by_current_task():
            return contextlib.nullcontext()
        return self.exclusive()

    async def submit(self, action: Callable[[], Awaitable[T]]) -> T:
        async with self.exclusive():
            return await action()
