from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING, final

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@final
class ThreadLocks:
    """One lock per thread root, so that two operations never interleave on a thread."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def is_locked(self, root_id: str) -> bool:
        return (lock := self._locks.get(root_id)) is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *root_ids: str) -> AsyncIterator[None]:
        # Sorted acquisition keeps two merges touching the same pair of threads from
        # deadlocking each other.
        async with AsyncExitStack() as stack:
            for root_id in sorted(set(root_ids)):
                lock = self._locks.setdefault(root_id, asyncio.Lock())
                self._holders[root_id] = self._holders.get(root_id, 0) + 1
                stack.callback(self._release, root_id)
                if lock.locked():
                    logger.debug("waiting for thread {} to be released", root_id)
                await stack.enter_async_context(lock)
            yield

    def _release(self, root_id: str) -> None:
        # Drop locks nobody is waiting on so the mapping doesn't grow forever.
        self._holders[root_id] -= 1
        if not self._holders[root_id]:
            del self._holders[root_id]
            del self._locks[root_id]
