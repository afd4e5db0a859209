"""
In-flight request deduplication.

At most one producer runs per request key. Callers arriving while it runs
await the same task and observe the same result or the same exception. The
entry is removed the moment the producer settles, so the next caller after
settlement starts a fresh fetch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PendingRequests:
    """Map of request key to the task currently producing its value."""

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Task] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._inflight

    def __len__(self) -> int:
        return len(self._inflight)

    def keys(self) -> list[str]:
        return list(self._inflight)

    async def get_or_fetch(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        """
        Join the outstanding fetch for ``key`` or start ``producer``.

        ``producer`` is only invoked when nothing is in flight for ``key``.
        Cancelling one waiter does not cancel the shared fetch.
        """

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._run(key, producer))
            self._inflight[key] = task
        else:
            logger.debug("Joining in-flight request %s", key)
        return await asyncio.shield(task)

    async def _run(self, key: str, producer: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await producer()
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    def discard(self, key: str) -> bool:
        """Forget the in-flight entry for ``key``; the running fetch still finishes."""

        return self._inflight.pop(key, None) is not None

    def discard_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._inflight if k.startswith(prefix)]
        for k in doomed:
            del self._inflight[k]
        return len(doomed)

    def clear(self) -> None:
        self._inflight.clear()


__all__ = ["PendingRequests"]
