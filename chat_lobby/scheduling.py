"""
Delayed, cancellable callbacks for background work.

``ScheduledTask`` wraps a coroutine function and runs it once after a delay.
Re-arming a pending task cancels the earlier run, so repeated triggers
collapse into a single execution (debounce). The preloader, the last-chat
save and the character grid all share this helper instead of juggling raw
``asyncio`` handles.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class ScheduledTask:
    """One-shot delayed execution of ``callback`` with re-arm semantics."""

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        delay: float,
        name: str | None = None,
    ) -> None:
        self._callback = callback
        self._delay = delay
        self._name = name or getattr(callback, "__name__", "scheduled")
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        """``True`` while a run is armed and has not started yet."""

        return self._task is not None and not self._task.done()

    def schedule(self, delay: float | None = None) -> asyncio.Task:
        """
        Arm the callback to run after ``delay`` seconds (default delay when
        omitted). An already pending run is cancelled first.

        Must be called from inside a running event loop. Returns the task
        handle so callers (and tests) can await completion.
        """

        self.cancel()
        wait = self._delay if delay is None else delay
        self._task = asyncio.get_running_loop().create_task(self._run(wait))
        return self._task

    def cancel(self) -> None:
        """Drop the pending run, if any. Runs already executing are left alone."""

        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> bool:
        """Run a pending callback immediately. Returns ``False`` if nothing was armed."""

        if not self.pending:
            return False
        self.cancel()
        await self._invoke()
        return True

    async def _run(self, wait: float) -> None:
        await asyncio.sleep(wait)
        # Once the delay elapsed the run is no longer cancellable via re-arm.
        if self._task is asyncio.current_task():
            self._task = None
        await self._invoke()

    async def _invoke(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("Scheduled task %s failed", self._name)


__all__ = ["ScheduledTask"]
