"""
Per-character "last chatted" timestamps.

The host's ``date_last_chat`` lags behind real activity, so the lobby keeps
its own map of character id to the newest chat timestamp it has seen. The map
lives in memory, is restored from storage on start-up and written back with a
debounced save.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Callable, Iterable

from chat_lobby.config import storage as storage_cfg
from chat_lobby.pipeline.characters import character_id
from chat_lobby.pipeline.dates import get_timestamp, is_finite_number
from chat_lobby.scheduling import ScheduledTask

from .cache import DataGateway

logger = logging.getLogger(__name__)


class LastChatCache:
    def __init__(
        self,
        backend,
        gateway: DataGateway | None = None,
        key: str | None = None,
        save_delay: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._gateway = gateway
        self._key = key or storage_cfg.LAST_CHAT_KEY
        self._clock = clock
        self._times: dict[str, int] = {}
        self._dirty = False
        self._init_task: asyncio.Task | None = None
        self.initialized = False
        self._save_task = ScheduledTask(
            self._save_now,
            storage_cfg.LAST_CHAT_SAVE_DELAY if save_delay is None else save_delay,
            name="last-chat-save",
        )
        self._restore()

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def _restore(self) -> None:
        raw = self._backend.get_item(self._key)
        if not raw:
            return
        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.warning("Failed to restore last chat times: %s", exc)
            return
        if not isinstance(data, dict):
            return
        for cid, ts in data.items():
            if isinstance(ts, (int, float)) and not isinstance(ts, bool) and ts > 0:
                self._times[cid] = int(ts)
        logger.info("Restored %d last chat times", len(self._times))

    async def _save_now(self) -> None:
        self.save()

    def save(self) -> bool:
        """Write the map immediately if it changed since the last write."""

        if not self._dirty:
            return False
        try:
            self._backend.set_item(self._key, json.dumps(self._times))
        except OSError as exc:
            logger.warning("Failed to save last chat times: %s", exc)
            return False
        self._dirty = False
        return True

    def _schedule_save(self) -> None:
        self._dirty = True
        try:
            self._save_task.schedule()
        except RuntimeError:
            # No running loop: write through.
            self.save()

    async def flush(self) -> None:
        """Run a pending debounced save now."""

        await self._save_task.flush()

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    def get(self, cid: str) -> int:
        return self._times.get(cid, 0)

    def set(self, cid: str, timestamp: int) -> bool:
        """Record ``timestamp`` if it is newer than what is stored. Returns ``True`` on change."""

        if not cid or timestamp <= 0 or timestamp <= self._times.get(cid, 0):
            return False
        self._times[cid] = int(timestamp)
        self._schedule_save()
        return True

    def update_now(self, cid: str) -> None:
        """Mark ``cid`` as chatted with just now (message sent / chat opened)."""

        if not cid:
            return
        self._times[cid] = int(self._clock() * 1000)
        self._schedule_save()

    def remove(self, cid: str) -> None:
        if self._times.pop(cid, None) is not None:
            self._schedule_save()

    def cleanup_deleted(self, characters: Iterable[dict]) -> int:
        """Drop entries for characters that no longer exist."""

        existing = {character_id(c) for c in characters}
        doomed = [cid for cid in self._times if cid not in existing]
        for cid in doomed:
            del self._times[cid]
        if doomed:
            logger.info("Dropped %d last chat times for deleted characters", len(doomed))
            self._schedule_save()
        return len(doomed)

    def clear(self) -> None:
        self._times.clear()
        self._dirty = False
        self.initialized = False
        self._save_task.cancel()
        self._backend.remove_item(self._key)

    @staticmethod
    def extract_last_time(chats: Iterable[dict]) -> int:
        return max((get_timestamp(c) for c in chats), default=0)

    def get_for_sort(self, char: dict) -> int:
        """Cached time, falling back to the host's ``date_last_chat``."""

        cached = self.get(character_id(char))
        if cached > 0:
            return cached
        value = char.get("date_last_chat") or 0
        return int(value) if is_finite_number(value) else 0

    # ------------------------------------------------------------------ #
    # Refresh
    # ------------------------------------------------------------------ #

    async def refresh_for_character(self, cid: str, chats: list[dict] | None = None) -> int:
        """Update ``cid`` from its chat list (fetched through the gateway if omitted)."""

        if chats is None:
            if self._gateway is None:
                return 0
            chats = await self._gateway.fetch_chats_for_character(cid)
        last = self.extract_last_time(chats)
        if last > 0:
            self.set(cid, last)
        return last

    async def initialize_all(self, characters: Iterable[dict], batch_size: int = 5) -> None:
        """
        Seed missing entries from each character's ``date_last_chat``.

        Concurrent callers share one run.
        """

        if self._init_task is not None and not self._init_task.done():
            logger.debug("Last chat initialization already running; joining")
            await asyncio.shield(self._init_task)
            return

        self._init_task = asyncio.get_running_loop().create_task(
            self._initialize(list(characters), max(1, batch_size))
        )
        await asyncio.shield(self._init_task)

    async def _initialize(self, characters: list[dict], batch_size: int) -> None:
        for start in range(0, len(characters), batch_size):
            for char in characters[start:start + batch_size]:
                cid = character_id(char)
                if not cid or self.get(cid) > 0:
                    continue
                value = char.get("date_last_chat")
                if is_finite_number(value) and value > 0:
                    self._times[cid] = int(value)
                    self._dirty = True
            # Yield between batches so the event loop stays responsive.
            await asyncio.sleep(0)
        self.initialized = True
        self.save()
        logger.info("Initialized last chat times for %d characters", len(self._times))


__all__ = ["LastChatCache"]
