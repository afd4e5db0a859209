"""
Background warm-up of the lobby cache.

Shortly after the lobby opens the preloader fetches personas and characters,
then the chat lists of the few characters the user most likely opens next
(highest ``date_last_chat``). Every step is best-effort: failures are logged
and never reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from chat_lobby.config import cache as cache_cfg
from chat_lobby.pipeline.characters import character_id, last_chat_time
from chat_lobby.scheduling import ScheduledTask

from .gateway import DataGateway

logger = logging.getLogger(__name__)


class Preloader:
    def __init__(
        self,
        gateway: DataGateway,
        delay: float | None = None,
        recent_limit: int | None = None,
    ) -> None:
        self._gateway = gateway
        self._recent_limit = cache_cfg.PRELOAD_RECENT_LIMIT if recent_limit is None else recent_limit
        self._done: dict[str, bool] = {"personas": False, "characters": False}
        self._task = ScheduledTask(
            self._run,
            cache_cfg.PRELOAD_DELAY if delay is None else delay,
            name="preload",
        )

    def is_done(self, entity_type: str) -> bool:
        return self._done.get(entity_type, False)

    async def preload_all(self) -> None:
        """Warm personas and characters; each type is loaded once successfully."""

        cache = self._gateway.cache
        loaders = {
            "personas": self._gateway.load_personas,
            "characters": self._gateway.load_characters,
        }
        pending = [t for t in loaders if not self._done[t] and not cache.is_valid(t)]
        if not pending:
            return

        results = await asyncio.gather(*(loaders[t]() for t in pending), return_exceptions=True)
        for entity_type, result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.warning("Preload of %s failed: %s", entity_type, result)
                continue
            self._done[entity_type] = True
            logger.info("Preloaded %s", entity_type)

    async def preload_recent_chats(self, characters: Iterable[dict]) -> None:
        """Warm chat lists for the most recently active characters, in parallel."""

        ranked = sorted(
            (c for c in characters if character_id(c)),
            key=last_chat_time,
            reverse=True,
        )[: self._recent_limit]
        cache = self._gateway.cache
        targets = [character_id(c) for c in ranked if not cache.is_valid("chats", character_id(c))]
        if not targets:
            return

        results = await asyncio.gather(
            *(self._gateway.load_chats(cid) for cid in targets), return_exceptions=True
        )
        for cid, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning("Preload of chats for %s failed: %s", cid, result)
        logger.info("Preloaded chats for %d characters", len(targets))

    async def _run(self) -> None:
        await self.preload_all()
        characters = self._gateway.cache.get("characters") or []
        await self.preload_recent_chats(characters)

    def schedule(self) -> asyncio.Task:
        """Start the warm-up after the configured delay without blocking."""

        return self._task.schedule()

    def cancel(self) -> None:
        self._task.cancel()


__all__ = ["Preloader"]
