"""
Cache-aware access to the backend data source.

``DataGateway`` is the read/delete API the lobby uses. Reads follow the same
path for every entity type:

1. a fresh cache entry is returned as is (unless forced);
2. otherwise the request is joined onto the in-flight fetch for the same
   request key, or a new fetch is started;
3. the fetched value is written to the cache before waiters resume.

The ``load_*`` methods raise on failure (the preloader needs to know); the
public ``fetch_*`` methods log and degrade to empty results. Deletions
invalidate every cache entry derived from the deleted object.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from chat_lobby.pipeline.chats import count_messages, normalize_chats

from .manager import DataCache

logger = logging.getLogger(__name__)


class DataSource(Protocol):
    async def fetch_personas(self) -> list[dict]: ...
    async def fetch_characters(self) -> list[dict]: ...
    async def fetch_chats_for_character(self, character_id: str) -> Any: ...
    async def delete_chat(self, file_name: str, character_id: str) -> bool: ...
    async def delete_persona(self, persona_key: str) -> bool: ...
    async def delete_character(self, character_id: str) -> bool: ...


class DataGateway:
    def __init__(self, cache: DataCache, source: DataSource) -> None:
        self._cache = cache
        self._source = source

    @property
    def cache(self) -> DataCache:
        return self._cache

    # ------------------------------------------------------------------ #
    # Raising loaders (shared with the preloader)
    # ------------------------------------------------------------------ #

    async def load_personas(self) -> list[dict]:
        async def _produce() -> list[dict]:
            personas = list(await self._source.fetch_personas())
            self._cache.set("personas", personas)
            return personas

        return await self._cache.get_or_fetch("personas", _produce)

    async def load_characters(self) -> list[dict]:
        async def _produce() -> list[dict]:
            characters = list(await self._source.fetch_characters())
            self._cache.set("characters", characters)
            return characters

        return await self._cache.get_or_fetch("characters", _produce)

    async def load_chats(self, character_id: str) -> list[dict]:
        """Fetch chats and refresh the derived chat/message counts."""

        async def _produce() -> list[dict]:
            chats = normalize_chats(await self._source.fetch_chats_for_character(character_id))
            self._cache.set("chats", chats, character_id)
            self._cache.set("chatCounts", len(chats), character_id)
            self._cache.set("messageCounts", count_messages(chats), character_id)
            return chats

        return await self._cache.get_or_fetch("chats", _produce, key=character_id)

    # ------------------------------------------------------------------ #
    # Degrading readers
    # ------------------------------------------------------------------ #

    async def fetch_personas(self, force: bool = False) -> list[dict]:
        if not force and self._cache.is_valid("personas"):
            return self._cache.get("personas")
        try:
            return await self.load_personas()
        except Exception as exc:
            logger.error("Failed to load personas: %s", exc)
            return []

    async def fetch_characters(self, force: bool = False) -> list[dict]:
        if not force and self._cache.is_valid("characters"):
            return self._cache.get("characters")
        try:
            return await self.load_characters()
        except Exception as exc:
            logger.error("Failed to load characters: %s", exc)
            return []

    async def fetch_chats_for_character(self, character_id: str, force_refresh: bool = False) -> list[dict]:
        if not character_id:
            return []
        if not force_refresh and self._cache.is_valid("chats", character_id):
            return self._cache.get("chats", character_id)
        try:
            return await self.load_chats(character_id)
        except Exception as exc:
            logger.error("Failed to load chats for %s: %s", character_id, exc)
            return []

    async def get_chat_count(self, character_id: str) -> int:
        if self._cache.is_valid("chatCounts", character_id):
            return self._cache.get("chatCounts", character_id)
        return len(await self.fetch_chats_for_character(character_id))

    async def get_message_count(self, character_id: str) -> int:
        if self._cache.is_valid("messageCounts", character_id):
            return self._cache.get("messageCounts", character_id)
        return count_messages(await self.fetch_chats_for_character(character_id))

    # ------------------------------------------------------------------ #
    # Deletions
    # ------------------------------------------------------------------ #

    def _forget_chats_of(self, character_id: str) -> None:
        for entity_type in ("chats", "chatCounts", "messageCounts"):
            self._cache.invalidate(entity_type, character_id)

    async def delete_chat(self, file_name: str, character_id: str) -> bool:
        try:
            ok = bool(await self._source.delete_chat(file_name, character_id))
        except Exception as exc:
            logger.error("Failed to delete chat %s: %s", file_name, exc)
            return False
        if ok:
            self._forget_chats_of(character_id)
        return ok

    async def delete_persona(self, persona_key: str) -> bool:
        try:
            ok = bool(await self._source.delete_persona(persona_key))
        except Exception as exc:
            logger.error("Failed to delete persona %s: %s", persona_key, exc)
            return False
        if ok:
            self._cache.invalidate("personas", clear_pending=True)
        return ok

    async def delete_character(self, character_id: str) -> bool:
        try:
            ok = bool(await self._source.delete_character(character_id))
        except Exception as exc:
            logger.error("Failed to delete character %s: %s", character_id, exc)
            return False
        if ok:
            self._cache.invalidate("characters")
            self._forget_chats_of(character_id)
        return ok


__all__ = ["DataSource", "DataGateway"]
