"""Cache facade combining TTL entries with in-flight request deduplication."""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from chat_lobby.config import cache as cache_cfg

from .entities import ENTITY_TYPES, check_type, is_keyed, pending_key
from .entry_store import Clock, EntryStore
from .pending import PendingRequests

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DataCache:
    """
    Typed cache for lobby entities.

    One instance is created per application (see :mod:`chat_lobby.context`)
    and handed to every collaborator that reads or invalidates entities.
    """

    def __init__(
        self,
        ttls: Mapping[str, float] | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._store = EntryStore(ttls if ttls is not None else cache_cfg.ttls(), clock)
        self._pending = PendingRequests()

    @property
    def pending(self) -> PendingRequests:
        return self._pending

    # ------------------------------------------------------------------ #
    # Entries
    # ------------------------------------------------------------------ #

    def is_valid(self, entity_type: str, key: str | None = None) -> bool:
        return self._store.is_valid(entity_type, key)

    def get(self, entity_type: str, key: str | None = None) -> Any:
        return self._store.get(entity_type, key)

    def set(self, entity_type: str, value: Any, key: str | None = None) -> None:
        self._store.set(entity_type, value, key)

    def get_valid(self, entity_type: str, key: str | None = None) -> Any:
        """Return the cached value only while it is fresh, else ``None``."""

        if self._store.is_valid(entity_type, key):
            return self._store.get(entity_type, key)
        return None

    # ------------------------------------------------------------------ #
    # Invalidation
    # ------------------------------------------------------------------ #

    def invalidate(
        self,
        entity_type: str | None = None,
        key: str | None = None,
        clear_pending: bool = False,
    ) -> None:
        """
        Drop cached entries.

        ``entity_type=None`` drops everything. ``key=None`` on a keyed type
        drops every sub-key. With ``clear_pending`` the matching in-flight
        request is forgotten too, so the next read triggers a new fetch.
        """

        if entity_type is None:
            self.invalidate_all()
            return

        self._store.clear(entity_type, key)
        if clear_pending:
            self._pending.discard(pending_key(entity_type, key))
            if key is None and is_keyed(entity_type):
                self._pending.discard_prefix(f"{entity_type}:")
        logger.debug("Invalidated %s%s", entity_type, f":{key}" if key is not None else "")

    def invalidate_all(self, entity_type: str | None = None) -> None:
        if entity_type is not None:
            self.invalidate(entity_type)
            return
        for t in sorted(ENTITY_TYPES):
            self._store.clear(t)
        logger.debug("Invalidated all cache entries")

    # ------------------------------------------------------------------ #
    # Deduplicated fetch
    # ------------------------------------------------------------------ #

    async def get_or_fetch(
        self,
        entity_type: str,
        producer: Callable[[], Awaitable[T]],
        key: str | None = None,
    ) -> T:
        """Run ``producer`` under the request key for ``(entity_type, key)``."""

        check_type(entity_type)
        return await self._pending.get_or_fetch(pending_key(entity_type, key), producer)


__all__ = ["DataCache"]
