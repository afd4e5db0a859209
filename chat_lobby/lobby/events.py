"""
Host event hooks.

The chat host emits events when characters or chats change behind the
lobby's back. Each hook invalidates the cache entries the event makes stale;
character add/delete also re-renders the grid while the lobby is open.
Registration is idempotent and ``unregister`` detaches every handler.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from chat_lobby.memory.cache import DataCache
from chat_lobby.memory.last_chat import LastChatCache
from chat_lobby.scheduling import ScheduledTask

from .service import LobbyService

logger = logging.getLogger(__name__)

CHARACTER_DELETED = "CHARACTER_DELETED"
CHARACTER_EDITED = "CHARACTER_EDITED"
CHARACTER_ADDED = "CHARACTER_ADDED"
CHAT_CHANGED = "CHAT_CHANGED"
MESSAGE_SENT = "MESSAGE_SENT"


class EventSource(Protocol):
    def on(self, event: str, handler: Callable[..., Any]) -> None: ...
    def off(self, event: str, handler: Callable[..., Any]) -> None: ...


class HostEvents:
    def __init__(
        self,
        cache: DataCache,
        service: LobbyService | None = None,
        last_chat: LastChatCache | None = None,
    ) -> None:
        self._cache = cache
        self._service = service
        self._last_chat = last_chat
        self._source: EventSource | None = None
        self._grid_refresh = ScheduledTask(self._refresh_grid, 0, name="grid-refresh")
        self._handlers: dict[str, Callable[..., Any]] = {
            CHARACTER_DELETED: self.on_character_deleted,
            CHARACTER_EDITED: self.on_character_edited,
            CHARACTER_ADDED: self.on_character_added,
            CHAT_CHANGED: self.on_chat_changed,
            MESSAGE_SENT: self.on_message_sent,
        }

    @property
    def registered(self) -> bool:
        return self._source is not None

    def register(self, source: EventSource) -> bool:
        """Attach handlers to ``source``. Returns ``False`` if already registered."""

        if self._source is not None:
            return False
        for event, handler in self._handlers.items():
            source.on(event, handler)
        self._source = source
        logger.info("Registered host event hooks")
        return True

    def unregister(self) -> None:
        if self._source is None:
            return
        for event, handler in self._handlers.items():
            self._source.off(event, handler)
        self._source = None
        self._grid_refresh.cancel()

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    async def _refresh_grid(self) -> None:
        if self._service is not None and self._service.state.is_open:
            await self._service.load_character_grid(self._service.state.search_term)

    def _schedule_grid_refresh(self) -> None:
        if self._service is None or not self._service.state.is_open:
            return
        try:
            self._grid_refresh.schedule()
        except RuntimeError:
            logger.debug("No running loop; skipping grid refresh")

    def on_character_deleted(self, *args: Any) -> None:
        self._cache.invalidate("characters")
        self._schedule_grid_refresh()

    def on_character_edited(self, *args: Any) -> None:
        self._cache.invalidate("characters")

    def on_character_added(self, *args: Any) -> None:
        self._cache.invalidate("characters")
        self._schedule_grid_refresh()

    def on_chat_changed(self, *args: Any) -> None:
        self._cache.invalidate("characters")
        self._cache.invalidate("chats")

    def on_message_sent(self, *args: Any) -> None:
        """The active character just got a new message: bump its last chat time."""

        if self._service is None:
            return
        cid = self._service.state.current_character_id
        if not cid:
            return
        self._cache.invalidate("chats", cid)
        if self._last_chat is not None:
            self._last_chat.update_now(cid)


__all__ = [
    "CHARACTER_DELETED",
    "CHARACTER_EDITED",
    "CHARACTER_ADDED",
    "CHAT_CHANGED",
    "MESSAGE_SENT",
    "EventSource",
    "HostEvents",
]
