"""
Lobby orchestration.

``LobbyService`` ties the cached gateway, the organization store and the
pipelines together for the two lobby panes:

* the chat list of the selected character, with stale-while-revalidate
  loading and suppression of results that a newer selection superseded;
* the character grid, where overlapping render requests coalesce into one
  running render followed by the latest pending one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from chat_lobby.config import cache as cache_cfg
from chat_lobby.memory.cache import DataGateway, Preloader
from chat_lobby.memory.last_chat import LastChatCache
from chat_lobby.notifications import LogNotifier, Notifier
from chat_lobby.pipeline.characters import (
    character_id,
    filter_characters,
    resolve_counts,
    sort_characters,
)
from chat_lobby.pipeline.chats import ChatRecord, filter_valid_chats, normalize_chats, organize_chats
from chat_lobby.storage import OrganizationStore, SnapshotStore

from .state import LobbyState

logger = logging.getLogger(__name__)


@dataclass
class ChatListing:
    character_id: str
    records: list[ChatRecord] = field(default_factory=list)
    # Valid chats before the folder filter is applied.
    total: int = 0
    stale: bool = False


class LobbyService:
    def __init__(
        self,
        gateway: DataGateway,
        store: OrganizationStore,
        preloader: Preloader | None = None,
        last_chat: LastChatCache | None = None,
        state: LobbyState | None = None,
        notifier: Notifier | None = None,
        batch_size: int | None = None,
        snapshots: SnapshotStore | None = None,
    ) -> None:
        self._gateway = gateway
        self._snapshots = snapshots
        self._store = store
        self._preloader = preloader
        self._last_chat = last_chat
        self.state = state or LobbyState()
        self._notifier = notifier or LogNotifier()
        self._batch_size = batch_size or cache_cfg.COUNT_BATCH_SIZE
        self._generation = 0
        self._grid_running = False
        self._grid_pending: tuple[str | None, str | None] | None = None

    # ------------------------------------------------------------------ #
    # Chat list
    # ------------------------------------------------------------------ #

    def _listing(self, cid: str, raw, stale: bool = False) -> ChatListing:
        doc = self._store.load()
        total = len(filter_valid_chats(normalize_chats(raw)))
        return ChatListing(cid, organize_chats(raw, cid, doc), total=total, stale=stale)

    async def load_chat_list(
        self,
        character: dict,
        force: bool = False,
        on_stale: Callable[[ChatListing], None] | None = None,
    ) -> ChatListing | None:
        """
        Build the chat list for ``character``.

        A fresh cache entry is used directly. Otherwise an expired entry, if
        any, is handed to ``on_stale`` for immediate display while the fresh
        list is fetched. Returns ``None`` when another character was selected
        before the fetch finished.
        """

        cid = character_id(character)
        self.state.current_character = character
        self._generation += 1
        generation = self._generation

        cache = self._gateway.cache
        if not force and cache.is_valid("chats", cid):
            return self._listing(cid, cache.get("chats", cid))

        stale_raw = cache.get("chats", cid)
        if stale_raw is not None and on_stale is not None:
            on_stale(self._listing(cid, stale_raw, stale=True))

        raw = await self._gateway.fetch_chats_for_character(cid, force_refresh=force)
        if generation != self._generation:
            logger.debug("Dropping superseded chat list for %s", cid)
            return None

        if self._last_chat is not None:
            await self._last_chat.refresh_for_character(cid, raw)
        return self._listing(cid, raw)

    async def refresh_chat_list(self) -> ChatListing | None:
        if self.state.current_character is None:
            return None
        return await self.load_chat_list(self.state.current_character, force=True)

    async def _rerender(self) -> ChatListing | None:
        if self.state.current_character is None:
            return None
        return await self.load_chat_list(self.state.current_character)

    async def change_filter(self, folder_id: str) -> ChatListing | None:
        self._store.set_filter_folder(folder_id)
        return await self._rerender()

    async def change_sort(self, option: str) -> ChatListing | None:
        self._store.set_sort_option(option)
        return await self._rerender()

    def toggle_favorite(self, file_name: str) -> bool:
        cid = self.state.current_character_id
        return self._store.toggle_favorite(cid, file_name)

    async def execute_batch_move(self, keys: Iterable[str], folder_id: str) -> int:
        keys = list(keys)
        if not keys:
            self._notifier.notify("Select chats to move first.", "warning")
            return 0
        moved = self._store.move_chats_batch(keys, folder_id)
        if moved:
            self._notifier.notify(f"Moved {moved} chats.", "success")
            self.state.batch_mode = False
        else:
            self._notifier.notify("Could not move chats to that folder.", "error")
        await self._rerender()
        return moved

    async def delete_chat(self, file_name: str, character: dict | None = None) -> bool:
        character = character or self.state.current_character or {}
        cid = character_id(character)
        ok = await self._gateway.delete_chat(file_name, cid)
        if not ok:
            self._notifier.notify("Failed to delete chat.", "error")
            return False
        self._store.forget_chat(cid, file_name)
        self._notifier.notify("Chat deleted.", "success")
        return True

    async def delete_character(self, character: dict) -> bool:
        cid = character_id(character)
        ok = await self._gateway.delete_character(cid)
        if not ok:
            self._notifier.notify("Failed to delete character.", "error")
            return False
        self._store.forget_character(cid)
        if self._last_chat is not None:
            self._last_chat.remove(cid)
        if self.state.current_character_id == cid:
            self.state.current_character = None
        self._notifier.notify("Character deleted.", "success")
        return True

    # ------------------------------------------------------------------ #
    # Character grid
    # ------------------------------------------------------------------ #

    async def _render_grid(self, search_term: str | None, sort_override: str | None) -> list[dict]:
        if search_term is not None:
            self.state.search_term = search_term
        characters = await self._gateway.fetch_characters()
        filtered = filter_characters(characters, self.state.search_term, self.state.selected_tag)
        option = sort_override or self._store.get_char_sort_option()
        return await sort_characters(
            filtered,
            option,
            self._store.character_favorites(),
            count_lookup=self._gateway.get_message_count,
            batch_size=self._batch_size,
            recent=self._last_chat.get_for_sort if self._last_chat is not None else None,
        )

    async def load_character_grid(
        self, search_term: str | None = None, sort_override: str | None = None
    ) -> list[dict] | None:
        """
        Filtered, sorted character list.

        While a render runs, further calls only record their arguments and
        return ``None``; the running call renders again with the latest
        recorded arguments before returning.
        """

        if self._grid_running:
            self._grid_pending = (search_term, sort_override)
            return None

        self._grid_running = True
        try:
            result = await self._render_grid(search_term, sort_override)
            while self._grid_pending is not None:
                pending_search, pending_sort = self._grid_pending
                self._grid_pending = None
                result = await self._render_grid(pending_search, pending_sort)
        finally:
            self._grid_running = False
        return result

    async def load_counts(self, characters: Iterable[dict]) -> dict[str, int]:
        """Chat counts for grid badges, resolved chunk by chunk."""

        return await resolve_counts(list(characters), self._gateway.get_chat_count, self._batch_size)

    async def record_daily_snapshot(self) -> int | None:
        """Store today's message total across all characters for the activity calendar."""

        if self._snapshots is None:
            return None
        characters = await self._gateway.fetch_characters()
        counts = await resolve_counts(characters, self._gateway.get_message_count, self._batch_size)
        total = sum(counts.values())
        day = self._snapshots.record_today(total)
        logger.info("Recorded %d messages for %s", total, day)
        return total

    def toggle_character_favorite(self, cid: str) -> bool:
        state = self._store.toggle_character_favorite(cid)
        self._notifier.notify("Added to favorites." if state else "Removed from favorites.", "success")
        return state

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def open_lobby(self) -> tuple[list[dict], list[dict] | None]:
        """Open the lobby: repair the filter, start warm-up, return personas and the grid."""

        self.state.is_open = True
        self.state.batch_mode = False
        self._store.ensure_valid_filter()
        if self._preloader is not None:
            self._preloader.schedule()

        personas = await self._gateway.fetch_personas()
        characters = await self.load_character_grid()
        if self._last_chat is not None and not self._last_chat.initialized:
            await self._last_chat.initialize_all(self._gateway.cache.get("characters") or [], self._batch_size)
        return personas, characters

    async def close_lobby(self) -> None:
        if self._preloader is not None:
            self._preloader.cancel()
        if self._last_chat is not None:
            await self._last_chat.flush()
        self.state.reset()

    async def refresh_all(self) -> tuple[list[dict], list[dict] | None]:
        """Drop every cached entity and reload personas and the grid from the backend."""

        self._gateway.cache.invalidate_all()
        personas = await self._gateway.fetch_personas(force=True)
        await self._gateway.fetch_characters(force=True)
        characters = await self.load_character_grid()
        self._notifier.notify("Refreshed.", "success")
        return personas, characters


__all__ = ["ChatListing", "LobbyService"]
