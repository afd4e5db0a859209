"""
Persistent organization store (folders, favorites, sort/filter preferences).

``OrganizationStore`` owns the in-memory copy of the organization document
and mirrors it to a key/value backend. Responsibilities:

* Load the stored document lazily, repairing a dangling ``filterFolder``
  and missing system folders (repairs are written back immediately).
* Hand out copies on ``load`` so callers cannot bypass ``update``.
* Apply mutations as ``update(fn)``: the updater edits a private working copy
  which is committed only if it returns without raising.
* Recover from quota overflow: trim the append-ordered collections to their
  newest entries, retry once, otherwise tell the user. The in-memory document
  stays authoritative for the session either way.
* Drop the in-memory copy when another writer changes the key
  (cross-tab invalidation). Backends exposing ``poll_changes`` are polled
  before every read of the cached copy.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol, TypeVar

from chat_lobby.config import storage as storage_cfg
from chat_lobby.notifications import LogNotifier, Notifier

from .backend import Listener, StorageEvent, StorageQuotaExceeded
from .document import (
    CHAR_SORT_OPTIONS,
    FILTER_ALL,
    SORT_OPTIONS,
    UNCATEGORIZED,
    Folder,
    OrganizationDocument,
    chat_key,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOW_SPACE_MESSAGE = "Storage space is low. Remove old folders or favorites to keep changes."


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...
    def subscribe(self, listener: Listener) -> Callable[[], None]: ...


@dataclass(frozen=True)
class CleanupLimits:
    chat_assignments: int = 2000
    favorites: int = 500
    character_favorites: int = 300

    @classmethod
    def from_config(cls) -> "CleanupLimits":
        return cls(
            chat_assignments=storage_cfg.MAX_CHAT_ASSIGNMENTS,
            favorites=storage_cfg.MAX_FAVORITES,
            character_favorites=storage_cfg.MAX_CHARACTER_FAVORITES,
        )


class OrganizationStore:
    """Folders, favorites and preferences backed by one storage key."""

    def __init__(
        self,
        backend: KeyValueStorage,
        key: str | None = None,
        notifier: Notifier | None = None,
        limits: CleanupLimits | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._key = key or storage_cfg.STORAGE_KEY
        self._notifier = notifier or LogNotifier()
        self._limits = limits or CleanupLimits.from_config()
        self._clock = clock
        self._doc: OrganizationDocument | None = None
        self._unsubscribe = backend.subscribe(self._on_storage_event)

    @property
    def key(self) -> str:
        return self._key

    def close(self) -> None:
        """Stop listening for external changes."""

        self._unsubscribe()

    # ------------------------------------------------------------------ #
    # Core persistence
    # ------------------------------------------------------------------ #

    def _on_storage_event(self, event: StorageEvent) -> None:
        if event.key == self._key:
            logger.info("Organization data changed externally; dropping in-memory copy")
            self.invalidate()

    def invalidate(self) -> None:
        """Force the next read to go back to storage."""

        self._doc = None

    def _poll_backend(self) -> None:
        # File backends only learn about other processes' writes when polled.
        poll = getattr(self._backend, "poll_changes", None)
        if poll is not None:
            poll()

    def _current(self) -> OrganizationDocument:
        if self._doc is not None:
            self._poll_backend()
        if self._doc is None:
            self._doc = self._read()
        return self._doc

    def _read(self) -> OrganizationDocument:
        raw = self._backend.get_item(self._key)
        if raw is None:
            return OrganizationDocument()

        try:
            doc = OrganizationDocument.from_dict(json.loads(raw))
        except ValueError as exc:
            logger.error("Failed to parse organization data, using defaults: %s", exc)
            return OrganizationDocument()

        repaired = doc.ensure_system_folders()
        if not doc.filter_is_valid():
            logger.warning("Filter folder %s no longer exists; resetting to all", doc.filter_folder)
            doc.filter_folder = FILTER_ALL
            repaired = True
        if repaired:
            self._write(doc)
        return doc

    def load(self) -> OrganizationDocument:
        """Return a snapshot copy of the current document."""

        return self._current().copy()

    def save(self, doc: OrganizationDocument) -> bool:
        """
        Make ``doc`` the current document and persist it.

        Returns ``True`` when the write reached storage. On failure the
        document is still kept in memory for the rest of the session.
        """

        self._doc = doc.copy()
        return self._write(self._doc)

    def _write(self, doc: OrganizationDocument) -> bool:
        try:
            self._backend.set_item(self._key, self._encode(doc))
            return True
        except StorageQuotaExceeded:
            logger.warning("Storage quota exceeded; cleaning up old organization data")
            self.cleanup(doc)
            try:
                self._backend.set_item(self._key, self._encode(doc))
                logger.info("Saved organization data after cleanup")
                return True
            except OSError as exc:
                logger.error("Save still failed after cleanup: %s", exc)
        except OSError as exc:
            logger.error("Failed to save organization data: %s", exc)

        self._notifier.notify(LOW_SPACE_MESSAGE, "error")
        return False

    @staticmethod
    def _encode(doc: OrganizationDocument) -> str:
        return json.dumps(doc.to_dict(), ensure_ascii=False)

    def cleanup(self, doc: OrganizationDocument) -> OrganizationDocument:
        """Trim ``doc`` in place to the configured limits, keeping the newest entries."""

        limits = self._limits
        if len(doc.chat_assignments) > limits.chat_assignments:
            before = len(doc.chat_assignments)
            doc.chat_assignments = dict(list(doc.chat_assignments.items())[-limits.chat_assignments:])
            logger.info("Trimmed chat assignments: %d -> %d", before, len(doc.chat_assignments))
        if len(doc.favorites) > limits.favorites:
            doc.favorites = doc.favorites[-limits.favorites:]
            logger.info("Trimmed favorites to %d", limits.favorites)
        if len(doc.character_favorites) > limits.character_favorites:
            doc.character_favorites = doc.character_favorites[-limits.character_favorites:]
            logger.info("Trimmed character favorites to %d", limits.character_favorites)
        return doc

    def update(self, updater: Callable[[OrganizationDocument], T]) -> T:
        """Run ``updater`` on a working copy, then save it. Returns the updater's result."""

        working = self._current().copy()
        result = updater(working)
        self._doc = working
        self._write(working)
        return result

    # ------------------------------------------------------------------ #
    # Folders
    # ------------------------------------------------------------------ #

    def folders(self) -> list[Folder]:
        """Folders ordered for display."""

        return self.load().sorted_folders()

    def has_folder(self, folder_id: str) -> bool:
        return self._current().has_folder(folder_id)

    def _new_folder_id(self, doc: OrganizationDocument) -> str:
        base = f"folder_{int(self._clock() * 1000)}"
        candidate, n = base, 1
        while doc.has_folder(candidate):
            n += 1
            candidate = f"{base}_{n}"
        return candidate

    def add_folder(self, name: str) -> str:
        """Create a user folder after the existing ones. Returns its id."""

        name = (name or "").strip()
        if not name:
            raise ValueError("Folder name must not be blank")

        def _add(doc: OrganizationDocument) -> str:
            folder_id = self._new_folder_id(doc)
            max_order = max((f.order for f in doc.folders if f.id != UNCATEGORIZED), default=0)
            doc.folders.append(Folder(folder_id, name, is_system=False, order=max(max_order, 0) + 1))
            return folder_id

        folder_id = self.update(_add)
        logger.info("Added folder %s (%s)", folder_id, name)
        return folder_id

    def delete_folder(self, folder_id: str) -> bool:
        """
        Delete a user folder. Its chats move to uncategorized, and a filter or
        collapsed flag pointing at it is cleared. System folders are refused.
        """

        folder = self._current().folder(folder_id)
        if folder is None or folder.is_system:
            return False

        def _delete(doc: OrganizationDocument) -> None:
            for key, assigned in doc.chat_assignments.items():
                if assigned == folder_id:
                    doc.chat_assignments[key] = UNCATEGORIZED
            doc.folders = [f for f in doc.folders if f.id != folder_id]
            doc.collapsed_folders = [f for f in doc.collapsed_folders if f != folder_id]
            if doc.filter_folder == folder_id:
                doc.filter_folder = FILTER_ALL

        self.update(_delete)
        logger.info("Deleted folder %s", folder_id)
        return True

    def rename_folder(self, folder_id: str, name: str) -> bool:
        name = (name or "").strip()
        if not name:
            raise ValueError("Folder name must not be blank")
        folder = self._current().folder(folder_id)
        if folder is None or folder.is_system:
            return False

        def _rename(doc: OrganizationDocument) -> None:
            doc.folder(folder_id).name = name

        self.update(_rename)
        return True

    def toggle_folder_collapsed(self, folder_id: str) -> bool:
        """Flip the collapsed flag of ``folder_id``. Returns the new state."""

        def _toggle(doc: OrganizationDocument) -> bool:
            if folder_id in doc.collapsed_folders:
                doc.collapsed_folders.remove(folder_id)
                return False
            doc.collapsed_folders.append(folder_id)
            return True

        return self.update(_toggle)

    # ------------------------------------------------------------------ #
    # Chat assignments
    # ------------------------------------------------------------------ #

    def assign_chat_to_folder(self, character_id: str, file_name: str, folder_id: str) -> bool:
        return self.move_chats_batch([chat_key(character_id, file_name)], folder_id) == 1

    def get_chat_folder(self, character_id: str, file_name: str) -> str:
        return self._current().folder_of(chat_key(character_id, file_name))

    def move_chats_batch(self, keys: Iterable[str], folder_id: str) -> int:
        """Assign every chat key to ``folder_id`` in one write. Returns the number moved."""

        keys = list(keys)
        if not self._current().has_folder(folder_id):
            logger.warning("Refusing to move chats into unknown folder %s", folder_id)
            return 0
        if not keys:
            return 0

        def _move(doc: OrganizationDocument) -> int:
            for key in keys:
                doc.chat_assignments.pop(key, None)
                doc.chat_assignments[key] = folder_id
            return len(keys)

        return self.update(_move)

    # ------------------------------------------------------------------ #
    # Favorites
    # ------------------------------------------------------------------ #

    def toggle_favorite(self, character_id: str, file_name: str) -> bool:
        """Flip the favorite flag of a chat. Returns the new state."""

        key = chat_key(character_id, file_name)

        def _toggle(doc: OrganizationDocument) -> bool:
            if key in doc.favorites:
                doc.favorites.remove(key)
                return False
            doc.favorites.append(key)
            return True

        return self.update(_toggle)

    def is_favorite(self, character_id: str, file_name: str) -> bool:
        return chat_key(character_id, file_name) in self._current().favorites

    def is_character_favorite(self, character_id: str) -> bool:
        return character_id in self._current().character_favorites

    def toggle_character_favorite(self, character_id: str) -> bool:
        def _toggle(doc: OrganizationDocument) -> bool:
            if character_id in doc.character_favorites:
                doc.character_favorites.remove(character_id)
                return False
            doc.character_favorites.append(character_id)
            return True

        return self.update(_toggle)

    def set_character_favorite(self, character_id: str, favorite: bool) -> None:
        if self.is_character_favorite(character_id) == favorite:
            return

        def _set(doc: OrganizationDocument) -> None:
            if favorite:
                doc.character_favorites.append(character_id)
            else:
                doc.character_favorites.remove(character_id)

        self.update(_set)

    def character_favorites(self) -> list[str]:
        return list(self._current().character_favorites)

    # ------------------------------------------------------------------ #
    # Sort / filter preferences
    # ------------------------------------------------------------------ #

    def get_sort_option(self) -> str:
        return self._current().sort_option

    def set_sort_option(self, option: str) -> None:
        if option not in SORT_OPTIONS:
            raise ValueError(f"Unknown chat sort option: {option!r}")

        def _set(doc: OrganizationDocument) -> None:
            doc.sort_option = option

        self.update(_set)

    def get_char_sort_option(self) -> str:
        return self._current().char_sort_option

    def set_char_sort_option(self, option: str) -> None:
        if option not in CHAR_SORT_OPTIONS:
            raise ValueError(f"Unknown character sort option: {option!r}")

        def _set(doc: OrganizationDocument) -> None:
            doc.char_sort_option = option

        self.update(_set)

    def get_filter_folder(self) -> str:
        return self._current().filter_folder or FILTER_ALL

    def set_filter_folder(self, folder_id: str) -> str:
        """Set the folder filter. Unknown folders fall back to ``all``. Returns the value stored."""

        doc = self._current()
        if folder_id != FILTER_ALL and not doc.has_folder(folder_id):
            logger.warning("Unknown filter folder %s; using all", folder_id)
            folder_id = FILTER_ALL

        def _set(working: OrganizationDocument) -> None:
            working.filter_folder = folder_id

        self.update(_set)
        return folder_id

    def ensure_valid_filter(self) -> str:
        """Reset a filter that points at a deleted folder. Returns the effective filter."""

        doc = self._current()
        if doc.filter_is_valid():
            return doc.filter_folder
        return self.set_filter_folder(FILTER_ALL)

    # ------------------------------------------------------------------ #
    # Cleanup after deletions
    # ------------------------------------------------------------------ #

    def forget_chat(self, character_id: str, file_name: str) -> None:
        """Drop the assignment and favorite of a deleted chat."""

        key = chat_key(character_id, file_name)
        doc = self._current()
        if key not in doc.chat_assignments and key not in doc.favorites:
            return

        def _forget(working: OrganizationDocument) -> None:
            working.chat_assignments.pop(key, None)
            working.favorites = [k for k in working.favorites if k != key]

        self.update(_forget)

    def forget_character(self, character_id: str) -> int:
        """Drop every assignment, favorite and character favorite of a deleted character."""

        prefix = chat_key(character_id, "")

        def _forget(doc: OrganizationDocument) -> int:
            doomed = [k for k in doc.chat_assignments if k.startswith(prefix)]
            for k in doomed:
                del doc.chat_assignments[k]
            before = len(doc.favorites)
            doc.favorites = [k for k in doc.favorites if not k.startswith(prefix)]
            doc.character_favorites = [c for c in doc.character_favorites if c != character_id]
            return len(doomed) + before - len(doc.favorites)

        removed = self.update(_forget)
        logger.info("Removed %d organization entries for character %s", removed, character_id)
        return removed


__all__ = ["OrganizationStore", "CleanupLimits", "KeyValueStorage", "LOW_SPACE_MESSAGE"]
