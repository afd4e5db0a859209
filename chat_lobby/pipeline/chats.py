"""
Chat organization pipeline.

Raw chat records arrive from the backend either as a list or as a mapping
keyed by file name. ``organize_chats`` turns them into the ordered
``ChatRecord`` list shown for one character:

1. ``normalize_chats``  - list or mapping -> list of dicts with ``file_name``
2. ``filter_valid_chats`` - drop placeholder / error / non-chat entries
3. ``filter_by_folder`` - apply the folder filter (skipped for ``all``)
4. ``sort_chats`` - favorites first, then the chosen sort option
5. ``enrich`` - attach preview, count, timestamp and folder metadata

Every step is pure: inputs are never mutated and the same inputs always give
the same output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable

from chat_lobby.storage.document import (
    FAVORITES,
    FILTER_ALL,
    UNCATEGORIZED,
    OrganizationDocument,
    chat_key,
)

from .collation import name_key
from .dates import get_timestamp

_DATE_IN_NAME_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


@dataclass(slots=True)
class ChatRecord:
    file_name: str
    preview: str
    message_count: int
    timestamp: int
    is_favorite: bool = False
    folder_id: str = UNCATEGORIZED
    folder_name: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file_name,
            "preview": self.preview,
            "message_count": self.message_count,
            "timestamp": self.timestamp,
            "is_favorite": self.is_favorite,
            "folder_id": self.folder_id,
            "folder_name": self.folder_name,
        }


def file_name_of(chat: dict) -> str:
    name = chat.get("file_name") or chat.get("fileName") or ""
    return name if isinstance(name, str) else str(name)


def message_count_of(chat: dict) -> int:
    count = chat.get("message_count") or chat.get("mes_count") or chat.get("chat_items") or 0
    try:
        return int(count)
    except (TypeError, ValueError, OverflowError):
        return 0


def preview_of(chat: dict) -> str:
    return str(chat.get("preview") or chat.get("mes") or chat.get("last_message") or "")


def count_messages(chats: Iterable[dict]) -> int:
    """Total message count across ``chats``."""

    return sum(message_count_of(c) for c in chats)


# ---------------------------------------------------------------------- #
# Pipeline steps
# ---------------------------------------------------------------------- #


def normalize_chats(raw: Any) -> list[dict]:
    """Coerce a backend chat payload into a list of chat dicts."""

    if isinstance(raw, list):
        return [dict(c) for c in raw if isinstance(c, dict)]
    if isinstance(raw, dict):
        if raw.get("error") is True:
            return []
        out = []
        for key, value in raw.items():
            if isinstance(value, dict):
                out.append({**value, "file_name": value.get("file_name") or str(key)})
            else:
                out.append({"file_name": str(key)})
        return out
    return []


def is_valid_chat(chat: dict) -> bool:
    name = file_name_of(chat)
    if not name:
        return False
    if name.startswith("chat_") or name.lower() == "error":
        return False
    return ".jsonl" in name or bool(_DATE_IN_NAME_RE.search(name))


def filter_valid_chats(chats: Iterable[dict]) -> list[dict]:
    return [c for c in chats if is_valid_chat(c)]


def filter_by_folder(
    chats: Iterable[dict],
    character_id: str,
    folder_filter: str,
    doc: OrganizationDocument,
) -> list[dict]:
    """Keep chats in ``folder_filter``; ``favorites`` matches favorited chats."""

    if folder_filter == FILTER_ALL:
        return list(chats)
    if folder_filter == FAVORITES:
        favorites = set(doc.favorites)
        return [c for c in chats if chat_key(character_id, file_name_of(c)) in favorites]
    return [
        c for c in chats if doc.folder_of(chat_key(character_id, file_name_of(c))) == folder_filter
    ]


def sort_chats(
    chats: Iterable[dict],
    character_id: str,
    sort_option: str,
    doc: OrganizationDocument,
) -> list[dict]:
    """Favorites first, then by ``sort_option``. Ties keep their input order."""

    favorites = set(doc.favorites)

    def _key(chat: dict) -> tuple:
        rank = 0 if chat_key(character_id, file_name_of(chat)) in favorites else 1
        if sort_option == "name":
            return (rank, name_key(file_name_of(chat)))
        if sort_option == "messages":
            return (rank, -message_count_of(chat))
        return (rank, -get_timestamp(chat))

    return sorted(chats, key=_key)


def enrich(chat: dict, character_id: str, doc: OrganizationDocument) -> ChatRecord:
    name = file_name_of(chat)
    key = chat_key(character_id, name)
    folder_id = doc.folder_of(key)
    folder = doc.folder(folder_id)
    return ChatRecord(
        file_name=name,
        preview=preview_of(chat),
        message_count=message_count_of(chat),
        timestamp=get_timestamp(chat),
        is_favorite=key in doc.favorites,
        folder_id=folder_id,
        folder_name=folder.name if folder else "",
        raw=dict(chat),
    )


def organize_chats(
    raw: Any,
    character_id: str,
    doc: OrganizationDocument,
    folder_filter: str | None = None,
    sort_option: str | None = None,
) -> list[ChatRecord]:
    """
    Run the full pipeline for one character.

    ``folder_filter`` and ``sort_option`` default to the preferences stored in
    ``doc``.
    """

    folder_filter = folder_filter or doc.filter_folder or FILTER_ALL
    sort_option = sort_option or doc.sort_option

    chats = filter_valid_chats(normalize_chats(raw))
    chats = filter_by_folder(chats, character_id, folder_filter, doc)
    chats = sort_chats(chats, character_id, sort_option, doc)
    return [enrich(c, character_id, doc) for c in chats]


__all__ = [
    "ChatRecord",
    "file_name_of",
    "message_count_of",
    "preview_of",
    "count_messages",
    "normalize_chats",
    "is_valid_chat",
    "filter_valid_chats",
    "filter_by_folder",
    "sort_chats",
    "enrich",
    "organize_chats",
]
