"""
Organization document persisted under a single storage key.

JSON schema (output of :meth:`OrganizationDocument.to_dict`):

```
{
  "folders": [{"id": "favorites", "name": "...", "isSystem": true, "order": 0}, ...],
  "chatAssignments": {"<character id>_<chat file>": "<folder id>", ...},
  "favorites": ["<chat key>", ...],
  "characterFavorites": ["<character id>", ...],
  "sortOption": "recent" | "name" | "messages",
  "filterFolder": "all" | "<folder id>",
  "collapsedFolders": ["<folder id>", ...],
  "charSortOption": "recent" | "name" | "chats",
  "autoFavoriteRules": {"recentDays": 0}
}
```

Stored documents are merged key by key onto the defaults, so documents
written by older versions (missing newer keys) load cleanly. The two system
folders are re-inserted when a stored document lost them.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Literal

logger = logging.getLogger(__name__)

FAVORITES = "favorites"
UNCATEGORIZED = "uncategorized"
FILTER_ALL = "all"

SortOption = Literal["recent", "name", "messages"]
CharSortOption = Literal["recent", "name", "chats"]

SORT_OPTIONS: tuple[str, ...] = ("recent", "name", "messages")
CHAR_SORT_OPTIONS: tuple[str, ...] = ("recent", "name", "chats")


def chat_key(character_id: str, file_name: str) -> str:
    """Composite key identifying one chat of one character."""

    return f"{character_id}_{file_name}"


@dataclass(slots=True)
class Folder:
    id: str
    name: str
    is_system: bool = False
    order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "isSystem": self.is_system, "order": self.order}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Folder":
        return cls(
            id=str(d["id"]),
            name=str(d.get("name", d["id"])),
            is_system=bool(d.get("isSystem", False)),
            order=int(d.get("order", 0)),
        )


def default_folders() -> list[Folder]:
    return [
        Folder(FAVORITES, "⭐ Favorites", is_system=True, order=0),
        Folder(UNCATEGORIZED, "📁 Uncategorized", is_system=True, order=999),
    ]


def _default_rules() -> Dict[str, Any]:
    return {"recentDays": 0}


@dataclass(slots=True)
class OrganizationDocument:
    folders: list[Folder] = field(default_factory=default_folders)
    chat_assignments: dict[str, str] = field(default_factory=dict)
    favorites: list[str] = field(default_factory=list)
    character_favorites: list[str] = field(default_factory=list)
    sort_option: str = "recent"
    filter_folder: str = FILTER_ALL
    collapsed_folders: list[str] = field(default_factory=list)
    char_sort_option: str = "recent"
    auto_favorite_rules: dict[str, Any] = field(default_factory=_default_rules)

    # ------------------------------------------------------------------ #
    # Serialization
    # ------------------------------------------------------------------ #

    def to_dict(self) -> Dict[str, Any]:
        return {
            "folders": [f.to_dict() for f in self.folders],
            "chatAssignments": dict(self.chat_assignments),
            "favorites": list(self.favorites),
            "characterFavorites": list(self.character_favorites),
            "sortOption": self.sort_option,
            "filterFolder": self.filter_folder,
            "collapsedFolders": list(self.collapsed_folders),
            "charSortOption": self.char_sort_option,
            "autoFavoriteRules": dict(self.auto_favorite_rules),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "OrganizationDocument":
        """Merge ``raw`` onto the defaults; malformed fields fall back to defaults."""

        doc = cls()
        if not isinstance(raw, dict):
            logger.warning("Ignoring non-object organization document")
            return doc

        folders = raw.get("folders")
        if isinstance(folders, list):
            parsed = []
            for item in folders:
                try:
                    parsed.append(Folder.from_dict(item))
                except (KeyError, TypeError, ValueError):
                    logger.warning("Dropping malformed folder entry: %r", item)
            doc.folders = parsed

        assignments = raw.get("chatAssignments")
        if isinstance(assignments, dict):
            doc.chat_assignments = {str(k): str(v) for k, v in assignments.items()}

        for attr, name in (
            ("favorites", "favorites"),
            ("character_favorites", "characterFavorites"),
            ("collapsed_folders", "collapsedFolders"),
        ):
            value = raw.get(name)
            if isinstance(value, list):
                setattr(doc, attr, [str(v) for v in value])

        if raw.get("sortOption") in SORT_OPTIONS:
            doc.sort_option = raw["sortOption"]
        if raw.get("charSortOption") in CHAR_SORT_OPTIONS:
            doc.char_sort_option = raw["charSortOption"]
        if isinstance(raw.get("filterFolder"), str) and raw["filterFolder"]:
            doc.filter_folder = raw["filterFolder"]
        if isinstance(raw.get("autoFavoriteRules"), dict):
            doc.auto_favorite_rules = {**_default_rules(), **raw["autoFavoriteRules"]}
        return doc

    def copy(self) -> "OrganizationDocument":
        return copy.deepcopy(self)

    # ------------------------------------------------------------------ #
    # Queries / repairs
    # ------------------------------------------------------------------ #

    def folder(self, folder_id: str) -> Folder | None:
        return next((f for f in self.folders if f.id == folder_id), None)

    def has_folder(self, folder_id: str) -> bool:
        return self.folder(folder_id) is not None

    def sorted_folders(self) -> list[Folder]:
        return sorted(self.folders, key=lambda f: f.order)

    def folder_of(self, key: str) -> str:
        return self.chat_assignments.get(key, UNCATEGORIZED)

    def filter_is_valid(self) -> bool:
        return self.filter_folder == FILTER_ALL or self.has_folder(self.filter_folder)

    def ensure_system_folders(self) -> bool:
        """Re-insert missing system folders. Returns ``True`` if anything changed."""

        changed = False
        for system in default_folders():
            current = self.folder(system.id)
            if current is None:
                logger.warning("Restoring missing system folder %s", system.id)
                self.folders.append(system)
                changed = True
            elif not current.is_system:
                current.is_system = True
                changed = True
        return changed


__all__ = [
    "FAVORITES",
    "UNCATEGORIZED",
    "FILTER_ALL",
    "SortOption",
    "CharSortOption",
    "SORT_OPTIONS",
    "CHAR_SORT_OPTIONS",
    "chat_key",
    "Folder",
    "default_folders",
    "OrganizationDocument",
]
