"""
Character-list pipeline: search/tag filtering and favorites-first sorting.

Sorting by ``chats`` needs a message count per character. Counts are
resolved through an async lookup (normally ``DataGateway.get_message_count``)
in chunks of ``batch_size`` so a large library never fires hundreds of
requests at once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Sequence

from chat_lobby.config import cache as cache_cfg

from .collation import name_key
from .dates import resolve_timestamp

logger = logging.getLogger(__name__)

CountLookup = Callable[[str], Awaitable[int]]
RecentLookup = Callable[[dict], int]


def character_id(char: dict) -> str:
    return char.get("avatar") or ""


def character_tags(char: dict) -> list[str]:
    tags = char.get("tags") or []
    return [str(t) for t in tags if t]


def last_chat_time(char: dict) -> int:
    """``date_last_chat`` or ``last_mes`` as epoch milliseconds, else ``0``."""

    value: Any = char.get("date_last_chat") or char.get("last_mes") or 0
    return resolve_timestamp(value) if value else 0


def filter_characters(
    characters: Iterable[dict],
    search_term: str = "",
    tag: str | None = None,
) -> list[dict]:
    """Case-insensitive name search, optionally narrowed to one tag."""

    out = list(characters)
    term = (search_term or "").strip().casefold()
    if term:
        out = [c for c in out if term in (c.get("name") or "").casefold()]
    if tag:
        out = [c for c in out if tag in character_tags(c)]
    return out


async def resolve_counts(
    characters: Sequence[dict],
    count_lookup: CountLookup,
    batch_size: int | None = None,
) -> dict[str, int]:
    """Look up counts chunk by chunk; a failed lookup counts as ``0``."""

    size = max(1, batch_size or cache_cfg.COUNT_BATCH_SIZE)
    ids = [character_id(c) for c in characters]
    counts: dict[str, int] = {}

    for start in range(0, len(ids), size):
        chunk = ids[start:start + size]
        results = await asyncio.gather(*(count_lookup(cid) for cid in chunk), return_exceptions=True)
        for cid, result in zip(chunk, results):
            if isinstance(result, BaseException):
                logger.error("Failed to resolve count for %s: %s", cid, result)
                result = 0
            counts[cid] = int(result or 0)
    return counts


def sort_characters_by(
    characters: Iterable[dict],
    option: str,
    favorites: Iterable[str],
    counts: dict[str, int] | None = None,
    recent: RecentLookup | None = None,
) -> list[dict]:
    """Synchronous sort once any needed counts are known."""

    fav = set(favorites)
    recent = recent or last_chat_time

    def _key(char: dict) -> tuple:
        rank = 0 if character_id(char) in fav else 1
        if option == "name":
            return (rank, name_key(char.get("name")))
        if option == "chats":
            return (rank, -(counts or {}).get(character_id(char), 0), name_key(char.get("name")))
        return (rank, -recent(char))

    return sorted(characters, key=_key)


async def sort_characters(
    characters: Iterable[dict],
    option: str,
    favorites: Iterable[str],
    count_lookup: CountLookup | None = None,
    batch_size: int | None = None,
    recent: RecentLookup | None = None,
) -> list[dict]:
    """Favorites first, then ``name``, ``chats`` (message count, desc) or ``recent``."""

    characters = list(characters)
    counts = None
    if option == "chats":
        if count_lookup is None:
            raise ValueError("Sorting by chats needs a count lookup")
        counts = await resolve_counts(characters, count_lookup, batch_size)
    return sort_characters_by(characters, option, favorites, counts=counts, recent=recent)


__all__ = [
    "character_id",
    "character_tags",
    "last_chat_time",
    "filter_characters",
    "resolve_counts",
    "sort_characters_by",
    "sort_characters",
]
