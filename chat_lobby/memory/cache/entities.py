"""Cacheable entity types and the request keys derived from them."""

from __future__ import annotations

from typing import Literal

EntityType = Literal["chats", "chatCounts", "messageCounts", "personas", "characters"]

# Keyed types hold one value per character id; the rest hold a single value.
KEYED_TYPES: frozenset[str] = frozenset({"chats", "chatCounts", "messageCounts"})
SINGLE_TYPES: frozenset[str] = frozenset({"personas", "characters"})
ENTITY_TYPES: frozenset[str] = KEYED_TYPES | SINGLE_TYPES


def check_type(entity_type: str) -> None:
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown cache entity type: {entity_type!r}")


def is_keyed(entity_type: str) -> bool:
    check_type(entity_type)
    return entity_type in KEYED_TYPES


def pending_key(entity_type: str, key: str | None = None) -> str:
    """
    Request key used for in-flight deduplication.

    ``"personas"`` for single-valued types, ``"chats:<character id>"`` for a
    keyed entry. Fetchers and ``invalidate(..., clear_pending=True)`` both go
    through this helper so they always agree on the key.
    """

    keyed = is_keyed(entity_type)
    if key is None:
        return entity_type
    if not keyed:
        raise ValueError(f"{entity_type!r} is single-valued and takes no sub-key")
    return f"{entity_type}:{key}"


__all__ = [
    "EntityType",
    "KEYED_TYPES",
    "SINGLE_TYPES",
    "ENTITY_TYPES",
    "check_type",
    "is_keyed",
    "pending_key",
]
