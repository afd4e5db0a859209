"""
Short-lived entity cache package.

Modules
=======

``entities``
    The fixed set of cacheable entity types and the request keys derived from
    them.
``entry_store``
    Provides :class:`~chat_lobby.memory.cache.entry_store.EntryStore`, the
    timestamped per-type TTL slots.
``pending``
    :class:`~chat_lobby.memory.cache.pending.PendingRequests` collapses
    concurrent fetches of the same key into one.
``manager``
    Defines :class:`~chat_lobby.memory.cache.manager.DataCache`, the facade
    combining entries, invalidation and deduplicated fetches.
``gateway``
    Cache-aware reads and deletes over the backend data source.
``preloader``
    Delayed background warm-up of personas, characters and recent chats.
"""

from .entities import ENTITY_TYPES, KEYED_TYPES, EntityType, pending_key
from .entry_store import EntryStore
from .gateway import DataGateway, DataSource
from .manager import DataCache
from .pending import PendingRequests
from .preloader import Preloader

__all__ = [
    "ENTITY_TYPES",
    "KEYED_TYPES",
    "EntityType",
    "pending_key",
    "EntryStore",
    "PendingRequests",
    "DataCache",
    "DataGateway",
    "DataSource",
    "Preloader",
]
