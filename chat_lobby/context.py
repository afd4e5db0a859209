"""
Application wiring.

``build_context`` creates exactly one instance of every collaborator and
passes them to each other explicitly; nothing in the package keeps
module-level singletons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from chat_lobby.clients import BackendClient
from chat_lobby.config import cache as cache_cfg
from chat_lobby.config import storage as storage_cfg
from chat_lobby.lobby import HostEvents, LobbyService, LobbyState
from chat_lobby.memory.cache import DataCache, DataGateway, DataSource, Preloader
from chat_lobby.memory.last_chat import LastChatCache
from chat_lobby.notifications import LogNotifier, Notifier
from chat_lobby.storage import FileStorage, OrganizationStore, SnapshotStore
from chat_lobby.storage.organizer import KeyValueStorage

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    cache: DataCache
    gateway: DataGateway
    storage: KeyValueStorage
    store: OrganizationStore
    snapshots: SnapshotStore
    last_chat: LastChatCache
    preloader: Preloader
    service: LobbyService
    events: HostEvents
    notifier: Notifier

    def close(self) -> None:
        self.events.unregister()
        self.preloader.cancel()
        self.store.close()


def build_context(
    source: DataSource | None = None,
    storage: KeyValueStorage | None = None,
    notifier: Notifier | None = None,
) -> AppContext:
    """Wire the lobby. Defaults: HTTP backend client and file storage from config."""

    source = source or BackendClient()
    if storage is None:
        quota = storage_cfg.QUOTA_BYTES or None
        storage = FileStorage(storage_cfg.STORAGE_DIR, quota_bytes=quota)
    notifier = notifier or LogNotifier()

    cache = DataCache(cache_cfg.ttls())
    gateway = DataGateway(cache, source)
    store = OrganizationStore(storage, notifier=notifier)
    snapshots = SnapshotStore(storage)
    last_chat = LastChatCache(storage, gateway=gateway)
    preloader = Preloader(gateway)
    service = LobbyService(
        gateway,
        store,
        preloader=preloader,
        last_chat=last_chat,
        state=LobbyState(),
        notifier=notifier,
        snapshots=snapshots,
    )
    events = HostEvents(cache, service=service, last_chat=last_chat)
    logger.info("Lobby context ready")
    return AppContext(
        cache=cache,
        gateway=gateway,
        storage=storage,
        store=store,
        snapshots=snapshots,
        last_chat=last_chat,
        preloader=preloader,
        service=service,
        events=events,
        notifier=notifier,
    )


__all__ = ["AppContext", "build_context"]
