"""Durable per-device storage for lobby organization data."""

from .backend import FileStorage, MemoryStorage, StorageEvent, StorageQuotaExceeded
from .document import Folder, OrganizationDocument, chat_key
from .organizer import OrganizationStore
from .snapshots import FirstRecord, SnapshotStore

__all__ = [
    "FileStorage",
    "MemoryStorage",
    "StorageEvent",
    "StorageQuotaExceeded",
    "Folder",
    "OrganizationDocument",
    "chat_key",
    "OrganizationStore",
    "FirstRecord",
    "SnapshotStore",
]
