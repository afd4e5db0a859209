"""
Key/value string storage with change notifications.

Two backends share one small interface (``get_item``, ``set_item``,
``remove_item``, ``subscribe``):

* ``FileStorage`` keeps one file per key in a directory. Writes go through a
  temp file plus ``os.replace`` so readers never see a torn document. Other
  processes sharing the directory are the "other tabs": ``poll_changes``
  compares file stamps and emits a ``StorageEvent`` for every key another
  writer touched.
* ``MemoryStorage`` keeps values in a dict. Peers opened with
  ``open_peer`` share the dict and receive each other's change events, which
  is how tests exercise cross-tab invalidation.

Both raise ``StorageQuotaExceeded`` when a write would push the total stored
size past ``quota_bytes``.
"""

from __future__ import annotations

import errno
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class StorageQuotaExceeded(OSError):
    """Raised when a write does not fit into the storage quota."""


@dataclass(frozen=True)
class StorageEvent:
    """A key was changed by another writer. ``new_value`` is ``None`` on removal."""

    key: str
    new_value: str | None


Listener = Callable[[StorageEvent], None]


class _Notifying:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for external changes. Returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: StorageEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Storage listener failed for key %s", event.key)


def _check_key(key: str) -> None:
    if not _KEY_RE.match(key):
        raise ValueError(f"Invalid storage key: {key!r}")


# ---------------------------------------------------------------------- #
# File backend
# ---------------------------------------------------------------------- #


class FileStorage(_Notifying):
    def __init__(self, directory: str | Path, quota_bytes: int | None = None) -> None:
        super().__init__()
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._quota = quota_bytes or None
        self._seen: dict[str, tuple[int, int]] = self._scan()

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        _check_key(key)
        return self._dir / f"{key}.json"

    def _scan(self) -> dict[str, tuple[int, int]]:
        stamps: dict[str, tuple[int, int]] = {}
        for p in self._dir.glob("*.json"):
            try:
                st = p.stat()
            except FileNotFoundError:
                continue
            stamps[p.stem] = (st.st_mtime_ns, st.st_size)
        return stamps

    def _used_bytes(self, excluding: str) -> int:
        return sum(size for key, (_, size) in self._scan().items() if key != excluding)

    def get_item(self, key: str) -> str | None:
        p = self._path(key)
        try:
            return p.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set_item(self, key: str, value: str) -> None:
        p = self._path(key)
        payload = value.encode("utf-8")
        if self._quota is not None and self._used_bytes(key) + len(payload) > self._quota:
            raise StorageQuotaExceeded(errno.ENOSPC, f"Quota exceeded writing {key}")

        tmp = p.with_suffix(".tmp")
        try:
            with open(tmp, "wb") as f:
                f.write(payload)
            os.replace(tmp, p)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            if exc.errno in (errno.ENOSPC, errno.EDQUOT):
                raise StorageQuotaExceeded(exc.errno, f"No space left writing {key}") from exc
            raise

        st = p.stat()
        self._seen[key] = (st.st_mtime_ns, st.st_size)

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        self._seen.pop(key, None)

    def poll_changes(self) -> list[StorageEvent]:
        """
        Detect writes made by other ``FileStorage`` instances on the same
        directory since the last poll and notify subscribers.
        """

        current = self._scan()
        events: list[StorageEvent] = []
        for key, stamp in current.items():
            if self._seen.get(key) != stamp:
                events.append(StorageEvent(key, self.get_item(key)))
        for key in self._seen.keys() - current.keys():
            events.append(StorageEvent(key, None))
        self._seen = current

        for event in events:
            self._emit(event)
        return events


# ---------------------------------------------------------------------- #
# Memory backend
# ---------------------------------------------------------------------- #


class _SharedArea:
    def __init__(self, quota_bytes: int | None) -> None:
        self.data: dict[str, str] = {}
        self.quota = quota_bytes or None
        self.views: list["MemoryStorage"] = []


class MemoryStorage(_Notifying):
    def __init__(self, quota_bytes: int | None = None, _area: _SharedArea | None = None) -> None:
        super().__init__()
        self._area = _area or _SharedArea(quota_bytes)
        self._area.views.append(self)

    def open_peer(self) -> "MemoryStorage":
        """Another view onto the same data, standing in for a second tab."""

        return MemoryStorage(_area=self._area)

    def get_item(self, key: str) -> str | None:
        return self._area.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        _check_key(key)
        quota = self._area.quota
        if quota is not None:
            used = sum(len(v.encode("utf-8")) for k, v in self._area.data.items() if k != key)
            if used + len(value.encode("utf-8")) > quota:
                raise StorageQuotaExceeded(errno.ENOSPC, f"Quota exceeded writing {key}")
        self._area.data[key] = value
        self._broadcast(StorageEvent(key, value))

    def remove_item(self, key: str) -> None:
        if self._area.data.pop(key, None) is not None:
            self._broadcast(StorageEvent(key, None))

    def _broadcast(self, event: StorageEvent) -> None:
        for view in self._area.views:
            if view is not self:
                view._emit(event)


__all__ = [
    "StorageQuotaExceeded",
    "StorageEvent",
    "Listener",
    "FileStorage",
    "MemoryStorage",
]
