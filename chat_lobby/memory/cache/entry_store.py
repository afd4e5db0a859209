"""
Timestamped entry store with per-type time-to-live.

``EntryStore`` keeps one slot per single-valued entity type and one slot per
character id for keyed types. Every write stamps the slot with the injected
clock; a slot is valid while ``now - stamped_at < ttl``. Expiry is lazy: stale
slots linger until overwritten or cleared and remain readable through
:meth:`EntryStore.get`, which lets the lobby render stale data while a refresh
is in flight.

Values are copied on the way in and on the way out so callers can mutate what
they receive without corrupting cached state.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .entities import ENTITY_TYPES, KEYED_TYPES, check_type, is_keyed

Clock = Callable[[], float]


@dataclass
class _Slot:
    value: Any
    stamped_at: float


class EntryStore:
    """Per-type TTL slots; keyed types nest one slot per sub-key."""

    def __init__(self, ttls: Mapping[str, float], clock: Clock = time.monotonic) -> None:
        missing = ENTITY_TYPES - set(ttls)
        if missing:
            raise ValueError(f"Missing TTL for entity types: {sorted(missing)}")
        self._ttls = dict(ttls)
        self._clock = clock
        self._single: dict[str, _Slot] = {}
        self._keyed: dict[str, dict[str, _Slot]] = {t: {} for t in KEYED_TYPES}

    def ttl(self, entity_type: str) -> float:
        check_type(entity_type)
        return self._ttls[entity_type]

    def _slot(self, entity_type: str, key: str | None) -> _Slot | None:
        if is_keyed(entity_type):
            return self._keyed[entity_type].get(key) if key is not None else None
        if key is not None:
            raise ValueError(f"{entity_type!r} is single-valued and takes no sub-key")
        return self._single.get(entity_type)

    def is_valid(self, entity_type: str, key: str | None = None) -> bool:
        """Return ``True`` if the entry exists and its TTL has not elapsed."""

        slot = self._slot(entity_type, key)
        if slot is None:
            return False
        return self._clock() - slot.stamped_at < self._ttls[entity_type]

    def get(self, entity_type: str, key: str | None = None) -> Any:
        """
        Return a copy of the stored value, valid or not.

        For keyed types called without ``key`` this returns a dict snapshot of
        every sub-key. Missing entries yield ``None``.
        """

        if is_keyed(entity_type) and key is None:
            return {k: copy.deepcopy(s.value) for k, s in self._keyed[entity_type].items()}
        slot = self._slot(entity_type, key)
        return None if slot is None else copy.deepcopy(slot.value)

    def set(self, entity_type: str, value: Any, key: str | None = None) -> None:
        """Store ``value`` and stamp it with the current clock reading."""

        slot = _Slot(copy.deepcopy(value), self._clock())
        if is_keyed(entity_type):
            if key is None:
                raise ValueError(f"{entity_type!r} entries require a character id")
            self._keyed[entity_type][key] = slot
            return
        if key is not None:
            raise ValueError(f"{entity_type!r} is single-valued and takes no sub-key")
        self._single[entity_type] = slot

    def clear(self, entity_type: str, key: str | None = None) -> None:
        """Drop one sub-key, or every entry of ``entity_type`` when ``key`` is ``None``."""

        if is_keyed(entity_type):
            if key is None:
                self._keyed[entity_type].clear()
            else:
                self._keyed[entity_type].pop(key, None)
            return
        if key is not None:
            raise ValueError(f"{entity_type!r} is single-valued and takes no sub-key")
        self._single.pop(entity_type, None)

    def stamped_at(self, entity_type: str, key: str | None = None) -> float | None:
        slot = self._slot(entity_type, key)
        return None if slot is None else slot.stamped_at


__all__ = ["EntryStore", "Clock"]
