"""
Daily message-total snapshots for the activity calendar.

One document under a single storage key::

    {"snapshots": {"YYYY-MM-DD": <total>, ...}, "lastSnapshotDate": "YYYY-MM-DD" | null}

The calendar shows, per day, how much the total grew since the previous day.
A day without a snapshot for the day before is the first recorded day and
shows its total instead.
"""

from __future__ import annotations

import calendar
import json
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Dict, Union

from chat_lobby.config import storage as storage_cfg

from .organizer import KeyValueStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FirstRecord:
    """A day whose previous day has no snapshot."""

    total: int
    is_first: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"isFirst": True, "total": self.total}


DayIncrease = Union[int, FirstRecord, None]


@dataclass
class CalendarDocument:
    snapshots: Dict[str, int] = field(default_factory=dict)
    last_snapshot_date: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {"snapshots": dict(self.snapshots), "lastSnapshotDate": self.last_snapshot_date}

    @classmethod
    def from_dict(cls, raw: Any) -> "CalendarDocument":
        if not isinstance(raw, dict):
            return cls()
        snapshots = raw.get("snapshots")
        last = raw.get("lastSnapshotDate")
        return cls(
            snapshots={
                str(k): int(v)
                for k, v in (snapshots.items() if isinstance(snapshots, dict) else ())
                if isinstance(v, int) and not isinstance(v, bool)
            },
            last_snapshot_date=last if isinstance(last, str) else None,
        )


def _day(value: date | str) -> str:
    return value.isoformat() if isinstance(value, date) else date.fromisoformat(value).isoformat()


def _previous(day: str) -> str:
    return (date.fromisoformat(day) - timedelta(days=1)).isoformat()


class SnapshotStore:
    """Reads go to storage every time so other tabs' snapshots are always seen."""

    def __init__(
        self,
        backend: KeyValueStorage,
        key: str | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._backend = backend
        self._key = key or storage_cfg.CALENDAR_KEY
        self._today = today

    def load(self) -> CalendarDocument:
        raw = self._backend.get_item(self._key)
        if not raw:
            return CalendarDocument()
        try:
            return CalendarDocument.from_dict(json.loads(raw))
        except ValueError as exc:
            logger.error("Failed to parse calendar data, starting empty: %s", exc)
            return CalendarDocument()

    def save_snapshot(self, day: date | str, total: int) -> bool:
        """Record ``total`` for ``day`` (overwriting). Returns ``False`` if storage refused it."""

        key = _day(day)
        doc = self.load()
        doc.snapshots[key] = int(total)
        doc.last_snapshot_date = key
        try:
            self._backend.set_item(self._key, json.dumps(doc.to_dict()))
        except OSError as exc:
            logger.error("Failed to save calendar snapshot for %s: %s", key, exc)
            return False
        return True

    def record_today(self, total: int) -> str:
        day = self._today().isoformat()
        self.save_snapshot(day, total)
        return day

    def get_snapshot(self, day: date | str) -> int | None:
        return self.load().snapshots.get(_day(day))

    def get_increase(self, day: date | str) -> int | None:
        """Growth since the previous day, or ``None`` when either snapshot is missing."""

        snapshots = self.load().snapshots
        key = _day(day)
        if key not in snapshots:
            return None
        prev = snapshots.get(_previous(key))
        if prev is None:
            return None
        return snapshots[key] - prev

    def month_increases(self, year: int, month: int) -> Dict[str, DayIncrease]:
        """
        Per-day values for ``month`` (1-12): the increase, a ``FirstRecord``
        when the previous day is missing, or ``None`` when the day itself is.
        """

        snapshots = self.load().snapshots
        out: Dict[str, DayIncrease] = {}
        for dom in range(1, calendar.monthrange(year, month)[1] + 1):
            key = date(year, month, dom).isoformat()
            total = snapshots.get(key)
            if total is None:
                out[key] = None
                continue
            prev = snapshots.get(_previous(key))
            out[key] = FirstRecord(total) if prev is None else total - prev
        return out


__all__ = ["CalendarDocument", "DayIncrease", "FirstRecord", "SnapshotStore"]
