"""
Timestamp resolution for chat records.

All timestamps are milliseconds since the epoch. Naive dates (the ones baked
into chat file names and most ``last_mes`` strings) are read as local time.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

_STAMP_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})@(\d{2})h(\d{2})m(\d{2})s")
_SPACED_STAMP_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})\s*@\s*(\d{2})h\s*(\d{2})m\s*(\d{2})s")
_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_AMPM_RE = re.compile(r"(\d+)(am|pm)", re.IGNORECASE)

# Formats seen in ``last_mes`` / ``file_date`` after AM/PM spacing is fixed.
_LOOSE_FORMATS = (
    "%B %d, %Y %I:%M %p",
    "%B %d, %Y %I:%M:%S %p",
    "%b %d, %Y %I:%M %p",
    "%B %d, %Y %H:%M",
    "%B %d, %Y",
    "%Y-%m-%d %I:%M %p",
    "%Y-%m-%d@%Hh%Mm%Ss",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
    "%a %b %d %Y %H:%M:%S",
)


def _to_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def _local_ms(*parts: str) -> int:
    try:
        return _to_ms(datetime(*(int(p) for p in parts)))
    except (ValueError, OverflowError):
        return 0


def parse_date_from_filename(file_name: str) -> int:
    """Timestamp embedded in a chat file name, or ``0``."""

    for pattern in (_STAMP_RE, _SPACED_STAMP_RE, _DATE_RE):
        m = pattern.search(file_name or "")
        if m:
            return _local_ms(*m.groups())
    return 0


def parse_loose_date(text: str) -> int:
    """Best-effort parse of a free-form date string. Returns ``0`` if unparseable."""

    text = _AMPM_RE.sub(r"\1 \2", str(text).strip(), count=1)
    if not text:
        return 0

    try:
        return _to_ms(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in _LOOSE_FORMATS:
        try:
            return _to_ms(datetime.strptime(text, fmt))
        except ValueError:
            continue

    logger.debug("Unparseable date string: %r", text)
    return 0


def is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def resolve_timestamp(value: Any) -> int:
    """Epoch ms from a number or a date string. NaN and infinities give ``0``."""

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value) if math.isfinite(value) else 0
    return parse_loose_date(value)


def get_timestamp(chat: dict) -> int:
    """
    Resolve a sortable timestamp for a raw chat record.

    Sources in priority order: ``last_mes``, ``file_date``/``date``, then the
    date embedded in the file name. The first positive value wins; ``0``
    when nothing resolves.
    """

    if chat.get("last_mes"):
        ts = resolve_timestamp(chat["last_mes"])
        if ts > 0:
            return ts

    date_val = chat.get("file_date") or chat.get("date")
    if date_val:
        ts = resolve_timestamp(date_val)
        if ts > 0:
            return ts

    return parse_date_from_filename(chat.get("file_name") or chat.get("fileName") or "")


__all__ = [
    "parse_date_from_filename",
    "parse_loose_date",
    "is_finite_number",
    "resolve_timestamp",
    "get_timestamp",
]
