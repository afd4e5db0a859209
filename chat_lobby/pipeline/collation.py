"""Name collation: digits, then Latin, then Hangul, then everything else."""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable, TypeVar

T = TypeVar("T")

_HANGUL_RE = re.compile(r"[가-힣ㄱ-ㅎㅏ-ㅣ]")


def _script_group(first: str) -> int:
    if first.isdigit():
        return 0
    if "a" <= first <= "z":
        return 1
    if _HANGUL_RE.match(first):
        return 2
    return 3


def collation_key(text: str | None) -> tuple[int, str]:
    folded = unicodedata.normalize("NFC", (text or "")).casefold()
    return (_script_group(folded[:1]) if folded else 3, folded)


def name_key(text: str | None) -> str:
    """Case-insensitive key without script grouping."""

    return unicodedata.normalize("NFC", (text or "")).casefold()


def sort_by_name(items: Iterable[T], attr: str = "name") -> list[T]:
    return sorted(items, key=lambda item: collation_key(item.get(attr)))
