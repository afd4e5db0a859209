"""Session-scoped lobby state (not persisted)."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class LobbyState:
    current_character: dict | None = None
    batch_mode: bool = False
    is_open: bool = False
    search_term: str = ""
    selected_tag: str | None = None

    @property
    def current_character_id(self) -> str:
        return (self.current_character or {}).get("avatar") or ""

    def toggle_batch_mode(self) -> bool:
        self.batch_mode = not self.batch_mode
        return self.batch_mode

    def reset(self) -> None:
        self.current_character = None
        self.batch_mode = False
        self.is_open = False
        self.search_term = ""
        self.selected_tag = None
