import os
from pathlib import Path

_DEFAULT_STORAGE_DIR = Path(__file__).resolve().parent.parent.parent / "data" / "storage"


class Storage:
    def __init__(self, config: dict | None = None) -> None:
        storage_cfg = (config or {}).get("chatlobby", {}).get("storage", {})
        self.STORAGE_DIR: str = str(
            storage_cfg.get("storage_dir", os.getenv("STORAGE_DIR", str(_DEFAULT_STORAGE_DIR)))
        )
        self.STORAGE_KEY: str = str(storage_cfg.get("storage_key", os.getenv("STORAGE_KEY", "chatLobby_data")))
        self.LAST_CHAT_KEY: str = str(
            storage_cfg.get("last_chat_key", os.getenv("LAST_CHAT_KEY", "chatLobby_lastChatTimes"))
        )
        self.CALENDAR_KEY: str = str(
            storage_cfg.get("calendar_key", os.getenv("CALENDAR_KEY", "chatLobby_calendar"))
        )
        # 0 disables the quota check
        self.QUOTA_BYTES: int = int(storage_cfg.get("quota_bytes", os.getenv("QUOTA_BYTES", "0")))
        self.MAX_CHAT_ASSIGNMENTS: int = int(
            storage_cfg.get("max_chat_assignments", os.getenv("MAX_CHAT_ASSIGNMENTS", "2000"))
        )
        self.MAX_FAVORITES: int = int(storage_cfg.get("max_favorites", os.getenv("MAX_FAVORITES", "500")))
        self.MAX_CHARACTER_FAVORITES: int = int(
            storage_cfg.get("max_character_favorites", os.getenv("MAX_CHARACTER_FAVORITES", "300"))
        )
        self.LAST_CHAT_SAVE_DELAY: float = float(
            storage_cfg.get("last_chat_save_delay", os.getenv("LAST_CHAT_SAVE_DELAY", "1.0"))
        )
