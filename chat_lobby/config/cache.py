import os


class Cache:
    """TTLs (seconds) per entity type plus preload tuning."""

    def __init__(self, config: dict | None = None) -> None:
        cache_cfg = (config or {}).get("chatlobby", {}).get("cache", {})
        self.CHATS_TTL: float = float(cache_cfg.get("chats_ttl", os.getenv("CHATS_TTL", "30")))
        self.CHAT_COUNTS_TTL: float = float(
            cache_cfg.get("chat_counts_ttl", os.getenv("CHAT_COUNTS_TTL", "60"))
        )
        self.MESSAGE_COUNTS_TTL: float = float(
            cache_cfg.get("message_counts_ttl", os.getenv("MESSAGE_COUNTS_TTL", "60"))
        )
        self.PERSONAS_TTL: float = float(cache_cfg.get("personas_ttl", os.getenv("PERSONAS_TTL", "60")))
        self.CHARACTERS_TTL: float = float(
            cache_cfg.get("characters_ttl", os.getenv("CHARACTERS_TTL", "30"))
        )
        self.PRELOAD_DELAY: float = float(cache_cfg.get("preload_delay", os.getenv("PRELOAD_DELAY", "2.0")))
        self.PRELOAD_RECENT_LIMIT: int = int(
            cache_cfg.get("preload_recent_limit", os.getenv("PRELOAD_RECENT_LIMIT", "5"))
        )
        self.COUNT_BATCH_SIZE: int = int(
            cache_cfg.get("count_batch_size", os.getenv("COUNT_BATCH_SIZE", "5"))
        )

    def ttls(self) -> dict[str, float]:
        return {
            "chats": self.CHATS_TTL,
            "chatCounts": self.CHAT_COUNTS_TTL,
            "messageCounts": self.MESSAGE_COUNTS_TTL,
            "personas": self.PERSONAS_TTL,
            "characters": self.CHARACTERS_TTL,
        }
