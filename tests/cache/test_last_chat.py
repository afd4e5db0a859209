import asyncio
import json

from chat_lobby.memory.cache import DataCache, DataGateway
from chat_lobby.memory.last_chat import LastChatCache
from chat_lobby.storage import MemoryStorage

from tests.conftest import FakeSource


def test_only_newer_timestamps_are_kept():
    cache = LastChatCache(MemoryStorage(), key="lastChat", save_delay=0)
    assert cache.set("alice.png", 2000)
    assert not cache.set("alice.png", 1000)
    assert not cache.set("alice.png", 0)
    assert cache.get("alice.png") == 2000
    assert cache.get("nobody.png") == 0


def test_restores_from_storage_and_ignores_junk():
    storage = MemoryStorage()
    storage.set_item("lastChat", json.dumps({"a.png": 5, "b.png": -1, "c.png": "soon"}))
    cache = LastChatCache(storage, key="lastChat")
    assert cache.get("a.png") == 5
    assert cache.get("b.png") == 0
    assert cache.get("c.png") == 0


def test_writes_are_debounced():
    storage = MemoryStorage()
    cache = LastChatCache(storage, key="lastChat", save_delay=0.01)

    async def main():
        cache.set("a.png", 1)
        cache.set("b.png", 2)
        written_early = storage.get_item("lastChat")
        await asyncio.sleep(0.05)
        return written_early

    assert asyncio.run(main()) is None
    assert json.loads(storage.get_item("lastChat")) == {"a.png": 1, "b.png": 2}


def test_flush_writes_pending_save():
    storage = MemoryStorage()
    cache = LastChatCache(storage, key="lastChat", save_delay=60)

    async def main():
        cache.update_now("a.png")
        await cache.flush()

    asyncio.run(main())
    assert "a.png" in json.loads(storage.get_item("lastChat"))


def test_get_for_sort_falls_back_to_host_date():
    cache = LastChatCache(MemoryStorage(), key="lastChat")
    cache.set("a.png", 500)
    assert cache.get_for_sort({"avatar": "a.png", "date_last_chat": 100}) == 500
    assert cache.get_for_sort({"avatar": "b.png", "date_last_chat": 100}) == 100
    assert cache.get_for_sort({"avatar": "c.png"}) == 0


def test_refresh_from_chat_list(ttls, clock):
    source = FakeSource(chats={"a.png": [
        {"file_name": "2024-01-01@10h00m00s.jsonl"},
        {"file_name": "x.jsonl", "last_mes": 1_800_000_000_000},
    ]})
    gateway = DataGateway(DataCache(ttls, clock), source)
    cache = LastChatCache(MemoryStorage(), gateway=gateway, key="lastChat", save_delay=60)

    last = asyncio.run(cache.refresh_for_character("a.png"))

    assert last == 1_800_000_000_000
    assert cache.get("a.png") == last


def test_initialize_all_is_shared_and_seeds_missing():
    storage = MemoryStorage()
    cache = LastChatCache(storage, key="lastChat")
    cache.set("a.png", 900)
    characters = [
        {"avatar": "a.png", "date_last_chat": 100},
        {"avatar": "b.png", "date_last_chat": 200},
        {"avatar": "c.png"},
    ]

    async def main():
        await asyncio.gather(
            cache.initialize_all(characters, batch_size=2),
            cache.initialize_all(characters, batch_size=2),
        )

    asyncio.run(main())
    assert cache.initialized
    assert cache.get("a.png") == 900
    assert cache.get("b.png") == 200
    assert cache.get("c.png") == 0
    assert json.loads(storage.get_item("lastChat")) == {"a.png": 900, "b.png": 200}


def test_cleanup_deleted_characters():
    cache = LastChatCache(MemoryStorage(), key="lastChat")
    cache.set("a.png", 1)
    cache.set("gone.png", 2)
    assert cache.cleanup_deleted([{"avatar": "a.png"}]) == 1
    assert cache.get("gone.png") == 0
