import pytest

from chat_lobby.memory.cache.entry_store import EntryStore


def test_entry_valid_until_ttl_elapses(ttls, clock):
    store = EntryStore(ttls, clock)
    store.set("chats", [{"file_name": "a.jsonl"}], key="alice.png")

    clock.advance(29.9)
    assert store.is_valid("chats", "alice.png")

    clock.advance(0.1)
    assert not store.is_valid("chats", "alice.png")
    # Stale entries remain readable until overwritten.
    assert store.get("chats", "alice.png") == [{"file_name": "a.jsonl"}]


def test_counts_outlive_chats(ttls, clock):
    store = EntryStore(ttls, clock)
    store.set("chats", [], key="alice.png")
    store.set("chatCounts", 0, key="alice.png")

    clock.advance(45)

    assert not store.is_valid("chats", "alice.png")
    assert store.is_valid("chatCounts", "alice.png")


def test_missing_entry_is_invalid_and_none(ttls, clock):
    store = EntryStore(ttls, clock)
    assert not store.is_valid("personas")
    assert store.get("personas") is None
    assert store.get("chats", "nobody.png") is None


def test_rewrite_restamps(ttls, clock):
    store = EntryStore(ttls, clock)
    store.set("characters", [1])
    clock.advance(25)
    store.set("characters", [1, 2])
    clock.advance(25)
    assert store.is_valid("characters")
    assert store.get("characters") == [1, 2]


def test_keyed_get_without_key_returns_snapshot(ttls, clock):
    store = EntryStore(ttls, clock)
    store.set("chatCounts", 3, key="a.png")
    store.set("chatCounts", 5, key="b.png")

    snapshot = store.get("chatCounts")
    assert snapshot == {"a.png": 3, "b.png": 5}

    snapshot["a.png"] = 99
    assert store.get("chatCounts", "a.png") == 3
    assert not store.is_valid("chatCounts")


def test_values_are_copied_in_and_out(ttls, clock):
    store = EntryStore(ttls, clock)
    personas = [{"key": "me.png", "name": "me"}]
    store.set("personas", personas)
    personas.append({"key": "other.png"})

    read = store.get("personas")
    read[0]["name"] = "changed"

    assert store.get("personas") == [{"key": "me.png", "name": "me"}]


def test_clear_one_key_or_whole_type(ttls, clock):
    store = EntryStore(ttls, clock)
    store.set("chats", [], key="a.png")
    store.set("chats", [], key="b.png")

    store.clear("chats", "a.png")
    assert store.get("chats") == {"b.png": []}

    store.clear("chats")
    assert store.get("chats") == {}


def test_type_errors(ttls, clock):
    store = EntryStore(ttls, clock)
    with pytest.raises(ValueError):
        store.set("bogus", 1)
    with pytest.raises(ValueError):
        store.set("personas", [], key="x")
    with pytest.raises(ValueError):
        store.set("chats", [])
    with pytest.raises(ValueError):
        EntryStore({"chats": 1}, clock)
