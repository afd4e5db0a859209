import json

import pytest

from chat_lobby.storage import MemoryStorage, OrganizationDocument, OrganizationStore, chat_key
from chat_lobby.storage.backend import StorageQuotaExceeded
from chat_lobby.storage.document import FAVORITES, UNCATEGORIZED
from chat_lobby.storage.organizer import LOW_SPACE_MESSAGE, CleanupLimits

from tests.conftest import RecordingNotifier

KEY = "chatLobby_data"


def _store(storage=None, notifier=None, **kwargs):
    storage = storage or MemoryStorage()
    ticks = iter(range(1, 1000))
    return OrganizationStore(
        storage,
        key=KEY,
        notifier=notifier or RecordingNotifier(),
        limits=CleanupLimits(),
        clock=lambda: float(next(ticks)),
        **kwargs,
    )


def _stored(storage):
    return json.loads(storage.get_item(KEY))


class FlakyStorage(MemoryStorage):
    """Raises quota errors for the next ``failures`` writes."""

    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures
        self.writes = []

    def set_item(self, key, value):
        if self.failures > 0:
            self.failures -= 1
            raise StorageQuotaExceeded(28, "full")
        self.writes.append(value)
        super().set_item(key, value)


# ---- defaults / loading ---- #

def test_defaults_when_nothing_stored():
    doc = _store().load()
    assert [f.id for f in doc.sorted_folders()] == [FAVORITES, UNCATEGORIZED]
    assert doc.sort_option == "recent"
    assert doc.filter_folder == "all"
    assert doc.auto_favorite_rules == {"recentDays": 0}


def test_load_merges_partial_document():
    storage = MemoryStorage()
    storage.set_item(KEY, json.dumps({"favorites": ["a.png_x.jsonl"], "sortOption": "name"}))
    doc = _store(storage).load()
    assert doc.favorites == ["a.png_x.jsonl"]
    assert doc.sort_option == "name"
    assert doc.char_sort_option == "recent"


def test_dangling_filter_is_reset_and_persisted():
    storage = MemoryStorage()
    storage.set_item(KEY, json.dumps({"filterFolder": "folder_gone"}))
    store = _store(storage)

    assert store.get_filter_folder() == "all"
    assert _stored(storage)["filterFolder"] == "all"


def test_missing_system_folder_restored():
    storage = MemoryStorage()
    storage.set_item(KEY, json.dumps({"folders": [{"id": "folder_1", "name": "Work", "order": 1}]}))
    store = _store(storage)

    ids = {f.id for f in store.folders()}
    assert {FAVORITES, UNCATEGORIZED, "folder_1"} <= ids


def test_corrupt_document_falls_back_to_defaults():
    storage = MemoryStorage()
    storage.set_item(KEY, "{not json")
    assert _store(storage).load().favorites == []


def test_load_returns_copies():
    store = _store()
    doc = store.load()
    doc.favorites.append("sneaky")
    assert store.load().favorites == []


# ---- folders ---- #

def test_add_folder_orders_after_user_folders():
    store = _store()
    first = store.add_folder("Work")
    second = store.add_folder("Play")

    folders = store.folders()
    assert [f.id for f in folders] == [FAVORITES, first, second, UNCATEGORIZED]
    assert folders[1].order == 1 and folders[2].order == 2
    assert first.startswith("folder_")
    assert first != second


def test_add_folder_rejects_blank_name():
    with pytest.raises(ValueError):
        _store().add_folder("   ")


def test_delete_folder_moves_chats_to_uncategorized():
    store = _store()
    work = store.add_folder("Work")
    store.assign_chat_to_folder("alice.png", "one.jsonl", work)
    store.assign_chat_to_folder("alice.png", "two.jsonl", work)
    store.set_filter_folder(work)
    store.toggle_folder_collapsed(work)

    assert store.delete_folder(work)

    doc = store.load()
    assert not doc.has_folder(work)
    assert work not in doc.chat_assignments.values()
    assert store.get_chat_folder("alice.png", "one.jsonl") == UNCATEGORIZED
    assert doc.filter_folder == "all"
    assert doc.collapsed_folders == []


def test_system_folders_cannot_be_deleted_or_renamed():
    storage = MemoryStorage()
    store = _store(storage)
    before = store.load().to_dict()

    assert not store.delete_folder(FAVORITES)
    assert not store.delete_folder(UNCATEGORIZED)
    assert not store.rename_folder(FAVORITES, "Mine")
    assert not store.delete_folder("folder_missing")

    assert store.load().to_dict() == before
    assert storage.get_item(KEY) is None


def test_rename_folder():
    store = _store()
    work = store.add_folder("Work")
    assert store.rename_folder(work, "Office")
    assert store.load().folder(work).name == "Office"


# ---- assignments / favorites ---- #

def test_move_chats_batch_is_single_write():
    storage = FlakyStorage(failures=0)
    store = _store(storage)
    work = store.add_folder("Work")
    writes_before = len(storage.writes)

    keys = [chat_key("alice.png", f"{i}.jsonl") for i in range(5)]
    assert store.move_chats_batch(keys, work) == 5

    assert len(storage.writes) == writes_before + 1
    assert all(store.load().chat_assignments[k] == work for k in keys)


def test_move_to_unknown_folder_refused():
    store = _store()
    assert store.move_chats_batch(["a.png_x.jsonl"], "folder_nope") == 0
    assert not store.assign_chat_to_folder("a.png", "x.jsonl", "folder_nope")


def test_toggle_favorite_returns_new_state():
    store = _store()
    assert store.toggle_favorite("alice.png", "x.jsonl") is True
    assert store.is_favorite("alice.png", "x.jsonl")
    assert store.toggle_favorite("alice.png", "x.jsonl") is False
    assert not store.is_favorite("alice.png", "x.jsonl")


def test_character_favorites():
    store = _store()
    assert store.toggle_character_favorite("alice.png") is True
    store.set_character_favorite("bob.png", True)
    store.set_character_favorite("bob.png", True)
    assert store.character_favorites() == ["alice.png", "bob.png"]
    store.set_character_favorite("alice.png", False)
    assert not store.is_character_favorite("alice.png")


def test_forget_chat_and_character():
    store = _store()
    work = store.add_folder("Work")
    store.assign_chat_to_folder("alice.png", "a.jsonl", work)
    store.assign_chat_to_folder("alice.png", "b.jsonl", work)
    store.assign_chat_to_folder("bob.png", "a.jsonl", work)
    store.toggle_favorite("alice.png", "a.jsonl")
    store.toggle_character_favorite("alice.png")

    store.forget_chat("alice.png", "a.jsonl")
    doc = store.load()
    assert chat_key("alice.png", "a.jsonl") not in doc.chat_assignments
    assert doc.favorites == []

    assert store.forget_character("alice.png") == 1
    doc = store.load()
    assert list(doc.chat_assignments) == [chat_key("bob.png", "a.jsonl")]
    assert doc.character_favorites == []


# ---- preferences ---- #

def test_sort_options_validated():
    store = _store()
    store.set_sort_option("messages")
    store.set_char_sort_option("chats")
    assert store.get_sort_option() == "messages"
    assert store.get_char_sort_option() == "chats"
    with pytest.raises(ValueError):
        store.set_sort_option("chats")
    with pytest.raises(ValueError):
        store.set_char_sort_option("messages")


def test_unknown_filter_falls_back_to_all():
    store = _store()
    assert store.set_filter_folder(FAVORITES) == FAVORITES
    assert store.set_filter_folder("folder_nope") == "all"
    assert store.get_filter_folder() == "all"


# ---- update / save ---- #

def test_update_failure_leaves_state_untouched():
    storage = MemoryStorage()
    store = _store(storage)
    store.toggle_favorite("a.png", "x.jsonl")
    stored_before = storage.get_item(KEY)

    def broken(doc):
        doc.favorites.clear()
        raise RuntimeError("halfway")

    with pytest.raises(RuntimeError):
        store.update(broken)

    assert store.is_favorite("a.png", "x.jsonl")
    assert storage.get_item(KEY) == stored_before


def test_quota_overflow_trims_to_newest_entries():
    storage = FlakyStorage(failures=1)
    store = _store(storage)
    doc = OrganizationDocument()
    doc.chat_assignments = {f"c_{i}": UNCATEGORIZED for i in range(2500)}

    assert store.save(doc)

    saved = _stored(storage)["chatAssignments"]
    assert len(saved) == 2000
    assert list(saved)[0] == "c_500"
    assert list(saved)[-1] == "c_2499"
    assert len(store.load().chat_assignments) == 2000


def test_cleanup_limits_each_collection():
    store = _store()
    doc = OrganizationDocument()
    doc.favorites = [f"f{i}" for i in range(600)]
    doc.character_favorites = [f"c{i}" for i in range(400)]

    store.cleanup(doc)

    assert doc.favorites[0] == "f100" and len(doc.favorites) == 500
    assert doc.character_favorites[0] == "c100" and len(doc.character_favorites) == 300


def test_persistent_quota_failure_notifies_and_keeps_memory():
    notifier = RecordingNotifier()
    storage = FlakyStorage(failures=2)
    store = _store(storage, notifier=notifier)

    assert store.toggle_favorite("a.png", "x.jsonl") is True

    assert notifier.messages == [("error", LOW_SPACE_MESSAGE)]
    assert storage.get_item(KEY) is None
    assert store.is_favorite("a.png", "x.jsonl")


# ---- cross-tab ---- #

def test_external_write_invalidates_in_memory_copy():
    tab_a = MemoryStorage()
    tab_b = tab_a.open_peer()
    store_a = _store(tab_a)
    store_b = _store(tab_b)

    assert not store_a.is_favorite("alice.png", "x.jsonl")
    store_b.toggle_favorite("alice.png", "x.jsonl")

    assert store_a.is_favorite("alice.png", "x.jsonl")


def test_close_stops_listening():
    tab_a = MemoryStorage()
    tab_b = tab_a.open_peer()
    store_a = _store(tab_a)
    store_b = _store(tab_b)
    store_a.load()
    store_a.close()

    store_b.toggle_favorite("alice.png", "x.jsonl")
    assert not store_a.is_favorite("alice.png", "x.jsonl")


def test_file_backed_stores_share_changes(tmp_path):
    from chat_lobby.storage import FileStorage

    tab_a = FileStorage(tmp_path)
    tab_b = FileStorage(tmp_path)
    store_a = _store(tab_a)
    store_b = _store(tab_b)
    store_a.load()

    store_b.add_folder("Shared")
    tab_a.poll_changes()

    assert [f.name for f in store_a.folders() if not f.is_system] == ["Shared"]


def test_file_backed_store_sees_other_process_before_writing(tmp_path):
    from chat_lobby.storage import FileStorage

    store_a = _store(FileStorage(tmp_path))
    store_b = _store(FileStorage(tmp_path))
    store_a.load()

    store_b.toggle_favorite("b.png", "x.jsonl")
    store_a.toggle_favorite("a.png", "y.jsonl")

    on_disk = json.loads((tmp_path / f"{KEY}.json").read_text(encoding="utf-8"))
    assert on_disk["favorites"] == ["b.png_x.jsonl", "a.png_y.jsonl"]
    assert store_a.is_favorite("b.png", "x.jsonl")
