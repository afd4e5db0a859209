import sys
from pathlib import Path

import pytest

# Add project root to sys.path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


DEFAULT_TTLS = {
    "chats": 30,
    "chatCounts": 60,
    "messageCounts": 60,
    "personas": 60,
    "characters": 30,
}


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource:
    """In-memory stand-in for the backend client."""

    def __init__(self, personas=None, characters=None, chats=None) -> None:
        self.personas = personas or []
        self.characters = characters or []
        self.chats = chats or {}
        self.calls: list[tuple] = []
        self.fail: set[str] = set()
        self.delete_ok = True

    def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail:
            raise RuntimeError(f"{name} failed")

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def fetch_personas(self):
        self._record("fetch_personas")
        return list(self.personas)

    async def fetch_characters(self):
        self._record("fetch_characters")
        return list(self.characters)

    async def fetch_chats_for_character(self, character_id):
        self._record("fetch_chats_for_character", character_id)
        return list(self.chats.get(character_id, []))

    async def delete_chat(self, file_name, character_id):
        self._record("delete_chat", file_name, character_id)
        return self.delete_ok

    async def delete_persona(self, persona_key):
        self._record("delete_persona", persona_key)
        return self.delete_ok

    async def delete_character(self, character_id):
        self._record("delete_character", character_id)
        return self.delete_ok


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def notify(self, message: str, level: str = "info") -> None:
        self.messages.append((level, message))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ttls():
    return dict(DEFAULT_TTLS)
