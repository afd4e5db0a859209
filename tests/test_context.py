import asyncio

from chat_lobby.context import build_context
from chat_lobby.storage import MemoryStorage

from tests.conftest import FakeSource, RecordingNotifier


def test_build_context_shares_collaborators():
    storage = MemoryStorage()
    source = FakeSource(
        personas=[{"key": "me.png"}],
        characters=[{"avatar": "alice.png", "name": "Alice"}],
    )
    ctx = build_context(source=source, storage=storage, notifier=RecordingNotifier())

    assert ctx.gateway.cache is ctx.cache
    assert ctx.storage is storage
    assert ctx.service._snapshots is ctx.snapshots

    async def main():
        personas, grid = await ctx.service.open_lobby()
        await ctx.service.close_lobby()
        return personas, grid

    personas, grid = asyncio.run(main())
    ctx.close()

    assert personas == [{"key": "me.png"}]
    assert [c["name"] for c in grid] == ["Alice"]
    assert not ctx.preloader.is_done("characters")
