"""Tests for the per-session duplicate-action guard."""
import asyncio

import pytest

from pokebot.idempotency import IdempotencyGuard
from pokebot.models import Item
from pokebot.sessions import SessionStore


def _setup():
    store = SessionStore()
    session = store.create(1, [Item(key="a", label="A")], 25, flow="shop")
    return store, IdempotencyGuard(store), session.session_id


@pytest.mark.asyncio
async def test_concurrent_acquire_only_one_wins():
    """Two simultaneous claims for one key: exactly one succeeds."""
    store, guard, sid = _setup()
    results = await asyncio.gather(guard.try_acquire(sid, "select"), guard.try_acquire(sid, "select"))
    assert sorted(results) == [False, True]
    assert store.get(sid).pending_action_keys == {"select"}


@pytest.mark.asyncio
async def test_release_allows_reacquire():
    store, guard, sid = _setup()
    assert await guard.try_acquire(sid, "select")
    await guard.release(sid, "select")
    assert await guard.try_acquire(sid, "select")


@pytest.mark.asyncio
async def test_distinct_keys_do_not_block_each_other():
    _, guard, sid = _setup()
    assert await guard.try_acquire(sid, "select")
    assert await guard.try_acquire(sid, "cancel")


@pytest.mark.asyncio
async def test_claim_releases_on_exit_and_error():
    """The context manager frees the key even when the block raises."""
    store, guard, sid = _setup()
    async with guard.claim(sid, "all") as acquired:
        assert acquired
        async with guard.claim(sid, "all") as again:
            assert not again
    assert store.get(sid).pending_action_keys == set()

    with pytest.raises(RuntimeError):
        async with guard.claim(sid, "all"):
            raise RuntimeError("boom")
    assert store.get(sid).pending_action_keys == set()


@pytest.mark.asyncio
async def test_release_after_destroy_is_silent():
    store, guard, sid = _setup()
    assert await guard.try_acquire(sid, "select")
    store.destroy(sid)
    await guard.release(sid, "select")
