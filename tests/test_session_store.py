"""Tests for the in-memory session store."""
import asyncio
import time

import pytest

from pokebot.errors import NotOwner, StaleSession
from pokebot.models import Item, SessionState
from pokebot.sessions import SessionStore


def _store_with_session(**kwargs):
    store = SessionStore(**kwargs)
    items = [Item(key=str(i), label=f"Item {i}") for i in range(5)]
    session = store.create(42, items, 2, flow="shop", context={"guild_id": 7}, hard_timeout=60, idle_timeout=30)
    return store, session


def test_create_assigns_hex_id_and_deadlines():
    """New sessions start browsing page 0 with both deadlines set."""
    store, session = _store_with_session()
    assert int(session.session_id, 16) >= 0
    assert session.state is SessionState.BROWSING
    assert session.page_index == 0
    assert session.pending_action_keys == set()
    assert session.hard_expires_at > session.created_at
    assert session.idle_expires_at < session.hard_expires_at
    assert store.active_count == 1


def test_get_returns_snapshot():
    """Changing a snapshot does not touch the stored session."""
    store, session = _store_with_session()
    snapshot = store.get(session.session_id)
    snapshot.pending_action_keys.add("select")
    snapshot.page_index = 2
    fresh = store.get(session.session_id)
    assert fresh.pending_action_keys == set()
    assert fresh.page_index == 0


def test_unknown_session_is_stale():
    store = SessionStore()
    with pytest.raises(StaleSession):
        store.get("deadbeef")


def test_authorize_rejects_other_users():
    store, session = _store_with_session()
    store.authorize(session, 42)
    with pytest.raises(NotOwner):
        store.authorize(session, 43)


@pytest.mark.asyncio
async def test_mutations_are_serialized():
    """Concurrent read-modify-write mutations never lose an update."""
    store, session = _store_with_session()

    def _bump(s):
        s.page_index += 1

    await asyncio.gather(*(store.mutate(session.session_id, _bump) for _ in range(20)))
    assert store.get(session.session_id).page_index == 20


@pytest.mark.asyncio
async def test_destroy_leaves_tombstone_with_final_state():
    """Destroyed sessions are stale but their final snapshot is kept."""
    store, session = _store_with_session()
    sid = session.session_id

    def _cancel(s):
        s.state = SessionState.CANCELLED

    await store.mutate(sid, _cancel)
    store.destroy(sid)

    with pytest.raises(StaleSession):
        store.get(sid)
    with pytest.raises(StaleSession):
        await store.mutate(sid, _cancel)
    assert store.is_tombstoned(sid)
    assert store.final_state(sid).state is SessionState.CANCELLED
    assert store.active_count == 0


def test_prune_tombstones_after_ttl():
    store, session = _store_with_session(tombstone_ttl=10)
    store.destroy(session.session_id)
    assert store.prune_tombstones() == 0
    assert store.prune_tombstones(now=time.monotonic() + 11) == 1
    assert not store.is_tombstoned(session.session_id)


def test_create_rejects_bad_page_size():
    store = SessionStore()
    with pytest.raises(ValueError):
        store.create(1, [], 0, flow="shop")
