"""Tests for session and domain timers."""
import asyncio

import pytest

from pokebot.expiry import HARD, IDLE, DomainTimer, ExpirySupervisor


class Recorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, session_id, reason):
        self.calls.append((session_id, reason))


@pytest.mark.asyncio
async def test_idle_timer_fires_once():
    recorder = Recorder()
    supervisor = ExpirySupervisor(recorder)
    supervisor.start("abc", hard_timeout=5, idle_timeout=0.02)
    assert supervisor.pending("abc") == [HARD, IDLE]

    await asyncio.sleep(0.06)
    assert recorder.calls == [("abc", "idle-timeout")]
    assert supervisor.pending("abc") == [HARD]
    await supervisor.shutdown()


@pytest.mark.asyncio
async def test_touch_restarts_idle_window():
    """Activity inside the idle window postpones expiry."""
    recorder = Recorder()
    supervisor = ExpirySupervisor(recorder)
    supervisor.start("abc", hard_timeout=None, idle_timeout=0.05)
    for _ in range(3):
        await asyncio.sleep(0.03)
        assert supervisor.touch("abc") == 0.05
    assert recorder.calls == []
    await asyncio.sleep(0.08)
    assert recorder.calls == [("abc", "idle-timeout")]
    await supervisor.shutdown()


@pytest.mark.asyncio
async def test_hard_timer_ignores_touch():
    recorder = Recorder()
    supervisor = ExpirySupervisor(recorder)
    supervisor.start("abc", hard_timeout=0.05, idle_timeout=1)
    await asyncio.sleep(0.03)
    supervisor.touch("abc")
    await asyncio.sleep(0.04)
    assert recorder.calls == [("abc", "hard-timeout")]
    await supervisor.shutdown()


@pytest.mark.asyncio
async def test_cancel_removes_all_timers():
    recorder = Recorder()
    supervisor = ExpirySupervisor(recorder)
    supervisor.start("abc", hard_timeout=0.02, idle_timeout=0.02)
    assert supervisor.cancel("abc") == 2
    assert supervisor.pending("abc") == []
    assert supervisor.touch("abc") is None
    await asyncio.sleep(0.05)
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_callback_may_cancel_its_own_session():
    """A firing timer is already unregistered when the callback runs."""
    supervisor = None
    seen = []

    async def _on_expire(session_id, reason):
        seen.append(supervisor.cancel(session_id))

    supervisor = ExpirySupervisor(_on_expire)
    supervisor.start("abc", hard_timeout=1, idle_timeout=0.02)
    await asyncio.sleep(0.05)
    assert seen == [1]
    assert supervisor.pending("abc") == []


@pytest.mark.asyncio
async def test_domain_timer_runs_and_can_be_cancelled():
    fired = []

    async def _callback():
        fired.append("battle:1")

    timers = DomainTimer()
    timers.schedule("battle:1", 0.02, _callback)
    timers.schedule("battle:2", 0.02, _callback)
    assert timers.pending() == ["battle:1", "battle:2"]
    assert timers.cancel("battle:2")
    assert not timers.cancel("battle:3")

    await asyncio.sleep(0.05)
    assert fired == ["battle:1"]
    assert timers.pending() == []
    await timers.shutdown()
