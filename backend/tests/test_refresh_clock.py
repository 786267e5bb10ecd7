"""Tests for SharedRefreshClock and the clock event broadcaster."""

import asyncio

import orjson
import pytest

from busradar.core.broadcaster import CHANNEL, Broadcaster
from busradar.core.refresh_clock import SharedRefreshClock

pytestmark = pytest.mark.asyncio


class FakeRedis:
    """Records pub/sub publishes; optionally fails like a dropped connection."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[tuple[str, bytes]] = []

    async def publish(self, channel: str, payload: bytes) -> None:
        if self.fail:
            raise ConnectionError("redis gone")
        self.published.append((channel, payload))


async def test_counts_down_then_broadcasts_once():
    clock = SharedRefreshClock(period=3, flash_seconds=0.05)
    fired = []

    async def on_refresh():
        fired.append(clock.countdown)

    clock.subscribe(on_refresh)

    for expected in (2, 1, 0):
        await clock.tick()
        assert clock.countdown == expected
    assert fired == []

    await clock.tick()
    await clock.wait_idle()
    assert fired == [0]
    assert clock.just_updated

    # Held at zero during the flash window, no second broadcast
    await clock.tick()
    await clock.tick()
    await clock.wait_idle()
    assert fired == [0]

    await asyncio.sleep(0.1)
    assert not clock.just_updated
    assert clock.countdown == 3


async def test_slow_subscriber_does_not_stall_countdown():
    clock = SharedRefreshClock(period=2, flash_seconds=0.02)
    release = asyncio.Event()
    finished = []

    async def slow_detail_view():
        await release.wait()
        finished.append(True)

    clock.subscribe(slow_detail_view)
    await clock.tick()
    await clock.tick()
    await asyncio.wait_for(clock.tick(), timeout=0.5)
    assert clock.just_updated

    await asyncio.sleep(0.05)
    assert clock.countdown == 2
    for expected in (1, 0):
        await asyncio.wait_for(clock.tick(), timeout=0.5)
        assert clock.countdown == expected
    assert finished == []

    release.set()
    await clock.wait_idle()
    assert finished == [True]
    clock.stop()


async def test_failing_subscriber_does_not_block_others():
    clock = SharedRefreshClock(period=1, flash_seconds=0.01)
    fired = []

    async def broken():
        raise RuntimeError("detail view gone")

    async def healthy():
        fired.append(True)

    clock.subscribe(broken)
    clock.subscribe(healthy)
    await clock.tick()
    await clock.tick()
    await clock.wait_idle()
    assert fired == [True]
    clock.stop()


async def test_unsubscribe_and_reset():
    clock = SharedRefreshClock(period=1, flash_seconds=0.01)
    fired = []

    async def on_refresh():
        fired.append(True)

    unsubscribe = clock.subscribe(on_refresh)
    unsubscribe()
    await clock.tick()
    clock.reset_countdown()
    assert clock.countdown == 1
    await clock.tick()
    await clock.tick()
    await clock.wait_idle()
    assert fired == []
    clock.stop()


async def test_events_fan_out_through_broadcaster():
    broadcaster = Broadcaster()
    queue = broadcaster.subscribe()
    clock = SharedRefreshClock(period=1, flash_seconds=0.01, broadcaster=broadcaster)

    await clock.tick()
    await clock.tick()
    events = [orjson.loads(queue.get_nowait()) for _ in range(queue.qsize())]
    assert [e["type"] for e in events] == ["countdown", "refresh"]
    assert events[0]["countdown"] == 0
    broadcaster.unsubscribe(queue)
    clock.stop()


async def test_events_published_to_redis_channel():
    broadcaster = Broadcaster()
    redis = FakeRedis()
    broadcaster._redis = redis

    await broadcaster.publish({"type": "refresh"})
    assert redis.published == [(CHANNEL, orjson.dumps({"type": "refresh"}))]


async def test_redis_failure_still_reaches_local_subscribers():
    broadcaster = Broadcaster()
    broadcaster._redis = FakeRedis(fail=True)
    queue = broadcaster.subscribe()

    await broadcaster.publish({"type": "countdown", "countdown": 4})
    assert orjson.loads(queue.get_nowait())["countdown"] == 4


async def test_full_subscriber_queue_is_dropped():
    broadcaster = Broadcaster()
    queue = broadcaster.subscribe()
    for i in range(11):
        await broadcaster.publish({"n": i})
    assert queue.qsize() == 10

    await broadcaster.publish({"n": 99})
    assert queue.qsize() == 10
