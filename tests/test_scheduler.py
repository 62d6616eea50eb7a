"""Tests for the shared timer state machine and tick cadence."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import pytest

from big_clock.core.cell_registry import CellRegistry
from big_clock.core.cell_settings import BlinkPolicy, CellSettings
from big_clock.core.scheduler import Scheduler, SchedulerState

from conftest import FakeClock, FakeHandle, FakeSettingsStore, RecordingDispatcher

# 10 ms before a second boundary, so a start attempt wakes up almost at once
NEAR_BOUNDARY = datetime(2026, 5, 1, 12, 34, 55, 990_000)


def build(logger, clock=None, policy=BlinkPolicy.SUB_SECOND, dispatcher=None, **kwargs):
    registry = CellRegistry()
    dispatcher = dispatcher or RecordingDispatcher()
    kwargs.setdefault("supervisor_delay", 60.0)
    scheduler = Scheduler(
        registry,
        dispatcher,
        clock=clock or FakeClock(NEAR_BOUNDARY),
        blink_policy=policy,
        logger=logger,
        **kwargs,
    )
    return registry, dispatcher, scheduler


def add(registry, cell_id, handle, **payload):
    registry.upsert(cell_id, handle, CellSettings.materialize(payload))


async def run_tick(scheduler):
    tasks = scheduler.tick()
    await asyncio.gather(*tasks)
    return tasks


def test_tick_requires_init(logger) -> None:
    _, _, scheduler = build(logger)
    with pytest.raises(RuntimeError):
        scheduler.tick()


def test_tick_redraws_everything_on_second_change_and_colons_in_between(logger) -> None:
    clock = FakeClock(datetime(2026, 5, 1, 7, 5, 9, 200_000))
    registry, dispatcher, scheduler = build(logger, clock=clock)
    hour, colon, minute = FakeHandle("hour"), FakeHandle("colon"), FakeHandle("minute")
    add(registry, "h", hour, component="hour1")
    add(registry, "c", colon, component="colon1", blinkColons=True)
    add(registry, "m", minute, component="minute1")

    async def scenario():
        scheduler.init()
        assert len(await run_tick(scheduler)) == 3
        assert scheduler.watermark == int(clock.now.timestamp())

        clock.now += timedelta(milliseconds=500)
        assert len(await run_tick(scheduler)) == 1

        clock.now += timedelta(milliseconds=400)
        assert len(await run_tick(scheduler)) == 3
        await scheduler.shutdown()

    asyncio.run(scenario())

    assert dispatcher.glyphs_for(hour) == ["0", "0"]
    assert dispatcher.glyphs_for(colon) == [":", " ", ":"]
    assert dispatcher.glyphs_for(minute) == ["0", "0"]


def test_parity_policy_redraws_colons_only_on_second_change(logger) -> None:
    clock = FakeClock(datetime(2026, 5, 1, 7, 5, 8, 100_000))
    registry, dispatcher, scheduler = build(logger, clock=clock, policy=BlinkPolicy.EVEN_SECOND_PARITY)
    colon = FakeHandle("colon")
    add(registry, "c", colon, component="colon2", blinkColons=True)

    async def scenario():
        scheduler.init()
        await run_tick(scheduler)
        clock.now += timedelta(milliseconds=600)
        assert await run_tick(scheduler) == []
        clock.now += timedelta(milliseconds=400)
        await run_tick(scheduler)
        await scheduler.shutdown()

    asyncio.run(scenario())

    assert dispatcher.glyphs_for(colon) == [":", " "]


def test_concurrent_start_requests_create_one_timer(logger) -> None:
    registry, _, scheduler = build(logger)
    add(registry, "a", FakeHandle())

    async def scenario():
        scheduler.init()
        results = [scheduler.ensure_started() for _ in range(5)]
        assert results == [True, False, False, False, False]
        assert scheduler.state is SchedulerState.STARTING

        await asyncio.sleep(0.1)
        assert scheduler.state is SchedulerState.RUNNING
        assert scheduler.ensure_started() is False
        assert scheduler.get_status()["timers_started"] == 1
        await scheduler.shutdown()
        assert scheduler.state is SchedulerState.STOPPED

    asyncio.run(scenario())


def test_late_wakeup_aborts_when_timer_exists(logger) -> None:
    registry, _, scheduler = build(logger)
    add(registry, "a", FakeHandle())

    async def scenario():
        scheduler.init()
        scheduler.ensure_started()
        await asyncio.sleep(0.1)

        # A second wake-up arriving after the winner installed its timer
        scheduler._setting_up = True
        scheduler._on_start_wakeup()

        assert scheduler.state is SchedulerState.RUNNING
        assert scheduler.get_status()["timers_started"] == 1
        await scheduler.shutdown()

    asyncio.run(scenario())


def test_empty_tick_does_not_stop_timer(logger) -> None:
    registry, dispatcher, scheduler = build(logger)
    add(registry, "a", FakeHandle())

    async def scenario():
        scheduler.init()
        scheduler.ensure_started()
        await asyncio.sleep(0.05)
        registry.remove("a")

        assert scheduler.tick() == []
        await asyncio.sleep(0.25)
        assert scheduler.state is SchedulerState.RUNNING
        await scheduler.shutdown()

    asyncio.run(scenario())


def test_ensure_stopped_stops_immediately_when_empty(logger) -> None:
    registry, _, scheduler = build(logger)
    add(registry, "a", FakeHandle())

    async def scenario():
        scheduler.init()
        scheduler.ensure_started()
        await asyncio.sleep(0.05)
        timer = scheduler._timer

        assert scheduler.ensure_stopped() is False
        assert scheduler.state is SchedulerState.RUNNING

        registry.remove("a")
        assert scheduler.ensure_stopped() is True
        assert scheduler.state is SchedulerState.STOPPED
        await asyncio.sleep(0.01)
        assert timer.cancelled()
        await scheduler.shutdown()

    asyncio.run(scenario())


def test_stop_during_setup_cancels_pending_start(logger) -> None:
    registry, _, scheduler = build(logger)
    add(registry, "a", FakeHandle())

    async def scenario():
        scheduler.init()
        scheduler.ensure_started()
        registry.remove("a")
        assert scheduler.ensure_stopped() is True

        await asyncio.sleep(0.1)
        assert scheduler.state is SchedulerState.STOPPED
        assert scheduler.get_status()["timers_started"] == 0
        await scheduler.shutdown()

    asyncio.run(scenario())


def test_stop_grace_rechecks_emptiness(logger) -> None:
    registry, _, scheduler = build(logger, stop_grace=0.05)
    add(registry, "a", FakeHandle())

    async def scenario():
        scheduler.init()
        scheduler.ensure_started()
        await asyncio.sleep(0.05)

        # Key moved: removed, then re-added within the grace period
        registry.remove("a")
        assert scheduler.ensure_stopped() is False
        add(registry, "a", FakeHandle())
        await asyncio.sleep(0.1)
        assert scheduler.state is SchedulerState.RUNNING

        registry.remove("a")
        scheduler.ensure_stopped()
        await asyncio.sleep(0.1)
        assert scheduler.state is SchedulerState.STOPPED
        await scheduler.shutdown()

    asyncio.run(scenario())


def test_failing_cell_is_evicted_without_affecting_others(logger) -> None:
    registry, dispatcher, scheduler = build(logger)
    good, bad = FakeHandle("good"), FakeHandle("bad", fail=True)
    add(registry, "good", good, component="second2")
    add(registry, "bad", bad, component="second1")

    async def scenario():
        scheduler.init()
        await run_tick(scheduler)
        await scheduler.shutdown()

    asyncio.run(scenario())

    assert "bad" not in registry
    assert "good" in registry
    assert dispatcher.glyphs_for(good) == ["5"]
    assert scheduler.get_status()["evictions"] == 1


def test_evicting_last_cell_stops_timer(logger) -> None:
    registry, _, scheduler = build(logger)
    add(registry, "bad", FakeHandle("bad", fail=True))

    async def scenario():
        scheduler.init()
        scheduler.ensure_started()
        await asyncio.sleep(0.1)
        assert len(registry) == 0
        assert scheduler.state is SchedulerState.STOPPED
        await scheduler.shutdown()

    asyncio.run(scenario())


def test_eviction_spares_reused_id(logger) -> None:
    registry, _, scheduler = build(logger)
    bad = FakeHandle("bad", fail=True)
    add(registry, "a", bad)

    async def scenario():
        scheduler.init()
        tasks = scheduler.tick()
        # Id handed to a new key before the failed render completes
        add(registry, "a", FakeHandle("new"))
        await asyncio.gather(*tasks)
        await scheduler.shutdown()

    asyncio.run(scenario())

    assert registry.get("a").handle.name == "new"


class BlockingDispatcher(RecordingDispatcher):
    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()
        self.slow = set()

    async def render(self, handle, glyph, settings):
        if handle in self.slow:
            await self.release.wait()
        await super().render(handle, glyph, settings)


def test_slow_cell_is_skipped_while_render_in_flight(logger) -> None:
    clock = FakeClock(datetime(2026, 5, 1, 9, 0, 0))
    dispatcher = None
    slow, fast = FakeHandle("slow"), FakeHandle("fast")

    async def scenario():
        nonlocal dispatcher
        dispatcher = BlockingDispatcher()
        dispatcher.slow.add(slow)
        registry, _, scheduler = build(logger, clock=clock, dispatcher=dispatcher)
        add(registry, "slow", slow)
        add(registry, "fast", fast)
        scheduler.init()

        first = scheduler.tick()
        await asyncio.sleep(0.01)
        clock.now += timedelta(seconds=1)
        second = scheduler.tick()

        assert len(first) == 2
        assert len(second) == 1
        assert scheduler.get_status()["renders_in_flight"] == 2
        dispatcher.release.set()
        await asyncio.gather(*first, *second)
        await scheduler.shutdown()

    asyncio.run(scenario())

    assert len(dispatcher.glyphs_for(fast)) == 2
    assert len(dispatcher.glyphs_for(slow)) == 1


def test_skipped_cell_catches_up_within_the_same_second(logger) -> None:
    clock = FakeClock(datetime(2026, 5, 1, 9, 0, 0))
    dispatcher = None
    slow, fast = FakeHandle("slow"), FakeHandle("fast")

    async def scenario():
        nonlocal dispatcher
        dispatcher = BlockingDispatcher()
        dispatcher.slow.add(slow)
        registry, _, scheduler = build(logger, clock=clock, dispatcher=dispatcher)
        add(registry, "slow", slow, component="fullSecond")
        add(registry, "fast", fast, component="fullSecond")
        scheduler.init()

        first = scheduler.tick()
        await asyncio.sleep(0.01)
        clock.now += timedelta(seconds=1)
        second = scheduler.tick()
        dispatcher.release.set()
        await asyncio.gather(*first, *second)
        await asyncio.sleep(0.01)

        clock.now += timedelta(milliseconds=100)
        third = scheduler.tick()
        await asyncio.gather(*third)
        fourth = scheduler.tick()

        assert len(third) == 1
        assert fourth == []
        await scheduler.shutdown()

    asyncio.run(scenario())

    assert dispatcher.glyphs_for(slow) == ["00", "01"]
    assert dispatcher.glyphs_for(fast) == ["00", "01"]


def test_supervisor_restarts_missing_timer(logger) -> None:
    registry, _, scheduler = build(logger, supervisor_delay=0.01)
    add(registry, "a", FakeHandle())

    async def scenario():
        scheduler.init()
        scheduler.schedule_supervisor()
        await asyncio.sleep(0.15)
        assert scheduler.state is SchedulerState.RUNNING
        await scheduler.shutdown()

    asyncio.run(scenario())


def test_supervisor_leaves_empty_registry_alone(logger) -> None:
    _, _, scheduler = build(logger, supervisor_delay=0.01)

    async def scenario():
        scheduler.init()
        scheduler.schedule_supervisor()
        await asyncio.sleep(0.05)
        assert scheduler.state is SchedulerState.STOPPED
        await scheduler.shutdown()

    asyncio.run(scenario())


def test_refresh_settings_uses_store_and_tolerates_failure(logger) -> None:
    clock = FakeClock(datetime(2026, 5, 1, 9, 41, 0))
    store = FakeSettingsStore()
    registry, dispatcher, scheduler = build(logger, clock=clock, settings_store=store, refresh_settings=True)
    handle = FakeHandle()
    add(registry, "a", handle, component="hour1")
    store.stored[handle] = {"component": "fullMinute"}

    async def scenario():
        scheduler.init()
        await run_tick(scheduler)
        store.fail_read = True
        clock.now += timedelta(seconds=1)
        await run_tick(scheduler)
        await scheduler.shutdown()

    asyncio.run(scenario())

    assert dispatcher.glyphs_for(handle) == ["41", "41"]
    assert registry.get("a").settings.kind == "fullMinute"


def test_shutdown_waits_for_inflight_renders(logger) -> None:
    dispatcher = None
    handle = FakeHandle()

    async def scenario():
        nonlocal dispatcher
        dispatcher = BlockingDispatcher()
        dispatcher.slow.add(handle)
        registry, _, scheduler = build(logger, dispatcher=dispatcher)
        add(registry, "a", handle)
        scheduler.init()
        scheduler.tick()

        asyncio.get_running_loop().call_later(0.01, dispatcher.release.set)
        await scheduler.shutdown()

    asyncio.run(scenario())

    assert len(handle.images) == 1
