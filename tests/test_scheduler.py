"""Tests for the periodic health scheduler."""

from __future__ import annotations

import asyncio

import pytest

from fakes import make_snapshot
from healthcore.health.models import Status, SystemSnapshot
from healthcore.health.scheduler import HealthScheduler


class BlockingEngine:
    """Engine double whose passes block until released; tracks overlap."""

    def __init__(self, duration: float | None = None) -> None:
        self.duration = duration
        self.release: asyncio.Event | None = None
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.fail_next = False

    async def run_all(self) -> SystemSnapshot:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.fail_next:
                self.fail_next = False
                raise RuntimeError("engine exploded")
            if self.duration is not None:
                await asyncio.sleep(self.duration)
            elif self.release is not None:
                await self.release.wait()
            return make_snapshot(Status.HEALTHY)
        finally:
            self.active -= 1

    def last_results(self) -> dict:
        return {}


def run(coro):
    return asyncio.run(coro)


class TestHealthScheduler:
    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValueError):
            HealthScheduler(BlockingEngine(), interval=0)

    def test_tick_skipped_while_run_in_flight(self) -> None:
        async def scenario() -> None:
            engine = BlockingEngine()
            engine.release = asyncio.Event()
            sched = HealthScheduler(engine, interval=60)

            assert sched.tick() is True
            await asyncio.sleep(0)
            assert sched.in_flight

            assert sched.tick() is False
            assert sched.tick() is False
            assert sched.skipped_ticks == 2
            assert engine.calls == 1

            engine.release.set()
            await asyncio.sleep(0.01)
            assert not sched.in_flight
            assert sched.completed_runs == 1

            assert sched.tick() is True
            await asyncio.sleep(0.01)
            assert engine.calls == 2
            assert engine.max_active == 1
            await sched.stop()

        run(scenario())

    def test_timer_never_overlaps_runs(self) -> None:
        async def scenario() -> None:
            engine = BlockingEngine(duration=0.2)
            sched = HealthScheduler(engine, interval=0.05)
            await sched.start()
            await asyncio.sleep(0.5)
            await sched.stop()

            assert engine.max_active == 1
            assert engine.calls >= 2
            assert sched.skipped_ticks > 0

        run(scenario())

    def test_first_tick_is_immediate(self) -> None:
        async def scenario() -> None:
            engine = BlockingEngine(duration=0)
            sched = HealthScheduler(engine, interval=60)
            await sched.start()
            await asyncio.sleep(0.05)
            assert engine.calls == 1
            assert sched.last_snapshot is not None
            await sched.stop()

        run(scenario())

    def test_start_is_idempotent(self) -> None:
        async def scenario() -> None:
            engine = BlockingEngine(duration=0)
            sched = HealthScheduler(engine, interval=60)
            await sched.start()
            await sched.start()
            await asyncio.sleep(0.05)
            assert engine.calls == 1
            await sched.stop()

        run(scenario())

    def test_stop_is_idempotent(self) -> None:
        async def scenario() -> None:
            sched = HealthScheduler(BlockingEngine(duration=0), interval=60)
            await sched.stop()  # never started
            await sched.start()
            assert sched.running
            await sched.stop()
            await sched.stop()
            assert not sched.running

        run(scenario())

    def test_stop_cancels_in_flight_run(self) -> None:
        async def scenario() -> None:
            engine = BlockingEngine()
            engine.release = asyncio.Event()
            sched = HealthScheduler(engine, interval=60)
            await sched.start()
            await asyncio.sleep(0.01)
            assert sched.in_flight
            await sched.stop()
            assert not sched.in_flight
            assert engine.active == 0

        run(scenario())

    def test_restart_after_stop_before_pass_began(self) -> None:
        async def scenario() -> None:
            engine = BlockingEngine(duration=0)
            sched = HealthScheduler(engine, interval=0.05)

            assert sched.tick() is True
            await sched.stop()  # pass cancelled before it ran a single step
            assert engine.calls == 0
            assert not sched.in_flight

            await sched.start()
            await asyncio.sleep(0.3)
            await sched.stop()
            assert engine.calls > 0
            assert sched.completed_runs > 0

        run(scenario())

    def test_failed_run_clears_flag(self) -> None:
        async def scenario() -> None:
            engine = BlockingEngine(duration=0)
            engine.fail_next = True
            sched = HealthScheduler(engine, interval=60)

            assert sched.tick() is True
            await asyncio.sleep(0.01)
            assert not sched.in_flight
            assert sched.completed_runs == 0

            assert sched.tick() is True
            await asyncio.sleep(0.01)
            assert sched.completed_runs == 1
            await sched.stop()

        run(scenario())

    def test_snapshot_callback(self) -> None:
        seen: list[SystemSnapshot] = []

        def broken_then_recording(snapshot: SystemSnapshot) -> None:
            seen.append(snapshot)
            raise RuntimeError("subscriber failed")

        async def scenario() -> None:
            sched = HealthScheduler(
                BlockingEngine(duration=0), interval=60, on_snapshot=broken_then_recording,
            )
            sched.tick()
            await asyncio.sleep(0.01)
            assert sched.completed_runs == 1
            assert not sched.in_flight
            await sched.stop()

        run(scenario())
        assert len(seen) == 1
