"""Unit tests for the sweep scheduler.

Tests scheduler lifecycle, run_once behavior and the startup wiring.
Includes edge cases: stop without start, double start, overlapping runs.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import pytest

from itumy.config import SweeperConfig, SweeperTaskConfig
from itumy.services.sweeper import lifecycle
from itumy.services.sweeper.scheduler import SweepScheduler
from tests.fakes import BlockingSweepTask, FakeSweepTask, RaisingSweepTask


@pytest.fixture
def sweeper_config():
    return SweeperConfig(
        enabled=True,
        run_on_startup=False,
        interval_seconds=0.01,
        out_of_date_keys=SweeperTaskConfig(enabled=True),
        expired_sessions=SweeperTaskConfig(enabled=True),
    )


class TestSweepScheduler:
    """Tests for SweepScheduler."""

    @pytest.mark.asyncio
    async def test_run_once_executes_all_tasks(self, sweeper_config):
        """run_once should execute all tasks in order."""
        task1 = FakeSweepTask("task1", updated=2)
        task2 = FakeSweepTask("task2", updated=3)

        scheduler = SweepScheduler(tasks=[task1, task2], config=sweeper_config)

        results = await scheduler.run_once()

        assert [r.task_name for r in results] == ["task1", "task2"]
        assert [r.updated_count for r in results] == [2, 3]
        assert task1.run_count == 1
        assert task2.run_count == 1

    @pytest.mark.asyncio
    async def test_run_once_continues_after_task_failure(self, sweeper_config):
        """A failing task is reported and the remaining tasks still run."""
        task1 = FakeSweepTask("task1", updated=1)
        task2 = RaisingSweepTask("task2", RuntimeError("db gone"))
        task3 = FakeSweepTask("task3", updated=2)

        scheduler = SweepScheduler(tasks=[task1, task2, task3], config=sweeper_config)

        results = await scheduler.run_once()

        assert len(results) == 3
        assert results[1].success is False
        assert "db gone" in results[1].errors[0]
        assert results[2].updated_count == 2
        assert task3.run_count == 1

    @pytest.mark.asyncio
    async def test_run_once_collects_errors(self, sweeper_config):
        task = FakeSweepTask("task1", errors=["e1", "e2"])
        scheduler = SweepScheduler(tasks=[task], config=sweeper_config)

        [result] = await scheduler.run_once()

        assert result.errors == ["e1", "e2"]
        assert result.success is False

    @pytest.mark.asyncio
    async def test_is_sweeping_during_cycle(self, sweeper_config):
        task = BlockingSweepTask()
        scheduler = SweepScheduler(tasks=[task], config=sweeper_config)

        assert scheduler.is_sweeping is False
        running = asyncio.create_task(scheduler.run_once())
        await task.started.wait()

        assert scheduler.is_sweeping is True

        task.release.set()
        await running
        assert scheduler.is_sweeping is False

    @pytest.mark.asyncio
    async def test_start_and_stop(self, sweeper_config):
        task = FakeSweepTask("task1")
        scheduler = SweepScheduler(tasks=[task], config=sweeper_config)

        await scheduler.start()
        assert scheduler.is_running is True

        for _ in range(100):
            if task.run_count >= 2:
                break
            await asyncio.sleep(0.01)

        await scheduler.stop()
        assert scheduler.is_running is False
        assert task.run_count >= 2

    @pytest.mark.asyncio
    async def test_loop_waits_one_interval_before_first_run(self):
        task = FakeSweepTask("task1")
        scheduler = SweepScheduler(tasks=[task], config=SweeperConfig(interval_seconds=60))

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert task.run_count == 0

    @pytest.mark.asyncio
    async def test_loop_survives_failing_cycles(self, sweeper_config):
        task = RaisingSweepTask("task1", RuntimeError("boom"))
        scheduler = SweepScheduler(tasks=[task], config=sweeper_config)

        await scheduler.start()
        for _ in range(100):
            if task.run_count >= 2:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert task.run_count >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self, sweeper_config):
        scheduler = SweepScheduler(tasks=[], config=sweeper_config)

        await scheduler.stop()

        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_double_start_keeps_one_loop(self, sweeper_config):
        scheduler = SweepScheduler(tasks=[], config=sweeper_config)

        await scheduler.start()
        first_task = scheduler._task
        await scheduler.start()

        assert scheduler._task is first_task
        await scheduler.stop()


class TestLifecycle:
    """Tests for init/shutdown wiring and the per-cycle session scheduler."""

    @pytest.fixture
    def patch_session(self, monkeypatch: pytest.MonkeyPatch, db_session):
        @asynccontextmanager
        async def fake_get_async_session():
            yield db_session

        monkeypatch.setattr(lifecycle, "get_async_session", fake_get_async_session)

    @pytest.mark.asyncio
    async def test_disabled_scheduler_is_created_but_not_started(self, settings):
        scheduler = await lifecycle.init_sweep_scheduler(settings)

        assert scheduler is not None
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_enabled_scheduler_starts_and_stops(self, settings, patch_session):
        settings.sweeper.enabled = True

        scheduler = await lifecycle.init_sweep_scheduler(settings)
        assert scheduler.is_running is True

        await lifecycle.shutdown_sweep_scheduler(scheduler)
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_shutdown_accepts_none(self):
        await lifecycle.shutdown_sweep_scheduler(None)

    @pytest.mark.asyncio
    async def test_run_on_startup(self, settings, monkeypatch: pytest.MonkeyPatch):
        settings.sweeper.enabled = True
        settings.sweeper.run_on_startup = True
        calls: list[str] = []

        async def fake_run_once(self):
            calls.append("run_once")
            return []

        monkeypatch.setattr(lifecycle.SessionPerCycleSweepScheduler, "run_once", fake_run_once)

        scheduler = await lifecycle.init_sweep_scheduler(settings)
        await lifecycle.shutdown_sweep_scheduler(scheduler)

        assert calls == ["run_once"]

    @pytest.mark.asyncio
    async def test_startup_sweep_failure_does_not_abort_startup(
        self, settings, monkeypatch: pytest.MonkeyPatch
    ):
        settings.sweeper.enabled = True
        settings.sweeper.run_on_startup = True

        async def failing_run_once(self):
            raise RuntimeError("db unavailable")

        monkeypatch.setattr(lifecycle.SessionPerCycleSweepScheduler, "run_once", failing_run_once)

        scheduler = await lifecycle.init_sweep_scheduler(settings)
        assert scheduler.is_running is True
        await lifecycle.shutdown_sweep_scheduler(scheduler)

    @pytest.mark.asyncio
    async def test_cycle_builds_enabled_tasks(self, settings, clock, patch_session):
        settings.sweeper.expired_sessions.enabled = False
        scheduler = lifecycle.SessionPerCycleSweepScheduler(settings, clock=clock)

        results = await scheduler.run_once()

        assert [r.task_name for r in results] == ["out_of_date_keys"]
        assert results[0].success

    @pytest.mark.asyncio
    async def test_cycle_runs_both_tasks(self, settings, clock, patch_session):
        scheduler = lifecycle.SessionPerCycleSweepScheduler(settings, clock=clock)

        results = await scheduler.run_once()

        assert [r.task_name for r in results] == ["out_of_date_keys", "expired_sessions"]

    @pytest.mark.asyncio
    async def test_failed_task_rolls_back_before_next_task(
        self, settings, clock, monkeypatch: pytest.MonkeyPatch
    ):
        events: list[str] = []

        class _Session:
            async def rollback(self):
                events.append("rollback")

        @asynccontextmanager
        async def fake_get_async_session():
            yield _Session()

        class _RecordingSweep(FakeSweepTask):
            async def run(self):
                events.append("expired_sessions")
                return await super().run()

        monkeypatch.setattr(lifecycle, "get_async_session", fake_get_async_session)
        monkeypatch.setattr(
            lifecycle,
            "OutOfDateKeySweep",
            lambda *args, **kwargs: RaisingSweepTask(
                "out_of_date_keys", RuntimeError("database is locked")
            ),
        )
        monkeypatch.setattr(
            lifecycle,
            "ExpiredSessionSweep",
            lambda *args, **kwargs: _RecordingSweep("expired_sessions"),
        )
        scheduler = lifecycle.SessionPerCycleSweepScheduler(settings, clock=clock)

        results = await scheduler.run_once()

        assert events == ["rollback", "expired_sessions"]
        assert results[0].success is False
        assert results[1].success is True

    @pytest.mark.asyncio
    async def test_clean_cycle_does_not_roll_back(
        self, settings, clock, monkeypatch: pytest.MonkeyPatch
    ):
        rollbacks: list[str] = []

        class _Session:
            async def rollback(self):
                rollbacks.append("rollback")

        @asynccontextmanager
        async def fake_get_async_session():
            yield _Session()

        monkeypatch.setattr(lifecycle, "get_async_session", fake_get_async_session)
        monkeypatch.setattr(
            lifecycle, "OutOfDateKeySweep", lambda *a, **kw: FakeSweepTask("out_of_date_keys")
        )
        monkeypatch.setattr(
            lifecycle, "ExpiredSessionSweep", lambda *a, **kw: FakeSweepTask("expired_sessions")
        )
        scheduler = lifecycle.SessionPerCycleSweepScheduler(settings, clock=clock)

        await scheduler.run_once()

        assert rollbacks == []
