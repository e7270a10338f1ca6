"""Tests for BackgroundScheduler jobs with mocked caches."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pricesync.config import Settings
from pricesync.exceptions import SnapshotUnavailableError
from pricesync.workers.scheduler import BackgroundScheduler


class _StopLoop(BaseException):
    pass


@pytest.fixture()
def settings():
    return Settings(
        warmup_attempts=3,
        warmup_retry_delay=60,
        preload_coins=["bitcoin", "ethereum"],
        preload_spacing=2.5,
        prewarm_pairs=[("bitcoin", "ethereum"), ("solana", "tron")],
    )


@pytest.fixture()
def snapshots():
    mock = MagicMock()
    mock.get_snapshot = AsyncMock()
    mock.has_snapshot = MagicMock(return_value=False)
    return mock


@pytest.fixture()
def pairs():
    mock = MagicMock()
    mock.refresh_preload = AsyncMock()
    return mock


@pytest.fixture()
def queue():
    mock = MagicMock()
    mock.run_once = AsyncMock(return_value=None)
    return mock


@pytest.fixture()
def scheduler(settings, snapshots, pairs, queue, sleep):
    return BackgroundScheduler(settings, snapshots, pairs, queue, sleep=sleep)


class TestWarmUp:
    async def test_succeeds_after_retry(self, scheduler, snapshots, sleep):
        snapshots.get_snapshot.side_effect = [SnapshotUnavailableError("down"), MagicMock()]

        assert await scheduler.warm_up() is True
        assert snapshots.get_snapshot.call_count == 2
        snapshots.get_snapshot.assert_called_with(force=True)
        assert sleep.calls == [60]

    async def test_gives_up_after_max_attempts(self, scheduler, snapshots, sleep):
        snapshots.get_snapshot.side_effect = SnapshotUnavailableError("down")

        assert await scheduler.warm_up() is False
        assert snapshots.get_snapshot.call_count == 3
        assert sleep.calls == [60, 60]


class TestJobs:
    async def test_preload_all_spaced(self, scheduler, pairs, sleep):
        await scheduler.preload_all()

        assert [c.args[0] for c in pairs.refresh_preload.call_args_list] == ["bitcoin", "ethereum"]
        assert sleep.calls == [2.5, 2.5]

    async def test_prewarm_enqueues_configured_pairs(self, scheduler, queue):
        await scheduler.prewarm_pairs()

        assert [c.args for c in queue.enqueue.call_args_list] == [("bitcoin", "ethereum"), ("solana", "tron")]

    async def test_cache_check_skips_when_ready(self, scheduler, snapshots, pairs):
        snapshots.has_snapshot.return_value = True

        await scheduler.check_cache()

        snapshots.get_snapshot.assert_not_called()
        pairs.refresh_preload.assert_not_called()

    async def test_cache_check_warms_empty_cache(self, scheduler, snapshots, pairs):
        await scheduler.check_cache()

        snapshots.get_snapshot.assert_called_once_with(force=True)
        assert pairs.refresh_preload.call_count == 2


class TestLifecycle:
    async def test_start_and_stop(self, settings, snapshots, pairs, queue):
        scheduler = BackgroundScheduler(settings, snapshots, pairs, queue)

        scheduler.start()
        assert scheduler.running

        await scheduler.stop()
        assert not scheduler.running

    async def test_failing_job_does_not_stop_loop(self, scheduler, queue, sleep):
        calls = 0

        async def job():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            if calls == 3:
                raise _StopLoop

        with pytest.raises(_StopLoop):
            await scheduler._every(15, job)
        assert calls == 3
        assert sleep.calls == [15, 15, 15]
