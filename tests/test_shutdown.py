"""Tests for graceful shutdown."""

import asyncio
import signal

import pytest

from hostguard.lifecycle.shutdown import ShutdownCoordinator, install_signal_handlers
from hostguard.state.lock import RunLock


class TestShutdownCoordinator:
    """Test cases for ShutdownCoordinator."""

    @pytest.mark.asyncio
    async def test_cleanups_run_in_reverse_order(self):
        coordinator = ShutdownCoordinator()
        calls = []

        async def stop_loops():
            calls.append("loops")

        coordinator.add_cleanup("first", lambda: calls.append("first"))
        coordinator.add_cleanup("loops", stop_loops)
        coordinator.add_cleanup("last", lambda: calls.append("last"))

        await coordinator.shutdown("test")

        assert calls == ["last", "loops", "first"]
        assert coordinator.shutting_down

    @pytest.mark.asyncio
    async def test_runs_once(self):
        coordinator = ShutdownCoordinator()
        calls = []
        coordinator.add_cleanup("count", lambda: calls.append(1))

        await coordinator.shutdown("first")
        await coordinator.shutdown("second")

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_failing_cleanup_does_not_stop_the_rest(self):
        coordinator = ShutdownCoordinator()
        calls = []

        def broken():
            raise RuntimeError("boom")

        coordinator.add_cleanup("after", lambda: calls.append("after"))
        coordinator.add_cleanup("broken", broken)

        await coordinator.shutdown()

        assert calls == ["after"]

    @pytest.mark.asyncio
    async def test_timeout_skips_remaining_cleanups(self):
        """Once the deadline passes, pending cleanups are skipped."""
        coordinator = ShutdownCoordinator(timeout_seconds=0.1)
        calls = []

        async def slow():
            calls.append("slow")
            await asyncio.sleep(1)

        coordinator.add_cleanup("skipped", lambda: calls.append("skipped"))
        coordinator.add_cleanup("slow", slow)

        await coordinator.shutdown()

        assert calls == ["slow"]

    @pytest.mark.asyncio
    async def test_locks_released_last(self, tmp_path):
        coordinator = ShutdownCoordinator()
        lock = RunLock(tmp_path / "hostguard.lock")
        assert lock.acquire(0.1)
        coordinator.add_lock(lock)
        held_during_cleanup = []
        coordinator.add_cleanup("check", lambda: held_during_cleanup.append(lock.held))

        await coordinator.shutdown()

        assert held_during_cleanup == [True]
        assert not lock.held
        other = RunLock(tmp_path / "hostguard.lock")
        assert other.acquire(0.1)
        other.release()

    @pytest.mark.asyncio
    async def test_locks_released_even_if_cleanup_times_out(self, tmp_path):
        coordinator = ShutdownCoordinator(timeout_seconds=0.05)
        lock = RunLock(tmp_path / "hostguard.lock")
        assert lock.acquire(0.1)
        coordinator.add_lock(lock)
        coordinator.add_cleanup("hang", lambda: asyncio.sleep(5))

        await coordinator.shutdown()

        assert not lock.held

    @pytest.mark.asyncio
    async def test_children_terminated(self):
        """Outstanding child process groups get SIGTERM before cleanups run."""
        coordinator = ShutdownCoordinator(child_grace_seconds=2)
        proc = await asyncio.create_subprocess_exec("sleep", "30", start_new_session=True)
        coordinator.register_child(proc)

        await coordinator.shutdown()

        assert proc.returncode == -signal.SIGTERM

    @pytest.mark.asyncio
    async def test_stubborn_child_killed(self):
        coordinator = ShutdownCoordinator(child_grace_seconds=0.3)
        proc = await asyncio.create_subprocess_exec(
            "sh", "-c", "trap '' TERM; sleep 30",
            start_new_session=True,
        )
        await asyncio.sleep(0.1)
        coordinator.register_child(proc)

        await coordinator.shutdown()

        assert proc.returncode == -signal.SIGKILL

    @pytest.mark.asyncio
    async def test_wait_returns_after_shutdown(self):
        coordinator = ShutdownCoordinator()
        waiter = asyncio.create_task(coordinator.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        await coordinator.shutdown()
        await asyncio.wait_for(waiter, 1)

    @pytest.mark.asyncio
    async def test_signal_triggers_shutdown(self):
        coordinator = ShutdownCoordinator()
        seen = []
        loop = asyncio.get_running_loop()
        install_signal_handlers(coordinator, on_signal=seen.append)
        try:
            signal.raise_signal(signal.SIGHUP)
            await asyncio.wait_for(coordinator.wait(), 1)
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT, signal.SIGHUP):
                loop.remove_signal_handler(sig)

        assert seen == ["SIGHUP"]
        assert coordinator.shutting_down
