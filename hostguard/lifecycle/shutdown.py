"""Graceful shutdown: stop children, run cleanups, release the run lock."""

import asyncio
import inspect
import os
import signal
from typing import Any, Callable, List, Optional, Tuple

import structlog


logger = structlog.get_logger()

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGHUP)


class ShutdownCoordinator:
    """
    Ordered teardown for the whole process.

    1. SIGTERM every outstanding child process group, newest first,
       wait up to ``child_grace_seconds``, then SIGKILL survivors.
    2. Run cleanup callbacks in reverse registration order; callbacks
       still pending when ``timeout_seconds`` has elapsed are skipped.
    3. Release every registered run lock.

    The sequence runs at most once.
    """

    def __init__(self, timeout_seconds: float = 30.0, child_grace_seconds: float = 5.0):
        self._timeout = timeout_seconds
        self._child_grace = child_grace_seconds
        self._children: List[Any] = []
        self._cleanups: List[Tuple[str, Callable]] = []
        self._locks: List[Any] = []
        self._started = False
        self._done = asyncio.Event()

    @property
    def shutting_down(self) -> bool:
        return self._started

    def register_child(self, process):
        """Track a child started with its own session (pgid == pid)."""
        self._children.append(process)

    def unregister_child(self, process):
        try:
            self._children.remove(process)
        except ValueError:
            pass

    def add_cleanup(self, name: str, callback: Callable):
        """Register a sync or async callback to run on shutdown."""
        self._cleanups.append((name, callback))

    def add_lock(self, lock):
        self._locks.append(lock)

    async def wait(self):
        """Wait until a shutdown has completed."""
        await self._done.wait()

    async def shutdown(self, reason: str = "requested"):
        if self._started:
            await self._done.wait()
            return
        self._started = True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        logger.info("Shutting down", reason=reason, children=len(self._children), cleanups=len(self._cleanups))

        try:
            await self._stop_children()
            await self._run_cleanups(deadline)
        finally:
            for lock in reversed(self._locks):
                try:
                    lock.release()
                except OSError as e:
                    logger.error("Failed to release run lock", error=str(e))
            self._done.set()
            logger.info("Shutdown complete", reason=reason)

    async def _stop_children(self):
        children = [p for p in reversed(self._children) if p.returncode is None]
        if not children:
            return

        for process in children:
            _signal_group(process, signal.SIGTERM)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._child_grace
        for process in children:
            remaining = deadline - loop.time()
            if remaining > 0 and process.returncode is None:
                try:
                    await asyncio.wait_for(process.wait(), remaining)
                except asyncio.TimeoutError:
                    pass

        for process in children:
            if process.returncode is None:
                logger.warning("Child ignored SIGTERM, killing", pid=process.pid)
                _signal_group(process, signal.SIGKILL)
                await process.wait()
            self.unregister_child(process)

    async def _run_cleanups(self, deadline: float):
        loop = asyncio.get_running_loop()
        pending = list(reversed(self._cleanups))
        for index, (name, callback) in enumerate(pending):
            remaining = deadline - loop.time()
            if remaining <= 0:
                skipped = [n for n, _ in pending[index:]]
                logger.warning("Shutdown timeout exceeded, skipping cleanups", skipped=skipped)
                return
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await asyncio.wait_for(result, remaining)
                logger.debug("Cleanup finished", cleanup=name)
            except asyncio.TimeoutError:
                logger.warning("Cleanup timed out", cleanup=name)
            except Exception as e:
                logger.error("Cleanup failed", cleanup=name, error=str(e))


def _signal_group(process, sig: int):
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        pass
    except PermissionError:
        # Not a group leader we own; fall back to the process itself.
        try:
            os.kill(process.pid, sig)
        except ProcessLookupError:
            pass


def install_signal_handlers(
    coordinator: ShutdownCoordinator,
    on_signal: Optional[Callable[[str], None]] = None,
    loop: Optional[asyncio.AbstractEventLoop] = None,
):
    """Run the coordinator on SIGTERM, SIGINT or SIGHUP."""
    loop = loop or asyncio.get_running_loop()

    def _handle(sig: signal.Signals):
        logger.info("Signal received", signal=sig.name)
        if on_signal is not None:
            on_signal(sig.name)
        loop.create_task(coordinator.shutdown(reason=sig.name))

    for sig in SHUTDOWN_SIGNALS:
        loop.add_signal_handler(sig, _handle, sig)
