"""Cross-process run lock built on flock(2)."""

import asyncio
import fcntl
import os
import time
from pathlib import Path
from typing import IO, Optional, Union

import structlog


logger = structlog.get_logger()


class RunLock:
    """
    Exclusive advisory lock on a file.

    Every RunLock instance opens its own file description, so two
    instances on the same path exclude each other even inside one
    process. The kernel drops the lock when the holder dies.
    """

    def __init__(self, path: Union[str, Path], poll_interval: float = 0.1):
        self.path = Path(path)
        self._poll_interval = poll_interval
        self._file: Optional[IO] = None

    @property
    def held(self) -> bool:
        return self._file is not None

    def _try_lock(self) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        f = open(self.path, "a+")
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            f.close()
            return False
        except OSError:
            f.close()
            raise

        f.seek(0)
        f.truncate()
        f.write(f"{os.getpid()}\n")
        f.flush()
        self._file = f
        return True

    def acquire(self, timeout: float = 30.0) -> bool:
        """
        Block up to *timeout* seconds for the lock.

        Returns False on contention; the caller must skip its work.
        """
        if self.held:
            return True

        deadline = time.monotonic() + timeout
        while True:
            if self._try_lock():
                logger.debug("Run lock acquired", path=str(self.path))
                return True
            if time.monotonic() >= deadline:
                logger.warning("Run lock busy", path=str(self.path), timeout=timeout)
                return False
            time.sleep(self._poll_interval)

    async def acquire_async(self, timeout: float = 30.0) -> bool:
        """Same as :meth:`acquire` without blocking the event loop."""
        if self.held:
            return True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if self._try_lock():
                logger.debug("Run lock acquired", path=str(self.path))
                return True
            if loop.time() >= deadline:
                logger.warning("Run lock busy", path=str(self.path), timeout=timeout)
                return False
            await asyncio.sleep(self._poll_interval)

    def release(self):
        """Release the lock. Safe to call when not held."""
        f, self._file = self._file, None
        if f is None:
            return
        try:
            f.seek(0)
            f.truncate()
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        finally:
            f.close()
        logger.debug("Run lock released", path=str(self.path))

    def holder_pid(self) -> Optional[int]:
        """PID written by the current holder, if any."""
        try:
            content = self.path.read_text().strip()
        except FileNotFoundError:
            return None
        return int(content) if content.isdigit() else None

    def __enter__(self):
        if not self.acquire():
            raise TimeoutError(f"Could not acquire run lock {self.path}")
        return self

    def __exit__(self, *exc):
        self.release()
