"""Drop the kernel page cache, dentries and inodes."""

import os
import platform
from typing import Optional, Sequence, Tuple

import psutil

from hostguard.remediation.actions.base import RemediationAction
from hostguard.remediation.runner import CommandOutcome

# target -> value written to /proc/sys/vm/drop_caches
DROP_LEVELS = {
    "pagecache": 1,
    "dentries": 2,
    "inodes": 2,
    "all": 3,
}


class ClearCacheAction(RemediationAction):
    name = "clear-cache"
    description = "Flush dirty pages and drop kernel caches"

    async def validate(self, target: str, args: Sequence[str] = ()) -> Tuple[bool, str]:
        if platform.system() == "Darwin":
            return True, "ok"
        if os.geteuid() != 0:
            return False, "dropping caches requires root"
        if not os.path.exists("/proc/sys/vm/drop_caches"):
            return False, "/proc/sys/vm/drop_caches not available"
        return True, "ok"

    async def execute(self, target: str, args: Sequence[str] = ()) -> CommandOutcome:
        if platform.system() == "Darwin":
            return await self.runner.run_all(["sync", "purge"])

        level = DROP_LEVELS.get(target or "all", 3)
        before = psutil.virtual_memory().available
        outcome = await self.runner.run_all(["sync", f"echo {level} > /proc/sys/vm/drop_caches"])
        freed_mb = (psutil.virtual_memory().available - before) / (1024 * 1024)
        outcome.output += f"\ndrop_caches={level}, available memory changed by {freed_mb:.0f} MB"
        return outcome

    async def verify(self, target: str) -> Optional[Tuple[bool, str]]:
        mem = psutil.virtual_memory()
        # Informational: dropping caches cannot fail a post-condition.
        return True, f"available memory {mem.available // (1024 * 1024)} MB ({100 - mem.percent:.1f}%)"
