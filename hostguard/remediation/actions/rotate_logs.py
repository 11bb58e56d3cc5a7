"""Force log rotation and trim oversized or stale logs."""

import shlex
import shutil
from typing import Optional, Sequence, Tuple

import psutil

from hostguard.remediation.actions.base import RemediationAction
from hostguard.remediation.runner import CommandOutcome

DEFAULT_LOG_DIR = "/var/log"
RETENTION_DAYS = 7
LARGE_LOG_SIZE = "+100M"
KEEP_LINES = 1000
JOURNAL_MAX_SIZE = "500M"
TARGET_DISK_PERCENT = 90.0


class RotateLogsAction(RemediationAction):
    name = "rotate-logs"
    description = "Rotate logs, delete old archives and truncate oversized log files"

    async def validate(self, target: str, args: Sequence[str] = ()) -> Tuple[bool, str]:
        if shutil.which("find") is None:
            return False, "find is not available"
        return True, "ok"

    async def execute(self, target: str, args: Sequence[str] = ()) -> CommandOutcome:
        log_dir = shlex.quote(target or DEFAULT_LOG_DIR)
        commands = []
        if shutil.which("logrotate"):
            commands.append("logrotate -f /etc/logrotate.conf")
        commands.append(
            f"find {log_dir} -type f \\( -name '*.gz' -o -name '*.[0-9]' -o -name '*.old' \\) "
            f"-mtime +{RETENTION_DAYS} -print -delete"
        )
        commands.append(
            f"find {log_dir} -type f -name '*.log' -size {LARGE_LOG_SIZE} -print "
            f"-exec sh -c 'tail -n {KEEP_LINES} \"$1\" > \"$1.tmp\" && cat \"$1.tmp\" > \"$1\"; rm -f \"$1.tmp\"' _ {{}} \\;"
        )
        if shutil.which("journalctl"):
            commands.append(f"journalctl --vacuum-size={JOURNAL_MAX_SIZE}")
        return await self.runner.run_all(commands, stop_on_error=False)

    async def verify(self, target: str) -> Optional[Tuple[bool, str]]:
        usage = psutil.disk_usage("/").percent
        if usage >= TARGET_DISK_PERCENT:
            return False, f"root filesystem still at {usage:.1f}%"
        return True, f"root filesystem at {usage:.1f}%"
