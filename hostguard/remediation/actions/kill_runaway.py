"""Terminate long-running processes that hog CPU or memory."""

import asyncio
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import psutil
import structlog

from hostguard.errors import ExecutionFailure
from hostguard.remediation.actions.base import RemediationAction
from hostguard.remediation.runner import CommandOutcome


logger = structlog.get_logger()

CPU_THRESHOLD = 90.0
MEM_THRESHOLD = 50.0
RUNTIME_THRESHOLD = 3600
MAX_KILLS_PER_RUN = 3
SAMPLE_SECONDS = 1.0

PROTECTED_PROCESSES = frozenset({
    "init", "systemd", "dockerd", "containerd", "sshd", "bash", "sh", "zsh",
    "journald", "systemd-journald", "rsyslogd", "cron", "crond", "udevd",
    "systemd-udevd", "dbus-daemon", "NetworkManager", "postgres", "mysql",
    "mysqld", "redis-server", "nginx", "apache2", "httpd",
})


@dataclass
class RunawayProcess:
    pid: int
    name: str
    cpu_percent: float
    memory_percent: float
    runtime_seconds: float


def is_protected(name: str) -> bool:
    return name in PROTECTED_PROCESSES


async def find_runaway_processes(
    cpu_threshold: float = CPU_THRESHOLD,
    mem_threshold: float = MEM_THRESHOLD,
    runtime_threshold: float = RUNTIME_THRESHOLD,
) -> List[RunawayProcess]:
    """Unprotected processes over the CPU or memory limit for longer than the runtime limit."""
    procs = list(psutil.process_iter(["pid", "name", "create_time"]))
    for proc in procs:
        try:
            proc.cpu_percent(None)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
    await asyncio.sleep(SAMPLE_SECONDS)

    now = time.time()
    found = []
    for proc in procs:
        try:
            cpu = proc.cpu_percent(None)
            mem = proc.memory_percent()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        name = proc.info.get("name") or ""
        runtime = now - (proc.info.get("create_time") or now)
        if (cpu > cpu_threshold or mem > mem_threshold) and runtime > runtime_threshold:
            if not is_protected(name):
                found.append(RunawayProcess(proc.pid, name, cpu, mem, runtime))

    found.sort(key=lambda p: p.cpu_percent, reverse=True)
    return found


class KillRunawayAction(RemediationAction):
    name = "kill-runaway"
    description = "Terminate runaway processes (SIGTERM, then SIGKILL)"

    def __init__(self, runner, grace_seconds: float = 2.0):
        super().__init__(runner)
        self._grace = grace_seconds

    async def validate(self, target: str, args: Sequence[str] = ()) -> Tuple[bool, str]:
        if target and target.isdigit() and not psutil.pid_exists(int(target)):
            return False, f"no process with PID {target}"
        return True, "ok"

    async def _terminate(self, proc: psutil.Process) -> bool:
        try:
            proc.terminate()
            _, alive = await asyncio.to_thread(psutil.wait_procs, [proc], self._grace)
            for p in alive:
                p.kill()
            return True
        except psutil.NoSuchProcess:
            return True
        except psutil.AccessDenied:
            return False

    async def execute(self, target: str, args: Sequence[str] = ()) -> CommandOutcome:
        lines = []
        killed = failed = 0

        if target:
            if target.isdigit():
                try:
                    candidates = [psutil.Process(int(target))]
                except psutil.NoSuchProcess:
                    raise ExecutionFailure(f"no process with PID {target}")
            else:
                candidates = [p for p in psutil.process_iter(["name"]) if p.info.get("name") == target]
                if not candidates:
                    raise ExecutionFailure(f"no process named {target}")
            for proc in candidates:
                try:
                    name = proc.name()
                except psutil.NoSuchProcess:
                    continue
                if is_protected(name):
                    raise ExecutionFailure(f"{name} (PID {proc.pid}) is a protected process")
        else:
            runaway = await find_runaway_processes()
            if not runaway:
                return CommandOutcome(0, "no runaway processes detected")
            candidates = []
            for item in runaway[:MAX_KILLS_PER_RUN]:
                lines.append(f"PID {item.pid} {item.name}: cpu {item.cpu_percent:.0f}% mem {item.memory_percent:.0f}%")
                try:
                    candidates.append(psutil.Process(item.pid))
                except psutil.NoSuchProcess:
                    continue

        for proc in candidates:
            if await self._terminate(proc):
                killed += 1
                lines.append(f"terminated PID {proc.pid}")
            else:
                failed += 1
                lines.append(f"could not signal PID {proc.pid}")

        lines.append(f"terminated {killed}, failed {failed}")
        logger.info("Runaway processes handled", killed=killed, failed=failed, target=target or None)
        return CommandOutcome(1 if failed else 0, "\n".join(lines))

    async def verify(self, target: str) -> Optional[Tuple[bool, str]]:
        if target and target.isdigit():
            if psutil.pid_exists(int(target)):
                return False, f"PID {target} is still running"
            return True, f"PID {target} terminated"

        remaining = await find_runaway_processes()
        if remaining:
            return False, f"{len(remaining)} runaway processes remain"
        return True, "no runaway processes"
