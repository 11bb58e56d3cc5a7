"""Host metrics via psutil and container health via the docker CLI."""

import asyncio
import json
import shutil
import socket
from datetime import datetime
from typing import Dict, List, Optional

import psutil
import structlog

from hostguard.models.alert import ContainerHealth, SystemMetrics


logger = structlog.get_logger()

CONTAINER_RESOURCE_LIMIT = 90.0
# Pseudo and read-only filesystems never worth alerting on
_SKIP_FSTYPES = {"tmpfs", "devtmpfs", "squashfs", "overlay", "iso9660", "proc", "sysfs"}


class SystemCollector:
    """Collects a metrics snapshot of the local host."""

    def __init__(self, hostname: str = "", cpu_sample_seconds: float = 1.0):
        self.hostname = hostname or socket.gethostname()
        self._cpu_sample_seconds = cpu_sample_seconds

    def _disks(self) -> Dict[str, float]:
        disks = {}
        for part in psutil.disk_partitions(all=False):
            if part.fstype in _SKIP_FSTYPES or not part.device.startswith("/dev/"):
                continue
            try:
                disks[part.mountpoint] = psutil.disk_usage(part.mountpoint).percent
            except (PermissionError, OSError):
                continue
        if "/" not in disks:
            try:
                disks["/"] = psutil.disk_usage("/").percent
            except OSError:
                pass
        return disks

    def _snapshot(self) -> SystemMetrics:
        cpu_percent = psutil.cpu_percent(interval=self._cpu_sample_seconds)
        mem = psutil.virtual_memory()
        try:
            load1, load5, load15 = psutil.getloadavg()
        except (AttributeError, OSError):
            load1 = load5 = load15 = 0.0

        return SystemMetrics(
            hostname=self.hostname,
            timestamp=datetime.utcnow(),
            cpu_percent=cpu_percent,
            memory_percent=mem.percent,
            memory_available_percent=mem.available * 100.0 / mem.total if mem.total else 100.0,
            disks=self._disks(),
            load_1m=load1,
            load_5m=load5,
            load_15m=load15,
            cpu_count=psutil.cpu_count(logical=True) or 1,
        )

    async def collect_metrics(self) -> SystemMetrics:
        return await asyncio.to_thread(self._snapshot)

    async def collect_container_health(self) -> ContainerHealth:
        """Stopped, unhealthy or resource-hungry containers. Empty when docker is absent."""
        if shutil.which("docker") is None:
            return ContainerHealth()

        unhealthy: List[Dict[str, str]] = []
        seen = set()

        for row in await _docker_json("ps", "-a", "--format", "{{json .}}"):
            name = row.get("Names", "")
            state = row.get("State", "")
            status = row.get("Status", "")
            if state and state != "running":
                unhealthy.append({"name": name, "reason": "not_running", "state": state})
                seen.add(name)
            elif "(unhealthy)" in status:
                unhealthy.append({"name": name, "reason": "health_check_failed", "state": "running"})
                seen.add(name)

        for row in await _docker_json("stats", "--no-stream", "--format", "{{json .}}"):
            name = row.get("Name", "")
            if name in seen:
                continue
            cpu = _percent(row.get("CPUPerc"))
            mem = _percent(row.get("MemPerc"))
            if cpu > CONTAINER_RESOURCE_LIMIT or mem > CONTAINER_RESOURCE_LIMIT:
                unhealthy.append({"name": name, "reason": "high_resource_usage"})

        return ContainerHealth(unhealthy=unhealthy)


async def _docker_json(*args: str) -> List[Dict[str, str]]:
    try:
        proc = await asyncio.create_subprocess_exec(
            "docker",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        stdout, _ = await asyncio.wait_for(proc.communicate(), 60)
    except (OSError, asyncio.TimeoutError) as e:
        logger.warning("docker query failed", args=args, error=str(e))
        return []
    if proc.returncode != 0:
        return []

    rows = []
    for line in stdout.decode(errors="replace").splitlines():
        try:
            rows.append(json.loads(line))
        except ValueError:
            continue
    return rows


def _percent(value: Optional[str]) -> float:
    try:
        return float(str(value or "0").rstrip("%"))
    except ValueError:
        return 0.0
