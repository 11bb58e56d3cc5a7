"""Reclaim disk space held by unused Docker objects."""

import shutil
from typing import Optional, Sequence, Tuple

from hostguard.remediation.actions.base import RemediationAction
from hostguard.remediation.runner import CommandOutcome

PRUNE_COMMANDS = {
    "containers": ["docker container prune -f"],
    "images": ["docker image prune -f", 'docker image prune -a -f --filter "until=720h"'],
    "volumes": ["docker volume prune -f"],
    "networks": ["docker network prune -f"],
    "builder": ["docker builder prune -f"],
}


class DockerPruneAction(RemediationAction):
    name = "docker-prune"
    description = "Remove stopped containers, dangling images, unused volumes and build cache"

    async def validate(self, target: str, args: Sequence[str] = ()) -> Tuple[bool, str]:
        if shutil.which("docker") is None:
            return False, "docker is not installed"
        info = await self.runner.run("docker info", timeout=30)
        if not info.ok:
            return False, "docker daemon is not running"
        if target and target not in PRUNE_COMMANDS and target != "all":
            return False, f"unknown prune target: {target}"
        return True, "ok"

    async def execute(self, target: str, args: Sequence[str] = ()) -> CommandOutcome:
        if target and target in PRUNE_COMMANDS:
            commands = PRUNE_COMMANDS[target]
        else:
            commands = [c for group in PRUNE_COMMANDS.values() for c in group]
        commands = ["docker system df"] + commands + ["docker system df"]
        return await self.runner.run_all(commands, stop_on_error=False)

    async def verify(self, target: str) -> Optional[Tuple[bool, str]]:
        info = await self.runner.run("docker info", timeout=30)
        if not info.ok:
            return False, "docker daemon not responding after prune"
        return True, "docker daemon healthy"
