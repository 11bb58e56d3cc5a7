"""Restart a Docker container or a systemd service."""

import asyncio
import shlex
import shutil
from typing import Optional, Sequence, Tuple

from hostguard.remediation.actions.base import RemediationAction
from hostguard.remediation.runner import CommandOutcome

START_WAIT_SECONDS = 30


class RestartServiceAction(RemediationAction):
    name = "restart-service"
    description = "Restart a Docker container or systemd service"

    async def _is_container(self, target: str) -> bool:
        if shutil.which("docker") is None:
            return False
        outcome = await self.runner.run(f"docker inspect --type container {shlex.quote(target)}", timeout=30)
        return outcome.ok

    async def _is_unit(self, target: str) -> bool:
        if shutil.which("systemctl") is None:
            return False
        outcome = await self.runner.run(f"systemctl cat {shlex.quote(target)}", timeout=30)
        return outcome.ok

    async def validate(self, target: str, args: Sequence[str] = ()) -> Tuple[bool, str]:
        if not target:
            return False, "a container or service name is required"
        if await self._is_container(target) or await self._is_unit(target):
            return True, "ok"
        return False, f"no container or systemd service named {target}"

    async def execute(self, target: str, args: Sequence[str] = ()) -> CommandOutcome:
        name = shlex.quote(target)
        if not await self._is_container(target):
            return await self.runner.run_all([f"systemctl restart {name}", f"systemctl status --no-pager {name}"])

        outcome = await self.runner.run_all([f"docker stop -t 30 {name}", f"docker start {name}"])
        if not outcome.ok:
            return outcome

        for _ in range(START_WAIT_SECONDS):
            state = await self.runner.run(f"docker inspect -f '{{{{.State.Running}}}}' {name}")
            if state.output.strip() == "true":
                outcome.output += f"\ncontainer {target} is running"
                return outcome
            await asyncio.sleep(1)

        return CommandOutcome(1, outcome.output + f"\ncontainer {target} did not reach running state")

    async def verify(self, target: str) -> Optional[Tuple[bool, str]]:
        name = shlex.quote(target)
        if await self._is_container(target):
            state = await self.runner.run(
                f"docker inspect -f '{{{{.State.Running}}}} {{{{if .State.Health}}}}{{{{.State.Health.Status}}}}{{{{end}}}}' {name}"
            )
            running, _, health = state.output.strip().partition(" ")
            if running != "true":
                return False, f"container {target} is not running"
            if health == "unhealthy":
                return False, f"container {target} is unhealthy"
            return True, f"container {target} running{' (' + health + ')' if health else ''}"

        active = await self.runner.run(f"systemctl is-active {name}")
        if active.ok:
            return True, f"service {target} active"
        return False, f"service {target} is {active.output.strip() or 'inactive'}"
