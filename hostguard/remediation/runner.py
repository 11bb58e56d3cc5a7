"""Shell command runner used by remediation actions."""

import asyncio
import os
import signal
import time
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog

from hostguard.errors import UnsafeCommandError
from hostguard.remediation.safety import SafetyValidator


logger = structlog.get_logger()

TIMEOUT_EXIT_CODE = 124
MAX_OUTPUT_CHARS = 64 * 1024


@dataclass
class CommandOutcome:
    """Exit code and combined stdout/stderr of a command or script."""
    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """
    Runs shell commands for remediation actions.

    Every command is checked against the deny-list first. Each child
    gets its own session so the whole process group can be killed on
    timeout, cancellation or shutdown.
    """

    def __init__(self, safety: SafetyValidator, coordinator=None):
        self._safety = safety
        self._coordinator = coordinator

    async def run(self, command: str, timeout: Optional[float] = None) -> CommandOutcome:
        """
        Run one command through ``/bin/sh``.

        Raises:
            UnsafeCommandError: if the command matches the deny-list
        """
        verdict = self._safety.validate_command(command)
        if not verdict.allowed:
            raise UnsafeCommandError(command, verdict.kind.value, verdict.pattern)

        logger.debug("Running command", command=command)
        start = time.monotonic()
        proc = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=True,
        )
        if self._coordinator is not None:
            self._coordinator.register_child(proc)

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            await _kill_group(proc)
            logger.warning("Command timed out", command=command, timeout=timeout)
            return CommandOutcome(TIMEOUT_EXIT_CODE, f"command timed out after {timeout}s")
        except asyncio.CancelledError:
            await _kill_group(proc)
            raise
        finally:
            if self._coordinator is not None:
                self._coordinator.unregister_child(proc)

        output = stdout.decode(errors="replace")[-MAX_OUTPUT_CHARS:]
        logger.debug(
            "Command finished",
            command=command,
            exit_code=proc.returncode,
            duration=round(time.monotonic() - start, 3),
        )
        return CommandOutcome(proc.returncode, output)

    async def run_all(
        self,
        commands: Iterable[str],
        stop_on_error: bool = True,
        timeout: Optional[float] = None,
    ) -> CommandOutcome:
        """Run commands in order, stopping at the first failure unless told not to."""
        lines = []
        exit_code = 0
        for command in commands:
            outcome = await self.run(command, timeout=timeout)
            lines.append(f"$ {command}")
            if outcome.output:
                lines.append(outcome.output.rstrip())
            if not outcome.ok:
                lines.append(f"(exit {outcome.exit_code})")
                exit_code = outcome.exit_code
                if stop_on_error:
                    break
        return CommandOutcome(exit_code, "\n".join(lines))


async def _kill_group(proc):
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    await proc.wait()
