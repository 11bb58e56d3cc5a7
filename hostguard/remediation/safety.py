"""
Safety validation for unattended remediation.

Decides whether a named action may run without human sign-off, and
whether a raw shell command is categorically forbidden. The deny-list
is defense in depth: it stops known-destructive commands but is not a
security boundary and can never be complete.
"""

import re
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

import psutil
import structlog

from hostguard.models.execution import RiskLevel


logger = structlog.get_logger()

LOW_RISK_ACTIONS = ("clear-cache", "docker-prune", "rotate-logs")
MEDIUM_RISK_ACTIONS = ("restart-service", "kill-runaway")
HIGH_RISK_ACTIONS = ("restart-docker", "reboot")

# Stability limits
MAX_LOAD_RATIO = 3.0
MIN_MEM_FREE_PERCENT = 5.0
MAX_ROOT_DISK_PERCENT = 98.0
OOM_WINDOW = "5 minutes ago"
_OOM_RE = re.compile(r"oom-killer|Out of memory")


class DangerKind(str, Enum):
    """Category of a forbidden command."""
    RECURSIVE_DELETE = "recursive_delete"
    RECURSIVE_PERMISSION = "recursive_permission"
    FILESYSTEM_FORMAT = "filesystem_format"
    DEVICE_WIPE = "device_wipe"
    FORK_BOMB = "fork_bomb"
    REMOTE_EXECUTION = "remote_execution"
    POWER_STATE = "power_state"
    BLOCK_DEVICE_WRITE = "block_device_write"
    CUSTOM = "custom"


_SYSTEM_DIRS = r"(?:/|/\*|/(?:etc|var|usr|home|root|boot)(?:/\*?)?)"
_END = r"(?=$|[\s;&|)])"

# Evaluated top to bottom, first match wins.
DANGEROUS_PATTERNS: List[Tuple[DangerKind, str]] = [
    (DangerKind.RECURSIVE_DELETE,
     r"\brm\s+(?:-\S+\s+)*-[a-zA-Z]*[rR][a-zA-Z]*\s+(?:-\S+\s+)*" + _SYSTEM_DIRS + _END),
    (DangerKind.RECURSIVE_DELETE,
     r"\brm\s+(?:-\S+\s+)*--recursive\s+(?:-\S+\s+)*" + _SYSTEM_DIRS + _END),
    (DangerKind.RECURSIVE_PERMISSION, r"\bchmod\s+(?:-\S+\s+)*-[a-zA-Z]*R[a-zA-Z]*\s+(?:\S+\s+)?/" + _END),
    (DangerKind.RECURSIVE_PERMISSION, r"\bchmod\s+(?:\S+\s+)*777\s+/" + _END),
    (DangerKind.RECURSIVE_PERMISSION, r"\bchown\s+(?:-\S+\s+)*-[a-zA-Z]*R[a-zA-Z]*\s+\S+\s+/" + _END),
    (DangerKind.FILESYSTEM_FORMAT, r"\bmkfs(?:\.\w+)?\b"),
    (DangerKind.DEVICE_WIPE, r"\bdd\s+.*\bif=/dev/(?:zero|u?random)\b"),
    (DangerKind.DEVICE_WIPE, r"\bdd\s+.*\bof=/dev/(?:sd|hd|vd|xvd|nvme|mmcblk)"),
    (DangerKind.FORK_BOMB, r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:"),
    (DangerKind.REMOTE_EXECUTION, r"\b(?:curl|wget)\b[^|]*\|\s*(?:sudo\s+)?(?:ba|z|da)?sh\b"),
    (DangerKind.POWER_STATE, r"\b(?:shutdown|reboot|halt|poweroff)\b"),
    (DangerKind.POWER_STATE, r"\binit\s+[06]\b"),
    (DangerKind.BLOCK_DEVICE_WRITE, r">\s*/dev/(?:sd|hd|vd|xvd|nvme|mmcblk)"),
    (DangerKind.RECURSIVE_DELETE, r"\bmv\s+/\*\s+/dev/null\b"),
]


@dataclass(frozen=True)
class CommandVerdict:
    """Result of checking a raw command against the deny-list."""
    allowed: bool
    kind: Optional[DangerKind] = None
    pattern: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


@dataclass(frozen=True)
class StabilitySample:
    """Raw probe readings; None means the probe was unavailable."""
    load_1m: Optional[float] = None
    cpu_count: Optional[int] = None
    mem_available_percent: Optional[float] = None
    root_disk_percent: Optional[float] = None
    oom_count: Optional[int] = None
    failed_services: Optional[int] = None


@dataclass
class StabilityReport:
    """Outcome of the stability checks."""
    stable: bool
    issues: List[str] = field(default_factory=list)
    load_ratio: float = 0.0
    mem_free_percent: float = 50.0
    root_disk_usage_percent: float = 0.0
    oom_count: int = 0
    failed_services: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stable": self.stable,
            "issues": list(self.issues),
            "load_ratio": round(self.load_ratio, 2),
            "mem_free_percent": round(self.mem_free_percent, 1),
            "root_disk_usage_percent": round(self.root_disk_usage_percent, 1),
            "oom_count": self.oom_count,
            "failed_services": self.failed_services,
        }


@dataclass
class SafetyDecision:
    """Pre-execution decision for one action/target."""
    action: str
    target: str
    risk_level: RiskLevel
    system_stable: bool
    approved: bool
    reason: str
    stability: Optional[StabilityReport] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "target": self.target,
            "risk_level": self.risk_level.value,
            "system_stable": self.system_stable,
            "approved": self.approved,
            "reason": self.reason,
            "stability": self.stability.to_dict() if self.stability else None,
        }


def assess_stability(sample: StabilitySample) -> StabilityReport:
    """
    Apply the stability limits to a sample.

    Missing readings fall back to benign defaults (load 0, 50% memory
    free, disk 0%, no OOM, no failed services).
    """
    cpu_count = sample.cpu_count or 1
    load_ratio = (sample.load_1m or 0.0) / cpu_count
    mem_free = sample.mem_available_percent if sample.mem_available_percent is not None else 50.0
    disk = sample.root_disk_percent if sample.root_disk_percent is not None else 0.0
    oom_count = sample.oom_count or 0
    failed_services = sample.failed_services or 0

    stable = True
    issues = []

    if load_ratio > MAX_LOAD_RATIO:
        stable = False
        issues.append(f"load too high ({load_ratio:.2f} per cpu)")

    if mem_free < MIN_MEM_FREE_PERCENT:
        stable = False
        issues.append(f"available memory too low ({mem_free:.1f}%)")

    if disk > MAX_ROOT_DISK_PERCENT:
        stable = False
        issues.append(f"root filesystem almost full ({disk:.1f}%)")

    if oom_count > 0:
        stable = False
        issues.append(f"oom-killer active in the last 5 minutes ({oom_count} events)")

    if failed_services > 0:
        issues.append(f"{failed_services} failed services")

    return StabilityReport(
        stable=stable,
        issues=issues,
        load_ratio=load_ratio,
        mem_free_percent=mem_free,
        root_disk_usage_percent=disk,
        oom_count=oom_count,
        failed_services=failed_services,
    )


class SystemStabilityProbe:
    """Reads the live host: psutil for load/memory/disk, journald and systemd for the rest."""

    def __init__(self, command_timeout: float = 10.0):
        self._command_timeout = command_timeout

    def sample(self) -> StabilitySample:
        return StabilitySample(
            load_1m=self._load(),
            cpu_count=psutil.cpu_count(logical=True),
            mem_available_percent=self._memory(),
            root_disk_percent=self._disk(),
            oom_count=self._oom_count(),
            failed_services=self._failed_services(),
        )

    def _load(self) -> Optional[float]:
        try:
            return psutil.getloadavg()[0]
        except (AttributeError, OSError):
            return None

    def _memory(self) -> Optional[float]:
        try:
            mem = psutil.virtual_memory()
            return mem.available * 100.0 / mem.total if mem.total else None
        except (AttributeError, OSError):
            return None

    def _disk(self) -> Optional[float]:
        try:
            return psutil.disk_usage("/").percent
        except OSError:
            return None

    def _run(self, args: List[str]) -> Optional[str]:
        if shutil.which(args[0]) is None:
            return None
        try:
            proc = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self._command_timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("Stability probe failed", command=args[0], error=str(e))
            return None
        return proc.stdout

    def _oom_count(self) -> Optional[int]:
        output = self._run(["journalctl", "--since", OOM_WINDOW, "--no-pager", "-q"])
        if output is None:
            return None
        return sum(1 for line in output.splitlines() if _OOM_RE.search(line))

    def _failed_services(self) -> Optional[int]:
        output = self._run(["systemctl", "--failed", "--no-legend", "--plain"])
        if output is None:
            return None
        return sum(1 for line in output.splitlines() if line.strip())


class SafetyValidator:
    """
    Gatekeeper for automatic execution.

    The risk table and deny-list are instance state so the embedding
    application can extend them at runtime.
    """

    def __init__(
        self,
        probe=None,
        low_risk: Iterable[str] = LOW_RISK_ACTIONS,
        medium_risk: Iterable[str] = MEDIUM_RISK_ACTIONS,
        high_risk: Iterable[str] = HIGH_RISK_ACTIONS,
        dangerous_patterns: Iterable[Tuple[DangerKind, str]] = DANGEROUS_PATTERNS,
    ):
        self._probe = probe or SystemStabilityProbe()
        self._low = list(low_risk)
        self._medium = list(medium_risk)
        self._high = list(high_risk)
        self._patterns: List[Tuple[DangerKind, Pattern]] = []
        for kind, pattern in dangerous_patterns:
            self.add_dangerous_pattern(pattern, kind)

    # Risk classification

    def risk_level(self, action: str) -> RiskLevel:
        """Fixed-table risk tier; unlisted actions are critical."""
        if action in self._low:
            return RiskLevel.LOW
        if action in self._medium:
            return RiskLevel.MEDIUM
        if action in self._high:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL

    def is_low_risk(self, action: str) -> bool:
        return action in self._low

    def add_low_risk_action(self, action: str):
        if action not in self._low:
            self._low.append(action)
            logger.info("Low-risk action added", action=action)

    # Stability

    def system_stable(self) -> StabilityReport:
        report = assess_stability(self._probe.sample())
        if not report.stable:
            logger.warning("System unstable", issues=report.issues)
        return report

    def can_auto_execute(self, action: str, target: Optional[str] = None) -> bool:
        """Only low-risk actions on a stable system may run unattended."""
        if not self.is_low_risk(action):
            return False
        return self.system_stable().stable

    def pre_execution_decision(self, action: str, target: Optional[str] = None) -> SafetyDecision:
        risk = self.risk_level(action)
        stability = self.system_stable()

        if risk == RiskLevel.LOW:
            if stability.stable:
                approved, reason = True, "low risk and system stable"
            else:
                approved = False
                reason = "system currently unstable: " + "; ".join(stability.issues)
        elif risk == RiskLevel.MEDIUM:
            approved, reason = False, "medium risk needs AI analysis confirmation"
        else:
            approved, reason = False, f"{risk.value} risk needs human confirmation"

        return SafetyDecision(
            action=action,
            target=target or "",
            risk_level=risk,
            system_stable=stability.stable,
            approved=approved,
            reason=reason,
            stability=stability,
        )

    # Command deny-list

    def add_dangerous_pattern(self, pattern: str, kind: DangerKind = DangerKind.CUSTOM):
        self._patterns.append((DangerKind(kind), re.compile(pattern, re.IGNORECASE)))

    def validate_command(self, command: str) -> CommandVerdict:
        """Reject commands matching any deny-list pattern; first match wins."""
        for kind, pattern in self._patterns:
            if pattern.search(command):
                logger.warning(
                    "Dangerous command blocked",
                    command=command,
                    kind=kind.value,
                    pattern=pattern.pattern,
                )
                return CommandVerdict(allowed=False, kind=kind, pattern=pattern.pattern)
        return CommandVerdict(allowed=True)
