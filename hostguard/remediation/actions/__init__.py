"""Built-in remediation actions."""

from hostguard.remediation.actions.base import ActionRegistry, RemediationAction
from hostguard.remediation.actions.clear_cache import ClearCacheAction
from hostguard.remediation.actions.docker_prune import DockerPruneAction
from hostguard.remediation.actions.kill_runaway import KillRunawayAction
from hostguard.remediation.actions.restart_service import RestartServiceAction
from hostguard.remediation.actions.rotate_logs import RotateLogsAction


def build_default_registry(runner, kill_grace_seconds: float = 2.0) -> ActionRegistry:
    """Registry with every built-in action."""
    return ActionRegistry([
        ClearCacheAction(runner),
        DockerPruneAction(runner),
        RotateLogsAction(runner),
        RestartServiceAction(runner),
        KillRunawayAction(runner, grace_seconds=kill_grace_seconds),
    ])


__all__ = [
    "ActionRegistry",
    "RemediationAction",
    "build_default_registry",
]
