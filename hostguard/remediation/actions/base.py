"""Remediation action interface and registry."""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from hostguard.models.execution import ActionDescriptor
from hostguard.remediation.runner import CommandOutcome, CommandRunner


class RemediationAction(ABC):
    """
    A named remediation with validate, execute and verify steps.

    ``validate`` and ``verify`` return ``(ok, message)``. ``verify``
    returns None when the action has no post-condition check.
    """

    name: str = ""
    description: str = ""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    async def validate(self, target: str, args: Sequence[str] = ()) -> Tuple[bool, str]:
        return True, "ok"

    @abstractmethod
    async def execute(self, target: str, args: Sequence[str] = ()) -> CommandOutcome:
        ...

    async def verify(self, target: str) -> Optional[Tuple[bool, str]]:
        return None


class ActionRegistry:
    """Name to implementation map built once at startup."""

    def __init__(self, actions: Iterable[RemediationAction] = ()):
        self._actions: Dict[str, RemediationAction] = {}
        for action in actions:
            self.register(action)

    def register(self, action: RemediationAction):
        if not action.name:
            raise ValueError(f"{type(action).__name__} has no name")
        self._actions[action.name] = action

    def get(self, name: str) -> Optional[RemediationAction]:
        return self._actions.get(name)

    def names(self) -> List[str]:
        return sorted(self._actions)

    def __contains__(self, name: str) -> bool:
        return name in self._actions

    def __len__(self) -> int:
        return len(self._actions)

    def descriptors(self, safety) -> List[ActionDescriptor]:
        """Describe every registered action with its risk tier."""
        return [
            ActionDescriptor(
                name=name,
                description=self._actions[name].description,
                risk_level=safety.risk_level(name),
                auto_executable=safety.is_low_risk(name),
            )
            for name in self.names()
        ]
