"""Cooldown store: advisory expiry per (action, target)."""

import hashlib
import time
from pathlib import Path
from typing import Callable, Optional, Union

import structlog

from hostguard.errors import CorruptedStateError
from hostguard.state.files import read_json, remove, write_json_atomic
from hostguard.state.issues import normalize_key


logger = structlog.get_logger()

DEFAULT_COOLDOWN_SECONDS = 300
DEFAULT_TARGET = "default"


class CooldownStore:
    """
    File-backed cooldowns.

    An entry blocks a repeat of the same action on the same target
    until it expires. Expired entries are removed when read.
    """

    def __init__(
        self,
        state_dir: Union[str, Path],
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(state_dir) / "cooldowns"
        self.path.mkdir(parents=True, exist_ok=True)
        self._clock = clock

    def _entry_path(self, action: str, target: Optional[str]) -> Path:
        raw = f"{action}\0{target or DEFAULT_TARGET}"
        digest = hashlib.sha1(raw.encode()).hexdigest()[:10]
        name = normalize_key(f"{action}_{target or DEFAULT_TARGET}")
        return self.path / f"{name}-{digest}.json"

    def _expiry(self, path: Path) -> Optional[float]:
        try:
            data = read_json(path)
        except CorruptedStateError as e:
            logger.error("Corrupted cooldown record, treating as absent", path=str(path), error=e.reason)
            return None
        if data is None:
            return None
        try:
            return float(data["expires_at"])
        except (KeyError, TypeError, ValueError):
            logger.error("Malformed cooldown record, treating as absent", path=str(path))
            return None

    def check_cooldown(self, action: str, target: Optional[str] = None) -> bool:
        """True if the action may run on the target (no active cooldown)."""
        path = self._entry_path(action, target)
        expires_at = self._expiry(path)
        if expires_at is None:
            return True
        if self._clock() >= expires_at:
            remove(path)
            return True
        return False

    def set_cooldown(
        self,
        action: str,
        target: Optional[str] = None,
        seconds: float = DEFAULT_COOLDOWN_SECONDS,
    ):
        """Block the action/target pair for *seconds* from now."""
        expires_at = self._clock() + seconds
        write_json_atomic(
            self._entry_path(action, target),
            {
                "action": action,
                "target": target or DEFAULT_TARGET,
                "expires_at": expires_at,
            },
        )
        logger.debug("Cooldown set", action=action, target=target or DEFAULT_TARGET, seconds=seconds)

    def remaining_cooldown(self, action: str, target: Optional[str] = None) -> float:
        """Seconds left on the cooldown, 0 if none or expired."""
        expires_at = self._expiry(self._entry_path(action, target))
        if expires_at is None:
            return 0
        return max(0, expires_at - self._clock())

    def clear_cooldown(self, action: str, target: Optional[str] = None) -> bool:
        return remove(self._entry_path(action, target))

    def cleanup_expired(self) -> int:
        """Remove every expired entry. Returns how many were removed."""
        removed = 0
        now = self._clock()
        for path in self.path.glob("*.json"):
            expires_at = self._expiry(path)
            if expires_at is not None and now >= expires_at and remove(path):
                removed += 1
        if removed:
            logger.debug("Expired cooldowns removed", count=removed)
        return removed
