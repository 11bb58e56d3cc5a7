"""Append-only audit log of remediation outcomes."""

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Union

import structlog


logger = structlog.get_logger()


class AuditLog:
    """One JSON object per line: timestamp, action, target, result, details."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def record(self, action: str, target: str, result: str, details: str = ""):
        entry = {
            "timestamp": datetime.utcnow().isoformat(),
            "action": action,
            "target": target or "default",
            "result": result,
            "details": details,
        }
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(entry) + "\n")
        logger.info("Audit", action=action, target=entry["target"], result=result)
