"""Tracked issue model."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class IssueStatus(str, Enum):
    """Lifecycle status of a tracked issue. Closed issues are deleted."""
    OPEN = "open"


@dataclass
class TrackedIssue:
    """Durable record linking a problem key to its external ticket and counters."""
    issue_id: str
    tracker_ref: Optional[int] = None
    status: IssueStatus = IssueStatus.OPEN
    check_count: int = 0
    normal_count: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "tracker_ref": self.tracker_ref,
            "status": self.status.value,
            "check_count": self.check_count,
            "normal_count": self.normal_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackedIssue":
        """Rebuild from a persisted record. Raises on missing or malformed fields."""
        tracker_ref = data.get("tracker_ref")
        return cls(
            issue_id=data["issue_id"],
            tracker_ref=int(tracker_ref) if tracker_ref is not None else None,
            status=IssueStatus(data.get("status", "open")),
            check_count=int(data.get("check_count", 0)),
            normal_count=int(data.get("normal_count", 0)),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )
