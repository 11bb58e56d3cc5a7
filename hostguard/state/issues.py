"""Issue state store: one JSON record per tracked problem."""

import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

import structlog

from hostguard.errors import CorruptedStateError
from hostguard.models.issue import IssueStatus, TrackedIssue
from hostguard.state.files import read_json, remove, write_json_atomic


logger = structlog.get_logger()

_NON_KEY_CHARS = re.compile(r"[^a-z0-9_]+")


def normalize_key(value: str) -> str:
    """Lower-case *value* and collapse every run of other characters to ``_``."""
    return _NON_KEY_CHARS.sub("_", value.lower())


def issue_key(source: str, issue_type: str, subject: str) -> str:
    """
    Deterministic identity key for a problem.

    The source is part of the key so problems from different
    sources never share a record.
    """
    return normalize_key(f"{source}_{issue_type}_{subject or 'default'}")


class IssueStore:
    """
    File-backed store of tracked issues.

    Each record lives in ``<state_dir>/issues/<key>.json`` and is
    replaced atomically. Unreadable records are logged and treated
    as absent.
    """

    def __init__(self, state_dir: Union[str, Path]):
        self.path = Path(state_dir) / "issues"
        self.path.mkdir(parents=True, exist_ok=True)

    def _record_path(self, key: str) -> Path:
        return self.path / f"{normalize_key(key)}.json"

    def get(self, key: str) -> Optional[TrackedIssue]:
        """Get a tracked issue, or None if absent or unreadable."""
        path = self._record_path(key)
        try:
            data = read_json(path)
            if data is None:
                return None
            return TrackedIssue.from_dict(data)
        except CorruptedStateError as e:
            logger.error("Corrupted issue record, treating as absent", issue_id=key, error=e.reason)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Malformed issue record, treating as absent", issue_id=key, error=str(e))
        return None

    def upsert(
        self,
        key: str,
        tracker_ref: Optional[int] = None,
        status: IssueStatus = IssueStatus.OPEN,
        check_count: int = 0,
        normal_count: int = 0,
    ) -> TrackedIssue:
        """Create or replace a record, keeping the original ``created_at``."""
        now = datetime.utcnow()
        existing = self.get(key)

        issue = TrackedIssue(
            issue_id=key,
            tracker_ref=tracker_ref,
            status=IssueStatus(status),
            check_count=check_count,
            normal_count=normal_count,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        write_json_atomic(self._record_path(key), issue.to_dict())
        return issue

    def delete(self, key: str) -> bool:
        deleted = remove(self._record_path(key))
        if deleted:
            logger.debug("Issue record deleted", issue_id=key)
        return deleted

    def list(self, status: Optional[IssueStatus] = None) -> List[TrackedIssue]:
        """All readable records, optionally filtered by status, oldest first."""
        issues = []
        for path in sorted(self.path.glob("*.json")):
            issue = self.get(path.stem)
            if issue is None:
                continue
            if status is not None and issue.status != status:
                continue
            issues.append(issue)
        issues.sort(key=lambda i: i.created_at)
        return issues

    def increment_normal_count(self, key: str) -> Optional[TrackedIssue]:
        """Count one more clean cycle. Returns the updated record."""
        issue = self.get(key)
        if issue is None:
            return None
        return self.upsert(
            key,
            tracker_ref=issue.tracker_ref,
            status=issue.status,
            check_count=issue.check_count,
            normal_count=issue.normal_count + 1,
        )

    def reset_normal_count(self, key: str) -> Optional[TrackedIssue]:
        issue = self.get(key)
        if issue is None:
            return None
        return self.upsert(
            key,
            tracker_ref=issue.tracker_ref,
            status=issue.status,
            check_count=issue.check_count,
            normal_count=0,
        )
