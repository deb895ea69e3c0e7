"""Write-time issue collection.

Problems found while writing a page are not raised. They are collected
here, de-duplicated by content and capped, then persisted to the issues
bucket for that page at the end of the write.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

import structlog

from bucketstore.buckets.models import Issue, Severity

logger = structlog.get_logger()


class IssueLog:
    """Ordered, de-duplicated, capped issue list for one write call."""

    def __init__(self, max_issues: int = 100, page_id: int | None = None) -> None:
        self.max_issues = max_issues
        self.page_id = page_id
        self._issues: dict[str, Issue] = {}
        self.dropped = 0

    def _add(self, issue: Issue) -> bool:
        if len(self._issues) >= self.max_issues:
            self.dropped += 1
            return False
        key = hashlib.sha256(json.dumps(issue.to_put()["data"]).encode()).hexdigest()
        if key in self._issues:
            return False
        self._issues[key] = issue
        return True

    def log(self, bucket: str, field: str, severity: Severity, message: str) -> None:
        if not self._add(Issue(bucket=bucket, field=field, severity=severity, message=message)):
            return
        logger.warning(
            "write_issue",
            page_id=self.page_id,
            bucket=bucket,
            field=field,
            severity=severity.value,
            message=message,
        )

    def warning(self, bucket: str, field: str, message: str) -> None:
        self.log(bucket, field, Severity.WARNING, message)

    def error(self, bucket: str, field: str, message: str) -> None:
        self.log(bucket, field, Severity.ERROR, message)

    def merge(self, other: IssueLog) -> None:
        """Append issues already logged elsewhere, keeping de-duplication and the cap."""
        for issue in other.issues():
            self._add(issue)
        self.dropped += other.dropped

    def issues(self) -> list[Issue]:
        return list(self._issues.values())

    def to_puts(self) -> list[dict[str, Any]]:
        """Records for the issues bucket."""
        return [issue.to_put() for issue in self._issues.values()]

    def __len__(self) -> int:
        return len(self._issues)

    def __bool__(self) -> bool:
        return bool(self._issues)
