"""Tests for IssueLog."""

from bucketstore.buckets._internal.write.issues import IssueLog
from bucketstore.buckets.models import Severity


class TestIssueLog:
    def test_collects_in_order(self) -> None:
        log = IssueLog()
        log.warning("books", "colour", "unknown field")
        log.error("books", "year", "bad integer")

        assert [(i.field, i.severity) for i in log.issues()] == [
            ("colour", Severity.WARNING),
            ("year", Severity.ERROR),
        ]
        assert len(log) == 2
        assert log

    def test_deduplicates_identical_issues(self) -> None:
        log = IssueLog()
        log.warning("books", "colour", "unknown field")
        log.warning("books", "colour", "unknown field")
        log.error("books", "colour", "unknown field")

        assert len(log) == 2

    def test_cap(self) -> None:
        log = IssueLog(max_issues=3)
        for i in range(5):
            log.error("books", f"f{i}", "bad")

        assert len(log) == 3
        assert log.dropped == 2

    def test_empty_is_falsy(self) -> None:
        assert not IssueLog()

    def test_to_puts(self) -> None:
        log = IssueLog()
        log.error("books", "year", "bad integer")

        assert log.to_puts() == [
            {
                "sub": "",
                "data": {"bucket": "books", "field": "year", "severity": "error", "message": "bad integer"},
            }
        ]

    def test_merge_keeps_order_dedup_and_cap(self) -> None:
        log = IssueLog(max_issues=2)
        log.warning("books", "colour", "unknown field")
        other = IssueLog()
        other.warning("books", "colour", "unknown field")
        other.error("bucket_issues", "message", "too long")
        other.error("bucket_issues", "field", "too long")

        log.merge(other)

        assert [(i.bucket, i.field) for i in log.issues()] == [
            ("books", "colour"),
            ("bucket_issues", "message"),
        ]
        assert log.dropped == 1
