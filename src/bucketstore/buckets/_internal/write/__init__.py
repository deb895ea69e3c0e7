"""Per-page write path."""

from bucketstore.buckets._internal.write.coordinator import WriteCoordinator
from bucketstore.buckets._internal.write.issues import IssueLog

__all__ = ["WriteCoordinator", "IssueLog"]
