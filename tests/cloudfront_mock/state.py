"""In-memory CloudFront state for tests.

Simulates the parts of CloudFront the controller depends on:
- InProgress -> Deployed propagation after a configurable number of reads
- ETag rotation on every config change
- Tags keyed by ARN
"""

from __future__ import annotations

import copy
import itertools
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

ACCOUNT_ID = "123456789012"


@dataclass
class MockDistribution:
    """One stored distribution."""

    id: str
    config: dict[str, Any]
    etag: str
    status: str = "Deployed"
    tags: dict[str, str] = field(default_factory=dict)
    last_modified_time: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Reads left that still report InProgress; None means never deploys
    in_progress_reads: int | None = 0

    @property
    def arn(self) -> str:
        return f"arn:aws:cloudfront::{ACCOUNT_ID}:distribution/{self.id}"

    @property
    def domain_name(self) -> str:
        return f"{self.id.lower()}.cloudfront.net"

    @property
    def enabled(self) -> bool:
        return bool(self.config.get("Enabled"))

    def payload(self) -> dict[str, Any]:
        """Build the "Distribution" member of an API response."""
        return {
            "Id": self.id,
            "ARN": self.arn,
            "Status": self.status,
            "LastModifiedTime": self.last_modified_time,
            "InProgressInvalidationBatches": 0,
            "DomainName": self.domain_name,
            "DistributionConfig": copy.deepcopy(self.config),
        }

    def summary(self) -> dict[str, Any]:
        """Build one ListDistributions item."""
        return {
            "Id": self.id,
            "ARN": self.arn,
            "Status": self.status,
            "DomainName": self.domain_name,
            "Enabled": self.enabled,
            "Comment": self.config.get("Comment", ""),
            "Aliases": copy.deepcopy(self.config.get("Aliases", {"Quantity": 0})),
        }


class MockCloudFrontState:
    """Shared state behind one or more mock clients.

    Args:
        deploy_after_reads: How many GetDistribution calls report InProgress
            after each mutation before the distribution reports Deployed.
            None simulates a deployment that never finishes.
    """

    def __init__(self, deploy_after_reads: int | None = 1) -> None:
        self.deploy_after_reads = deploy_after_reads
        self._distributions: dict[str, MockDistribution] = {}
        self._id_counter = itertools.count(1)
        self._etag_counter = itertools.count(1)

    @property
    def distribution_count(self) -> int:
        return len(self._distributions)

    def next_id(self) -> str:
        return f"E{next(self._id_counter):013d}"

    def next_etag(self) -> str:
        return f"ETAG{next(self._etag_counter):06d}"

    def get(self, distribution_id: str) -> MockDistribution | None:
        return self._distributions.get(distribution_id)

    def get_by_arn(self, arn: str) -> MockDistribution | None:
        for dist in self._distributions.values():
            if dist.arn == arn:
                return dist
        return None

    def find_by_caller_reference(self, caller_reference: str) -> MockDistribution | None:
        for dist in self._distributions.values():
            if dist.config.get("CallerReference") == caller_reference:
                return dist
        return None

    def distributions(self) -> list[MockDistribution]:
        return list(self._distributions.values())

    def add(
        self,
        config: dict[str, Any],
        tags: dict[str, str] | None = None,
        status: str = "Deployed",
    ) -> MockDistribution:
        """Store a distribution directly, bypassing the API."""
        dist = MockDistribution(
            id=self.next_id(),
            config=copy.deepcopy(config),
            etag=self.next_etag(),
            status=status,
            tags=dict(tags or {}),
            in_progress_reads=0 if status == "Deployed" else self.deploy_after_reads,
        )
        self._distributions[dist.id] = dist
        return dist

    def mark_changed(self, dist: MockDistribution, config: dict[str, Any]) -> None:
        """Apply a config change: new ETag, back to InProgress."""
        dist.config = copy.deepcopy(config)
        dist.etag = self.next_etag()
        dist.last_modified_time = datetime.now(UTC)
        dist.in_progress_reads = self.deploy_after_reads
        dist.status = "Deployed" if self.deploy_after_reads == 0 else "InProgress"

    def observe(self, dist: MockDistribution) -> None:
        """Advance propagation by one read."""
        if dist.status != "InProgress" or dist.in_progress_reads is None:
            return
        if dist.in_progress_reads > 0:
            dist.in_progress_reads -= 1
        if dist.in_progress_reads == 0:
            dist.status = "Deployed"

    def remove(self, distribution_id: str) -> bool:
        return self._distributions.pop(distribution_id, None) is not None
