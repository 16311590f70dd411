"""Safe deletion of a distribution.

CloudFront refuses to delete an enabled distribution, and refuses to delete a
disabled one until the disablement has propagated. Deletion is therefore a
small state machine:

    Active --(enabled)--> Disabling --> AwaitingDeployed --> Deletable --> Deleted
    Active --(disabled, InProgress)--> AwaitingDeployed
    Active --(disabled, Deployed)--> Deletable
    Active --(retain_on_delete or already gone)--> Deleted

Every mutating call carries the ETag from the most recent read. A stale ETag
surfaces as ConflictError and halts the run; the guard never retries on its
own. A halted run can be resumed by running the guard again: it always starts
from a fresh read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .cloudfront_api import CloudFrontApi
from .errors import DistributionError, NotFoundError
from .models import DistributionStatus
from .poller import DeploymentPoller

logger = logging.getLogger(__name__)


class DeleteState(str, Enum):
    """Progress of a delete run."""

    ACTIVE = "Active"
    DISABLING = "Disabling"
    AWAITING_DEPLOYED = "AwaitingDeployed"
    DELETABLE = "Deletable"
    DELETED = "Deleted"


@dataclass
class DeleteResult:
    """Outcome of one delete run.

    Attributes:
        distribution_id: Distribution being deleted.
        state: Furthest state reached.
        retained: True when the remote resource was deliberately left alone.
        error: Failure that halted the run, if any.
        transitions: Every state entered, in order.
    """

    distribution_id: str
    state: DeleteState = DeleteState.ACTIVE
    retained: bool = False
    error: Exception | None = None
    transitions: list[DeleteState] = field(default_factory=lambda: [DeleteState.ACTIVE])

    @property
    def success(self) -> bool:
        return self.error is None and self.state == DeleteState.DELETED


class DeleteGuard:
    """Drives a distribution through disable, propagation and delete."""

    def __init__(self, api: CloudFrontApi, poller: DeploymentPoller) -> None:
        self._api = api
        self._poller = poller

    async def run(self, distribution_id: str, retain_on_delete: bool = False) -> DeleteResult:
        """Delete a distribution, or retain it.

        Failures do not raise; they are recorded on the result together with
        the state the run had reached.
        """
        result = DeleteResult(distribution_id=distribution_id)

        if retain_on_delete:
            logger.info(
                "Retaining distribution, removing it from local state only",
                extra={"distribution_id": distribution_id},
            )
            result.retained = True
            self._advance(result, DeleteState.DELETED)
            return result

        try:
            await self._run(result)
        except DistributionError as e:
            result.error = e
            logger.error(
                "Delete halted",
                extra={
                    "distribution_id": distribution_id,
                    "state": result.state.value,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
        return result

    async def _run(self, result: DeleteResult) -> None:
        distribution_id = result.distribution_id

        try:
            remote = await self._api.get_distribution(distribution_id)
        except NotFoundError:
            logger.info("Distribution already gone", extra={"distribution_id": distribution_id})
            self._advance(result, DeleteState.DELETED)
            return

        etag = remote.etag
        if remote.enabled:
            self._advance(result, DeleteState.DISABLING)
            config = dict(remote.config)
            config["Enabled"] = False
            updated = await self._api.update_distribution(distribution_id, remote.etag, config)

            self._advance(result, DeleteState.AWAITING_DEPLOYED)
            await self._poller.await_deployed(distribution_id, updated.etag)
            etag = await self._fresh_etag(distribution_id)
        elif remote.status != DistributionStatus.DEPLOYED.value:
            # Disabled by an earlier, interrupted run
            self._advance(result, DeleteState.AWAITING_DEPLOYED)
            await self._poller.await_deployed(distribution_id, remote.etag)
            etag = await self._fresh_etag(distribution_id)

        self._advance(result, DeleteState.DELETABLE)
        try:
            await self._api.delete_distribution(distribution_id, etag)
        except NotFoundError:
            logger.info(
                "Distribution disappeared before delete",
                extra={"distribution_id": distribution_id},
            )
        self._advance(result, DeleteState.DELETED)
        logger.info("Distribution deleted", extra={"distribution_id": distribution_id})

    async def _fresh_etag(self, distribution_id: str) -> str:
        remote = await self._api.get_distribution(distribution_id)
        return remote.etag

    def _advance(self, result: DeleteResult, state: DeleteState) -> None:
        logger.debug(
            "Delete state transition",
            extra={
                "distribution_id": result.distribution_id,
                "from_state": result.state.value,
                "to_state": state.value,
            },
        )
        result.state = state
        result.transitions.append(state)


async def verify_destroyed(api: CloudFrontApi, distribution_id: str, retained: bool) -> str | None:
    """Check what a completed delete left behind.

    Returns:
        None when the outcome is as expected, otherwise a problem message:
        the distribution still exists without having been retained, or it was
        retained but is still enabled.
    """
    try:
        remote = await api.get_distribution(distribution_id)
    except NotFoundError:
        return None

    if not retained:
        return f"CloudFront distribution {distribution_id} did not destroy"
    if remote.enabled:
        return f"CloudFront distribution {distribution_id} should be disabled"
    return None
