"""Wait for a distribution to finish propagating.

CloudFront reports InProgress after every mutation until the change has
reached all edge locations, which routinely takes many minutes. The poller
re-reads the distribution at a fixed interval until it reports Deployed or
the timeout runs out.

Cancelling the awaiting task stops polling immediately. Nothing is undone
remotely: the mutation that triggered the deployment has already been
accepted.
"""

from __future__ import annotations

import asyncio
import logging

from .cloudfront_api import CloudFrontApi
from .config import DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS, DEFAULT_POLL_INTERVAL_SECONDS
from .errors import DeploymentTimeoutError
from .models import DistributionState
from .translator import from_remote

logger = logging.getLogger(__name__)


class DeploymentPoller:
    """Polls GetDistribution until the status is Deployed.

    Fixed interval, no backoff. The returned state carries no tags; callers
    that need them do a full read afterwards.
    """

    def __init__(
        self,
        api: CloudFrontApi,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout_seconds: float = DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS,
    ) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")
        if timeout_seconds < 0:
            raise ValueError("timeout_seconds must not be negative")
        self._api = api
        self._interval_seconds = interval_seconds
        self._timeout_seconds = timeout_seconds

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    async def await_deployed(
        self,
        distribution_id: str,
        etag: str | None = None,
    ) -> DistributionState:
        """Block until the distribution reports Deployed.

        Args:
            distribution_id: Distribution to watch.
            etag: ETag returned by the mutation being awaited. If a later read
                shows a different one, someone else modified the distribution
                in the meantime; this is logged, not treated as an error.

        Returns:
            The first observed state with status Deployed.

        Raises:
            DeploymentTimeoutError: Budget exhausted; carries the last state.
            NotFoundError: The distribution disappeared while polling.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout_seconds
        polls = 0

        try:
            while True:
                remote = await self._api.get_distribution(distribution_id)
                polls += 1
                state = from_remote(remote.distribution, remote.etag)

                if etag is not None and remote.etag != etag:
                    logger.warning(
                        "Distribution modified concurrently while awaiting deployment",
                        extra={
                            "distribution_id": distribution_id,
                            "expected_etag": etag,
                            "observed_etag": remote.etag,
                        },
                    )
                    etag = remote.etag

                if state.is_deployed:
                    logger.info(
                        "Distribution deployed",
                        extra={"distribution_id": distribution_id, "polls": polls},
                    )
                    return state

                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.error(
                        "Timed out waiting for deployment",
                        extra={
                            "distribution_id": distribution_id,
                            "timeout_seconds": self._timeout_seconds,
                            "polls": polls,
                        },
                    )
                    raise DeploymentTimeoutError(distribution_id, self._timeout_seconds, state)

                logger.debug(
                    "Distribution still propagating",
                    extra={"distribution_id": distribution_id, "status": state.status.value},
                )
                await asyncio.sleep(min(self._interval_seconds, remaining))
        except asyncio.CancelledError:
            logger.warning(
                "Deployment polling cancelled",
                extra={"distribution_id": distribution_id, "polls": polls},
            )
            raise
