"""Reconciliation of desired distribution specs against CloudFront.

Host operations:
- create: validate -> translate -> CreateDistribution -> await Deployed -> read
- read: GetDistribution + tags -> observed state; a missing distribution
  drops local state instead of failing
- update: validate -> read -> plan -> UpdateDistribution(etag) -> await
  Deployed; tag changes go through the tagging API -> read
- delete: DeleteGuard (disable -> await Deployed -> delete), or retain
- import: read an existing distribution into local state
- apply: create or update, whichever the desired spec needs

Nothing in here retries. A ConflictError (stale ETag) is surfaced so the
caller can re-read and try again; a DeploymentTimeoutError is fatal unless
fail_on_deployment_timeout is disabled.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from .cloudfront_api import CloudFrontApi
from .config import Config
from .delete_guard import DeleteGuard, DeleteResult
from .differ import ChangeSet, Differ
from .errors import DeploymentTimeoutError, DistributionError, NotFoundError
from .hashing import assign_identities
from .models import DistributionSpec, DistributionState
from .poller import DeploymentPoller
from .state_store import StateStore
from .translator import from_remote, to_remote, validate_spec

logger = logging.getLogger(__name__)

# Fields an import cannot reconstruct from the remote side
IMPORT_VERIFY_IGNORE = ("retain_on_delete",)

CALLER_REFERENCE_PREFIX = "cdnctl"


def generate_caller_reference() -> str:
    """Create a unique idempotency token for CreateDistribution."""
    timestamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    return f"{CALLER_REFERENCE_PREFIX}-{timestamp}-{secrets.token_hex(4)}"


def stable_caller_reference(spec_path: Path) -> str:
    """Derive a caller reference from the spec location.

    Repeated applies of the same file find the distribution created by the
    first one instead of creating another when the spec does not pin a
    caller_reference itself.
    """
    digest = hashlib.sha256(str(spec_path.resolve()).encode()).hexdigest()[:16]
    return f"{CALLER_REFERENCE_PREFIX}-{digest}"


class ReconcileAction(str, Enum):
    """What an apply did."""

    CREATE = "create"
    UPDATE = "update"
    NO_CHANGE = "no_change"


@dataclass
class ReconcileResult:
    """Result of a single apply."""

    distribution_id: str | None = None
    action: ReconcileAction | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    change_set: ChangeSet | None = None
    state: DistributionState | None = None
    error: Exception | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if reconciliation succeeded."""
        return self.error is None


class DistributionReconciler:
    """Keeps local state and the remote distribution consistent.

    Each distribution is reconciled independently and sequentially; the only
    concurrency guard against other writers is the ETag precondition.
    """

    def __init__(
        self,
        api: CloudFrontApi,
        store: StateStore | None = None,
        poller: DeploymentPoller | None = None,
        differ: Differ | None = None,
        fail_on_deployment_timeout: bool = True,
    ) -> None:
        self._api = api
        self._store = store if store is not None else StateStore()
        self._poller = poller if poller is not None else DeploymentPoller(api)
        self._differ = differ if differ is not None else Differ()
        self._delete_guard = DeleteGuard(api, self._poller)
        self._fail_on_deployment_timeout = fail_on_deployment_timeout

    @classmethod
    def from_config(cls, config: Config) -> DistributionReconciler:
        """Build a reconciler wired to the real CloudFront API."""
        api = CloudFrontApi.from_config(config)
        return cls(
            api=api,
            store=StateStore(config.state_dir),
            poller=DeploymentPoller(
                api,
                interval_seconds=config.poll_interval_seconds,
                timeout_seconds=config.deployment_timeout_seconds,
            ),
            fail_on_deployment_timeout=config.fail_on_deployment_timeout,
        )

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def api(self) -> CloudFrontApi:
        return self._api

    # =========================================================================
    # Host operations
    # =========================================================================

    async def create(self, spec: DistributionSpec) -> DistributionState:
        """Create a distribution and wait for it to deploy.

        Raises:
            ValidationError: Before any remote call, if the spec is invalid.
            DeploymentTimeoutError: If fail_on_deployment_timeout is set.
        """
        validate_spec(spec)

        caller_reference = spec.caller_reference or generate_caller_reference()
        remote = await self._api.create_distribution(
            to_remote(spec, caller_reference), tags=spec.tags
        )
        logger.info(
            "Distribution created",
            extra={
                "distribution_id": remote.id,
                "caller_reference": caller_reference,
                "domain_name": remote.distribution.get("DomainName", ""),
            },
        )

        # Record it before waiting so a timeout never orphans the distribution
        provisional = from_remote(remote.distribution, remote.etag, spec.tags)
        self._store.put(provisional.model_copy(update={"retain_on_delete": spec.retain_on_delete}))

        await self._await_deployed(remote.id, remote.etag)
        return await self._read_existing(remote.id)

    async def read(self, distribution_id: str) -> DistributionState | None:
        """Refresh observed state.

        Returns:
            The observed state, or None if the distribution no longer exists
            (local state is dropped in that case).
        """
        try:
            remote = await self._api.get_distribution(distribution_id)
        except NotFoundError:
            if self._store.remove(distribution_id):
                logger.warning(
                    "Distribution not found remotely, removed from local state",
                    extra={"distribution_id": distribution_id},
                )
            return None

        tags = await self._api.list_tags(remote.arn) if remote.arn else {}
        state = from_remote(remote.distribution, remote.etag, tags)

        updates: dict[str, Any] = {
            "identities": {
                "origins": assign_identities(state.origins),
                "custom_error_responses": assign_identities(state.custom_error_responses),
            }
        }
        previous = self._store.get(distribution_id)
        if previous is not None:
            updates["retain_on_delete"] = previous.retain_on_delete

        state = state.model_copy(update=updates)
        self._store.put(state)
        return state

    async def update(self, distribution_id: str, spec: DistributionSpec) -> DistributionState:
        """Bring an existing distribution in line with the spec.

        Raises:
            ValidationError: Before any remote call, if the spec is invalid.
            NotFoundError: If the distribution does not exist.
            ConflictError: If it was modified between read and update.
        """
        state, _ = await self._update(distribution_id, spec)
        return state

    async def delete(
        self,
        distribution_id: str,
        retain_on_delete: bool | None = None,
    ) -> DeleteResult:
        """Delete (or retain) a distribution and drop it from local state.

        Args:
            distribution_id: Distribution to delete.
            retain_on_delete: Overrides the value recorded in local state.

        Raises:
            DistributionError: Whatever halted the DeleteGuard. Local state is
                kept so the delete can be resumed.
        """
        if retain_on_delete is None:
            stored = self._store.get(distribution_id)
            retain_on_delete = stored.retain_on_delete if stored is not None else False

        result = await self._delete_guard.run(distribution_id, retain_on_delete)
        if result.error is not None:
            raise result.error

        self._store.remove(distribution_id)
        return result

    async def import_distribution(self, distribution_id: str) -> DistributionState:
        """Adopt an existing distribution into local state.

        Fields listed in IMPORT_VERIFY_IGNORE take their defaults.

        Raises:
            NotFoundError: If the distribution does not exist.
        """
        state = await self.read(distribution_id)
        if state is None:
            raise NotFoundError(distribution_id)
        logger.info(
            "Distribution imported",
            extra={
                "distribution_id": distribution_id,
                "ignored_fields": list(IMPORT_VERIFY_IGNORE),
            },
        )
        return state

    async def plan(self, distribution_id: str, spec: DistributionSpec) -> ChangeSet:
        """Preview the changes an update would make. No mutating calls."""
        validate_spec(spec)
        observed = await self._read_existing(distribution_id)
        return self._differ.plan(spec, observed)

    async def apply(
        self,
        spec: DistributionSpec,
        distribution_id: str | None = None,
    ) -> ReconcileResult:
        """Create or update, whichever is needed.

        The target is the given id, else the stored distribution with the
        spec's caller_reference. A target that has vanished remotely is
        recreated.

        Errors are recorded on the result, not raised.
        """
        result = ReconcileResult(distribution_id=distribution_id)

        try:
            target = distribution_id
            if target is None and spec.caller_reference:
                existing = self._store.find_by_caller_reference(spec.caller_reference)
                if existing is not None:
                    target = existing.id

            if target is not None:
                try:
                    state, change_set = await self._update(target, spec)
                    result.change_set = change_set
                    result.action = (
                        ReconcileAction.NO_CHANGE if change_set.is_empty else ReconcileAction.UPDATE
                    )
                except NotFoundError:
                    logger.warning(
                        "Distribution vanished remotely, recreating",
                        extra={"distribution_id": target},
                    )
                    target = None

            if target is None:
                state = await self.create(spec)
                result.action = ReconcileAction.CREATE

            result.distribution_id = state.id
            result.state = state

        except DistributionError as e:
            result.error = e

        finally:
            result.end_time = datetime.now(UTC)

        self._log_result(result)
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    async def _update(
        self,
        distribution_id: str,
        spec: DistributionSpec,
    ) -> tuple[DistributionState, ChangeSet]:
        validate_spec(spec)
        observed = await self._read_existing(distribution_id)
        change_set = self._differ.plan(spec, observed)

        # retain_on_delete is local; record the desired value so reads keep it
        self._store.put(observed.model_copy(update={"retain_on_delete": spec.retain_on_delete}))

        if change_set.is_empty:
            logger.info("No changes", extra={"distribution_id": distribution_id})
            return await self._read_existing(distribution_id), change_set

        if change_set.has_config_changes:
            caller_reference = observed.caller_reference or spec.caller_reference or ""
            updated = await self._api.update_distribution(
                distribution_id, observed.etag, to_remote(spec, caller_reference)
            )
            logger.info(
                "Distribution updated",
                extra={
                    "distribution_id": distribution_id,
                    "changes": len(change_set.config_changes),
                },
            )
            await self._await_deployed(distribution_id, updated.etag)

        delta = change_set.tag_delta
        if not delta.is_empty:
            await self._api.untag_resource(observed.arn, delta.removed)
            await self._api.tag_resource(observed.arn, delta.to_set)
            logger.info(
                "Distribution tags updated",
                extra={
                    "distribution_id": distribution_id,
                    "added": sorted(delta.added),
                    "removed": delta.removed,
                    "modified": sorted(delta.modified),
                },
            )

        return await self._read_existing(distribution_id), change_set

    async def _read_existing(self, distribution_id: str) -> DistributionState:
        state = await self.read(distribution_id)
        if state is None:
            raise NotFoundError(distribution_id)
        return state

    async def _await_deployed(self, distribution_id: str, etag: str) -> None:
        try:
            await self._poller.await_deployed(distribution_id, etag)
        except DeploymentTimeoutError as e:
            if self._fail_on_deployment_timeout:
                raise
            logger.warning(
                "Deployment still in progress after timeout, continuing",
                extra={
                    "distribution_id": distribution_id,
                    "timeout_seconds": e.timeout_seconds,
                },
            )

    def _log_result(self, result: ReconcileResult) -> None:
        """Log reconciliation result with structured data."""
        extra: dict[str, Any] = {
            "distribution_id": result.distribution_id,
            "action": result.action.value if result.action else None,
            "duration_seconds": result.duration_seconds,
        }
        if result.change_set is not None:
            extra["config_changes"] = len(result.change_set.config_changes)
            extra["tag_changes"] = not result.change_set.tag_delta.is_empty

        if result.error is not None:
            extra["error"] = str(result.error)
            extra["error_type"] = type(result.error).__name__
            logger.error("Reconciliation failed", extra=extra)
        else:
            logger.info("Reconciliation result", extra=extra)
