"""Error taxonomy for distribution reconciliation.

Every failure the reconciler surfaces is one of these types:

- ValidationError: pre-flight problem with the desired spec. Never reaches
  the remote API.
- ConflictError: stale ETag precondition. Recoverable by a fresh Read and a
  retry, which is left to the caller.
- DeploymentTimeoutError: deployment polling exceeded its timeout. Carries the
  last observed state so the caller can decide whether it is fatal.
- NotFoundError: the distribution no longer exists remotely.
- RemoteError: any other API failure, with the remote diagnostic attached.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import DistributionState


class DistributionError(Exception):
    """Base class for all reconciliation errors."""

    pass


class ValidationError(DistributionError):
    """Raised when a desired spec fails pre-flight validation.

    Attributes:
        problems: List of (field_path, message) tuples, one per offending field.
    """

    def __init__(self, problems: list[tuple[str, str]]) -> None:
        self.problems = list(problems)
        lines = [f"{path} {message}" if path else message for path, message in self.problems]
        super().__init__("Spec validation failed:\n  - " + "\n  - ".join(lines))

    @property
    def fields(self) -> list[str]:
        """Field paths named by the problems, in report order."""
        return [path for path, _ in self.problems]


class ConflictError(DistributionError):
    """Raised when a mutating call is rejected because the ETag is stale."""

    def __init__(self, distribution_id: str, etag: str | None, message: str = "") -> None:
        self.distribution_id = distribution_id
        self.etag = etag
        super().__init__(
            f"Precondition failed for distribution {distribution_id} (etag {etag}): "
            f"{message or 'resource was modified concurrently'}. Re-read and retry."
        )


class DeploymentTimeoutError(DistributionError, TimeoutError):
    """Raised when a distribution does not reach Deployed in time."""

    def __init__(
        self,
        distribution_id: str,
        timeout_seconds: float,
        last_state: DistributionState | None,
    ) -> None:
        self.distribution_id = distribution_id
        self.timeout_seconds = timeout_seconds
        self.last_state = last_state
        status = last_state.status.value if last_state is not None else "unknown"
        super().__init__(
            f"Distribution {distribution_id} not deployed after {timeout_seconds:.0f}s "
            f"(last status: {status})"
        )


class NotFoundError(DistributionError):
    """Raised when the distribution does not exist remotely."""

    def __init__(self, distribution_id: str) -> None:
        self.distribution_id = distribution_id
        super().__init__(f"Distribution {distribution_id} not found")


class RemoteError(DistributionError):
    """Raised for any other remote API failure.

    Attributes:
        code: Remote error code (e.g. "AccessDenied").
        operation: API operation that failed.
        response: Raw diagnostic payload returned by the remote service.
    """

    def __init__(
        self,
        operation: str,
        code: str,
        message: str,
        response: dict[str, Any] | None = None,
    ) -> None:
        self.operation = operation
        self.code = code
        self.response = response or {}
        super().__init__(f"{operation} failed ({code}): {message}")
