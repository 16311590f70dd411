"""Main entry point for the CloudFront distribution operator.

The operator reloads one spec file every RECONCILE_INTERVAL seconds and
applies it. Repeated failures open a circuit breaker that pauses
reconciliation for CIRCUIT_BREAKER_RESET_SECONDS.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
import time
from datetime import UTC, datetime
from pathlib import Path

from .config import Config, ConfigurationError
from .models import DistributionSpec
from .reconciler import DistributionReconciler, ReconcileResult, stable_caller_reference
from .spec_loader import SpecLoadError, load_spec
from .state_store import StateStoreError

# Failed cycles in a row before reconciliation pauses, and for how long
MAX_CONSECUTIVE_FAILURES = 5
CIRCUIT_BREAKER_RESET_SECONDS = 300

# LogRecord attributes that are not user-supplied extra fields
_RESERVED_LOG_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line; extra= fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, UTC)
        entry = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_LOG_ATTRS
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: int = logging.INFO) -> None:
    """Send JSON log lines to stdout and quiet the AWS SDK loggers."""
    stdout = logging.StreamHandler(sys.stdout)
    stdout.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[stdout], force=True)

    for noisy in ("botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


class Operator:
    """Periodic reconciliation of a single spec file."""

    def __init__(
        self,
        config: Config,
        reconciler: DistributionReconciler,
        spec_path: Path,
    ) -> None:
        self._config = config
        self._reconciler = reconciler
        self._spec_path = spec_path
        self._stopping = asyncio.Event()
        self._failures = 0
        # time.monotonic() deadline while the breaker is open
        self._paused_until: float | None = None

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def circuit_open(self) -> bool:
        return self._paused_until is not None

    def _load(self) -> DistributionSpec:
        spec = load_spec(self._spec_path)
        if spec.caller_reference is None:
            spec = spec.model_copy(
                update={"caller_reference": stable_caller_reference(self._spec_path)}
            )
        return spec

    async def reconcile_once(self) -> ReconcileResult:
        """Load the spec and apply it. Errors are recorded on the result."""
        try:
            spec = self._load()
        except SpecLoadError as e:
            logger.error(
                "Spec loading failed",
                extra={"spec_path": str(self._spec_path), "error": str(e)},
            )
            return ReconcileResult(error=e, end_time=datetime.now(UTC))

        return await self._reconciler.apply(spec)

    def record_result(self, result: ReconcileResult) -> None:
        """Update circuit breaker state from a cycle result."""
        if result.error is None:
            self._failures = 0
            return

        self._failures += 1
        if self._failures < MAX_CONSECUTIVE_FAILURES:
            return
        self._paused_until = time.monotonic() + CIRCUIT_BREAKER_RESET_SECONDS
        logger.error(
            "Pausing reconciliation after repeated failures",
            extra={
                "spec_path": str(self._spec_path),
                "failures": self._failures,
                "pause_seconds": CIRCUIT_BREAKER_RESET_SECONDS,
            },
        )

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early on shutdown."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except TimeoutError:
            return

    def _paused_for(self) -> float:
        """Seconds left on an open breaker; closes it once expired."""
        if self._paused_until is None:
            return 0.0
        left = self._paused_until - time.monotonic()
        if left > 0:
            return left
        logger.info("Resuming reconciliation", extra={"spec_path": str(self._spec_path)})
        self._paused_until = None
        self._failures = 0
        return 0.0

    async def run(self) -> None:
        """Run the reconciliation loop until shutdown."""
        logger.info(
            "Starting operator",
            extra={
                "spec_path": str(self._spec_path),
                "reconcile_interval": self._config.reconcile_interval_seconds,
                "region": self._config.aws_region,
            },
        )

        interval = self._config.reconcile_interval_seconds
        while not self._stopping.is_set():
            left = self._paused_for()
            if left:
                logger.warning(
                    "Reconciliation paused",
                    extra={"remaining_seconds": round(left, 1), "failures": self._failures},
                )
                await self._sleep(min(left, interval))
                continue

            self.record_result(await self.reconcile_once())
            await self._sleep(interval)

        logger.info("Operator shutdown complete")

    def shutdown(self) -> None:
        """Signal the operator to stop."""
        logger.info("Shutdown requested")
        self._stopping.set()


async def main() -> int:
    """Run the operator.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    setup_logging()

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    if config.spec_path is None:
        logger.error("Configuration error", extra={"error": "SPEC_PATH is required"})
        return 1

    try:
        reconciler = DistributionReconciler.from_config(config)
    except StateStoreError as e:
        logger.error("Failed to load local state", extra={"error": str(e)})
        return 1

    operator = Operator(config, reconciler, config.spec_path)

    loop = asyncio.get_running_loop()

    def on_signal(signum: signal.Signals) -> None:
        logger.info("Stopping on signal", extra={"signal": signum.name})
        operator.shutdown()

    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, on_signal, signum)

    try:
        await operator.run()
    except Exception:
        logger.exception("Operator loop crashed")
        return 1

    logger.info("Operator exited")
    return 0


def run() -> None:
    """Entry point for the operator."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
