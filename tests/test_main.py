"""Tests for the operator loop and structured logging."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest
import yaml
from cloudfront_mock import MockCloudFrontClient, distribution_data

from cdn_controller.config import Config
from cdn_controller.main import MAX_CONSECUTIVE_FAILURES, JsonFormatter, Operator
from cdn_controller.reconciler import (
    DistributionReconciler,
    ReconcileAction,
    ReconcileResult,
    stable_caller_reference,
)
from cdn_controller.spec_loader import SpecLoadError


@pytest.fixture
def spec_file(tmp_path: Path) -> Path:
    path = tmp_path / "distribution.yaml"
    path.write_text(yaml.safe_dump(distribution_data()))
    return path


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_extra_fields_included(self) -> None:
        """Test structured fields from extra= end up in the JSON line."""
        record = logging.LogRecord(
            name="cdn_controller.reconciler",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Distribution created",
            args=(),
            exc_info=None,
        )
        record.distribution_id = "E0000000000001"

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "Distribution created"
        assert data["level"] == "INFO"
        assert data["logger"] == "cdn_controller.reconciler"
        assert data["distribution_id"] == "E0000000000001"
        assert data["timestamp"].endswith("Z")
        assert "lineno" not in data

    def test_exception_included(self) -> None:
        """Test exception text is rendered."""
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        record = logging.LogRecord(
            name="test",
            level=logging.ERROR,
            pathname=__file__,
            lineno=1,
            msg="failed",
            args=(),
            exc_info=exc_info,
        )
        data = json.loads(JsonFormatter().format(record))
        assert "ValueError: boom" in data["exception"]


class TestOperator:
    """Tests for Operator reconciliation cycles."""

    @pytest.mark.asyncio
    async def test_repeated_cycles_update_in_place(
        self,
        reconciler: DistributionReconciler,
        mock_client: MockCloudFrontClient,
        spec_file: Path,
    ) -> None:
        """Test the second cycle finds the distribution created by the first."""
        operator = Operator(Config(), reconciler, spec_file)

        first = await operator.reconcile_once()
        second = await operator.reconcile_once()

        assert first.action == ReconcileAction.CREATE
        assert second.action == ReconcileAction.NO_CHANGE
        assert second.distribution_id == first.distribution_id
        assert first.state.caller_reference == stable_caller_reference(spec_file)
        assert mock_client.state.distribution_count == 1

    @pytest.mark.asyncio
    async def test_spec_load_failure_recorded(
        self, reconciler: DistributionReconciler, tmp_path: Path
    ) -> None:
        """Test a broken spec file is an error result, not an exception."""
        path = tmp_path / "broken.yaml"
        path.write_text("origins: [unclosed\n")
        operator = Operator(Config(), reconciler, path)

        result = await operator.reconcile_once()

        assert isinstance(result.error, SpecLoadError)
        assert result.end_time is not None

    def test_circuit_breaker_opens(
        self, reconciler: DistributionReconciler, spec_file: Path
    ) -> None:
        """Test repeated failures open the circuit breaker."""
        operator = Operator(Config(), reconciler, spec_file)

        for _ in range(MAX_CONSECUTIVE_FAILURES - 1):
            operator.record_result(ReconcileResult(error=RuntimeError("fail")))
        assert not operator.circuit_open

        operator.record_result(ReconcileResult(error=RuntimeError("fail")))
        assert operator.circuit_open
        assert operator.consecutive_failures == MAX_CONSECUTIVE_FAILURES

    def test_success_resets_failures(
        self, reconciler: DistributionReconciler, spec_file: Path
    ) -> None:
        """Test a successful cycle resets the failure count."""
        operator = Operator(Config(), reconciler, spec_file)

        operator.record_result(ReconcileResult(error=RuntimeError("fail")))
        operator.record_result(ReconcileResult())

        assert operator.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_shutdown_stops_loop(
        self, reconciler: DistributionReconciler, spec_file: Path
    ) -> None:
        """Test the loop exits once shutdown is requested."""
        operator = Operator(Config(), reconciler, spec_file)
        operator.shutdown()

        await operator.run()

        assert operator.consecutive_failures == 0
