"""Tests for the disable -> await -> delete state machine."""

from __future__ import annotations

import pytest
from cloudfront_mock import MockCloudFrontClient, MockCloudFrontState, make_spec, seed_distribution

from cdn_controller.cloudfront_api import CloudFrontApi
from cdn_controller.delete_guard import DeleteGuard, DeleteState, verify_destroyed
from cdn_controller.errors import ConflictError, DeploymentTimeoutError, RemoteError
from cdn_controller.poller import DeploymentPoller


def make_guard(
    state: MockCloudFrontState,
    timeout_seconds: float = 5,
) -> tuple[DeleteGuard, MockCloudFrontClient, CloudFrontApi]:
    client = MockCloudFrontClient(state)
    api = CloudFrontApi(client)
    poller = DeploymentPoller(api, interval_seconds=0, timeout_seconds=timeout_seconds)
    return DeleteGuard(api, poller), client, api


class TestDeleteGuard:
    """Tests for DeleteGuard.run."""

    @pytest.mark.asyncio
    async def test_enabled_distribution(self) -> None:
        """Test an enabled distribution is disabled, awaited, then deleted."""
        state = MockCloudFrontState(deploy_after_reads=1)
        dist = seed_distribution(state)
        original_etag = dist.etag
        guard, client, _ = make_guard(state)

        result = await guard.run(dist.id)

        assert result.success
        assert result.transitions == [
            DeleteState.ACTIVE,
            DeleteState.DISABLING,
            DeleteState.AWAITING_DEPLOYED,
            DeleteState.DELETABLE,
            DeleteState.DELETED,
        ]
        mutating = client.mutating_calls()
        assert [name for name, _ in mutating] == ["update_distribution", "delete_distribution"]

        update_args = mutating[0][1]
        assert update_args["IfMatch"] == original_etag
        assert update_args["DistributionConfig"]["Enabled"] is False

        delete_args = mutating[1][1]
        assert delete_args["IfMatch"] != original_etag
        assert state.get(dist.id) is None

    @pytest.mark.asyncio
    async def test_update_keeps_rest_of_config(self) -> None:
        """Test disabling sends the observed config with only Enabled flipped."""
        state = MockCloudFrontState(deploy_after_reads=0)
        dist = seed_distribution(state)
        original = dict(dist.config)
        guard, client, _ = make_guard(state)

        await guard.run(dist.id)

        sent = client.mutating_calls()[0][1]["DistributionConfig"]
        assert sent == {**original, "Enabled": False}

    @pytest.mark.asyncio
    async def test_disabled_and_deployed(self) -> None:
        """Test an already disabled, deployed distribution is deleted directly."""
        state = MockCloudFrontState()
        dist = seed_distribution(state, make_spec(enabled=False))
        guard, client, _ = make_guard(state)

        result = await guard.run(dist.id)

        assert result.success
        assert result.transitions == [
            DeleteState.ACTIVE,
            DeleteState.DELETABLE,
            DeleteState.DELETED,
        ]
        assert client.call_names() == ["get_distribution", "delete_distribution"]

    @pytest.mark.asyncio
    async def test_disabled_but_in_progress(self) -> None:
        """Test a disablement still propagating is awaited before delete."""
        state = MockCloudFrontState(deploy_after_reads=1)
        dist = seed_distribution(state, make_spec(enabled=False), status="InProgress")
        guard, client, _ = make_guard(state)

        result = await guard.run(dist.id)

        assert result.success
        assert result.transitions == [
            DeleteState.ACTIVE,
            DeleteState.AWAITING_DEPLOYED,
            DeleteState.DELETABLE,
            DeleteState.DELETED,
        ]
        assert client.count("update_distribution") == 0
        assert client.count("delete_distribution") == 1

    @pytest.mark.asyncio
    async def test_already_gone(self) -> None:
        """Test a missing distribution counts as deleted."""
        guard, client, _ = make_guard(MockCloudFrontState())

        result = await guard.run("E9999999999999")

        assert result.success
        assert result.transitions == [DeleteState.ACTIVE, DeleteState.DELETED]
        assert client.mutating_calls() == []

    @pytest.mark.asyncio
    async def test_retain_makes_no_calls(self) -> None:
        """Test retain_on_delete skips every remote call."""
        state = MockCloudFrontState()
        dist = seed_distribution(state)
        guard, client, api = make_guard(state)

        result = await guard.run(dist.id, retain_on_delete=True)

        assert result.success
        assert result.retained
        assert client.calls == []
        assert state.get(dist.id) is not None

        problem = await verify_destroyed(api, dist.id, retained=True)
        assert problem == f"CloudFront distribution {dist.id} should be disabled"

    @pytest.mark.asyncio
    async def test_conflict_while_disabling(self) -> None:
        """Test a stale ETag halts the run in Disabling without retry."""
        state = MockCloudFrontState()
        dist = seed_distribution(state)
        guard, client, _ = make_guard(state)
        client.inject_error("update_distribution", "PreconditionFailed")

        result = await guard.run(dist.id)

        assert not result.success
        assert result.state == DeleteState.DISABLING
        assert isinstance(result.error, ConflictError)
        assert client.count("update_distribution") == 1
        assert client.count("delete_distribution") == 0
        assert state.get(dist.id) is not None

    @pytest.mark.asyncio
    async def test_timeout_then_resume(self) -> None:
        """Test a timed-out run halts in AwaitingDeployed and can be resumed."""
        state = MockCloudFrontState(deploy_after_reads=None)
        dist = seed_distribution(state)
        guard, client, _ = make_guard(state, timeout_seconds=0)

        result = await guard.run(dist.id)

        assert result.state == DeleteState.AWAITING_DEPLOYED
        assert isinstance(result.error, DeploymentTimeoutError)
        assert client.count("delete_distribution") == 0

        # Propagation finishes later; a new run picks up from a fresh read
        dist.status = "Deployed"
        resumed = await guard.run(dist.id)

        assert resumed.success
        assert resumed.transitions == [
            DeleteState.ACTIVE,
            DeleteState.DELETABLE,
            DeleteState.DELETED,
        ]
        assert client.count("update_distribution") == 1

    @pytest.mark.asyncio
    async def test_vanished_before_delete(self) -> None:
        """Test NotFound on the final delete is tolerated."""
        state = MockCloudFrontState()
        dist = seed_distribution(state, make_spec(enabled=False))
        guard, client, _ = make_guard(state)
        client.inject_error("delete_distribution", "NoSuchDistribution")

        result = await guard.run(dist.id)

        assert result.success

    @pytest.mark.asyncio
    async def test_delete_rejected(self) -> None:
        """Test any other delete failure halts in Deletable."""
        state = MockCloudFrontState()
        dist = seed_distribution(state, make_spec(enabled=False))
        guard, client, _ = make_guard(state)
        client.inject_error("delete_distribution", "AccessDenied")

        result = await guard.run(dist.id)

        assert result.state == DeleteState.DELETABLE
        assert isinstance(result.error, RemoteError)
        assert result.error.code == "AccessDenied"


class TestVerifyDestroyed:
    """Tests for verify_destroyed."""

    @pytest.mark.asyncio
    async def test_gone(self) -> None:
        """Test a deleted distribution passes."""
        api = CloudFrontApi(MockCloudFrontClient())
        assert await verify_destroyed(api, "E9999999999999", retained=False) is None

    @pytest.mark.asyncio
    async def test_still_exists(self) -> None:
        """Test a surviving, non-retained distribution is reported."""
        state = MockCloudFrontState()
        dist = seed_distribution(state)
        api = CloudFrontApi(MockCloudFrontClient(state))

        problem = await verify_destroyed(api, dist.id, retained=False)
        assert problem == f"CloudFront distribution {dist.id} did not destroy"

    @pytest.mark.asyncio
    async def test_retained_and_disabled(self) -> None:
        """Test a retained, disabled distribution passes."""
        state = MockCloudFrontState()
        dist = seed_distribution(state, make_spec(enabled=False))
        api = CloudFrontApi(MockCloudFrontClient(state))

        assert await verify_destroyed(api, dist.id, retained=True) is None
