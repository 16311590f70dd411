"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for cloudfront_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from cloudfront_mock import MockCloudFrontClient, MockCloudFrontState  # noqa: E402

from cdn_controller.cloudfront_api import CloudFrontApi  # noqa: E402
from cdn_controller.poller import DeploymentPoller  # noqa: E402
from cdn_controller.reconciler import DistributionReconciler  # noqa: E402


@pytest.fixture
def mock_state() -> MockCloudFrontState:
    """CloudFront state that deploys after one InProgress read."""
    return MockCloudFrontState(deploy_after_reads=1)


@pytest.fixture
def mock_client(mock_state: MockCloudFrontState) -> MockCloudFrontClient:
    return MockCloudFrontClient(mock_state)


@pytest.fixture
def api(mock_client: MockCloudFrontClient) -> CloudFrontApi:
    return CloudFrontApi(mock_client)


@pytest.fixture
def poller(api: CloudFrontApi) -> DeploymentPoller:
    """Poller that does not sleep between reads."""
    return DeploymentPoller(api, interval_seconds=0, timeout_seconds=5)


@pytest.fixture
def reconciler(api: CloudFrontApi, poller: DeploymentPoller) -> DistributionReconciler:
    return DistributionReconciler(api=api, poller=poller)
