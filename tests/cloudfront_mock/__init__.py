"""CloudFront API Mock for Integration Testing.

In-memory stand-in for ``boto3.client("cloudfront")`` that lets the
controller run end to end without AWS.

Key Features:
- Deployment propagation simulation (InProgress -> Deployed after N reads)
- ETag preconditions on update and delete
- Tagging by ARN
- Error injection with real botocore ClientError instances
- Call log for asserting the exact API sequence

Usage:
    from cloudfront_mock import MockCloudFrontClient, MockCloudFrontState

    client = MockCloudFrontClient(MockCloudFrontState(deploy_after_reads=1))
    reconciler = DistributionReconciler(api=CloudFrontApi(client), ...)
    await reconciler.create(spec)

    assert client.count("create_distribution_with_tags") == 1
"""

from .client import MockCloudFrontClient, client_error
from .specs import (
    CUSTOM_ORIGIN,
    S3_ORIGIN,
    TEST_CALLER_REFERENCE,
    distribution_data,
    make_spec,
    make_state,
    ordered_behavior,
    remote_config,
    seed_distribution,
)
from .state import ACCOUNT_ID, MockCloudFrontState, MockDistribution

__all__ = [
    "ACCOUNT_ID",
    "CUSTOM_ORIGIN",
    "MockCloudFrontClient",
    "MockCloudFrontState",
    "MockDistribution",
    "S3_ORIGIN",
    "TEST_CALLER_REFERENCE",
    "client_error",
    "distribution_data",
    "make_spec",
    "make_state",
    "ordered_behavior",
    "remote_config",
    "seed_distribution",
]
