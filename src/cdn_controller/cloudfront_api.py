"""CloudFront control-plane adapter.

Wraps the boto3 ``cloudfront`` client so that the rest of the controller:
1. Awaits every call (blocking boto3 calls run in the default executor)
2. Sees only this package's error taxonomy, never a raw ClientError
3. Deals in DistributionConfig dicts and (distribution, etag) records

Credential resolution, request signing and transport-level retries are left
to boto3/botocore. The retry limit is configured through botocore's
``retries`` setting; the controller itself never retries.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConflictError, NotFoundError, RemoteError

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"NoSuchDistribution", "NoSuchResource"})
CONFLICT_CODES = frozenset({"PreconditionFailed", "InvalidIfMatchVersion"})


@dataclass
class RemoteDistribution:
    """A distribution payload together with its current ETag.

    Attributes:
        distribution: The "Distribution" member of a Get/Create/Update response.
        etag: Precondition token required by the next mutating call.
    """

    distribution: dict[str, Any]
    etag: str

    @property
    def id(self) -> str:
        return self.distribution["Id"]

    @property
    def arn(self) -> str:
        return self.distribution.get("ARN", "")

    @property
    def status(self) -> str:
        return self.distribution.get("Status", "")

    @property
    def config(self) -> dict[str, Any]:
        return self.distribution["DistributionConfig"]

    @property
    def enabled(self) -> bool:
        return bool(self.config.get("Enabled"))


@dataclass
class DistributionSummary:
    """One row of ListDistributions."""

    id: str
    arn: str
    domain_name: str
    status: str
    enabled: bool
    comment: str = ""
    aliases: list[str] = field(default_factory=list)


def _tag_items(tags: Mapping[str, str]) -> dict[str, Any]:
    return {"Items": [{"Key": k, "Value": v} for k, v in sorted(tags.items())]}


def create_client(
    region: str,
    endpoint_url: str | None = None,
    max_attempts: int = 5,
) -> Any:
    """Create a boto3 CloudFront client.

    max_attempts counts every attempt of a call, the first one included.
    """
    return boto3.client(
        "cloudfront",
        region_name=region,
        endpoint_url=endpoint_url or None,
        config=BotoConfig(retries={"total_max_attempts": max_attempts, "mode": "standard"}),
    )


class CloudFrontApi:
    """Async facade over a boto3 CloudFront client.

    The client is injectable so tests can pass an in-memory double with the
    same method names and ClientError behaviour.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: Config) -> CloudFrontApi:
        return cls(
            create_client(
                region=config.aws_region,
                endpoint_url=config.cloudfront_endpoint_url,
                max_attempts=config.cloudfront_max_attempts,
            )
        )

    async def _call(
        self,
        operation: str,
        resource_id: str | None = None,
        etag: str | None = None,
        **params: Any,
    ) -> dict[str, Any]:
        """Run one client operation in the executor and map its errors.

        Raises:
            NotFoundError: Distribution or resource does not exist.
            ConflictError: The If-Match precondition was rejected.
            RemoteError: Any other client or transport failure.
        """
        method = getattr(self._client, operation)
        loop = asyncio.get_running_loop()

        logger.debug(
            "CloudFront call",
            extra={"operation": operation, "resource_id": resource_id},
        )
        try:
            return await loop.run_in_executor(None, functools.partial(method, **params))
        except ClientError as e:
            error = e.response.get("Error", {})
            code = error.get("Code", "Unknown")
            message = error.get("Message", str(e))
            if code in NOT_FOUND_CODES:
                raise NotFoundError(resource_id or "unknown") from e
            if code in CONFLICT_CODES:
                raise ConflictError(resource_id or "unknown", etag, message) from e
            logger.error(
                "CloudFront call failed",
                extra={"operation": operation, "resource_id": resource_id, "code": code},
            )
            raise RemoteError(operation, code, message, e.response) from e
        except BotoCoreError as e:
            logger.error(
                "CloudFront transport failure",
                extra={"operation": operation, "resource_id": resource_id, "error": str(e)},
            )
            raise RemoteError(operation, type(e).__name__, str(e)) from e

    # =========================================================================
    # Distribution lifecycle
    # =========================================================================

    async def create_distribution(
        self,
        config: dict[str, Any],
        tags: Mapping[str, str] | None = None,
    ) -> RemoteDistribution:
        """Create a distribution; tags are attached atomically when given."""
        if tags:
            response = await self._call(
                "create_distribution_with_tags",
                DistributionConfigWithTags={
                    "DistributionConfig": config,
                    "Tags": _tag_items(tags),
                },
            )
        else:
            response = await self._call("create_distribution", DistributionConfig=config)
        return RemoteDistribution(response["Distribution"], response["ETag"])

    async def get_distribution(self, distribution_id: str) -> RemoteDistribution:
        response = await self._call("get_distribution", distribution_id, Id=distribution_id)
        return RemoteDistribution(response["Distribution"], response["ETag"])

    async def update_distribution(
        self,
        distribution_id: str,
        etag: str,
        config: dict[str, Any],
    ) -> RemoteDistribution:
        """Replace the full DistributionConfig, guarded by the ETag."""
        response = await self._call(
            "update_distribution",
            distribution_id,
            etag,
            Id=distribution_id,
            IfMatch=etag,
            DistributionConfig=config,
        )
        return RemoteDistribution(response["Distribution"], response["ETag"])

    async def delete_distribution(self, distribution_id: str, etag: str) -> None:
        await self._call(
            "delete_distribution", distribution_id, etag, Id=distribution_id, IfMatch=etag
        )

    async def list_distributions(self) -> list[DistributionSummary]:
        """List every distribution in the account, following pagination."""

        def collect() -> list[dict[str, Any]]:
            paginator = self._client.get_paginator("list_distributions")
            items: list[dict[str, Any]] = []
            for page in paginator.paginate():
                items.extend(page.get("DistributionList", {}).get("Items") or [])
            return items

        loop = asyncio.get_running_loop()
        try:
            items = await loop.run_in_executor(None, collect)
        except ClientError as e:
            error = e.response.get("Error", {})
            raise RemoteError(
                "list_distributions",
                error.get("Code", "Unknown"),
                error.get("Message", str(e)),
                e.response,
            ) from e
        except BotoCoreError as e:
            raise RemoteError("list_distributions", type(e).__name__, str(e)) from e

        return [
            DistributionSummary(
                id=item["Id"],
                arn=item.get("ARN", ""),
                domain_name=item.get("DomainName", ""),
                status=item.get("Status", ""),
                enabled=bool(item.get("Enabled")),
                comment=item.get("Comment", ""),
                aliases=list((item.get("Aliases") or {}).get("Items") or []),
            )
            for item in items
        ]

    # =========================================================================
    # Tagging (addressed by ARN)
    # =========================================================================

    async def list_tags(self, arn: str) -> dict[str, str]:
        response = await self._call("list_tags_for_resource", arn, Resource=arn)
        items = (response.get("Tags") or {}).get("Items") or []
        return {item["Key"]: item.get("Value", "") for item in items}

    async def tag_resource(self, arn: str, tags: Mapping[str, str]) -> None:
        if not tags:
            return
        await self._call("tag_resource", arn, Resource=arn, Tags=_tag_items(tags))

    async def untag_resource(self, arn: str, keys: list[str]) -> None:
        if not keys:
            return
        await self._call(
            "untag_resource", arn, Resource=arn, TagKeys={"Items": sorted(keys)}
        )
