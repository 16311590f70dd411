"""Pydantic models for distribution specifications and observed state.

These models provide:
1. Type-safe parsing of the declarative attribute tree (snake_case fields,
   camelCase aliases accepted)
2. Enum-style validation of closed value sets at the boundary
3. A persisted shape for observed state

Semantic checks that span fields (origin references, TTL ordering, ambiguous
block identity) live in translator.validate_spec so they surface as a single
pre-flight ValidationError.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field, field_validator

# Shared model configuration: ignore unknown keys, accept both names
_MODEL_CONFIG = {"extra": "ignore", "populate_by_name": True}

NonNegativeInt = Annotated[int, Field(ge=0)]

VALID_ORIGIN_PROTOCOL_POLICIES = {"http-only", "https-only", "match-viewer"}
VALID_SSL_PROTOCOLS = {"SSLv3", "TLSv1", "TLSv1.1", "TLSv1.2"}
VALID_VIEWER_PROTOCOL_POLICIES = {"allow-all", "https-only", "redirect-to-https"}
VALID_METHODS = {"DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"}
VALID_COOKIE_FORWARD = {"all", "none", "whitelist"}
VALID_EVENT_TYPES = {"viewer-request", "viewer-response", "origin-request", "origin-response"}
VALID_HTTP_VERSIONS = {"http1.1", "http2", "http2and3", "http3"}
VALID_PRICE_CLASSES = {"PriceClass_All", "PriceClass_200", "PriceClass_100"}
VALID_RESTRICTION_TYPES = {"none", "whitelist", "blacklist"}
VALID_SSL_SUPPORT_METHODS = {"sni-only", "vip", "static-ip"}


class DistributionStatus(str, Enum):
    """Propagation status reported by CloudFront."""

    IN_PROGRESS = "InProgress"
    DEPLOYED = "Deployed"


# =============================================================================
# Origins
# =============================================================================


class CustomHeader(BaseModel):
    """Header CloudFront adds to requests sent to an origin."""

    model_config = _MODEL_CONFIG

    name: Annotated[str, Field(min_length=1)]
    value: str


class S3OriginConfig(BaseModel):
    """Storage-backed origin settings."""

    model_config = _MODEL_CONFIG

    origin_access_identity: str = Field("", alias="originAccessIdentity")


class CustomOriginConfig(BaseModel):
    """HTTP/HTTPS origin settings."""

    model_config = _MODEL_CONFIG

    http_port: Annotated[int, Field(ge=1, le=65535, alias="httpPort")] = 80
    https_port: Annotated[int, Field(ge=1, le=65535, alias="httpsPort")] = 443
    origin_protocol_policy: str = Field(alias="originProtocolPolicy")
    origin_ssl_protocols: list[str] = Field(alias="originSslProtocols")
    origin_read_timeout: Annotated[int, Field(ge=1, le=180, alias="originReadTimeout")] = 30
    origin_keepalive_timeout: Annotated[
        int, Field(ge=1, le=180, alias="originKeepaliveTimeout")
    ] = 5

    @field_validator("origin_protocol_policy")
    @classmethod
    def validate_protocol_policy(cls, v: str) -> str:
        if v not in VALID_ORIGIN_PROTOCOL_POLICIES:
            raise ValueError(
                f"origin_protocol_policy must be one of {VALID_ORIGIN_PROTOCOL_POLICIES}"
            )
        return v

    @field_validator("origin_ssl_protocols")
    @classmethod
    def validate_ssl_protocols(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("origin_ssl_protocols must not be empty")
        invalid = set(v) - VALID_SSL_PROTOCOLS
        if invalid:
            raise ValueError(f"unsupported SSL protocols {sorted(invalid)}")
        return v


class Origin(BaseModel):
    """A backend the distribution fetches content from.

    domain_name and origin_id are deliberately not length-constrained here:
    emptiness is reported by translator.validate_spec with the field named.
    """

    model_config = _MODEL_CONFIG

    domain_name: str = Field(alias="domainName")
    origin_id: str = Field(alias="originId")
    origin_path: str = Field("", alias="originPath")
    custom_headers: list[CustomHeader] = Field(default_factory=list, alias="customHeaders")
    s3_origin_config: S3OriginConfig | None = Field(None, alias="s3OriginConfig")
    custom_origin_config: CustomOriginConfig | None = Field(None, alias="customOriginConfig")


# =============================================================================
# Cache Behaviors
# =============================================================================


class CookiePreference(BaseModel):
    """Cookie forwarding policy."""

    model_config = _MODEL_CONFIG

    forward: str
    whitelisted_names: list[str] = Field(default_factory=list, alias="whitelistedNames")

    @field_validator("forward")
    @classmethod
    def validate_forward(cls, v: str) -> str:
        if v not in VALID_COOKIE_FORWARD:
            raise ValueError(f"forward must be one of {VALID_COOKIE_FORWARD}")
        return v


class ForwardedValues(BaseModel):
    """Which parts of a viewer request are forwarded to the origin."""

    model_config = _MODEL_CONFIG

    query_string: bool = Field(alias="queryString")
    cookies: CookiePreference
    headers: list[str] = Field(default_factory=list)
    query_string_cache_keys: list[str] = Field(default_factory=list, alias="queryStringCacheKeys")


class LambdaFunctionAssociation(BaseModel):
    """Edge function triggered for a cache behavior."""

    model_config = _MODEL_CONFIG

    event_type: str = Field(alias="eventType")
    lambda_arn: Annotated[str, Field(min_length=1, alias="lambdaArn")]
    include_body: bool = Field(False, alias="includeBody")

    @field_validator("event_type")
    @classmethod
    def validate_event_type(cls, v: str) -> str:
        if v not in VALID_EVENT_TYPES:
            raise ValueError(f"event_type must be one of {VALID_EVENT_TYPES}")
        return v


class CacheBehavior(BaseModel):
    """Forwarding and caching policy shared by default and ordered behaviors.

    TTLs and cached_methods are optional here; their defaults are decided in
    translator.normalize_spec.
    """

    model_config = _MODEL_CONFIG

    target_origin_id: str = Field(alias="targetOriginId")
    viewer_protocol_policy: str = Field(alias="viewerProtocolPolicy")
    allowed_methods: list[str] = Field(
        default_factory=lambda: ["GET", "HEAD"], alias="allowedMethods"
    )
    cached_methods: list[str] | None = Field(None, alias="cachedMethods")
    forwarded_values: ForwardedValues = Field(alias="forwardedValues")
    min_ttl: NonNegativeInt | None = Field(None, alias="minTtl")
    default_ttl: NonNegativeInt | None = Field(None, alias="defaultTtl")
    max_ttl: NonNegativeInt | None = Field(None, alias="maxTtl")
    compress: bool = False
    smooth_streaming: bool = Field(False, alias="smoothStreaming")
    field_level_encryption_id: str = Field("", alias="fieldLevelEncryptionId")
    trusted_signers: list[str] = Field(default_factory=list, alias="trustedSigners")
    lambda_function_associations: list[LambdaFunctionAssociation] = Field(
        default_factory=list, alias="lambdaFunctionAssociations"
    )

    @field_validator("viewer_protocol_policy")
    @classmethod
    def validate_viewer_protocol_policy(cls, v: str) -> str:
        if v not in VALID_VIEWER_PROTOCOL_POLICIES:
            raise ValueError(
                f"viewer_protocol_policy must be one of {VALID_VIEWER_PROTOCOL_POLICIES}"
            )
        return v

    @field_validator("allowed_methods", "cached_methods")
    @classmethod
    def validate_methods(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        upper = [m.upper() for m in v]
        invalid = set(upper) - VALID_METHODS
        if invalid:
            raise ValueError(f"unsupported HTTP methods {sorted(invalid)}")
        return upper


class DefaultCacheBehavior(CacheBehavior):
    """The singular catch-all behavior."""

    pass


class OrderedCacheBehavior(CacheBehavior):
    """A path-matched behavior. Evaluated by CloudFront in declaration order."""

    path_pattern: Annotated[str, Field(min_length=1, alias="pathPattern")]


# =============================================================================
# Distribution-level Settings
# =============================================================================


class LoggingConfig(BaseModel):
    """Access log destination."""

    model_config = _MODEL_CONFIG

    bucket: Annotated[str, Field(min_length=1)]
    prefix: str = ""
    include_cookies: bool = Field(False, alias="includeCookies")


class GeoRestriction(BaseModel):
    """Country-level access restriction."""

    model_config = _MODEL_CONFIG

    restriction_type: str = Field(alias="restrictionType")
    locations: list[str] = Field(default_factory=list)

    @field_validator("restriction_type")
    @classmethod
    def validate_restriction_type(cls, v: str) -> str:
        if v not in VALID_RESTRICTION_TYPES:
            raise ValueError(f"restriction_type must be one of {VALID_RESTRICTION_TYPES}")
        return v


class Restrictions(BaseModel):
    """Wrapper for restriction settings."""

    model_config = _MODEL_CONFIG

    geo_restriction: GeoRestriction = Field(alias="geoRestriction")


class ViewerCertificate(BaseModel):
    """TLS certificate presented to viewers."""

    model_config = _MODEL_CONFIG

    cloudfront_default_certificate: bool = Field(False, alias="cloudfrontDefaultCertificate")
    acm_certificate_arn: str = Field("", alias="acmCertificateArn")
    iam_certificate_id: str = Field("", alias="iamCertificateId")
    minimum_protocol_version: str = Field("TLSv1", alias="minimumProtocolVersion")
    ssl_support_method: str = Field("", alias="sslSupportMethod")


class CustomErrorResponse(BaseModel):
    """Replacement response for an origin error code."""

    model_config = _MODEL_CONFIG

    error_code: Annotated[int, Field(ge=400, le=599, alias="errorCode")]
    response_code: int | None = Field(None, alias="responseCode")
    response_page_path: str = Field("", alias="responsePagePath")
    error_caching_min_ttl: NonNegativeInt | None = Field(None, alias="errorCachingMinTtl")


# =============================================================================
# Distribution
# =============================================================================


class DistributionSpec(BaseModel):
    """Desired state of a distribution."""

    model_config = _MODEL_CONFIG

    origins: list[Origin] = Field(default_factory=list)
    default_cache_behavior: DefaultCacheBehavior = Field(alias="defaultCacheBehavior")
    ordered_cache_behaviors: list[OrderedCacheBehavior] = Field(
        default_factory=list, alias="orderedCacheBehaviors"
    )
    enabled: bool
    is_ipv6_enabled: bool = Field(False, alias="isIpv6Enabled")
    comment: Annotated[str, Field(max_length=128)] = ""
    default_root_object: str = Field("", alias="defaultRootObject")
    http_version: str = Field("http2", alias="httpVersion")
    price_class: str = Field("PriceClass_All", alias="priceClass")
    web_acl_id: str = Field("", alias="webAclId")
    logging_config: LoggingConfig | None = Field(None, alias="loggingConfig")
    aliases: list[str] = Field(default_factory=list)
    restrictions: Restrictions
    viewer_certificate: ViewerCertificate = Field(alias="viewerCertificate")
    custom_error_responses: list[CustomErrorResponse] = Field(
        default_factory=list, alias="customErrorResponses"
    )
    tags: dict[str, str] = Field(default_factory=dict)

    # Local only, never sent to CloudFront
    retain_on_delete: bool = Field(False, alias="retainOnDelete")

    # Generated at create time when not supplied
    caller_reference: str | None = Field(None, alias="callerReference")

    @field_validator("http_version")
    @classmethod
    def validate_http_version(cls, v: str) -> str:
        if v not in VALID_HTTP_VERSIONS:
            raise ValueError(f"http_version must be one of {VALID_HTTP_VERSIONS}")
        return v

    @field_validator("price_class")
    @classmethod
    def validate_price_class(cls, v: str) -> str:
        if v not in VALID_PRICE_CLASSES:
            raise ValueError(f"price_class must be one of {VALID_PRICE_CLASSES}")
        return v


class DistributionState(DistributionSpec):
    """Observed state of a distribution, as read back from CloudFront."""

    id: Annotated[str, Field(min_length=1)]
    arn: str = ""
    domain_name: str = Field("", alias="domainName")
    hosted_zone_id: str = Field("", alias="hostedZoneId")
    status: DistributionStatus = DistributionStatus.IN_PROGRESS
    etag: str = ""
    last_modified_time: datetime | None = Field(None, alias="lastModifiedTime")
    in_progress_invalidation_batches: int = Field(0, alias="inProgressInvalidationBatches")

    # Block identities keyed by collection name; recomputed on every read
    identities: dict[str, list[str]] = Field(default_factory=dict, exclude=True)

    @property
    def is_deployed(self) -> bool:
        return self.status == DistributionStatus.DEPLOYED

    def to_spec(self) -> DistributionSpec:
        """Project the observed state back onto the desired-state shape."""
        data = self.model_dump(include=set(DistributionSpec.model_fields))
        return DistributionSpec.model_validate(data)
