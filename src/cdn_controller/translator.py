"""Translation between the declarative spec and the CloudFront wire format.

Three steps, always in this order:
1. validate_spec: pre-flight checks that never touch the remote API
2. normalize_spec: the ONLY place default values are decided
3. to_remote / from_remote: shape conversion (Quantity/Items wrappers, etc.)

Because from_remote also normalizes, from_remote(to_remote(s)) equals
normalize_spec(s) for every valid spec, apart from local-only fields.

WIRE FORMAT NOTES:
- Repeated values are wrapped as {"Quantity": n, "Items": [...]}; CloudFront
  omits Items when Quantity is 0
- GeoRestriction always carries an explicit Items list, even for "none"
- Logging is a required block; an absent logging_config is sent disabled
- CustomErrorResponse.ResponseCode is a string on the wire
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from .errors import ValidationError
from .hashing import ensure_unique_identities
from .models import (
    VALID_SSL_SUPPORT_METHODS,
    CacheBehavior,
    CookiePreference,
    CustomErrorResponse,
    CustomHeader,
    CustomOriginConfig,
    DefaultCacheBehavior,
    DistributionSpec,
    DistributionState,
    DistributionStatus,
    ForwardedValues,
    GeoRestriction,
    LambdaFunctionAssociation,
    LoggingConfig,
    OrderedCacheBehavior,
    Origin,
    Restrictions,
    S3OriginConfig,
    ViewerCertificate,
)

logger = logging.getLogger(__name__)

# Defaults applied by normalize_spec
DEFAULT_MIN_TTL = 0
DEFAULT_DEFAULT_TTL = 86400
DEFAULT_MAX_TTL = 31536000
CACHEABLE_METHODS = ("GET", "HEAD")
# The only method sets CloudFront accepts for a cache behavior
ALLOWED_METHOD_SETS = (
    frozenset({"GET", "HEAD"}),
    frozenset({"GET", "HEAD", "OPTIONS"}),
    frozenset({"DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"}),
)
CACHED_METHOD_SETS = ALLOWED_METHOD_SETS[:2]

# CloudFront serves every distribution from this Route 53 hosted zone
CLOUDFRONT_HOSTED_ZONE_ID = "Z2FDTNDATAQYW2"

BehaviorT = TypeVar("BehaviorT", bound=CacheBehavior)


# =============================================================================
# Validation
# =============================================================================


def validate_spec(spec: DistributionSpec) -> None:
    """Check a desired spec before any remote call is made.

    All problems are collected and reported together.

    Raises:
        ValidationError: Naming every offending field.
    """
    problems: list[tuple[str, str]] = []

    if not spec.origins:
        problems.append(("origins", "must contain at least one origin"))

    normalized_origins = [normalize_origin(o) for o in spec.origins]
    ambiguous = _identity_problems(normalized_origins, "origins")
    problems.extend(ambiguous)
    ambiguous_paths = {path for path, _ in ambiguous}

    origin_ids: set[str] = set()
    for index, origin in enumerate(spec.origins):
        path = f"origins[{index}]"
        if not origin.domain_name.strip():
            problems.append((f"{path}.domain_name", "must not be empty"))
        if not origin.origin_id.strip():
            problems.append((f"{path}.origin_id", "must not be empty"))
        elif origin.origin_id in origin_ids and path not in ambiguous_paths:
            problems.append((f"{path}.origin_id", f"duplicates origin_id '{origin.origin_id}'"))
        origin_ids.add(origin.origin_id)
        if origin.s3_origin_config is not None and origin.custom_origin_config is not None:
            problems.append(
                (path, "must set only one of s3_origin_config or custom_origin_config")
            )

    problems.extend(
        _behavior_problems("default_cache_behavior", spec.default_cache_behavior, origin_ids)
    )
    path_patterns: set[str] = set()
    for index, behavior in enumerate(spec.ordered_cache_behaviors):
        path = f"ordered_cache_behaviors[{index}]"
        problems.extend(_behavior_problems(path, behavior, origin_ids))
        if behavior.path_pattern in path_patterns:
            problems.append(
                (f"{path}.path_pattern", f"duplicates path_pattern '{behavior.path_pattern}'")
            )
        path_patterns.add(behavior.path_pattern)

    geo = spec.restrictions.geo_restriction
    if geo.restriction_type == "none" and geo.locations:
        problems.append(
            (
                "restrictions.geo_restriction.locations",
                "must be empty when restriction_type is none",
            )
        )
    if geo.restriction_type != "none" and not geo.locations:
        problems.append(
            (
                "restrictions.geo_restriction.locations",
                f"must not be empty when restriction_type is {geo.restriction_type}",
            )
        )

    problems.extend(_certificate_problems(spec.viewer_certificate))

    normalized_errors = sorted(spec.custom_error_responses, key=lambda r: r.error_code)
    ambiguous = _identity_problems(normalized_errors, "custom_error_responses")
    problems.extend(ambiguous)
    if not ambiguous:
        error_codes: set[int] = set()
        for index, response in enumerate(spec.custom_error_responses):
            if response.error_code in error_codes:
                problems.append(
                    (
                        f"custom_error_responses[{index}].error_code",
                        f"duplicates error_code {response.error_code}",
                    )
                )
            error_codes.add(response.error_code)

    if problems:
        raise ValidationError(problems)


def _identity_problems(blocks: list[Any], field_name: str) -> list[tuple[str, str]]:
    try:
        ensure_unique_identities(blocks, field_name)
    except ValidationError as e:
        return e.problems
    return []


def _behavior_problems(
    path: str, behavior: CacheBehavior, origin_ids: set[str]
) -> list[tuple[str, str]]:
    problems: list[tuple[str, str]] = []

    if not behavior.target_origin_id:
        problems.append((f"{path}.target_origin_id", "must not be empty"))
    elif behavior.target_origin_id not in origin_ids:
        problems.append(
            (
                f"{path}.target_origin_id",
                f"references unknown origin '{behavior.target_origin_id}'",
            )
        )

    if not behavior.allowed_methods:
        problems.append((f"{path}.allowed_methods", "must not be empty"))
    elif frozenset(behavior.allowed_methods) not in ALLOWED_METHOD_SETS:
        problems.append(
            (
                f"{path}.allowed_methods",
                "must be GET,HEAD or GET,HEAD,OPTIONS or all seven methods, "
                f"got {sorted(set(behavior.allowed_methods))}",
            )
        )
    if behavior.cached_methods is not None:
        extra = set(behavior.cached_methods) - set(behavior.allowed_methods)
        if extra:
            problems.append(
                (
                    f"{path}.cached_methods",
                    f"must be a subset of allowed_methods, got {sorted(extra)}",
                )
            )
        elif frozenset(behavior.cached_methods) not in CACHED_METHOD_SETS:
            problems.append(
                (
                    f"{path}.cached_methods",
                    "must be GET,HEAD or GET,HEAD,OPTIONS, "
                    f"got {sorted(set(behavior.cached_methods))}",
                )
            )

    normalized = normalize_behavior(behavior)
    if not (normalized.min_ttl <= normalized.default_ttl <= normalized.max_ttl):
        problems.append(
            (
                f"{path}.default_ttl",
                f"must satisfy min_ttl <= default_ttl <= max_ttl "
                f"({normalized.min_ttl}, {normalized.default_ttl}, {normalized.max_ttl})",
            )
        )

    cookies = behavior.forwarded_values.cookies
    if cookies.forward == "whitelist" and not cookies.whitelisted_names:
        problems.append(
            (
                f"{path}.forwarded_values.cookies.whitelisted_names",
                "must not be empty when forward is whitelist",
            )
        )

    event_types = [a.event_type for a in behavior.lambda_function_associations]
    if len(event_types) != len(set(event_types)):
        problems.append(
            (f"{path}.lambda_function_associations", "must not repeat an event_type")
        )

    return problems


def _certificate_problems(cert: ViewerCertificate) -> list[tuple[str, str]]:
    sources = [
        name
        for name, is_set in (
            ("cloudfront_default_certificate", cert.cloudfront_default_certificate),
            ("acm_certificate_arn", bool(cert.acm_certificate_arn)),
            ("iam_certificate_id", bool(cert.iam_certificate_id)),
        )
        if is_set
    ]
    if len(sources) != 1:
        return [
            (
                "viewer_certificate",
                "must set exactly one of cloudfront_default_certificate, "
                f"acm_certificate_arn or iam_certificate_id (got {sources or 'none'})",
            )
        ]
    if sources[0] != "cloudfront_default_certificate" and (
        cert.ssl_support_method not in VALID_SSL_SUPPORT_METHODS
    ):
        return [
            (
                "viewer_certificate.ssl_support_method",
                f"must be one of {sorted(VALID_SSL_SUPPORT_METHODS)} with a custom certificate",
            )
        ]
    return []


# =============================================================================
# Normalization
# =============================================================================


def normalize_origin(origin: Origin) -> Origin:
    """Apply origin defaults: storage config when no config block is set."""
    s3_config = origin.s3_origin_config
    custom_config = origin.custom_origin_config
    if s3_config is None and custom_config is None:
        s3_config = S3OriginConfig()
    if custom_config is not None:
        custom_config = custom_config.model_copy(
            update={"origin_ssl_protocols": sorted(set(custom_config.origin_ssl_protocols))}
        )
    return origin.model_copy(
        update={
            "custom_headers": sorted(origin.custom_headers, key=lambda h: h.name),
            "s3_origin_config": s3_config,
            "custom_origin_config": custom_config,
        }
    )


def normalize_behavior(behavior: BehaviorT) -> BehaviorT:
    """Apply cache behavior defaults: TTLs, cached methods, set ordering."""
    allowed = sorted(set(behavior.allowed_methods))
    if behavior.cached_methods is None:
        cached = [m for m in CACHEABLE_METHODS if m in allowed]
    else:
        cached = sorted(set(behavior.cached_methods))

    cookies = behavior.forwarded_values.cookies
    whitelisted = sorted(set(cookies.whitelisted_names)) if cookies.forward == "whitelist" else []
    forwarded = behavior.forwarded_values.model_copy(
        update={
            "cookies": cookies.model_copy(update={"whitelisted_names": whitelisted}),
            "headers": sorted(set(behavior.forwarded_values.headers)),
        }
    )

    return behavior.model_copy(
        update={
            "allowed_methods": allowed,
            "cached_methods": cached,
            "forwarded_values": forwarded,
            "min_ttl": DEFAULT_MIN_TTL if behavior.min_ttl is None else behavior.min_ttl,
            "default_ttl": (
                DEFAULT_DEFAULT_TTL if behavior.default_ttl is None else behavior.default_ttl
            ),
            "max_ttl": DEFAULT_MAX_TTL if behavior.max_ttl is None else behavior.max_ttl,
            "trusted_signers": sorted(set(behavior.trusted_signers)),
            "lambda_function_associations": sorted(
                behavior.lambda_function_associations, key=lambda a: a.event_type
            ),
        }
    )


def normalize_spec(spec: DistributionSpec) -> DistributionSpec:
    """Return a copy of the spec with every default decided explicitly.

    Works on DistributionState too; the returned copy keeps the input's type.
    Ordered cache behaviors keep their declared order.
    """
    geo = spec.restrictions.geo_restriction
    restrictions = Restrictions(
        geo_restriction=GeoRestriction(
            restriction_type=geo.restriction_type,
            locations=sorted(set(geo.locations)),
        )
    )
    return spec.model_copy(
        update={
            "origins": [normalize_origin(o) for o in spec.origins],
            "default_cache_behavior": normalize_behavior(spec.default_cache_behavior),
            "ordered_cache_behaviors": [
                normalize_behavior(b) for b in spec.ordered_cache_behaviors
            ],
            "aliases": sorted(set(spec.aliases)),
            "restrictions": restrictions,
            "custom_error_responses": sorted(
                spec.custom_error_responses, key=lambda r: r.error_code
            ),
            "tags": dict(sorted(spec.tags.items())),
        }
    )


# =============================================================================
# Local -> Remote
# =============================================================================


def _items(values: Iterable[Any]) -> dict[str, Any]:
    items = list(values)
    if not items:
        return {"Quantity": 0}
    return {"Quantity": len(items), "Items": items}


def _origin_to_remote(origin: Origin) -> dict[str, Any]:
    remote: dict[str, Any] = {
        "Id": origin.origin_id,
        "DomainName": origin.domain_name,
        "OriginPath": origin.origin_path,
        "CustomHeaders": _items(
            {"HeaderName": h.name, "HeaderValue": h.value} for h in origin.custom_headers
        ),
    }
    if origin.custom_origin_config is not None:
        custom = origin.custom_origin_config
        remote["CustomOriginConfig"] = {
            "HTTPPort": custom.http_port,
            "HTTPSPort": custom.https_port,
            "OriginProtocolPolicy": custom.origin_protocol_policy,
            "OriginSslProtocols": _items(custom.origin_ssl_protocols),
            "OriginReadTimeout": custom.origin_read_timeout,
            "OriginKeepaliveTimeout": custom.origin_keepalive_timeout,
        }
    else:
        s3_config = origin.s3_origin_config or S3OriginConfig()
        remote["S3OriginConfig"] = {"OriginAccessIdentity": s3_config.origin_access_identity}
    return remote


def _behavior_to_remote(behavior: CacheBehavior) -> dict[str, Any]:
    forwarded = behavior.forwarded_values
    cookies: dict[str, Any] = {"Forward": forwarded.cookies.forward}
    if forwarded.cookies.forward == "whitelist":
        cookies["WhitelistedNames"] = _items(forwarded.cookies.whitelisted_names)

    remote: dict[str, Any] = {
        "TargetOriginId": behavior.target_origin_id,
        "ForwardedValues": {
            "QueryString": forwarded.query_string,
            "Cookies": cookies,
            "Headers": _items(forwarded.headers),
            "QueryStringCacheKeys": _items(forwarded.query_string_cache_keys),
        },
        "TrustedSigners": {
            "Enabled": bool(behavior.trusted_signers),
            **_items(behavior.trusted_signers),
        },
        "ViewerProtocolPolicy": behavior.viewer_protocol_policy,
        "MinTTL": behavior.min_ttl,
        "AllowedMethods": {
            **_items(behavior.allowed_methods),
            "CachedMethods": _items(behavior.cached_methods or []),
        },
        "SmoothStreaming": behavior.smooth_streaming,
        "DefaultTTL": behavior.default_ttl,
        "MaxTTL": behavior.max_ttl,
        "Compress": behavior.compress,
        "LambdaFunctionAssociations": _items(
            {
                "LambdaFunctionARN": a.lambda_arn,
                "EventType": a.event_type,
                "IncludeBody": a.include_body,
            }
            for a in behavior.lambda_function_associations
        ),
        "FieldLevelEncryptionId": behavior.field_level_encryption_id,
    }
    if isinstance(behavior, OrderedCacheBehavior):
        remote["PathPattern"] = behavior.path_pattern
    return remote


def _error_response_to_remote(response: CustomErrorResponse) -> dict[str, Any]:
    remote: dict[str, Any] = {
        "ErrorCode": response.error_code,
        "ResponsePagePath": response.response_page_path,
        "ResponseCode": str(response.response_code) if response.response_code else "",
    }
    if response.error_caching_min_ttl is not None:
        remote["ErrorCachingMinTTL"] = response.error_caching_min_ttl
    return remote


def _logging_to_remote(config: LoggingConfig | None) -> dict[str, Any]:
    if config is None:
        return {"Enabled": False, "IncludeCookies": False, "Bucket": "", "Prefix": ""}
    return {
        "Enabled": True,
        "IncludeCookies": config.include_cookies,
        "Bucket": config.bucket,
        "Prefix": config.prefix,
    }


def _certificate_to_remote(cert: ViewerCertificate) -> dict[str, Any]:
    if cert.cloudfront_default_certificate:
        return {
            "CloudFrontDefaultCertificate": True,
            "MinimumProtocolVersion": cert.minimum_protocol_version,
        }
    remote: dict[str, Any] = {
        "SSLSupportMethod": cert.ssl_support_method,
        "MinimumProtocolVersion": cert.minimum_protocol_version,
    }
    if cert.acm_certificate_arn:
        remote["ACMCertificateArn"] = cert.acm_certificate_arn
    else:
        remote["IAMCertificateId"] = cert.iam_certificate_id
    return remote


def to_remote(spec: DistributionSpec, caller_reference: str) -> dict[str, Any]:
    """Build the DistributionConfig request body for a spec.

    Tags and retain_on_delete are not part of the config; tags travel
    through the tagging API.
    """
    spec = normalize_spec(spec)
    geo = spec.restrictions.geo_restriction

    return {
        "CallerReference": caller_reference,
        "Aliases": _items(spec.aliases),
        "DefaultRootObject": spec.default_root_object,
        "Origins": _items(_origin_to_remote(o) for o in spec.origins),
        "DefaultCacheBehavior": _behavior_to_remote(spec.default_cache_behavior),
        "CacheBehaviors": _items(_behavior_to_remote(b) for b in spec.ordered_cache_behaviors),
        "CustomErrorResponses": _items(
            _error_response_to_remote(r) for r in spec.custom_error_responses
        ),
        "Comment": spec.comment,
        "Logging": _logging_to_remote(spec.logging_config),
        "PriceClass": spec.price_class,
        "Enabled": spec.enabled,
        "ViewerCertificate": _certificate_to_remote(spec.viewer_certificate),
        "Restrictions": {
            "GeoRestriction": {
                "RestrictionType": geo.restriction_type,
                "Quantity": len(geo.locations),
                "Items": list(geo.locations),
            }
        },
        "WebACLId": spec.web_acl_id,
        "HttpVersion": spec.http_version,
        "IsIPV6Enabled": spec.is_ipv6_enabled,
    }


# =============================================================================
# Remote -> Local
# =============================================================================


def _flatten(wrapper: Mapping[str, Any] | None) -> list[Any]:
    if not wrapper:
        return []
    return list(wrapper.get("Items") or [])


def _origin_from_remote(remote: Mapping[str, Any]) -> Origin:
    custom_config = None
    s3_config = None
    if remote.get("CustomOriginConfig"):
        custom = remote["CustomOriginConfig"]
        custom_config = CustomOriginConfig(
            http_port=custom["HTTPPort"],
            https_port=custom["HTTPSPort"],
            origin_protocol_policy=custom["OriginProtocolPolicy"],
            origin_ssl_protocols=_flatten(custom.get("OriginSslProtocols")),
            origin_read_timeout=custom.get("OriginReadTimeout", 30),
            origin_keepalive_timeout=custom.get("OriginKeepaliveTimeout", 5),
        )
    else:
        s3 = remote.get("S3OriginConfig") or {}
        s3_config = S3OriginConfig(origin_access_identity=s3.get("OriginAccessIdentity", ""))

    return Origin(
        domain_name=remote["DomainName"],
        origin_id=remote["Id"],
        origin_path=remote.get("OriginPath", ""),
        custom_headers=[
            CustomHeader(name=h["HeaderName"], value=h["HeaderValue"])
            for h in _flatten(remote.get("CustomHeaders"))
        ],
        s3_origin_config=s3_config,
        custom_origin_config=custom_config,
    )


def _behavior_fields_from_remote(remote: Mapping[str, Any]) -> dict[str, Any]:
    forwarded = remote.get("ForwardedValues") or {}
    cookies = forwarded.get("Cookies") or {}
    allowed = remote.get("AllowedMethods") or {}
    return {
        "target_origin_id": remote["TargetOriginId"],
        "viewer_protocol_policy": remote["ViewerProtocolPolicy"],
        "allowed_methods": _flatten(allowed),
        "cached_methods": _flatten(allowed.get("CachedMethods")),
        "forwarded_values": ForwardedValues(
            query_string=forwarded.get("QueryString", False),
            cookies=CookiePreference(
                forward=cookies.get("Forward", "none"),
                whitelisted_names=_flatten(cookies.get("WhitelistedNames")),
            ),
            headers=_flatten(forwarded.get("Headers")),
            query_string_cache_keys=_flatten(forwarded.get("QueryStringCacheKeys")),
        ),
        "min_ttl": remote.get("MinTTL", DEFAULT_MIN_TTL),
        "default_ttl": remote.get("DefaultTTL", DEFAULT_DEFAULT_TTL),
        "max_ttl": remote.get("MaxTTL", DEFAULT_MAX_TTL),
        "compress": remote.get("Compress", False),
        "smooth_streaming": remote.get("SmoothStreaming", False),
        "field_level_encryption_id": remote.get("FieldLevelEncryptionId", ""),
        "trusted_signers": _flatten(remote.get("TrustedSigners")),
        "lambda_function_associations": [
            LambdaFunctionAssociation(
                event_type=a["EventType"],
                lambda_arn=a["LambdaFunctionARN"],
                include_body=a.get("IncludeBody", False),
            )
            for a in _flatten(remote.get("LambdaFunctionAssociations"))
        ],
    }


def _error_response_from_remote(remote: Mapping[str, Any]) -> CustomErrorResponse:
    response_code = remote.get("ResponseCode") or ""
    return CustomErrorResponse(
        error_code=remote["ErrorCode"],
        response_code=int(response_code) if response_code else None,
        response_page_path=remote.get("ResponsePagePath", ""),
        error_caching_min_ttl=remote.get("ErrorCachingMinTTL"),
    )


def _logging_from_remote(remote: Mapping[str, Any] | None) -> LoggingConfig | None:
    if not remote or not remote.get("Enabled"):
        return None
    return LoggingConfig(
        bucket=remote["Bucket"],
        prefix=remote.get("Prefix", ""),
        include_cookies=remote.get("IncludeCookies", False),
    )


def _certificate_from_remote(remote: Mapping[str, Any]) -> ViewerCertificate:
    if remote.get("CloudFrontDefaultCertificate"):
        return ViewerCertificate(
            cloudfront_default_certificate=True,
            minimum_protocol_version=remote.get("MinimumProtocolVersion", "TLSv1"),
        )
    return ViewerCertificate(
        acm_certificate_arn=remote.get("ACMCertificateArn", ""),
        iam_certificate_id=remote.get("IAMCertificateId", ""),
        minimum_protocol_version=remote.get("MinimumProtocolVersion", "TLSv1"),
        ssl_support_method=remote.get("SSLSupportMethod", ""),
    )


def from_remote(
    distribution: Mapping[str, Any],
    etag: str,
    tags: Mapping[str, str] | None = None,
) -> DistributionState:
    """Build observed state from a GetDistribution "Distribution" payload.

    retain_on_delete cannot be recovered remotely and is always False here;
    the reconciler carries it over from local state.
    """
    config = distribution["DistributionConfig"]
    geo = (config.get("Restrictions") or {}).get("GeoRestriction") or {}

    state = DistributionState(
        id=distribution["Id"],
        arn=distribution.get("ARN", ""),
        domain_name=distribution.get("DomainName", ""),
        hosted_zone_id=CLOUDFRONT_HOSTED_ZONE_ID,
        status=DistributionStatus(distribution.get("Status", DistributionStatus.IN_PROGRESS.value)),
        etag=etag,
        last_modified_time=distribution.get("LastModifiedTime"),
        in_progress_invalidation_batches=distribution.get("InProgressInvalidationBatches", 0),
        caller_reference=config.get("CallerReference"),
        origins=[_origin_from_remote(o) for o in _flatten(config.get("Origins"))],
        default_cache_behavior=DefaultCacheBehavior(
            **_behavior_fields_from_remote(config["DefaultCacheBehavior"])
        ),
        ordered_cache_behaviors=[
            OrderedCacheBehavior(path_pattern=b["PathPattern"], **_behavior_fields_from_remote(b))
            for b in _flatten(config.get("CacheBehaviors"))
        ],
        enabled=config["Enabled"],
        is_ipv6_enabled=config.get("IsIPV6Enabled", False),
        comment=config.get("Comment", ""),
        default_root_object=config.get("DefaultRootObject", ""),
        http_version=config.get("HttpVersion", "http2"),
        price_class=config.get("PriceClass", "PriceClass_All"),
        web_acl_id=config.get("WebACLId", ""),
        logging_config=_logging_from_remote(config.get("Logging")),
        aliases=_flatten(config.get("Aliases")),
        restrictions=Restrictions(
            geo_restriction=GeoRestriction(
                restriction_type=geo.get("RestrictionType", "none"),
                locations=_flatten(geo),
            )
        ),
        viewer_certificate=_certificate_from_remote(config.get("ViewerCertificate") or {}),
        custom_error_responses=[
            _error_response_from_remote(r) for r in _flatten(config.get("CustomErrorResponses"))
        ],
        tags=dict(tags or {}),
    )
    return normalize_spec(state)
