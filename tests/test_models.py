"""Tests for the Pydantic models."""

import pytest
from cloudfront_mock import CUSTOM_ORIGIN, distribution_data, make_spec, make_state
from pydantic import ValidationError

from cdn_controller.models import (
    CustomOriginConfig,
    DistributionSpec,
    DistributionState,
    DistributionStatus,
    OrderedCacheBehavior,
)


class TestDistributionSpec:
    """Tests for DistributionSpec model."""

    def test_valid_spec(self) -> None:
        """Test parsing the camelCase attribute tree."""
        spec = make_spec()

        assert spec.enabled is True
        assert spec.origins[0].origin_id == "myS3Origin"
        assert spec.default_cache_behavior.default_ttl == 3600
        assert spec.logging_config is not None
        assert spec.logging_config.bucket == "mylogs.s3.amazonaws.com"
        assert spec.restrictions.geo_restriction.restriction_type == "whitelist"
        assert spec.retain_on_delete is False
        assert spec.caller_reference is None

    def test_snake_case_accepted(self) -> None:
        """Test field names are accepted alongside aliases."""
        data = distribution_data()
        data["default_root_object"] = data.pop("defaultRootObject")
        assert DistributionSpec.model_validate(data).default_root_object == "index.html"

    def test_defaults(self) -> None:
        """Test optional fields default sensibly."""
        spec = make_spec()

        assert spec.http_version == "http2"
        assert spec.is_ipv6_enabled is False
        assert spec.ordered_cache_behaviors == []
        assert spec.custom_error_responses == []
        assert spec.default_cache_behavior.compress is False

    def test_unknown_keys_ignored(self) -> None:
        """Test unknown keys do not fail parsing."""
        assert make_spec(somethingElse=1).enabled is True

    def test_missing_required_field(self) -> None:
        """Test that enabled is required."""
        data = distribution_data()
        del data["enabled"]

        with pytest.raises(ValidationError):
            DistributionSpec.model_validate(data)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"priceClass": "PriceClass_1"},
            {"httpVersion": "http0.9"},
            {"comment": "x" * 129},
            {"restrictions": {"geoRestriction": {"restrictionType": "greylist"}}},
        ],
    )
    def test_closed_value_sets(self, overrides: dict[str, object]) -> None:
        """Test values outside the accepted sets are rejected."""
        with pytest.raises(ValidationError):
            make_spec(**overrides)

    def test_methods_uppercased(self) -> None:
        """Test HTTP methods are accepted case-insensitively."""
        behavior = OrderedCacheBehavior.model_validate(
            {
                "pathPattern": "api/*",
                "targetOriginId": "myS3Origin",
                "viewerProtocolPolicy": "https-only",
                "allowedMethods": ["get", "head"],
                "forwardedValues": {"queryString": True, "cookies": {"forward": "all"}},
            }
        )
        assert behavior.allowed_methods == ["GET", "HEAD"]
        assert behavior.cached_methods is None

    def test_unknown_method_rejected(self) -> None:
        """Test unsupported methods are rejected."""
        data = distribution_data()
        data["defaultCacheBehavior"]["allowedMethods"] = ["GET", "TRACE"]

        with pytest.raises(ValidationError):
            DistributionSpec.model_validate(data)

    def test_negative_ttl_rejected(self) -> None:
        """Test TTLs must not be negative."""
        data = distribution_data()
        data["defaultCacheBehavior"]["minTtl"] = -1

        with pytest.raises(ValidationError):
            DistributionSpec.model_validate(data)


class TestCustomOriginConfig:
    """Tests for CustomOriginConfig model."""

    def test_port_defaults(self) -> None:
        """Test ports default to 80 and 443."""
        config = CustomOriginConfig.model_validate(
            {"originProtocolPolicy": "match-viewer", "originSslProtocols": ["TLSv1.2"]}
        )
        assert config.http_port == 80
        assert config.https_port == 443
        assert config.origin_read_timeout == 30

    def test_invalid_protocol(self) -> None:
        """Test unsupported SSL protocols are rejected."""
        data = {**CUSTOM_ORIGIN["customOriginConfig"], "originSslProtocols": ["TLSv9"]}
        with pytest.raises(ValidationError):
            CustomOriginConfig.model_validate(data)

    def test_empty_protocols(self) -> None:
        """Test at least one SSL protocol is required."""
        data = {**CUSTOM_ORIGIN["customOriginConfig"], "originSslProtocols": []}
        with pytest.raises(ValidationError):
            CustomOriginConfig.model_validate(data)


class TestDistributionState:
    """Tests for DistributionState model."""

    def test_is_deployed(self) -> None:
        """Test is_deployed follows the status."""
        assert make_state(status="Deployed").is_deployed
        assert not make_state(status="InProgress").is_deployed

    def test_to_spec_drops_server_fields(self) -> None:
        """Test projecting observed state back onto a spec."""
        spec = make_state().to_spec()

        assert type(spec) is DistributionSpec
        assert not hasattr(spec, "etag")
        assert spec.caller_reference == "test-ref"

    def test_identities_not_serialized(self) -> None:
        """Test identities never reach the persisted form."""
        state = make_state().model_copy(update={"identities": {"origins": ["abc"]}})

        dumped = state.model_dump()
        assert "identities" not in dumped
        assert dumped["status"] == DistributionStatus.DEPLOYED

        restored = DistributionState.model_validate_json(state.model_dump_json())
        assert restored.identities == {}
        assert restored.etag == state.etag
