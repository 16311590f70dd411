"""Spec file loading with validation.

All file operations enforce a size limit before reading. Only the shape of
the attribute tree is checked here; cross-field rules are applied by
translator.validate_spec right before any remote call.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import DistributionSpec

logger = logging.getLogger(__name__)

SPEC_KIND = "CloudFrontDistribution"


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


def parse_spec(raw_data: Any, source: str = "<memory>") -> DistributionSpec:
    """Validate an already parsed attribute tree.

    Supports both a flat mapping and a Kubernetes-style wrapper
    (apiVersion/kind/metadata/spec).

    Raises:
        SpecLoadError: If the tree has the wrong shape.
    """
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec must be a YAML mapping: {source}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        kind = raw_data.get("kind", SPEC_KIND)
        if kind != SPEC_KIND:
            raise SpecLoadError(f"Unsupported kind '{kind}' in {source}, expected {SPEC_KIND}")
        spec_data = raw_data.get("spec", {})
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {source}")
    else:
        spec_data = raw_data

    try:
        return DistributionSpec.model_validate(spec_data)
    except PydanticValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {source}:\n{error_list}") from e


def load_spec(spec_path: Path) -> DistributionSpec:
    """Load a distribution spec from a YAML file.

    Raises:
        SpecLoadError: If the file cannot be read or fails validation.
    """
    if not spec_path.exists():
        raise SpecLoadError(f"Spec file not found: {spec_path}")

    try:
        file_size = spec_path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {spec_path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {spec_path}"
        )

    try:
        content = spec_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {spec_path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {spec_path}: {e}") from e

    spec = parse_spec(raw_data, str(spec_path))
    logger.info("Loaded distribution spec from %s", spec_path)
    return spec
