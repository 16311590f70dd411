"""Content-derived identity for unordered configuration blocks.

CloudFront returns origins and custom error responses in its own order, not
the declared one. Matching observed blocks back to desired blocks by list
position would turn a reordering into a spurious remove-and-add, so each
block gets an identity computed from its semantic content instead.

The identity is a lookup key only. It is recomputed on every read and never
persisted, so the hash algorithm can change without migrating stored state.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any, NewType

from pydantic import BaseModel

from .errors import ValidationError
from .models import CacheBehavior, Origin

BlockIdentity = NewType("BlockIdentity", str)

IDENTITY_LENGTH = 16

# List-valued fields whose member order carries no meaning
UNORDERED_FIELDS = frozenset(
    {
        "aliases",
        "allowed_methods",
        "cached_methods",
        "custom_headers",
        "headers",
        "locations",
        "origin_ssl_protocols",
        "trusted_signers",
        "whitelisted_names",
    }
)


def _canonicalize(value: Any, key: str | None = None) -> Any:
    """Recursively convert a dumped block into an order-independent form."""
    if isinstance(value, Mapping):
        return {k: _canonicalize(v, k) for k, v in sorted(value.items())}
    if isinstance(value, list | tuple):
        items = [_canonicalize(v) for v in value]
        if key in UNORDERED_FIELDS:
            items.sort(key=lambda item: json.dumps(item, sort_keys=True))
        return items
    return value


def _normalized(block: BaseModel) -> BaseModel:
    # Deferred: translator imports this module for its identity checks
    from .translator import normalize_behavior, normalize_origin

    if isinstance(block, Origin):
        return normalize_origin(block)
    if isinstance(block, CacheBehavior):
        return normalize_behavior(block)
    return block


def canonical_form(block: BaseModel | Mapping[str, Any]) -> str:
    """Return the canonical JSON text of a block.

    Models are normalized first and their defaults materialized by
    model_dump, so an absent field and a field set to its default produce
    the same text. A mapping is taken as already-dumped data.
    """
    if isinstance(block, BaseModel):
        data = _normalized(block).model_dump(mode="json")
    else:
        data = dict(block)
    return json.dumps(_canonicalize(data), sort_keys=True, separators=(",", ":"))


def block_identity(block: BaseModel) -> BlockIdentity:
    """Compute the identity of a block from its semantic content."""
    digest = hashlib.sha256(canonical_form(block).encode()).hexdigest()
    return BlockIdentity(digest[:IDENTITY_LENGTH])


def assign_identities(blocks: Iterable[BaseModel]) -> list[BlockIdentity]:
    """Compute identities for a collection, preserving block order."""
    return [block_identity(block) for block in blocks]


def ensure_unique_identities(
    blocks: Iterable[BaseModel],
    field_name: str,
) -> list[BlockIdentity]:
    """Compute identities and reject blocks that collapse onto the same one.

    Two distinct declared blocks with identical normalized content cannot be
    told apart after a read, so they are a configuration error.

    Raises:
        ValidationError: If two blocks share an identity.
    """
    identities: list[BlockIdentity] = []
    seen: dict[BlockIdentity, int] = {}
    problems: list[tuple[str, str]] = []

    for index, block in enumerate(blocks):
        identity = block_identity(block)
        if identity in seen:
            problems.append(
                (
                    f"{field_name}[{index}]",
                    f"has the same content as {field_name}[{seen[identity]}] (ambiguous identity)",
                )
            )
        else:
            seen[identity] = index
        identities.append(identity)

    if problems:
        raise ValidationError(problems)
    return identities
