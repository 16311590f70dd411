"""Compute the change set between desired and observed distribution state.

Both sides are normalized before comparison, so a field left at its default
in the spec never shows up as drift against the value CloudFront reports.

MATCHING RULES:
- Origins and custom error responses are unordered. Blocks are paired by
  content identity first; leftovers that share a natural key (origin_id,
  error_code) are reported as field-level modifications of that block.
  Everything else is an addition or a removal.
- Ordered cache behaviors are compared by position. Swapping two patterns is
  a change, because CloudFront evaluates them in order.
- Tags never produce a config change. They are applied through the tagging
  API and reported separately as a TagDelta.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

from .hashing import block_identity
from .models import DistributionSpec, DistributionState
from .translator import normalize_spec

logger = logging.getLogger(__name__)

# Fields never compared: local-only or immutable bookkeeping
EXCLUDED_FIELDS = frozenset({"retain_on_delete", "caller_reference", "tags"})

# Collections with dedicated matching logic
COLLECTION_FIELDS = frozenset({"origins", "custom_error_responses", "ordered_cache_behaviors"})


class ChangeKind(str, Enum):
    """Kind of a single field-level change."""

    ADD = "add"
    REMOVE = "remove"
    MODIFY = "modify"


@dataclass(frozen=True)
class FieldChange:
    """One changed attribute.

    Attributes:
        path: Dotted attribute path, e.g. "origins[S3-a].origin_path" or
            "ordered_cache_behaviors[0].default_ttl".
        kind: ADD, REMOVE or MODIFY.
        before: Observed value (None for ADD).
        after: Desired value (None for REMOVE).
    """

    path: str
    kind: ChangeKind
    before: Any = None
    after: Any = None

    def __str__(self) -> str:
        match self.kind:
            case ChangeKind.ADD:
                return f"+ {self.path}: {self.after!r}"
            case ChangeKind.REMOVE:
                return f"- {self.path}: {self.before!r}"
            case _:
                return f"~ {self.path}: {self.before!r} -> {self.after!r}"


@dataclass
class TagDelta:
    """Tag changes, applied with TagResource/UntagResource."""

    added: dict[str, str] = field(default_factory=dict)
    removed: list[str] = field(default_factory=list)
    modified: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)

    @property
    def to_set(self) -> dict[str, str]:
        """Tags to write with TagResource (added and modified)."""
        return {**self.added, **self.modified}

    @classmethod
    def between(cls, observed: dict[str, str], desired: dict[str, str]) -> TagDelta:
        return cls(
            added={k: v for k, v in sorted(desired.items()) if k not in observed},
            removed=sorted(k for k in observed if k not in desired),
            modified={
                k: v for k, v in sorted(desired.items()) if k in observed and observed[k] != v
            },
        )


@dataclass
class ChangeSet:
    """Everything that must change to bring observed state to desired."""

    config_changes: list[FieldChange] = field(default_factory=list)
    tag_delta: TagDelta = field(default_factory=TagDelta)

    # Every CloudFront distribution attribute is updatable in place
    requires_replacement: bool = False

    @property
    def has_config_changes(self) -> bool:
        return bool(self.config_changes)

    @property
    def is_empty(self) -> bool:
        return not self.config_changes and self.tag_delta.is_empty

    def summary(self) -> list[str]:
        """Human-readable lines for plan output."""
        lines = [str(change) for change in self.config_changes]
        for key, value in self.tag_delta.added.items():
            lines.append(f"+ tags.{key}: {value!r}")
        for key, value in self.tag_delta.modified.items():
            lines.append(f"~ tags.{key}: -> {value!r}")
        for key in self.tag_delta.removed:
            lines.append(f"- tags.{key}")
        return lines


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value


def _diff_values(path: str, before: Any, after: Any, changes: list[FieldChange]) -> None:
    """Recursively compare two dumped values, appending leaf changes."""
    if before == after:
        return
    if isinstance(before, dict) and isinstance(after, dict):
        for key in sorted(set(before) | set(after)):
            sub_path = f"{path}.{key}" if path else key
            if key not in before:
                changes.append(FieldChange(sub_path, ChangeKind.ADD, None, after[key]))
            elif key not in after:
                changes.append(FieldChange(sub_path, ChangeKind.REMOVE, before[key], None))
            else:
                _diff_values(sub_path, before[key], after[key], changes)
        return
    if before is None:
        changes.append(FieldChange(path, ChangeKind.ADD, None, after))
    elif after is None:
        changes.append(FieldChange(path, ChangeKind.REMOVE, before, None))
    else:
        changes.append(FieldChange(path, ChangeKind.MODIFY, before, after))


class Differ:
    """Produces a ChangeSet from a desired spec and observed state."""

    def plan(self, desired: DistributionSpec, observed: DistributionState) -> ChangeSet:
        desired_n = normalize_spec(desired)
        observed_n = normalize_spec(observed.to_spec())

        changes: list[FieldChange] = []

        for name in DistributionSpec.model_fields:
            if name in EXCLUDED_FIELDS or name in COLLECTION_FIELDS:
                continue
            _diff_values(
                name,
                _dump(getattr(observed_n, name)),
                _dump(getattr(desired_n, name)),
                changes,
            )

        changes.extend(
            self._diff_unordered(
                "origins",
                observed_n.origins,
                desired_n.origins,
                natural_key=lambda o: o.origin_id,
            )
        )
        changes.extend(
            self._diff_unordered(
                "custom_error_responses",
                observed_n.custom_error_responses,
                desired_n.custom_error_responses,
                natural_key=lambda r: r.error_code,
            )
        )
        changes.extend(
            self._diff_positional(
                "ordered_cache_behaviors",
                observed_n.ordered_cache_behaviors,
                desired_n.ordered_cache_behaviors,
            )
        )

        change_set = ChangeSet(
            config_changes=changes,
            tag_delta=TagDelta.between(observed_n.tags, desired_n.tags),
        )

        logger.debug(
            "Planned changes",
            extra={
                "distribution_id": observed.id,
                "config_changes": len(change_set.config_changes),
                "tags_added": len(change_set.tag_delta.added),
                "tags_removed": len(change_set.tag_delta.removed),
                "tags_modified": len(change_set.tag_delta.modified),
            },
        )
        return change_set

    def _diff_unordered(
        self,
        name: str,
        observed: Sequence[BaseModel],
        desired: Sequence[BaseModel],
        natural_key: Callable[[Any], Any],
    ) -> list[FieldChange]:
        observed_by_id = {block_identity(b): b for b in observed}
        desired_by_id = {block_identity(b): b for b in desired}

        # Identical content on both sides: nothing to do
        leftover_observed = [b for i, b in observed_by_id.items() if i not in desired_by_id]
        leftover_desired = [b for i, b in desired_by_id.items() if i not in observed_by_id]

        observed_by_key = {natural_key(b): b for b in leftover_observed}
        changes: list[FieldChange] = []

        for block in leftover_desired:
            key = natural_key(block)
            path = f"{name}[{key}]"
            before = observed_by_key.pop(key, None)
            if before is None:
                changes.append(FieldChange(path, ChangeKind.ADD, None, _dump(block)))
            else:
                _diff_values(path, _dump(before), _dump(block), changes)

        for key, block in observed_by_key.items():
            changes.append(FieldChange(f"{name}[{key}]", ChangeKind.REMOVE, _dump(block), None))

        return changes

    def _diff_positional(
        self,
        name: str,
        observed: Sequence[BaseModel],
        desired: Sequence[BaseModel],
    ) -> list[FieldChange]:
        changes: list[FieldChange] = []
        for index in range(max(len(observed), len(desired))):
            path = f"{name}[{index}]"
            if index >= len(observed):
                changes.append(FieldChange(path, ChangeKind.ADD, None, _dump(desired[index])))
            elif index >= len(desired):
                changes.append(FieldChange(path, ChangeKind.REMOVE, _dump(observed[index]), None))
            else:
                _diff_values(path, _dump(observed[index]), _dump(desired[index]), changes)
        return changes
