"""Local record of observed distribution state.

One DistributionState per distribution id. Entries are written after every
successful Create, Read, Update or Import and removed once a Delete succeeds
or a Read finds the distribution gone.

The store is in-memory by default. Given a directory, it also persists each
entry as ``<id>.json`` so a restarted operator can pick up where it left off.
Block identities are excluded from the persisted form; they are recomputed on
the next Read.

This class is NOT thread-safe. The reconciler uses it from a single task.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from .models import DistributionState

logger = logging.getLogger(__name__)

# CloudFront ids are upper-case alphanumerics; reject anything path-like
VALID_DISTRIBUTION_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{1,64}$")


class StateStoreError(Exception):
    """Raised when persisted state cannot be read or written."""

    pass


class StateStore:
    """Keyed store of DistributionState records."""

    def __init__(self, state_dir: Path | None = None) -> None:
        self._state_dir = state_dir
        self._states: dict[str, DistributionState] = {}

        if state_dir is not None:
            state_dir.mkdir(parents=True, exist_ok=True)
            self._load_all()

    @property
    def state_dir(self) -> Path | None:
        return self._state_dir

    def _path_for(self, distribution_id: str) -> Path:
        if not VALID_DISTRIBUTION_ID_PATTERN.match(distribution_id):
            raise StateStoreError(f"Invalid distribution id: {distribution_id!r}")
        assert self._state_dir is not None
        return self._state_dir / f"{distribution_id}.json"

    def _load_all(self) -> None:
        assert self._state_dir is not None
        for path in sorted(self._state_dir.glob("*.json")):
            try:
                state = DistributionState.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, PydanticValidationError) as e:
                raise StateStoreError(f"Cannot load state file {path}: {e}") from e
            self._states[state.id] = state

        logger.info(
            "Loaded persisted state",
            extra={"state_dir": str(self._state_dir), "count": len(self._states)},
        )

    def get(self, distribution_id: str) -> DistributionState | None:
        return self._states.get(distribution_id)

    def put(self, state: DistributionState) -> None:
        """Replace the entry for state.id wholesale."""
        self._states[state.id] = state
        if self._state_dir is not None:
            path = self._path_for(state.id)
            try:
                path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
            except OSError as e:
                raise StateStoreError(f"Cannot write state file {path}: {e}") from e

    def remove(self, distribution_id: str) -> bool:
        """Drop an entry. Returns True if one existed."""
        existed = self._states.pop(distribution_id, None) is not None
        if self._state_dir is not None:
            self._path_for(distribution_id).unlink(missing_ok=True)
        return existed

    def find_by_caller_reference(self, caller_reference: str) -> DistributionState | None:
        for state in self._states.values():
            if state.caller_reference == caller_reference:
                return state
        return None

    def ids(self) -> list[str]:
        return sorted(self._states)

    def __contains__(self, distribution_id: object) -> bool:
        return distribution_id in self._states

    def __len__(self) -> int:
        return len(self._states)
