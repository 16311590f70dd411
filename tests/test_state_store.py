"""Tests for the local state store."""

from __future__ import annotations

from pathlib import Path

import pytest
from cloudfront_mock import make_state

from cdn_controller.state_store import StateStore, StateStoreError


class TestInMemoryStore:
    """Tests for StateStore without a state directory."""

    def test_put_get_remove(self) -> None:
        """Test basic keyed storage."""
        store = StateStore()
        state = make_state()

        store.put(state)
        assert store.get(state.id) == state
        assert state.id in store
        assert len(store) == 1
        assert store.ids() == [state.id]

        assert store.remove(state.id) is True
        assert store.remove(state.id) is False
        assert store.get(state.id) is None

    def test_put_replaces(self) -> None:
        """Test put replaces the whole entry."""
        store = StateStore()
        store.put(make_state(etag="ETAG1"))
        store.put(make_state(etag="ETAG2"))

        assert len(store) == 1
        assert store.get("E0000000000001").etag == "ETAG2"

    def test_find_by_caller_reference(self) -> None:
        """Test lookup by caller reference."""
        store = StateStore()
        state = make_state()
        store.put(state)

        assert store.find_by_caller_reference("test-ref") == state
        assert store.find_by_caller_reference("other") is None

    def test_any_id_allowed_in_memory(self) -> None:
        """Test ids are only restricted when they become file names."""
        store = StateStore()
        store.put(make_state(distribution_id="not/a/path"))
        assert "not/a/path" in store


class TestPersistentStore:
    """Tests for StateStore with a state directory."""

    def test_round_trip(self, tmp_path: Path) -> None:
        """Test entries survive a reload, local-only flag included."""
        store = StateStore(tmp_path)
        state = make_state().model_copy(
            update={"retain_on_delete": True, "identities": {"origins": ["abc"]}}
        )
        store.put(state)

        reloaded = StateStore(tmp_path)
        restored = reloaded.get(state.id)

        assert restored is not None
        assert restored.retain_on_delete is True
        assert restored.identities == {}
        assert restored.model_dump() == state.model_dump()

    def test_creates_directory(self, tmp_path: Path) -> None:
        """Test a missing state directory is created."""
        state_dir = tmp_path / "nested" / "state"
        StateStore(state_dir)
        assert state_dir.is_dir()

    def test_remove_deletes_file(self, tmp_path: Path) -> None:
        """Test removal deletes the persisted file."""
        store = StateStore(tmp_path)
        state = make_state()
        store.put(state)
        assert (tmp_path / f"{state.id}.json").is_file()

        store.remove(state.id)
        assert not (tmp_path / f"{state.id}.json").exists()

    def test_invalid_id_rejected(self, tmp_path: Path) -> None:
        """Test path-like ids cannot escape the state directory."""
        store = StateStore(tmp_path)

        with pytest.raises(StateStoreError):
            store.put(make_state(distribution_id="../escape"))

    def test_corrupt_file(self, tmp_path: Path) -> None:
        """Test an unreadable state file fails the load."""
        (tmp_path / "E0000000000001.json").write_text("{not json")

        with pytest.raises(StateStoreError) as exc_info:
            StateStore(tmp_path)

        assert "E0000000000001.json" in str(exc_info.value)
