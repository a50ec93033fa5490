"""
Tests for state_store.py.
"""

import json

import pytest

from sequence_tracker import NodeState, SequenceTracker
from serial_link import Outcome, process_line
from state_store import atomic_write_json, load_state, save_state


class TestLoadState:
    """Test cases for reading the state file."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test first start without a state file."""
        assert load_state(tmp_path / "last_packets") == {}

    def test_load_existing_file(self, tmp_path):
        """Test the on-disk format keyed by node id strings."""
        path = tmp_path / "last_packets"
        path.write_text('{"5":{"tx_count":12,"count":7}}')

        assert load_state(path) == {5: NodeState(last_tx_count=12, last_count=7)}

    def test_load_partial_entry(self, tmp_path):
        """Test an entry written right after a reboot (no count yet)."""
        path = tmp_path / "last_packets"
        path.write_text('{"5":{"tx_count":0}}')

        assert load_state(path) == {5: NodeState(last_tx_count=0, last_count=None)}

    def test_corrupt_file_is_ignored(self, tmp_path):
        """Test that invalid JSON starts the tracker empty."""
        path = tmp_path / "last_packets"
        path.write_text("{not json")

        assert load_state(path) == {}

    def test_wrong_shape_is_ignored(self, tmp_path):
        """Test JSON that isn't a node map."""
        path = tmp_path / "last_packets"
        path.write_text("[1, 2, 3]")
        assert load_state(path) == {}

        path.write_text('{"five": {"count": 1}}')
        assert load_state(path) == {}

        path.write_text('{"5": {"tx_count": "10", "count": 7}}')
        assert load_state(path) == {}

        path.write_text('{"5": {"tx_count": true}}')
        assert load_state(path) == {}

        path.write_text('{"5": {"count": 65536}}')
        assert load_state(path) == {}

    def test_mistyped_file_does_not_break_the_loop(self, tmp_path):
        """Test that a receiver seeded from a mistyped file still handles frames."""
        path = tmp_path / "last_packets"
        path.write_text('{"5":{"tx_count":"10","count":7}}')

        tracker = SequenceTracker(load_state(path))
        posts = []
        outcome = process_line(
            "5 5 10 0 8 0 11 0",
            tracker,
            lambda node_id, power, count: posts.append((node_id, power, count)),
            lambda snapshot: save_state(path, snapshot),
        )

        assert outcome is Outcome.NEW
        assert posts == [(5, 10, 8)]
        assert load_state(path) == {5: NodeState(last_tx_count=11, last_count=8)}


class TestSaveState:
    """Test cases for writing the state file."""

    def test_save_then_load(self, tmp_path):
        """Test that a saved snapshot loads back unchanged."""
        path = tmp_path / "last_packets"
        states = {
            5: NodeState(last_tx_count=12, last_count=7),
            9: NodeState(last_tx_count=3, last_count=None),
        }
        save_state(path, states)

        assert load_state(path) == states

    def test_saved_format(self, tmp_path):
        """Test the exact JSON written, absent fields omitted."""
        path = tmp_path / "last_packets"
        save_state(path, {5: NodeState(last_tx_count=2, last_count=None)})

        assert json.loads(path.read_text()) == {"5": {"tx_count": 2}}

    def test_save_overwrites(self, tmp_path):
        """Test that the whole map is replaced on each save."""
        path = tmp_path / "last_packets"
        save_state(path, {5: NodeState(1, 1), 6: NodeState(2, 2)})
        save_state(path, {5: NodeState(3, 3)})

        assert load_state(path) == {5: NodeState(3, 3)}

    def test_atomic_write_cleans_up_on_failure(self, tmp_path, monkeypatch):
        """Test that a failed rename removes the temp file and raises."""
        def broken_replace(src, dst):
            raise OSError("read-only file system")

        monkeypatch.setattr("state_store.os.replace", broken_replace)

        with pytest.raises(OSError):
            atomic_write_json(tmp_path / "out.json", {"a": 1})
        assert list(tmp_path.iterdir()) == []

    def test_atomic_write_leaves_no_temp_file(self, tmp_path):
        """Test that only the target file remains after a write."""
        path = tmp_path / "out.json"
        atomic_write_json(path, {"a": 1})

        assert [p.name for p in tmp_path.iterdir()] == ["out.json"]
        assert path.read_text() == '{"a":1}\n'
