"""Unit tests for state synchronization."""

import pytest

from agui_runtime.domain.exceptions import PatchApplicationError
from agui_runtime.protocols.agui.events import PatchOp, PatchOperation
from agui_runtime.protocols.agui.state import StateSynchronizer, parse_path


@pytest.mark.unit
class TestParsePath:
    """Test path tokenization."""

    @pytest.mark.parametrize(
        "path,tokens",
        [
            ("", []),
            ("/a/b", ["a", "b"]),
            ("/a~1b/c~0d", ["a/b", "c~d"]),
            ("user.settings.theme", ["user", "settings", "theme"]),
            ("/items/0", ["items", "0"]),
        ],
    )
    def test_parse_path(self, path, tokens):
        assert parse_path(path) == tokens


@pytest.mark.unit
class TestSnapshots:
    """Test wholesale state replacement."""

    def test_snapshot_replaces_state(self):
        sync = StateSynchronizer({"old": True})

        assert sync.apply_snapshot({"a": 1}) == {"a": 1}
        assert sync.read() == {"a": 1}

    def test_snapshot_is_idempotent(self):
        sync = StateSynchronizer()
        sync.apply_snapshot({"a": {"b": [1, 2]}})
        first = sync.read()
        sync.apply_snapshot({"a": {"b": [1, 2]}})

        assert sync.read() == first

    def test_snapshot_is_copied_in(self):
        snapshot = {"a": {"b": 1}}
        sync = StateSynchronizer()
        sync.apply_snapshot(snapshot)

        snapshot["a"]["b"] = 2

        assert sync.get_value("/a/b") == 1

    def test_versions_increase(self):
        sync = StateSynchronizer()
        start = sync.version
        sync.apply_snapshot({"a": 1})
        sync.apply_delta([{"op": "add", "path": "/b", "value": 2}])

        assert sync.version == start + 2


@pytest.mark.unit
class TestDeltas:
    """Test patch batches."""

    def test_add_replace_remove(self):
        sync = StateSynchronizer({"a": 1, "b": 2, "items": [1, 3]})

        state = sync.apply_delta([
            {"op": "replace", "path": "/a", "value": 10},
            {"op": "remove", "path": "/b"},
            {"op": "add", "path": "/items/1", "value": 2},
            {"op": "add", "path": "/items/-", "value": 4},
            {"op": "add", "path": "/nested", "value": {"x": 1}},
        ])

        assert state == {"a": 10, "items": [1, 2, 3, 4], "nested": {"x": 1}}

    def test_accepts_typed_operations_and_dot_paths(self):
        sync = StateSynchronizer({"user": {"name": "a"}})

        sync.apply_delta([PatchOperation(op=PatchOp.REPLACE, path="user.name", value="b")])

        assert sync.get_value("user.name") == "b"

    def test_failed_batch_leaves_state_unchanged(self):
        sync = StateSynchronizer({"a": 1})
        version = sync.version

        with pytest.raises(PatchApplicationError) as exc_info:
            sync.apply_delta([
                {"op": "replace", "path": "/a", "value": 2},
                {"op": "remove", "path": "/b"},
            ])

        assert sync.read() == {"a": 1}
        assert sync.version == version
        assert exc_info.value.details["operation_index"] == 1

    @pytest.mark.parametrize(
        "operation",
        [
            {"op": "replace", "path": "/missing", "value": 1},
            {"op": "remove", "path": "/missing"},
            {"op": "add", "path": "/missing/child", "value": 1},
            {"op": "add", "path": "/items/5", "value": 1},
            {"op": "replace", "path": "/items/-", "value": 1},
            {"op": "add", "path": "/a/b", "value": 1},
            {"op": "remove", "path": ""},
            {"op": "replace", "path": "", "value": [1]},
            {"op": "move", "path": "/a"},
        ],
    )
    def test_invalid_operations_are_rejected(self, operation):
        sync = StateSynchronizer({"a": 1, "items": [0]})

        with pytest.raises(PatchApplicationError):
            sync.apply_delta([operation])

        assert sync.read() == {"a": 1, "items": [0]}

    def test_root_replace(self):
        sync = StateSynchronizer({"a": 1})

        assert sync.apply_delta([{"op": "replace", "path": "", "value": {"b": 2}}]) == {"b": 2}


@pytest.mark.unit
class TestReads:
    """Test copy-on-read access."""

    def test_read_returns_deep_copy(self):
        sync = StateSynchronizer({"a": {"b": 1}})

        state = sync.read()
        state["a"]["b"] = 99

        assert sync.read() == {"a": {"b": 1}}

    def test_get_value_default(self):
        sync = StateSynchronizer({"a": 1})

        assert sync.get_value("/missing", "fallback") == "fallback"
        assert sync.get_value("a") == 1

    def test_reset(self):
        sync = StateSynchronizer({"a": 1})
        sync.apply_snapshot({"b": 2})
        sync.reset()

        assert sync.read() == {}
        assert sync.version == 1
