"""Tests for the plugin state store."""
import os
import time

import pytest
import yaml

from plugsync.state_store import (
    CorruptionError,
    PluginOrigin,
    PluginState,
    PluginStateEntry,
    StateFile,
    StateStore,
    StateWriteError,
)
from plugsync.state_store.store import STALE_TEMP_SECONDS


class TestPluginStateEntry:
    """Tests for PluginStateEntry serialization."""

    def test_round_trip(self, make_entry):
        """Test to_dict/from_dict preserves every field."""
        entry = make_entry("a/b", specification="a/b@v1")
        restored = PluginStateEntry.from_dict("a/b", entry.to_dict())
        assert restored == entry

    def test_enum_values_serialized_as_strings(self, make_entry):
        data = make_entry("x/y", state=PluginState.EXPERIMENTAL).to_dict()
        assert data["state"] == "experimental"
        assert data["origin"] == "try_command"

    @pytest.mark.parametrize("mutation", [
        {"state": "bogus"},
        {"origin": "nowhere"},
        {"installed_at": "yesterday"},
        {"installed_at": True},
        {"path": 42},
    ])
    def test_rejects_bad_fields(self, make_entry, mutation):
        """Test malformed rows raise instead of loading garbage."""
        data = make_entry("a/b").to_dict()
        data.update(mutation)
        with pytest.raises((KeyError, TypeError, ValueError)):
            PluginStateEntry.from_dict("a/b", data)

    def test_rejects_missing_field(self, make_entry):
        data = make_entry("a/b").to_dict()
        del data["specification"]
        with pytest.raises(KeyError):
            PluginStateEntry.from_dict("a/b", data)


class TestStateStore:
    """Tests for in-memory store operations."""

    def test_add_and_get(self, make_entry):
        store = StateStore()
        store.add(make_entry("a/b"))
        assert "a/b" in store
        assert len(store) == 1
        assert store.get("a/b").name == "a/b"
        assert store.get("missing/x") is None

    def test_add_replaces_same_name(self, make_entry):
        """Test there is only ever one entry per name."""
        store = StateStore()
        store.add(make_entry("a/b", state=PluginState.EXPERIMENTAL))
        store.add(make_entry("a/b", state=PluginState.DECLARED))
        assert len(store) == 1
        assert store.get("a/b").state == PluginState.DECLARED

    def test_remove(self, make_entry):
        store = StateStore()
        store.add(make_entry("a/b"))
        assert store.remove("a/b") is True
        assert store.remove("a/b") is False
        assert len(store) == 0

    def test_update_changes_state_and_origin_only(self, make_entry):
        """Test update preserves timestamps, paths and versions."""
        store = StateStore()
        original = make_entry("x/y", state=PluginState.EXPERIMENTAL, installed_at=123)
        store.add(original)

        updated = store.update("x/y", PluginState.DECLARED, PluginOrigin.ARRAY)

        assert updated.state == PluginState.DECLARED
        assert updated.origin == PluginOrigin.ARRAY
        assert updated.installed_at == 123
        assert updated.path == original.path
        assert updated.resolved_version == "abc1234"

    def test_update_missing_raises(self):
        with pytest.raises(KeyError):
            StateStore().update("a/b", PluginState.DECLARED, PluginOrigin.ARRAY)

    def test_reresolve(self, make_entry):
        store = StateStore()
        store.add(make_entry("a/b", specification="a/b@v1"))
        entry = store.reresolve("a/b", "a/b@v2", "/new/path", "v2", installed_at=999)
        assert entry.specification == "a/b@v2"
        assert entry.path == "/new/path"
        assert entry.resolved_version == "v2"
        assert entry.installed_at == 999

    def test_list_by_state(self, make_entry):
        store = StateStore()
        store.add(make_entry("a/b"))
        store.add(make_entry("c/d"))
        store.add(make_entry("x/y", state=PluginState.EXPERIMENTAL))
        assert store.list_by_state(PluginState.DECLARED) == {"a/b", "c/d"}
        assert store.list_by_state(PluginState.EXPERIMENTAL) == {"x/y"}

    def test_sorted_entries(self, make_entry):
        store = StateStore()
        for name in ("z/z", "a/a", "m/m"):
            store.add(make_entry(name))
        assert [e.name for e in store.sorted_entries()] == ["a/a", "m/m", "z/z"]
        assert store.sorted_entries(PluginState.EXPERIMENTAL) == []

    def test_iteration_yields_entries(self, make_entry):
        store = StateStore()
        store.add(make_entry("a/b"))
        assert [e.name for e in store] == ["a/b"]


class TestDocument:
    """Tests for the document shape."""

    def test_empty_plugins_is_valid(self):
        store = StateStore.from_document({"format": "plugsync-state", "version": 1, "plugins": {}})
        assert len(store) == 0

    @pytest.mark.parametrize("document", [
        None,
        "just a string",
        ["a", "list"],
        {"plugins": {}},
        {"format": "plugsync-state", "version": 99, "plugins": {}},
        {"format": "plugsync-state", "version": 1, "plugins": ["a/b"]},
        {"format": "plugsync-state", "version": 1, "plugins": {"a/b": "declared"}},
    ])
    def test_wrong_shape_is_corrupt(self, document):
        with pytest.raises(CorruptionError):
            StateStore.from_document(document)


class TestStateFile:
    """Tests for persisting the store."""

    def test_load_absent_file(self, state_file):
        """Test a missing file loads as an empty store."""
        store = state_file.load()
        assert len(store) == 0
        assert store.recovered_from is None

    def test_save_then_load_round_trip(self, state_file, make_entry):
        """Test add/remove/update then save/load gives an equal store."""
        store = state_file.load()
        store.add(make_entry("a/b", specification="a/b@v1"))
        store.add(make_entry("c/d"))
        store.add(make_entry("x/y", state=PluginState.EXPERIMENTAL))
        store.remove("c/d")
        store.update("x/y", PluginState.DECLARED, PluginOrigin.ARRAY)

        state_file.save(store)
        loaded = state_file.load()

        assert loaded == store
        assert loaded.get("x/y").origin == PluginOrigin.ARRAY

    def test_legacy_origin_preserved(self, state_file, make_entry):
        """Test entries recorded by the shell loader keep their legacy_load origin."""
        store = StateStore()
        store.add(make_entry("a/b", origin=PluginOrigin.LEGACY_LOAD))

        state_file.save(store)

        assert yaml.safe_load(state_file.path.read_text())["plugins"]["a/b"]["origin"] == "legacy_load"
        assert state_file.load().get("a/b").origin == PluginOrigin.LEGACY_LOAD

    def test_save_writes_yaml_document(self, state_file, make_entry):
        store = StateStore()
        store.add(make_entry("a/b"))
        state_file.save(store)

        text = state_file.path.read_text()
        assert text.startswith("# plugsync plugin state")
        document = yaml.safe_load(text)
        assert document["format"] == "plugsync-state"
        assert document["version"] == 1
        assert document["plugins"]["a/b"]["state"] == "declared"

    def test_generation_increments(self, state_file):
        store = StateStore()
        state_file.save(store)
        state_file.save(store)
        assert store.generation == 2
        assert state_file.load().generation == 2

    def test_save_leaves_no_temp_files(self, state_file):
        state_file.save(StateStore())
        leftovers = [p.name for p in state_file.path.parent.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []

    @pytest.mark.parametrize("content", [
        b"\xff\xfe\x00garbage",
        b"plugins: [unclosed",
        b"",
        b"hello",
        b"format: plugsync-state\nversion: 1\nplugins:\n  a/b:\n    state: declared\n",
    ])
    def test_corruption_recovery(self, state_file, content):
        """Test unreadable documents are archived and replaced by an empty store."""
        state_file.path.parent.mkdir(parents=True)
        state_file.path.write_bytes(content)

        store = state_file.load()

        assert len(store) == 0
        assert store.recovered_from is not None
        assert store.recovered_from.name.startswith("state.yaml.corrupted.")
        assert store.recovered_from.read_bytes() == content
        assert not state_file.path.exists()

    def test_corruption_logs_warning(self, state_file, caplog):
        state_file.path.parent.mkdir(parents=True)
        state_file.path.write_text("not: [valid")
        state_file.load()
        assert "corrupted" in caplog.text

    def test_repeated_corruption_keeps_every_archive(self, state_file):
        state_file.path.parent.mkdir(parents=True)
        state_file.path.write_text("first")
        first = state_file.load().recovered_from
        state_file.path.write_text("second")
        second = state_file.load().recovered_from

        assert first != second
        assert first.read_text() == "first"
        assert second.read_text() == "second"

    def test_failed_save_leaves_previous_document(self, state_file, make_entry, monkeypatch):
        """Test a failed rename raises StateWriteError and keeps the old file."""
        store = StateStore()
        store.add(make_entry("a/b"))
        state_file.save(store)
        before = state_file.path.read_bytes()

        def fail_replace(src, dst):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr("plugsync.utils.fileio.os.replace", fail_replace)
        store.add(make_entry("c/d"))

        with pytest.raises(StateWriteError) as exc:
            state_file.save(store)

        assert isinstance(exc.value, OSError)
        assert state_file.path.read_bytes() == before
        assert store.generation == 1
        leftovers = [p for p in state_file.path.parent.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        with pytest.raises(StateWriteError):
            StateFile(blocker / "state.yaml").save(StateStore())

    def test_stale_temp_files_removed_on_load(self, state_file):
        """Test leftovers of an interrupted save are discarded."""
        state_file.path.parent.mkdir(parents=True)
        stale = state_file.path.parent / ".state.yaml.abc123.tmp"
        fresh = state_file.path.parent / ".state.yaml.def456.tmp"
        stale.write_text("partial")
        fresh.write_text("in progress")
        old = time.time() - STALE_TEMP_SECONDS - 60
        os.utime(stale, (old, old))

        state_file.load()

        assert not stale.exists()
        assert fresh.exists()
