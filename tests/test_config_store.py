"""
Tests for the versioned inventory store
"""

import copy
import json

import pytest

from nexus_gateway.constants import CONFIG_VERSION, DEFAULT_CONFIG, VERSION_KEY
from nexus_gateway.errors import StorageError
from nexus_gateway.storage import ConfigStore, deep_merge, device_counts, get_devices, get_version


class TestLoad:
    """Loading, seeding and fail-open behaviour"""

    def test_missing_file_is_seeded(self, config_store, config_path):
        config = config_store.load()

        assert config_path.exists()
        assert config[VERSION_KEY] == CONFIG_VERSION
        assert config["shelly"] == []
        assert config["settings"]["thermostatRefreshInterval"] == 30

    def test_malformed_json_treated_as_absent(self, config_store, config_path):
        config_path.write_text("{not json", encoding="utf-8")

        config = config_store.load()

        assert config == config_store.defaults()
        assert config_path.with_suffix(".corrupt").exists()

    def test_non_object_document_treated_as_absent(self, config_store, config_path):
        config_path.write_text("[1, 2, 3]", encoding="utf-8")

        assert config_store.load() == config_store.defaults()

    def test_current_version_returned_unchanged(self, config_store, config_path):
        stored = copy.deepcopy(DEFAULT_CONFIG)
        stored["shelly"] = [{"id": "relay-1", "ip": "10.0.0.5"}]
        stored["custom"] = {"kept": True}
        config_path.write_text(json.dumps(stored), encoding="utf-8")

        assert config_store.load() == stored

    def test_defaults_are_independent_copies(self, config_store):
        first = config_store.defaults()
        first["settings"]["theme"] = "light"

        assert config_store.defaults()["settings"]["theme"] == "dark"
        assert DEFAULT_CONFIG["settings"]["theme"] == "dark"


class TestSave:
    """Whole-document writes"""

    def test_save_stamps_version(self, config_store, config_path):
        config_store.save({"shelly": []})

        saved = json.loads(config_path.read_text(encoding="utf-8"))
        assert saved[VERSION_KEY] == CONFIG_VERSION

    def test_save_leaves_no_temp_file(self, config_store, config_path):
        config_store.save(config_store.defaults())

        assert not config_path.with_suffix(".tmp").exists()

    def test_save_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")
        store = ConfigStore(blocker / "config.json")

        with pytest.raises(StorageError):
            store.save({})

    def test_load_survives_unwritable_location(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")
        store = ConfigStore(blocker / "config.json")

        assert store.load() == store.defaults()


class TestMigration:
    """Schema migration from version 1"""

    def _v1(self):
        return {
            "shelly": [{"id": "relay-1", "ip": "10.0.0.5", "name": "Porch"}],
            "honeywell": [],
            "ring": [],
            "piaware": [],
            "settings": {"theme": "light"},
        }

    def test_missing_version_reads_as_one(self):
        assert get_version({}) == 1
        assert get_version({VERSION_KEY: "2"}) == 1
        assert get_version({VERSION_KEY: True}) == 1

    def test_migration_adds_new_fields(self, config_store):
        migrated = config_store.migrate(self._v1())

        assert migrated[VERSION_KEY] == CONFIG_VERSION
        assert migrated["scenes"] == []
        assert migrated["settings"]["ringSnapshotInterval"] == 15

    def test_migration_never_drops_populated_fields(self, config_store):
        original = self._v1()
        migrated = config_store.migrate(copy.deepcopy(original))

        assert migrated["shelly"] == original["shelly"]
        assert migrated["settings"]["theme"] == "light"

    def test_migration_is_idempotent(self, config_store):
        once = config_store.migrate(self._v1())
        twice = config_store.migrate(copy.deepcopy(once))

        assert once == twice

    def test_migration_persists_result(self, config_store, config_path):
        config_path.write_text(json.dumps(self._v1()), encoding="utf-8")

        config_store.load()

        saved = json.loads(config_path.read_text(encoding="utf-8"))
        assert saved[VERSION_KEY] == CONFIG_VERSION
        assert saved["shelly"][0]["name"] == "Porch"


class TestDeepMerge:
    """Merge rule used by migration"""

    def test_empty_list_adopts_default(self):
        assert deep_merge({"scenes": []}, {"scenes": [{"name": "x"}]}) == {"scenes": [{"name": "x"}]}

    def test_populated_list_kept(self):
        assert deep_merge({"scenes": [1]}, {"scenes": [2]}) == {"scenes": [1]}

    def test_scalar_kept_and_missing_filled(self):
        merged = deep_merge({"a": 0, "b": None}, {"a": 5, "b": 6, "c": 7})
        assert merged == {"a": 0, "b": 6, "c": 7}

    def test_nested_dicts_recurse(self):
        merged = deep_merge({"s": {"x": 1}}, {"s": {"x": 2, "y": 3}})
        assert merged == {"s": {"x": 1, "y": 3}}

    def test_shape_mismatch_keeps_existing(self):
        assert deep_merge({"s": "custom"}, {"s": {"x": 1}}) == {"s": "custom"}
        assert deep_merge({"l": "custom"}, {"l": [1]}) == {"l": "custom"}


def test_device_helpers_ignore_malformed_lists():
    config = {"shelly": [{"id": 1}, "junk"], "ring": "not a list"}

    assert get_devices(config, "shelly") == [{"id": 1}]
    assert get_devices(config, "ring") == []
    assert device_counts(config) == {"shelly": 1, "honeywell": 0, "ring": 0, "piaware": 0}
