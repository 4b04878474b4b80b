"""Tests for the YAML-backed configuration manager."""

import yaml

from whatdidido.config import Config, ConfigManager


def test_defaults_without_file(tmp_path):
    mgr = ConfigManager(tmp_path / "missing.yaml")
    assert mgr.config == Config()
    assert mgr.config.capture.interval_minutes == 5
    assert mgr.config.web.port == 55556
    assert mgr.config.storage.db_path.name == "whatdidido.db"


def test_partial_file_merges_with_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "capture": {"interval_minutes": 2, "unknown_key": True},
        "storage": {"data_dir": str(tmp_path / "data")},
        "not_a_section": {"x": 1},
    }))
    mgr = ConfigManager(path)

    assert mgr.config.capture.interval_minutes == 2
    assert mgr.config.dashboard.page_size == 100
    assert mgr.config.storage.db_path == tmp_path / "data" / "whatdidido.db"
    assert mgr.config.storage.export_path == tmp_path / "data" / "exports"
    assert mgr.config.storage.log_path == tmp_path / "data" / "logs"


def test_invalid_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("capture: [unclosed")
    assert ConfigManager(path).config == Config()


def test_update_persists_and_reloads(tmp_path):
    path = tmp_path / "nested" / "config.yaml"
    mgr = ConfigManager(path)

    assert mgr.update("capture", "interval_minutes", 10) is True
    assert mgr.update("capture", "interval_minutes", 10) is False
    assert mgr.update("capture", "no_such_key", 1) is False
    assert mgr.update("no_such_section", "x", 1) is False

    assert ConfigManager(path).config.capture.interval_minutes == 10
    mgr.config.capture.interval_minutes = 1
    mgr.reload()
    assert mgr.config.capture.interval_minutes == 10


def test_absolute_export_dir(tmp_path):
    mgr = ConfigManager(tmp_path / "config.yaml")
    mgr.config.storage.export_dir = str(tmp_path / "elsewhere")
    assert mgr.config.storage.export_path == tmp_path / "elsewhere"
