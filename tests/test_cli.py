"""Tests for the command line entry point."""

import json

import pytest
import yaml

from whatdidido.__main__ import main


@pytest.fixture
def cli_config(tmp_path, restore_root_logger):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "storage": {"data_dir": str(tmp_path / "data")},
        "logging": {"console": False},
    }))
    return path


@pytest.fixture
def db_with_samples(tmp_path, store, add_sample):
    add_sample("2025-03-04 09:00", "WORK")
    add_sample("2025-03-04 09:05", "LEARN")
    return store.db_path


def test_stats_command(cli_config, db_with_samples, capsys):
    assert main(["--config", str(cli_config), "--db", db_with_samples, "stats", "--date", "2025-03-04"]) == 0
    out = capsys.readouterr().out
    assert "2025-03-04: 2 samples" in out
    assert "WORK" in out and "50.0%" in out


def test_export_to_stdout(cli_config, db_with_samples, capsys):
    argv = ["--config", str(cli_config), "--db", db_with_samples,
            "export", "--start", "2025-03-04", "--end", "2025-03-04", "--stats", "-o", "-"]
    assert main(argv) == 0
    document = json.loads(capsys.readouterr().out)
    assert document["metadata"]["screenshotCount"] == 2
    assert document["statistics"]["overall"]["LEARN"] == 1


def test_export_to_file(cli_config, db_with_samples, tmp_path):
    target = tmp_path / "out.json"
    argv = ["--config", str(cli_config), "--db", db_with_samples,
            "export", "--range", "2025-03-04", "-o", str(target)]
    assert main(argv) == 0
    assert json.loads(target.read_text())["metadata"]["screenshotCount"] == 2


def test_bad_range_exits_with_error(cli_config, db_with_samples, capsys):
    argv = ["--config", str(cli_config), "--db", db_with_samples, "export", "--range", "someday"]
    assert main(argv) == 2
    assert "Could not parse time range" in capsys.readouterr().err
