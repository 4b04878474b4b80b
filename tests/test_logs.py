"""Tests for log file setup and the recent-log reader."""

import logging

from whatdidido.logs import get_recent_logs, setup_logging


def test_messages_reach_combined_and_error_logs(tmp_path, restore_root_logger):
    setup_logging(tmp_path / "logs", level="INFO", console=False)
    log = logging.getLogger("whatdidido.test")
    log.info("routine message")
    log.error("something broke")

    combined = get_recent_logs(tmp_path / "logs")
    assert any("routine message" in line for line in combined)
    assert any("[ERROR] whatdidido.test: something broke" in line for line in combined)

    errors = (tmp_path / "logs" / "error.log").read_text()
    assert "something broke" in errors
    assert "routine message" not in errors


def test_setup_twice_does_not_duplicate_handlers(tmp_path, restore_root_logger):
    setup_logging(tmp_path / "logs", console=False)
    setup_logging(tmp_path / "logs", console=False)
    logging.getLogger("whatdidido.test").warning("once")
    assert sum("once" in line for line in get_recent_logs(tmp_path / "logs")) == 1


def test_recent_logs_tail(tmp_path, restore_root_logger):
    setup_logging(tmp_path / "logs", level="DEBUG", console=False)
    log = logging.getLogger("whatdidido.test")
    for i in range(20):
        log.debug(f"line {i}")

    tail = get_recent_logs(tmp_path / "logs", lines=3)
    assert len(tail) == 3
    assert tail[-1].endswith("line 19")


def test_missing_log_file(tmp_path):
    assert get_recent_logs(tmp_path / "nowhere") == []
