"""Logging setup for What Did I Do.

Modules log through ``logging.getLogger(__name__)``; this module wires the
root logger to three handlers:

- ``combined.log``: everything at the configured level, rotated by size
- ``error.log``: ERROR and above only
- stderr: optional console output

``get_recent_logs`` returns the tail of ``combined.log`` for the dashboard's
log viewer.
"""

import logging
from collections import deque
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
COMBINED_LOG = "combined.log"
ERROR_LOG = "error.log"

_HANDLER_MARK = "_whatdidido_handler"


def setup_logging(
    log_dir: Path,
    level: str = "INFO",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> logging.Logger:
    """Configure the root logger. Calling it again replaces our handlers.

    Args:
        log_dir: Directory for combined.log and error.log (created if needed)
        level: Level name for the root logger and combined.log
        max_bytes: Size at which combined.log rotates
        backup_count: Number of rotated files to keep
        console: Also log to stderr

    Returns:
        The configured root logger.
    """
    log_dir = Path(log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    combined = RotatingFileHandler(
        log_dir / COMBINED_LOG,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    errors = logging.FileHandler(log_dir / ERROR_LOG, encoding="utf-8")
    errors.setLevel(logging.ERROR)
    handlers = [combined, errors]

    if console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        root.addHandler(handler)

    return root


def get_log_path(log_dir: Path) -> Path:
    return Path(log_dir).expanduser() / COMBINED_LOG


def get_recent_logs(log_dir: Path, lines: int = 1000) -> List[str]:
    """Return the last ``lines`` non-empty lines of combined.log.

    A missing log file yields an empty list.
    """
    path = get_log_path(log_dir)
    if not path.exists():
        return []
    with open(path, encoding="utf-8", errors="replace") as f:
        tail = deque((line.rstrip("\n") for line in f if line.strip()), maxlen=lines)
    return list(tail)


def setup_from_config(config, console: Optional[bool] = None) -> logging.Logger:
    """Configure logging from a ``Config`` object."""
    log_config = config.logging
    return setup_logging(
        config.storage.log_path,
        level=log_config.level,
        max_bytes=log_config.max_bytes,
        backup_count=log_config.backup_count,
        console=log_config.console if console is None else console,
    )
