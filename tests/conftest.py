"""Shared fixtures: a throwaway database, a sample factory and an API client."""

import logging
from datetime import datetime

import pytest

from whatdidido.config import ConfigManager
from whatdidido.models import Sample
from whatdidido.storage import SampleStore

PNG_HEADER = b"\x89PNG\r\n\x1a\n"
IMAGE_BYTES = PNG_HEADER + b"full-resolution"
THUMB_BYTES = PNG_HEADER + b"thumb"


@pytest.fixture
def store(tmp_path):
    s = SampleStore(tmp_path / "whatdidido.db")
    s.initialize()
    yield s
    s.close()


@pytest.fixture
def add_sample(store):
    """Insert a sample at a local wall-clock time and return its id."""
    def _add(when, category="WORK", activity="Coding", description=None):
        if isinstance(when, str):
            when = datetime.strptime(when, "%Y-%m-%d %H:%M")
        return store.insert(Sample(
            timestamp=when,
            category=category,
            activity=activity,
            image=IMAGE_BYTES,
            thumbnail=THUMB_BYTES,
            description=description,
        ))
    return _add


@pytest.fixture
def config_mgr(tmp_path):
    mgr = ConfigManager(tmp_path / "config" / "config.yaml")
    mgr.config.storage.data_dir = str(tmp_path / "data")
    return mgr


@pytest.fixture
def client(config_mgr, store):
    from web.app import create_app

    app = create_app(config_mgr, store)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def restore_root_logger():
    """Drop handlers a test installed on the root logger."""
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
