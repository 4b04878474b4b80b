"""
Tests for the SQLite sample store: schema migration, validation, ordering,
pagination and the grouped count primitive.

Usage:
    pytest tests/test_storage.py -v
"""

import sqlite3
from datetime import datetime

import pytest

from whatdidido.errors import StorageError, ValidationError
from whatdidido.models import Sample
from whatdidido.storage import SampleStore
from whatdidido.timeparser import day_bounds, span_bounds

from conftest import IMAGE_BYTES, THUMB_BYTES


def make_sample(**overrides):
    fields = dict(
        timestamp="2025-03-04T08:15:00.000Z",
        category="WORK",
        activity="Coding",
        image=IMAGE_BYTES,
        thumbnail=THUMB_BYTES,
    )
    fields.update(overrides)
    return Sample(**fields)


class TestLifecycle:
    """initialize/close and migration of older databases."""

    def test_initialize_is_idempotent(self, store):
        store.initialize()
        store.initialize()
        assert store.is_open

    def test_queries_before_initialize_fail(self, tmp_path):
        store = SampleStore(tmp_path / "never-opened.db")
        with pytest.raises(StorageError):
            store.recent()

    def test_closed_store_raises_storage_error(self, store):
        store.close()
        store.close()
        with pytest.raises(StorageError):
            store.count_by_category(*day_bounds("2025-03-04"))

    def test_context_manager_opens_and_closes(self, tmp_path):
        with SampleStore(tmp_path / "ctx.db") as store:
            assert store.is_open
        assert not store.is_open

    def test_migrates_database_without_description_column(self, tmp_path):
        db_path = tmp_path / "old.db"
        conn = sqlite3.connect(db_path)
        conn.execute("""
            CREATE TABLE screenshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                category TEXT NOT NULL,
                activity TEXT NOT NULL,
                image_data BLOB NOT NULL,
                thumbnail_data BLOB NOT NULL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.execute(
            "INSERT INTO screenshots (timestamp, category, activity, image_data, thumbnail_data) "
            "VALUES (?, ?, ?, ?, ?)",
            ("2025-03-04T08:15:00.000Z", "LEARN", "Reading docs", IMAGE_BYTES, THUMB_BYTES),
        )
        conn.commit()
        conn.close()

        with SampleStore(db_path) as store:
            rows = store.fetch_range("2025-03-01T00:00:00.000Z", "2025-03-31T00:00:00.000Z")
            assert len(rows) == 1
            assert rows[0].description is None
            assert rows[0].category == "LEARN"

            store.insert(make_sample(description="after migration"))
            descriptions = {s.description for s in store.recent()}
            assert descriptions == {None, "after migration"}


class TestSamples:
    """Insert, delete and read back samples."""

    def test_insert_returns_id_and_normalizes_timestamp(self, store):
        sample_id = store.insert(make_sample(timestamp="2025-03-04T10:15:00+02:00"))
        stored = store.get(sample_id)
        assert stored.timestamp == "2025-03-04T08:15:00.000Z"
        assert stored.thumbnail == THUMB_BYTES

    @pytest.mark.parametrize("overrides", [
        {"category": "OTHER"},
        {"category": None},
        {"activity": None},
        {"image": None},
        {"thumbnail": None},
        {"timestamp": ""},
        {"timestamp": "not a time"},
    ])
    def test_insert_rejects_invalid_samples(self, store, overrides):
        with pytest.raises(ValidationError):
            store.insert(make_sample(**overrides))
        assert store.recent() == []

    def test_delete_reports_whether_row_existed(self, store):
        sample_id = store.insert(make_sample())
        assert store.delete(sample_id) is True
        assert store.delete(sample_id) is False
        assert store.get(sample_id) is None

    def test_images_only_loaded_on_request(self, store):
        sample_id = store.insert(make_sample())
        start, end = "2025-03-04T00:00:00.000Z", "2025-03-05T00:00:00.000Z"

        assert all(s.image is None for s in store.fetch_range(start, end))
        assert store.get(sample_id).image is None

        with_images = store.fetch_range(start, end, include_image=True)
        assert with_images[0].image == IMAGE_BYTES
        assert store.get(sample_id, include_image=True).image == IMAGE_BYTES

    def test_fetch_range_is_newest_first_with_id_tiebreak(self, store):
        first = store.insert(make_sample(timestamp="2025-03-04T08:00:00.000Z"))
        same_a = store.insert(make_sample(timestamp="2025-03-04T09:00:00.000Z"))
        same_b = store.insert(make_sample(timestamp="2025-03-04T09:00:00.000Z"))

        rows = store.fetch_range("2025-03-04T00:00:00.000Z", "2025-03-04T23:59:59.999Z")
        assert [s.id for s in rows] == [same_b, same_a, first]

    def test_larger_page_starts_with_smaller_page(self, store):
        for minute in range(0, 50, 5):
            store.insert(make_sample(timestamp=f"2025-03-04T08:{minute:02d}:00.000Z"))
        start, end = "2025-03-04T00:00:00.000Z", "2025-03-04T23:59:59.999Z"

        small = [s.id for s in store.fetch_range(start, end, limit=3)]
        large = [s.id for s in store.fetch_range(start, end, limit=7)]
        everything = [s.id for s in store.fetch_range(start, end, limit=None)]

        assert large[:3] == small
        assert everything[:7] == large
        assert len(everything) == 10
        assert [s.id for s in store.fetch_range(start, end, limit=3, offset=3)] == large[3:6]

    def test_range_bounds_are_inclusive(self, store):
        store.insert(make_sample(timestamp="2025-03-04T00:00:00.000Z"))
        store.insert(make_sample(timestamp="2025-03-04T23:59:59.999Z"))
        store.insert(make_sample(timestamp="2025-03-05T00:00:00.000Z"))
        assert store.count_in_range("2025-03-04T00:00:00.000Z", "2025-03-04T23:59:59.999Z") == 2

    def test_end_before_start_is_rejected(self, store):
        with pytest.raises(ValidationError):
            store.fetch_range("2025-03-05T00:00:00.000Z", "2025-03-04T00:00:00.000Z")

    def test_negative_paging_is_rejected(self, store):
        with pytest.raises(ValidationError):
            store.fetch_range("2025-03-04T00:00:00.000Z", "2025-03-05T00:00:00.000Z", offset=-1)


class TestCountByCategory:
    """Grouped counts bucket by local calendar day and month."""

    def test_totals_only_list_present_categories(self, store, add_sample):
        add_sample("2025-03-04 10:00", "WORK")
        add_sample("2025-03-04 10:05", "WORK")
        add_sample("2025-03-04 10:10", "SOCIAL")
        assert store.count_by_category(*day_bounds("2025-03-04")) == {"WORK": 2, "SOCIAL": 1}

    def test_group_by_local_day(self, store, add_sample):
        add_sample("2025-03-04 00:30", "WORK")
        add_sample("2025-03-04 23:30", "LEARN")
        add_sample("2025-03-05 12:00", "WORK")

        first, last = datetime(2025, 3, 4).date(), datetime(2025, 3, 5).date()
        by_day = store.count_by_category(*span_bounds(first, last), group_by="day")
        assert by_day == {
            "2025-03-04": {"WORK": 1, "LEARN": 1},
            "2025-03-05": {"WORK": 1},
        }
        assert list(by_day) == ["2025-03-04", "2025-03-05"]

    def test_group_by_month(self, store, add_sample):
        add_sample("2025-01-15 12:00", "WORK")
        add_sample("2025-03-01 12:00", "ENTERTAINMENT")
        first, last = datetime(2025, 1, 1).date(), datetime(2025, 12, 31).date()
        by_month = store.count_by_category(*span_bounds(first, last), group_by="month")
        assert by_month == {"2025-01": {"WORK": 1}, "2025-03": {"ENTERTAINMENT": 1}}

    def test_unknown_grouping_is_rejected(self, store):
        with pytest.raises(ValidationError):
            store.count_by_category(*day_bounds("2025-03-04"), group_by="week")


class TestNotesAndAnalyses:
    """Per-day notes and stored day analyses."""

    def test_note_lifecycle(self, store):
        note_id = store.save_note("2025-03-04", "Shipped the release")
        notes = store.get_notes_for_date("2025-03-04")
        assert [n.content for n in notes] == ["Shipped the release"]

        assert store.update_note(note_id, "Shipped 1.2") is True
        assert store.get_notes_for_date("2025-03-04")[0].content == "Shipped 1.2"

        assert store.delete_note(note_id) is True
        assert store.delete_note(note_id) is False
        assert store.update_note(note_id, "gone") is False
        assert store.get_notes_for_date("2025-03-04") == []

    def test_notes_in_range(self, store):
        store.save_note("2025-03-03", "before")
        store.save_note("2025-03-04", "inside")
        store.save_note("2025-03-06", "after")
        notes = store.get_notes_in_range("2025-03-04", "2025-03-05")
        assert [n.content for n in notes] == ["inside"]

    def test_latest_day_analysis_wins(self, store):
        assert store.get_day_analysis("2025-03-04") is None
        store.save_day_analysis("2025-03-04", "first draft")
        latest_id = store.save_day_analysis("2025-03-04", "revised")

        latest = store.get_day_analysis("2025-03-04")
        assert latest.id == latest_id
        assert latest.content == "revised"
        assert len(store.get_analyses_in_range("2025-03-01", "2025-03-31")) == 2

    def test_analysis_update_and_delete(self, store):
        analysis_id = store.save_day_analysis("2025-03-04", "draft")
        assert store.update_analysis(analysis_id, "final") is True
        assert store.get_day_analysis("2025-03-04").content == "final"
        assert store.delete_analysis(analysis_id) is True
        assert store.delete_analysis(analysis_id) is False
