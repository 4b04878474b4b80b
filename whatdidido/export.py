"""Data export for What Did I Do.

Builds export bundles for an explicit date range and writes them to JSON
files. Unlike the dashboard aggregators, export ranges are taken as the
exact instants the caller chose; nothing is snapped to local midnight
(the export dialog itself builds "today 00:00 - 23:59.999" when asked).

Statistics in an export are raw counts, not percentages:

    {
        "overall": {"WORK": 120, "LEARN": 30, ...},
        "daily": {"2025-03-04": {"WORK": 60, ...}, ...}
    }

Example:
    >>> from whatdidido.export import DataExporter
    >>> exporter = DataExporter(store, output_dir=Path("/tmp/exports"))
    >>> bundle = exporter.export_range(start, end, include_stats=True)
    >>> path = exporter.write_json(bundle, range_type="last7days")
"""

import base64
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from .models import CATEGORIES, ExportBundle
from .stats import zero_filled_counts
from .timeparser import ensure_ordered, format_instant

if TYPE_CHECKING:
    from .storage import SampleStore

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = "1.0"


def _b64(data: Optional[bytes]) -> Optional[str]:
    return base64.b64encode(data).decode("ascii") if data is not None else None


class DataExporter:
    """Export samples and statistics for a date range.

    Attributes:
        store: SampleStore to read from.
        output_dir: Directory where export files are written.
    """

    def __init__(self, store: "SampleStore", output_dir: Optional[Path] = None):
        """Initialize DataExporter.

        Args:
            store: SampleStore instance.
            output_dir: Directory for export files. Defaults to
                ~/whatdidido-data/exports. Created on first write.
        """
        self.store = store
        self.output_dir = Path(output_dir) if output_dir else Path.home() / "whatdidido-data" / "exports"

    def export_range(
        self,
        start,
        end,
        include_media: bool = False,
        include_stats: bool = False,
    ) -> ExportBundle:
        """Collect samples (and optionally statistics) for ``[start, end]``.

        Args:
            start: Inclusive start instant (ISO string or datetime).
            end: Inclusive end instant.
            include_media: Include full-resolution image bytes. Without it no
                sample carries an image payload.
            include_stats: Add overall and per-day raw category counts.

        Returns:
            ExportBundle with samples newest first.

        Raises:
            ValidationError: Unparseable instants or end before start.
            StorageError: If any query fails.
        """
        start, end = ensure_ordered(start, end)

        with self.store.snapshot():
            samples = self.store.fetch_range(start, end, limit=None, include_image=include_media)
            statistics = None
            if include_stats:
                overall = zero_filled_counts(self.store.count_by_category(start, end))
                by_day = self.store.count_by_category(start, end, group_by="day")
                statistics = {
                    "overall": overall,
                    "daily": {
                        day_key: zero_filled_counts(day_counts)
                        for day_key, day_counts in by_day.items()
                    },
                }

        logger.info(f"Exported {len(samples)} samples from {start} to {end}"
                    f" (media={include_media}, stats={include_stats})")
        return ExportBundle(
            start=start,
            end=end,
            samples=samples,
            statistics=statistics,
            include_media=include_media,
        )

    def to_document(self, bundle: ExportBundle, range_type: str = "custom") -> dict:
        """Build the JSON document written by ``write_json``.

        Image and thumbnail bytes are base64 encoded and only present when
        the bundle was built with ``include_media``.
        """
        screenshots = []
        for sample in bundle.samples:
            item = {
                "id": sample.id,
                "timestamp": sample.timestamp,
                "category": sample.category,
                "activity": sample.activity,
                "description": sample.description,
            }
            if bundle.include_media:
                item["image_data"] = _b64(sample.image)
                item["thumbnail_data"] = _b64(sample.thumbnail)
            screenshots.append(item)

        return {
            "metadata": {
                "exportDate": format_instant(datetime.now(timezone.utc)),
                "dateRange": {"startDate": bundle.start, "endDate": bundle.end},
                "rangeType": range_type,
                "screenshotCount": len(bundle.samples),
                "categories": list(CATEGORIES),
                "version": EXPORT_FORMAT_VERSION,
            },
            "screenshots": screenshots,
            "statistics": bundle.statistics or {},
        }

    def write_json(
        self,
        bundle: ExportBundle,
        path: Optional[Path] = None,
        range_type: str = "custom",
    ) -> Path:
        """Write an export bundle as a JSON file.

        Args:
            bundle: Bundle from ``export_range``.
            path: Target file. Defaults to
                ``what-did-i-do-export-<range_type>-<YYYY-MM-DD>.json`` in
                ``output_dir``.
            range_type: Preset name recorded in the metadata.

        Returns:
            Path to the written file.

        Raises:
            OSError: If the file cannot be written.
        """
        if path is None:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            filename = f"what-did-i-do-export-{range_type}-{datetime.now().strftime('%Y-%m-%d')}.json"
            path = self.output_dir / filename
        else:
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)

        document = self.to_document(bundle, range_type=range_type)
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")

        logger.info(f"Export written to {path} ({len(bundle.samples)} samples)")
        return path

