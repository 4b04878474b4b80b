"""Data types shared by the store, the aggregators and the web API.

A Sample is one screenshot-derived record. Each sample stands for one fixed
sampling interval of activity, so every "hours" figure in the project is
``count * interval_minutes / 60`` rather than a measured duration.

Example:
    >>> sample = Sample(
    ...     timestamp="2025-03-04T09:15:00.000Z",
    ...     category="WORK",
    ...     activity="Code review",
    ...     image=b"...",
    ...     thumbnail=b"...",
    ... )
    >>> empty_category_map()
    {'WORK': 0, 'LEARN': 0, 'SOCIAL': 0, 'ENTERTAINMENT': 0, 'UNKNOWN': 0}
"""

import base64
from dataclasses import dataclass, field
from typing import Dict, List, Optional


# Closed category set. Adding a category means adding it here; every
# aggregator zero-fills from this tuple.
CATEGORIES = (
    "WORK",           # Professional tasks, productivity
    "LEARN",          # Education, tutorials, research
    "SOCIAL",         # Meetings, chat, emails, social media
    "ENTERTAINMENT",  # Games, videos, browsing for fun
    "UNKNOWN",        # Classification failures
)


def empty_category_map(value=0) -> Dict[str, float]:
    """Return a mapping with every known category set to ``value``."""
    return {category: value for category in CATEGORIES}


def is_valid_category(category) -> bool:
    return category in CATEGORIES


def to_data_uri(data: Optional[bytes], mimetype: str = "image/png") -> str:
    """Encode binary image data as a data URI for JSON consumers."""
    if not data:
        return ""
    return f"data:{mimetype};base64,{base64.b64encode(data).decode('ascii')}"


@dataclass
class Sample:
    """One stored screenshot sample.

    Attributes:
        timestamp: ISO-8601 instant when the sample was taken.
        category: One of CATEGORIES.
        activity: Short free-text label produced by the classifier.
        image: Full-resolution image bytes. None when a query did not ask
            for the image payload.
        thumbnail: Small preview bytes.
        description: Optional longer description.
        id: Store-assigned id, None until inserted.
        created_at: Row creation time as recorded by SQLite.
    """
    timestamp: str
    category: str
    activity: str
    image: Optional[bytes] = None
    thumbnail: Optional[bytes] = None
    description: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[str] = None

    def to_dict(self, include_image: bool = False) -> dict:
        """Serialize for JSON, encoding binary payloads as data URIs."""
        data = {
            "id": self.id,
            "timestamp": self.timestamp,
            "category": self.category,
            "activity": self.activity,
            "description": self.description or "",
            "thumbnail": to_data_uri(self.thumbnail),
        }
        if include_image and self.image is not None:
            data["image"] = to_data_uri(self.image)
        return data


@dataclass
class Note:
    """A free-text note attached to a calendar day."""
    date: str
    content: str
    timestamp: str
    id: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class DayAnalysis:
    """A stored analysis of one day's activity.

    The text is produced elsewhere; the core only persists and returns it.
    """
    date: str
    content: str
    timestamp: str
    id: Optional[int] = None
    created_at: Optional[str] = None


@dataclass
class DayStats:
    """Category breakdown for one local calendar day.

    Attributes:
        date: Day in YYYY-MM-DD format.
        percentages: Category -> share of the day's samples (0-100).
        hours: Category -> count * interval_minutes / 60.
        counts: Category -> number of samples.
        total: Number of samples on the day.
        samples: Most recent samples first, thumbnails only.
    """
    date: str
    percentages: Dict[str, float]
    hours: Dict[str, float]
    counts: Dict[str, int]
    total: int
    samples: List[Sample] = field(default_factory=list)


@dataclass
class MonthlyAverages:
    """Category rollup across one calendar month.

    ``percentages`` is weighted by sample count over the whole month, not a
    mean of the daily percentages.
    """
    year: int
    month: int
    percentages: Dict[str, float]
    hours: Dict[str, float]
    counts: Dict[str, int]
    days_with_data: int


@dataclass
class YearlyStats:
    """Per-month category hours for one year; all 12 months are present."""
    year: int
    months: Dict[str, Dict[str, float]]
    months_with_data: int


@dataclass
class ExportBundle:
    """Samples and optional raw-count statistics for an explicit range."""
    start: str
    end: str
    samples: List[Sample]
    statistics: Optional[dict] = None
    include_media: bool = False
