"""Activity statistics for the What Did I Do dashboard.

Turns the append-only ``screenshots`` table into the numbers the dashboard
shows: per-day category percentages and hours, monthly rollups, per-day and
per-month category hours for the charts.

Every sample stands for one sampling interval, so:

    percentage = count / total * 100       (0 when total is 0)
    hours      = count * interval_minutes / 60

All five categories are present in every result map, defaulting to 0, so
callers can render a stable category list without existence checks. Storage
errors propagate unchanged: a failed count must never look like an empty day.

Example:
    >>> from whatdidido.stats import ActivityStats
    >>> stats = ActivityStats(store, interval_minutes=5)
    >>> day = stats.get_day_stats("2025-03-04")
    >>> day.percentages["WORK"], day.hours["WORK"]
    (75.0, 0.25)
"""

import calendar
import logging
from datetime import date
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from .errors import ValidationError
from .models import (
    CATEGORIES,
    DayStats,
    MonthlyAverages,
    Sample,
    YearlyStats,
    empty_category_map,
)
from .storage import DEFAULT_PAGE_SIZE
from .timeparser import day_bounds, month_bounds, parse_date, span_bounds, validate_month, year_bounds

if TYPE_CHECKING:
    from .config import Config
    from .storage import SampleStore

logger = logging.getLogger(__name__)


def zero_filled_counts(raw: Dict[str, int]) -> Dict[str, int]:
    """Map raw category counts onto the closed category set.

    Labels outside the set (e.g. rows written by an older classifier) are
    counted as UNKNOWN so that percentages still add up to 100.
    """
    counts = empty_category_map(0)
    for category, count in raw.items():
        if category in counts:
            counts[category] += count
        else:
            logger.warning(f"Counting {count} samples with unrecognized category {category!r} as UNKNOWN")
            counts["UNKNOWN"] += count
    return counts


def percentages_from_counts(counts: Dict[str, int]) -> Dict[str, float]:
    total = sum(counts.values())
    if total == 0:
        return empty_category_map(0.0)
    return {category: counts[category] / total * 100 for category in CATEGORIES}


def hours_from_counts(counts: Dict[str, int], interval_minutes: float) -> Dict[str, float]:
    return {category: counts[category] * interval_minutes / 60 for category in CATEGORIES}


def top_categories_per_bucket(
    breakdown: Dict[str, Dict[str, float]],
    n: int = 3,
) -> Tuple[Dict[str, List[str]], List[str]]:
    """Pick the top ``n`` categories by hours independently for each bucket.

    This is the chart selection rule: each day (or month) plots only its own
    top ``n`` categories, and the legend is the union of those per-bucket
    selections. A category outside a bucket's top ``n`` is not plotted for
    that bucket even when it has hours there. Categories with zero hours are
    never selected; ties go to the category listed first in CATEGORIES.

    Args:
        breakdown: ``{bucket: {category: hours}}`` as returned by
            ``get_daily_category_breakdown`` or ``YearlyStats.months``.
        n: Categories per bucket.

    Returns:
        ``(per_bucket, legend)`` where ``per_bucket`` maps each bucket to its
        selected categories (highest first) and ``legend`` lists the union in
        category order.
    """
    order = {category: index for index, category in enumerate(CATEGORIES)}
    per_bucket = {}
    selected = set()
    for bucket, hours in breakdown.items():
        ranked = sorted(
            (category for category, value in hours.items() if value > 0),
            key=lambda category: (-hours[category], order.get(category, len(order))),
        )
        per_bucket[bucket] = ranked[:n]
        selected.update(per_bucket[bucket])
    legend = [category for category in CATEGORIES if category in selected]
    return per_bucket, legend


class ActivityStats:
    """Daily, monthly and yearly aggregates over a SampleStore.

    Aggregators only read; inserts and deletes go through the store.

    Attributes:
        store: SampleStore to query.
        interval_minutes: Default minutes per sample when a call does not
            pass its own interval.
        page_size: Samples returned with the day stats.
        more_page_size: Default page size for ``get_more_samples``.
    """

    def __init__(
        self,
        store: "SampleStore",
        interval_minutes: float = 5,
        page_size: int = DEFAULT_PAGE_SIZE,
        more_page_size: int = 50,
    ):
        self.store = store
        self.interval_minutes = self._check_interval(interval_minutes)
        self.page_size = page_size
        self.more_page_size = more_page_size

    @classmethod
    def from_config(cls, store: "SampleStore", config: "Config") -> "ActivityStats":
        return cls(
            store,
            interval_minutes=config.capture.interval_minutes,
            page_size=config.dashboard.page_size,
            more_page_size=config.dashboard.more_page_size,
        )

    @staticmethod
    def _check_interval(interval_minutes) -> float:
        if isinstance(interval_minutes, bool):
            raise ValidationError(f"Invalid interval: {interval_minutes!r}")
        try:
            value = float(interval_minutes)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid interval: {interval_minutes!r}") from e
        if value <= 0:
            raise ValidationError(f"Interval must be positive, got {interval_minutes}")
        return value

    def _interval(self, interval_minutes: Optional[float]) -> float:
        if interval_minutes is None:
            return self.interval_minutes
        return self._check_interval(interval_minutes)

    # =========================================================================
    # Day
    # =========================================================================

    def get_day_stats(
        self,
        day,
        interval_minutes: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> DayStats:
        """Category breakdown and latest samples for one local calendar day.

        Counts and the sample page are read inside one store snapshot, so
        ``total`` and ``samples`` always describe the same rows.

        Args:
            day: Date, datetime or YYYY-MM-DD / ISO string.
            interval_minutes: Minutes per sample (defaults to the configured one).
            limit: Samples to return (defaults to ``page_size``).

        Returns:
            DayStats with all five categories present.

        Raises:
            ValidationError: Unparseable date or bad interval.
            StorageError: If either query fails.
        """
        interval = self._interval(interval_minutes)
        target = parse_date(day)
        start, end = day_bounds(target)
        limit = self.page_size if limit is None else limit

        with self.store.snapshot():
            counts = zero_filled_counts(self.store.count_by_category(start, end))
            samples = self.store.fetch_range(start, end, limit=limit)

        total = sum(counts.values())
        logger.debug(f"Day stats for {target}: {total} samples, interval {interval} min")
        return DayStats(
            date=target.isoformat(),
            percentages=percentages_from_counts(counts),
            hours=hours_from_counts(counts, interval),
            counts=counts,
            total=total,
            samples=samples,
        )

    def get_more_samples(self, day, offset: int = 0, limit: Optional[int] = None) -> List[Sample]:
        """Next page of a day's samples, newest first.

        Pages are slices of one stable ordering, so requesting a larger
        ``limit`` returns a superset that starts with the smaller page.
        """
        start, end = day_bounds(day)
        limit = self.more_page_size if limit is None else limit
        return self.store.fetch_range(start, end, limit=limit, offset=offset)

    # =========================================================================
    # Month
    # =========================================================================

    def get_monthly_averages(self, day, interval_minutes: Optional[float] = None) -> MonthlyAverages:
        """Category rollup for the local calendar month containing ``day``.

        ``percentages`` are each category's share of all samples in the
        month (weighted by count), not a mean of daily percentages.
        ``days_with_data`` counts distinct local dates with at least one
        sample.

        Raises:
            StorageError: If the grouped count fails.
        """
        interval = self._interval(interval_minutes)
        target = parse_date(day)
        start, end = month_bounds(target.year, target.month)

        by_day = self.store.count_by_category(start, end, group_by="day")
        totals = empty_category_map(0)
        for day_counts in by_day.values():
            for category, count in zero_filled_counts(day_counts).items():
                totals[category] += count

        logger.debug(f"Monthly stats for {target.year}-{target.month:02d}: "
                     f"{sum(totals.values())} samples over {len(by_day)} days")
        return MonthlyAverages(
            year=target.year,
            month=target.month,
            percentages=percentages_from_counts(totals),
            hours=hours_from_counts(totals, interval),
            counts=totals,
            days_with_data=len(by_day),
        )

    def get_daily_category_breakdown(
        self,
        month_start,
        month_end=None,
        interval_minutes: Optional[float] = None,
    ) -> Dict[str, Dict[str, float]]:
        """Hours per category for each local day with data.

        Returns every category for every day so the chart can rank each day
        on its own (see ``top_categories_per_bucket``); nothing is filtered
        to a global top-N here.

        Args:
            month_start: First day of the span.
            month_end: Last day of the span (defaults to the last day of
                ``month_start``'s month).
            interval_minutes: Minutes per sample.

        Returns:
            ``{'YYYY-MM-DD': {category: hours}}`` in date order.
        """
        interval = self._interval(interval_minutes)
        first = parse_date(month_start)
        if month_end is None:
            last = date(first.year, first.month, calendar.monthrange(first.year, first.month)[1])
        else:
            last = parse_date(month_end)
        start, end = span_bounds(first, last)

        by_day = self.store.count_by_category(start, end, group_by="day")
        return {
            day_key: hours_from_counts(zero_filled_counts(day_counts), interval)
            for day_key, day_counts in by_day.items()
        }

    # =========================================================================
    # Year
    # =========================================================================

    def get_yearly_category_breakdown(self, year: int, interval_minutes: Optional[float] = None) -> YearlyStats:
        """Hours per category for each of the 12 months of ``year``.

        Months without samples are present with all categories at 0.
        """
        interval = self._interval(interval_minutes)
        year = int(year)
        validate_month(year, 1)
        start, end = year_bounds(year)

        by_month = self.store.count_by_category(start, end, group_by="month")
        months = {}
        for month in range(1, 13):
            key = f"{year:04d}-{month:02d}"
            counts = zero_filled_counts(by_month.get(key, {}))
            months[key] = hours_from_counts(counts, interval)

        return YearlyStats(year=year, months=months, months_with_data=len(by_month))
