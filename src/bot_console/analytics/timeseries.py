"""Alignment of two independently fetched per-day metrics into one gap-free series."""

from __future__ import annotations

import asyncio
import math
import numbers
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping, NamedTuple, Optional, Union

from bot_console.config import AnalyticsConfig, MetricFamilyConfig
from bot_console.log import get_logger
from bot_console.storage.base import SessionStore

logger = get_logger(__name__)

RANGE_PRESETS = (7, 30)

Number = Union[int, float]
MetricSeries = dict[date, Number]

DATE_KEYS = ("_id", "date", "day")
VALUE_KEYS = ("value", "count", "minutes", "total")


def coerce_number(value: Any) -> Number:
    """Missing, non-numeric and non-finite values become 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else 0
    if isinstance(value, (numbers.Real, Decimal)):
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError):
            return 0
        if not math.isfinite(number):
            return 0
        return int(number) if number.is_integer() else number
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0
        if not math.isfinite(number):
            return 0
        return int(number) if number.is_integer() else number
    return 0


def parse_day(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def parse_metric_points(points: Iterable[Mapping[str, Any]]) -> MetricSeries:
    """Turn ``[{"_id": "2024-01-01", "count": 3}, ...]`` into a date-keyed series.

    The date key name varies by endpoint, so the first of DATE_KEYS present is
    used; likewise for VALUE_KEYS. Points whose date does not parse are dropped.
    Repeated dates are summed.
    """
    series: MetricSeries = {}
    for point in points:
        raw_day = next((point[k] for k in DATE_KEYS if k in point), None)
        day = parse_day(raw_day)
        if day is None:
            logger.warning("metric_point_skipped", raw_date=raw_day)
            continue
        raw_value = next((point[k] for k in VALUE_KEYS if k in point), None)
        series[day] = series.get(day, 0) + coerce_number(raw_value)
    return series


class DisplayPoint(NamedTuple):
    label: str
    a: Number
    b: Number


@dataclass(frozen=True)
class DisplaySeries:
    range_days: int
    points: list[DisplayPoint] = field(default_factory=list)

    @property
    def labels(self) -> list[str]:
        return [p.label for p in self.points]

    @property
    def values_a(self) -> list[Number]:
        return [p.a for p in self.points]

    @property
    def values_b(self) -> list[Number]:
        return [p.b for p in self.points]

    def __len__(self) -> int:
        return len(self.points)


def format_label(day: date) -> str:
    return day.isoformat()


def _by_day(series: Mapping[Any, Any]) -> dict[date, Any]:
    normalized: dict[date, Any] = {}
    for key, value in series.items():
        day = parse_day(key)
        if day is not None:
            normalized[day] = value
    return normalized


def merge(
    series_a: Mapping[Any, Any],
    series_b: Mapping[Any, Any],
    range_days: int,
) -> DisplaySeries:
    """Date union of both series, ascending; a day missing from either side is 0 there.

    Keys may be dates or calendar-day strings.
    """
    if range_days not in RANGE_PRESETS:
        raise ValueError(f"range_days must be one of {RANGE_PRESETS}, got {range_days}")
    series_a, series_b = _by_day(series_a), _by_day(series_b)
    days = sorted(set(series_a) | set(series_b))
    return DisplaySeries(
        range_days=range_days,
        points=[
            DisplayPoint(
                format_label(day),
                coerce_number(series_a.get(day)),
                coerce_number(series_b.get(day)),
            )
            for day in days
        ],
    )


class TimeSeriesMerger:
    """Per-dashboard cache of merged series keyed by (metric family, range).

    A range is fetched on first use only; nothing expires until invalidate()
    is called. Failed fetches are not cached.
    """

    def __init__(self, store: SessionStore, config: Optional[AnalyticsConfig] = None):
        self._store = store
        self._config = config or AnalyticsConfig()
        self._cache: dict[tuple[str, int], DisplaySeries] = {}

    def family(self, name: str) -> MetricFamilyConfig:
        try:
            return self._config.families[name]
        except KeyError:
            raise ValueError(f"Unknown metric family: {name}") from None

    def is_loaded(self, family: str, range_days: int) -> bool:
        return (family, range_days) in self._cache

    async def load(self, family: str, range_days: int) -> DisplaySeries:
        key = (family, range_days)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if range_days not in RANGE_PRESETS or range_days not in self._config.ranges:
            raise ValueError(f"Unsupported range: {range_days} days")
        metrics = self.family(family)

        # A failed half cancels its sibling; callers see the first error itself
        try:
            async with asyncio.TaskGroup() as tg:
                task_a = tg.create_task(self._store.metric_over_time(metrics.primary, range_days))
                task_b = tg.create_task(self._store.metric_over_time(metrics.secondary, range_days))
        except ExceptionGroup as eg:
            logger.warning(
                "metric_series_failed",
                family=family,
                range_days=range_days,
                error=str(eg.exceptions[0]),
            )
            raise eg.exceptions[0] from eg
        display = merge(
            parse_metric_points(task_a.result()),
            parse_metric_points(task_b.result()),
            range_days,
        )
        self._cache[key] = display
        logger.info("metric_series_loaded", family=family, range_days=range_days, points=len(display))
        return display

    def invalidate(self, family: Optional[str] = None, range_days: Optional[int] = None) -> int:
        """Drop matching cache entries (all when no filter is given). Returns how many."""
        doomed = [
            key for key in self._cache
            if (family is None or key[0] == family)
            and (range_days is None or key[1] == range_days)
        ]
        for key in doomed:
            del self._cache[key]
        return len(doomed)
