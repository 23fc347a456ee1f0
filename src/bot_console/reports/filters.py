"""Report-screen filters applied on top of a reconciled session list."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Iterable, Optional

from bot_console.storage.models import Session


def filter_by_created_range(
    sessions: Iterable[Session],
    from_date: Optional[date],
    to_date: Optional[date],
) -> list[Session]:
    """Keep sessions created within [from_date 00:00, to_date 23:59:59.999999] UTC.

    The filter only applies when both bounds are given.
    """
    sessions = list(sessions)
    if from_date is None or to_date is None:
        return sessions
    start = datetime.combine(from_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(to_date, time.max, tzinfo=timezone.utc)
    return [s for s in sessions if s.created_at and start <= s.created_at <= end]


def filter_by_duration(sessions: Iterable[Session], needle: str) -> list[Session]:
    """Substring match on the duration in minutes, e.g. "3" matches 3, 13 and 30."""
    sessions = list(sessions)
    needle = (needle or "").strip()
    if not needle:
        return sessions
    return [
        s for s in sessions
        if s.duration_minutes is not None and needle in str(s.duration_minutes)
    ]


def latest_created_date(sessions: Iterable[Session]) -> Optional[date]:
    """Most recent creation day, used as the upper bound for date pickers."""
    dates = [s.created_at.date() for s in sessions if s.created_at]
    return max(dates) if dates else None


def apply_report_filters(
    sessions: Iterable[Session],
    *,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    duration: str = "",
) -> list[Session]:
    """Date range first, then duration; order of the input is kept."""
    return filter_by_duration(filter_by_created_range(sessions, from_date, to_date), duration)
