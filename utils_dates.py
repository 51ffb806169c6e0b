#!/usr/bin/env python3
"""
Shared date utilities for cycle time reporting
Search window computation, ISO date formatting and ISO week keys
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple, Union

from config import DEFAULT_WEEKS_BACK

DateLike = Union[date, datetime]


def parse_issue_date(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse ISO format date string from GitHub or ZenHub API.

    Args:
        date_str: ISO format date string like "2025-09-18T15:25:13Z"

    Returns:
        timezone-aware datetime, or None when the value is missing or unparseable
    """
    if not date_str:
        return None
    if isinstance(date_str, datetime):
        parsed = date_str
    else:
        try:
            parsed = datetime.fromisoformat(str(date_str).replace('Z', '+00:00'))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_utc_date(timestamp: DateLike) -> date:
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc)
        return timestamp.date()
    return timestamp


def format_date_iso(timestamp: DateLike) -> str:
    """Render the UTC calendar date as YYYY-MM-DD for GitHub search qualifiers"""
    return _to_utc_date(timestamp).isoformat()


def get_search_window(reference: DateLike, weeks_back: int = DEFAULT_WEEKS_BACK) -> Tuple[date, date]:
    """
    Get the Monday-aligned closed-date window ending with the reference week.

    Args:
        reference: Date the report is generated for
        weeks_back: Number of full weeks before the reference week to include

    Returns:
        (start, end) where start is the Monday `weeks_back` weeks before the
        reference date and end is the Sunday of the reference week, inclusive
    """
    reference_date = _to_utc_date(reference)
    start_reference = reference_date - timedelta(weeks=weeks_back)

    start = start_reference - timedelta(days=start_reference.weekday())  # Monday = 0
    end = reference_date + timedelta(days=6 - reference_date.weekday())
    return start, end


def iso_week_key(timestamp: DateLike) -> str:
    """ISO-8601 week key such as '2024-W07'; string order matches calendar order"""
    iso_year, iso_week, _ = _to_utc_date(timestamp).isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def iso_week_keys_between(start: DateLike, end: DateLike) -> List[str]:
    """All week keys touched by the inclusive date range, ascending"""
    current = _to_utc_date(start)
    last = _to_utc_date(end)
    current -= timedelta(days=current.weekday())

    keys = []
    while current <= last:
        keys.append(iso_week_key(current))
        current += timedelta(weeks=1)
    return keys
