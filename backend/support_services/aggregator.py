"""Statistics derived from classified issue subsets."""

import math
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from support_services.classifier import RESOLUTION_FIELDS, first_present
from support_services.models import DurationField, TrendSeries, VelocitySeries

SECONDS_PER_DAY = 24 * 60 * 60

# Jira formats: "2024-10-31T12:11:56.289-0400", "2024-10-31T12:11:56.289+0000",
# "2024-10-31T12:11:56Z". %z also accepts "Z" and "+00:00".
_TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a Jira timestamp into an aware datetime, or None.

    Values without an offset are taken as UTC.
    """
    if not value or not isinstance(value, str):
        return None

    for fmt in _TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    return None


def iso_week(day: date) -> tuple:
    """Return the ISO-8601 ``(year, week)`` for a date.

    Moves to the Thursday of the same Monday-based week; that Thursday's
    year is the ISO year and its day-of-year gives the week.
    """
    if isinstance(day, datetime):
        day = day.date()
    thursday = day + timedelta(days=3 - day.weekday())
    week = (thursday.timetuple().tm_yday - 1) // 7 + 1
    return thursday.year, week


def week_label(year: int, week: int) -> str:
    return f"{year}-W{week:02d}"


def daily_trend(issues: list, date_field: str = "created") -> TrendSeries:
    """Count issues per calendar day of ``date_field``, oldest day first."""
    counts = Counter()
    for issue in issues:
        value = first_present(issue, date_field)
        if isinstance(value, str):
            counts[value.split("T")[0]] += 1

    dates = sorted(counts)
    return TrendSeries(
        dates=tuple(dates),
        counts=tuple(counts[d] for d in dates)
    )


def weekly_velocity(*issue_sets: Iterable[dict],
                    date_fields: tuple = RESOLUTION_FIELDS) -> VelocitySeries:
    """Count resolved issues per ISO week across all given sets.

    Weeks are ordered by (year, week) so the series stays chronological
    across a year boundary.
    """
    counts = Counter()
    for issues in issue_sets:
        for issue in issues or []:
            resolved_at = parse_timestamp(first_present(issue, date_fields))
            if resolved_at is None:
                continue
            counts[iso_week(resolved_at)] += 1

    weeks = sorted(counts)
    return VelocitySeries(
        weeks=tuple(week_label(year, week) for year, week in weeks),
        counts=tuple(counts[w] for w in weeks)
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def average_duration(issues: list, duration: DurationField) -> int:
    """Average whole days between the duration's start and end fields.

    Each issue contributes ``ceil(days)``, clamped at zero. Issues missing
    either timestamp are ignored. Returns 0 when no issue qualifies.
    """
    total_days = 0
    count = 0

    for issue in issues:
        fields = issue.get("fields") or {}
        start = parse_timestamp(fields.get(duration.start_field))
        end = parse_timestamp(fields.get(duration.end_field))
        if start is None or end is None:
            continue

        elapsed_days = (end - start).total_seconds() / SECONDS_PER_DAY
        total_days += max(0, math.ceil(elapsed_days))
        count += 1

    if count == 0:
        return 0
    return _round_half_up(total_days / count)
