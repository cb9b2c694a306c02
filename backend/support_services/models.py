"""Data types shared by the client, aggregator and cache.

Issue records stay plain dicts in Jira's own shape (``id``, ``key``,
``fields``); only the request signature and the computed snapshot get
dedicated types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


def is_naked(issue: dict) -> bool:
    """Check whether a search result came back without field data."""
    fields = issue.get("fields") or {}
    return not fields.get("created")


@dataclass(frozen=True)
class Credentials:
    """Opaque Jira credentials passed through from request headers."""

    domain: str
    email: str
    token: str

    def is_complete(self) -> bool:
        return bool(self.domain and self.email and self.token)

    def masked_token(self) -> str:
        if not self.token:
            return "MISSING"
        return f"{self.token[:3]}...{self.token[-3:]}"

    def __repr__(self):
        return (
            f"Credentials(domain={self.domain!r}, email={self.email!r}, "
            f"token={self.masked_token()!r})"
        )


@dataclass(frozen=True)
class QuerySignature:
    """Identity of an aggregation request, used as the cache key."""

    start_date: str
    end_date: Optional[str] = None
    priority: Optional[str] = None


class DurationField(Enum):
    """Recognised (start field, end field) pairs for duration averages."""

    LEAD_TIME = ("created", "resolutiondate")
    CYCLE_TIME = ("customfield_workstarted", "resolutiondate")

    @property
    def start_field(self) -> str:
        return self.value[0]

    @property
    def end_field(self) -> str:
        return self.value[1]


@dataclass(frozen=True)
class TrendSeries:
    dates: tuple = ()
    counts: tuple = ()

    def to_dict(self) -> dict:
        return {"dates": list(self.dates), "counts": list(self.counts)}


@dataclass(frozen=True)
class VelocitySeries:
    weeks: tuple = ()
    counts: tuple = ()

    def to_dict(self) -> dict:
        return {"weeks": list(self.weeks), "counts": list(self.counts)}


@dataclass(frozen=True)
class TeamBreakdown:
    """Resolved count for one organisational class.

    ``trend`` is kept for the dashboard's chart slot and is currently
    always empty.
    """

    total: int = 0
    trend: TrendSeries = field(default_factory=TrendSeries)

    def to_dict(self) -> dict:
        # Dashboard expects the placeholder as a bare list
        return {"total": self.total, "trend": list(self.trend.dates)}


@dataclass(frozen=True)
class AggregateResult:
    """Immutable snapshot of the dashboard metrics for one signature."""

    total: int
    created_trend: TrendSeries
    resolved_internal: TeamBreakdown
    resolved_delivery: TeamBreakdown
    escalated: TeamBreakdown
    velocity: VelocitySeries
    lead_time_avg_days: int
    cycle_time_avg_days: int
    last_updated: str

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "createdTrend": self.created_trend.to_dict(),
            "resolvedInternal": self.resolved_internal.to_dict(),
            "resolvedDelivery": self.resolved_delivery.to_dict(),
            "escalated": self.escalated.to_dict(),
            "velocity": self.velocity.to_dict(),
            "leadTimeAvgDays": self.lead_time_avg_days,
            "cycleTimeAvgDays": self.cycle_time_avg_days,
            "lastUpdated": self.last_updated,
        }
