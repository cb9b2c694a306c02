"""Support metrics aggregation service."""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from support_services import aggregator, classifier
from support_services.config import MetricsConfig
from support_services.errors import AuthError, BadRequestError
from support_services.jira_client import JiraClient
from support_services.models import (
    AggregateResult,
    Credentials,
    DurationField,
    QuerySignature,
    TeamBreakdown,
)
from support_services.result_cache import ResultCache

logger = logging.getLogger(__name__)

TRUTHY_FLAGS = {"true", "1", "yes"}


def parse_refresh_flag(value) -> bool:
    """Interpret the ``refresh`` query parameter."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_FLAGS


def _validate_date(name: str, value: str) -> str:
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError):
        raise BadRequestError(f"Invalid {name} '{value}', expected YYYY-MM-DD")
    return value


class SupportMetricsService:
    """Builds dashboard metrics for the support project.

    Drives the Jira client, the classifiers and the aggregator, and keeps
    one result per (start date, end date, priority) in the shared cache.
    """

    def __init__(self, cache: ResultCache, config: Optional[MetricsConfig] = None,
                 client_factory: Callable[..., JiraClient] = JiraClient):
        self.cache = cache
        self.config = config or MetricsConfig()
        self._client_factory = client_factory

    def build_master_jql(self, start_date: str) -> str:
        """Single catch-all query: anything created or resolved since start."""
        key = self.config.project_key
        return (
            f'text ~ "{key}" AND '
            f'(created >= "{start_date}" OR resolved >= "{start_date}")'
        )

    def get_aggregated_metrics(self, start_date: str, end_date: Optional[str] = None,
                               priority: Optional[str] = None,
                               force_refresh: bool = False,
                               credentials: Optional[Credentials] = None) -> AggregateResult:
        """Return metrics for the date window, from cache unless refreshing.

        Raises:
            AuthError: credentials missing or rejected
            BadRequestError: start_date missing or dates malformed
            UpstreamError, NetworkError: Jira could not be queried
        """
        if credentials is None or not credentials.is_complete():
            raise AuthError("Missing Jira credentials")
        if not start_date:
            raise BadRequestError("Missing startDate parameter")
        _validate_date("startDate", start_date)
        if end_date:
            _validate_date("endDate", end_date)

        signature = QuerySignature(start_date, end_date or None, priority or None)

        def build():
            logger.info(f"Fetching master pool for {signature}")
            try:
                return self._build_metrics(signature, credentials)
            except Exception:
                logger.exception(f"Master aggregation failed for {signature}")
                raise

        return self.cache.get_or_build(signature, build, force_refresh=force_refresh)

    def invalidate(self):
        """Drop every cached result."""
        self.cache.clear()

    def _build_metrics(self, signature: QuerySignature,
                       credentials: Credentials) -> AggregateResult:
        client = self._client_factory(
            credentials,
            timeout=self.config.request_timeout,
            max_results=self.config.max_results,
            workers=self.config.enrichment_workers
        )
        result = client.search(self.build_master_jql(signature.start_date))

        pool = classifier.filter_by_project(result["issues"], self.config.project_key)
        pool = classifier.filter_by_priority(pool, signature.priority)

        created = classifier.filter_by_date_field(
            pool, "created", signature.start_date, signature.end_date
        )
        resolved = classifier.filter_by_date_field(
            pool, classifier.RESOLUTION_FIELDS, signature.start_date, signature.end_date
        )
        internal = classifier.filter_by_label_set(resolved, self.config.internal_labels)
        delivery = classifier.filter_by_label_set(resolved, self.config.delivery_labels)
        escalated = classifier.filter_by_status_set(resolved, self.config.escalation_statuses)

        aggregated = AggregateResult(
            total=len(pool),
            created_trend=aggregator.daily_trend(created, "created"),
            resolved_internal=TeamBreakdown(total=len(internal)),
            resolved_delivery=TeamBreakdown(total=len(delivery)),
            escalated=TeamBreakdown(total=len(escalated)),
            velocity=aggregator.weekly_velocity(internal, delivery),
            lead_time_avg_days=aggregator.average_duration(resolved, DurationField.LEAD_TIME),
            cycle_time_avg_days=aggregator.average_duration(resolved, DurationField.CYCLE_TIME),
            last_updated=datetime.now(timezone.utc).isoformat()
        )

        self._log_discovery(pool, created, resolved, internal, delivery, escalated)
        return aggregated

    def _log_discovery(self, pool, created, resolved, internal, delivery, escalated):
        labels = set()
        statuses = set()
        for issue in pool:
            fields = issue.get("fields") or {}
            labels.update(fields.get("labels") or [])
            status = fields.get("status")
            if isinstance(status, dict) and status.get("name"):
                statuses.add(status["name"])
        labels = sorted(labels)
        statuses = sorted(statuses)

        logger.info(
            f"{self.config.project_key} tickets: {len(pool)} | created: {len(created)} | "
            f"resolved: {len(resolved)} | internal: {len(internal)} | "
            f"delivery: {len(delivery)} | escalated: {len(escalated)}"
        )
        logger.info(f"Found labels: {', '.join(labels) or 'NONE'}")
        logger.info(f"Found statuses: {', '.join(statuses) or 'NONE'}")
        logger.debug(f"Sample keys: {', '.join(i['key'] for i in pool[:5])}")
