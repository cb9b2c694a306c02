"""Support metrics API endpoints."""

import logging
from flask import Blueprint, current_app, request, jsonify

from support_services.errors import SupportMetricsError
from support_services.models import Credentials
from support_services.support_metrics import parse_refresh_flag

bp = Blueprint("metrics", __name__, url_prefix="/api/metrics")

logger = logging.getLogger(__name__)


def get_jira_credentials():
    """Extract Jira credentials from request headers."""
    domain = (request.headers.get("X-Jira-Domain") or request.headers.get("X-Jira-Server", "")).strip()
    email = request.headers.get("X-Jira-Email", "").strip()
    token = request.headers.get("X-Jira-Token", "").strip()

    if not all([domain, email, token]):
        return None

    return Credentials(domain=domain.rstrip("/"), email=email, token=token)


def get_metrics_service():
    return current_app.extensions["support_metrics"]


@bp.route("", methods=["GET"])
def get_metrics():
    """Get aggregated support metrics for the dashboard.

    Query params:
        - startDate: ISO date (e.g., "2024-01-01")
        - endDate: ISO date (e.g., "2024-03-31")
        - priority: Optional priority selection (accepted, not yet applied)
        - refresh: "true" to bypass the cache

    Returns the metrics object: totals, created trend, resolved-by-team
    counts, escalations, weekly velocity and lead/cycle time averages.
    """
    credentials = get_jira_credentials()

    if not credentials:
        return jsonify({"error": "unauthenticated", "details": "Missing Jira credentials in headers"}), 401

    start_date = request.args.get("startDate")
    end_date = request.args.get("endDate")

    if not start_date or not end_date:
        return jsonify({"error": "bad_request", "details": "Missing startDate or endDate parameters"}), 400

    try:
        metrics = get_metrics_service().get_aggregated_metrics(
            start_date,
            end_date,
            priority=request.args.get("priority"),
            force_refresh=parse_refresh_flag(request.args.get("refresh")),
            credentials=credentials
        )
        return jsonify(metrics.to_dict())
    except SupportMetricsError as e:
        logger.error(f"Failed to fetch metrics: {e.detail}")
        return jsonify(e.to_dict()), e.status_code
    except Exception as e:
        logger.exception("Unexpected error while fetching metrics")
        return jsonify({"error": "internal_error", "details": str(e)}), 500


@bp.route("/cache", methods=["DELETE"])
def clear_cache():
    """Drop every cached metrics result."""
    get_metrics_service().invalidate()
    return jsonify({"data": {"cleared": True}})
