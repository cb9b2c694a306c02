"""Debug API endpoints for troubleshooting a Jira connection."""

from flask import Blueprint, request, jsonify

from support_services.errors import AuthError, SupportMetricsError
from support_services.jira_client import JiraClient
from support_services.models import Credentials

bp = Blueprint("debug", __name__, url_prefix="/api/debug")


def get_jira_client():
    """Build a Jira client from request headers, or None if credentials are missing."""
    domain = (request.headers.get("X-Jira-Domain") or request.headers.get("X-Jira-Server", "")).strip()
    email = request.headers.get("X-Jira-Email", "").strip()
    token = request.headers.get("X-Jira-Token", "").strip()

    if not all([domain, email, token]):
        return None

    try:
        return JiraClient(Credentials(domain=domain, email=email, token=token))
    except AuthError:
        return None


def missing_credentials():
    return jsonify({"error": "unauthenticated", "details": "Missing Jira credentials in headers"}), 401


@bp.route("/myself", methods=["GET"])
def get_myself():
    """Show which account the credentials authenticate as."""
    client = get_jira_client()
    if not client:
        return missing_credentials()

    try:
        me = client.get_myself()
        return jsonify({
            "data": {
                "accountId": me.get("accountId"),
                "displayName": me.get("displayName"),
                "emailAddress": me.get("emailAddress")
            }
        })
    except SupportMetricsError as e:
        return jsonify(e.to_dict()), e.status_code


@bp.route("/fields", methods=["GET"])
def list_fields():
    """List field IDs and names, e.g. to find the work-started custom field."""
    client = get_jira_client()
    if not client:
        return missing_credentials()

    try:
        fields = client.list_fields()
        return jsonify({
            "data": {
                "fields": [
                    {
                        "id": f.get("id"),
                        "name": f.get("name"),
                        "clauseNames": f.get("clauseNames", []),
                        "custom": f.get("custom", False)
                    }
                    for f in fields
                ],
                "total_fields": len(fields)
            }
        })
    except SupportMetricsError as e:
        return jsonify(e.to_dict()), e.status_code


@bp.route("/projects", methods=["GET"])
def list_projects():
    """List projects visible to the credentials."""
    client = get_jira_client()
    if not client:
        return missing_credentials()

    try:
        projects = client.list_projects()
        return jsonify({
            "data": [{"key": p.get("key"), "name": p.get("name")} for p in projects]
        })
    except SupportMetricsError as e:
        return jsonify(e.to_dict()), e.status_code


@bp.route("/projects/<project_key>", methods=["GET"])
def get_project(project_key):
    """Check that a project exists and is accessible."""
    client = get_jira_client()
    if not client:
        return missing_credentials()

    try:
        project = client.get_project(project_key.upper())
        return jsonify({
            "data": {
                "key": project.get("key"),
                "name": project.get("name"),
                "exists": True
            }
        })
    except SupportMetricsError as e:
        return jsonify(e.to_dict()), e.status_code


@bp.route("/issues/<issue_key>", methods=["GET"])
def inspect_issue(issue_key):
    """Show the raw field layout of one issue."""
    client = get_jira_client()
    if not client:
        return missing_credentials()

    # Jira issue keys are upper-case
    issue_key = issue_key.strip().upper()

    try:
        issue = client.get_issue(issue_key)
        fields = issue["fields"]
        return jsonify({
            "data": {
                "id": issue["id"],
                "key": issue["key"],
                "project": (fields.get("project") or {}).get("key"),
                "status": (fields.get("status") or {}).get("name"),
                "labels": fields.get("labels") or [],
                "fieldKeys": sorted(fields.keys())
            }
        })
    except SupportMetricsError as e:
        return jsonify(e.to_dict()), e.status_code
