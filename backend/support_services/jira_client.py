"""Jira REST client used by the support metrics service.

Searches go through a small ladder of attempts (Basic auth, Bearer auth, a
minimal payload) because Jira Cloud tenants differ in which auth scheme and
payload shape ``/search/jql`` accepts. Results are normalized to plain
``{"id", "key", "fields"}`` dicts and, when the search returns them without
fields, enriched with one GET per issue.
"""

import base64
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

import requests

from support_services.errors import (
    AuthError,
    NetworkError,
    SupportMetricsError,
    UpstreamError,
)
from support_services.models import Credentials, is_naked

logger = logging.getLogger(__name__)

SEARCH_PATH = "/rest/api/3/search/jql"
ISSUE_PATH = "/rest/api/3/issue/{}"

# Fields requested on every search; aggregation needs the date, label and
# status fields, the rest feed the dashboard tables.
SEARCH_FIELDS = (
    "key", "summary", "status", "priority", "description", "resolution",
    "created", "resolutiondate", "labels", "customfield_workstarted",
)


@dataclass(frozen=True)
class SearchAttempt:
    """One rung of the search fallback ladder.

    Args:
        name: Label used in logs
        auth: "basic", "bearer", or None to keep the previous header
        minimal_payload: Send only the JQL and result cap
        retry_on: Status codes of the previous response that trigger this
            attempt. None means the attempt always runs first.
    """

    name: str
    auth: Optional[str]
    minimal_payload: bool
    retry_on: Optional[frozenset]


SEARCH_ATTEMPTS = (
    SearchAttempt("basic", "basic", False, None),
    SearchAttempt("bearer", "bearer", False, frozenset({401})),
    SearchAttempt("minimal", None, True, frozenset({400, 404})),
)


def normalize_base_url(domain: str) -> str:
    """Reduce a Jira domain to ``scheme://host[:port]``.

    Accepts a bare hostname ("acme.atlassian.net") or a full URL, forcing
    https when no scheme is given.
    """
    domain = (domain or "").strip()
    if not domain:
        raise AuthError("Missing Jira domain")

    if not domain.lower().startswith(("http://", "https://")):
        domain = f"https://{domain}"

    try:
        parts = urlsplit(domain)
        host = parts.hostname
        port = parts.port
    except ValueError:
        return domain.rstrip("/")

    if not host:
        return domain.rstrip("/")

    netloc = f"{host}:{port}" if port else host
    return f"{parts.scheme}://{netloc}"


def basic_auth_header(email: str, token: str) -> str:
    encoded = base64.b64encode(f"{email}:{token}".encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


def bearer_auth_header(token: str) -> str:
    return f"Bearer {token}"


def normalize_issues(body: dict) -> list:
    """Flatten either search response shape into issue records.

    Jira returns ``{"issues": [...]}`` from the classic search and
    ``{"results": [{"issue": {...}}]}`` from some newer endpoints.

    Raises:
        UpstreamError: body or one of its results is not a JSON object
    """
    if not isinstance(body, dict):
        raise UpstreamError(f"Unexpected search response: {type(body).__name__}")

    raw_issues = body.get("issues") or body.get("results") or []
    if not isinstance(raw_issues, list):
        raise UpstreamError(f"Unexpected search results: {type(raw_issues).__name__}")

    issues = []
    for raw in raw_issues:
        if isinstance(raw, dict) and raw.get("issue"):
            raw = raw["issue"]
        issues.append(_normalize_issue(raw))
    return issues


def _normalize_issue(item) -> dict:
    if not isinstance(item, dict):
        raise UpstreamError(f"Unexpected issue record: {type(item).__name__}")
    fields = item.get("fields")
    return {
        "id": item.get("id"),
        "key": item.get("key") or item.get("id"),
        "fields": fields if isinstance(fields, dict) else {},
    }


def _is_ok(response) -> bool:
    return 200 <= response.status_code < 300


class JiraClient:
    """Thin wrapper around the Jira REST endpoints the dashboard needs."""

    def __init__(self, credentials: Credentials, timeout: int = 30,
                 max_results: int = 100, workers: int = 10):
        if not credentials.email or not credentials.token:
            raise AuthError("Missing Jira credentials")

        self.base_url = normalize_base_url(credentials.domain)
        self.credentials = credentials
        self.timeout = timeout
        self.max_results = max_results
        self.workers = workers
        self._auth_header = basic_auth_header(credentials.email, credentials.token)

    def _headers(self, with_body: bool = False) -> dict:
        headers = {
            "Authorization": self._auth_header,
            "Accept": "application/json",
        }
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _post(self, path: str, payload: dict):
        try:
            return requests.post(
                f"{self.base_url}{path}",
                headers=self._headers(with_body=True),
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Connection to Jira timed out: {e}", timed_out=True) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Failed to connect to Jira: {e}") from e

    def _request(self, path: str, params: Optional[dict] = None):
        """Make authenticated GET request to Jira API."""
        try:
            response = requests.get(
                f"{self.base_url}{path}",
                headers=self._headers(),
                params=params,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Connection to Jira timed out: {e}", timed_out=True) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Failed to connect to Jira: {e}") from e

        self._raise_for_status(response, path)
        return self._decode(response, path)

    def _raise_for_status(self, response, context: str):
        if _is_ok(response):
            return
        status = response.status_code
        if status in (401, 403):
            raise AuthError(f"Jira rejected credentials ({status}): {context}")
        raise UpstreamError(f"Jira API Error ({status}): {context}", upstream_status=status)

    def _decode(self, response, context: str):
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                f"Jira returned invalid JSON: {context}",
                upstream_status=response.status_code
            ) from e

    def search(self, jql: str) -> dict:
        """Run a JQL search and return normalized, enriched issues.

        Returns:
            Dict with "issues" (list of issue records) and "total" (server
            reported total, or the number of records returned)
        """
        logger.info(
            f"Target: {self.base_url} | User: {self.credentials.email} | "
            f"Token: [{self.credentials.masked_token()}]"
        )

        full_payload = {
            "jql": jql,
            "fields": list(SEARCH_FIELDS),
            "maxResults": self.max_results,
        }
        minimal_payload = {"jql": jql, "maxResults": self.max_results}

        response = None
        for attempt in SEARCH_ATTEMPTS:
            if response is not None:
                if _is_ok(response):
                    break
                if attempt.retry_on is None or response.status_code not in attempt.retry_on:
                    continue
                logger.warning(
                    f"Search failed ({response.status_code}): {response.text[:100]}. "
                    f"Retrying with '{attempt.name}' attempt"
                )

            if attempt.auth == "basic":
                self._auth_header = basic_auth_header(self.credentials.email, self.credentials.token)
            elif attempt.auth == "bearer":
                self._auth_header = bearer_auth_header(self.credentials.token)

            payload = minimal_payload if attempt.minimal_payload else full_payload
            logger.info(f"POST search/jql [{attempt.name}]: {payload}")
            response = self._post(SEARCH_PATH, payload)

        self._raise_for_status(response, jql)

        logger.debug(f"Raw search body (first 250 chars): {response.text[:250]}")
        body = self._decode(response, jql)

        issues = normalize_issues(body)
        raw_count = len(body.get("issues") or body.get("results") or [])
        total = body.get("total") or raw_count

        if issues:
            sample = issues[0]
            logger.debug(
                f"Sample issue: id={sample['id']} key={sample['key']} "
                f"has_fields={bool(sample['fields'])} has_created={not is_naked(sample)}"
            )

        if issues and is_naked(issues[0]):
            issues = self.enrich(issues)

        return {"issues": issues, "total": total}

    def get_issue(self, id_or_key: str, fields: Optional[str] = None) -> dict:
        """Fetch one issue with its fields."""
        params = {"fields": fields} if fields else None
        data = self._request(ISSUE_PATH.format(id_or_key), params=params)
        return _normalize_issue(data)

    def enrich(self, issues: list) -> list:
        """Replace naked issues with fully-fielded ones, keeping input order.

        Only the first ``max_results`` issues are fetched. An issue whose
        fetch fails is kept as it came from the search.
        """
        targets = issues[:self.max_results]
        logger.info(f"Detected naked issues. Enriching {len(targets)} tickets")

        def fetch_issue(issue):
            issue_id = issue.get("id") or issue.get("key")
            if not issue_id:
                return issue
            try:
                return self.get_issue(issue_id)
            except SupportMetricsError as e:
                logger.warning(f"Enrichment failed for {issue_id}: {e.detail}")
                return issue
            except Exception as e:
                logger.warning(f"Enrichment failed for {issue_id}: {e!r}")
                return issue

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [executor.submit(fetch_issue, issue) for issue in targets]
            return [future.result() for future in futures]

    # Diagnostics

    def get_myself(self) -> dict:
        return self._request("/rest/api/3/myself")

    def list_fields(self) -> list:
        return self._request("/rest/api/3/field")

    def list_projects(self) -> list:
        return self._request("/rest/api/3/project")

    def get_project(self, project_key: str) -> dict:
        return self._request(f"/rest/api/3/project/{project_key}")
