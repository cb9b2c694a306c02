"""Tests for JiraClient."""

import pytest
import requests
from unittest.mock import Mock, patch
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from support_services.errors import AuthError, NetworkError, UpstreamError
from support_services.jira_client import (
    JiraClient,
    SEARCH_ATTEMPTS,
    normalize_base_url,
    normalize_issues,
)
from support_services.models import Credentials

JQL = 'text ~ "EAB" AND (created >= "2024-01-01" OR resolved >= "2024-01-01")'

FULL_ISSUE = {
    "id": "1",
    "key": "EAB-1",
    "fields": {"created": "2024-01-01T09:00:00.000+0000", "labels": []}
}


class TestNormalizeBaseUrl:
    """Test Jira domain normalization."""

    def test_bare_hostname_gets_https(self):
        assert normalize_base_url("acme.atlassian.net") == "https://acme.atlassian.net"

    def test_strips_trailing_slash(self):
        assert normalize_base_url("https://acme.atlassian.net/") == "https://acme.atlassian.net"

    def test_strips_path_and_keeps_port(self):
        assert normalize_base_url("http://localhost:8080/jira/") == "http://localhost:8080"

    def test_empty_domain_is_auth_error(self):
        with pytest.raises(AuthError):
            normalize_base_url("")


class TestNormalizeIssues:
    """Test flattening of search response shapes."""

    def test_issues_container(self):
        issues = normalize_issues({"issues": [FULL_ISSUE]})
        assert issues == [FULL_ISSUE]

    def test_results_container_with_wrapped_issue(self):
        issues = normalize_issues({"results": [{"issue": FULL_ISSUE}]})
        assert issues == [FULL_ISSUE]

    def test_missing_key_and_fields_fall_back(self):
        issues = normalize_issues({"issues": [{"id": "42"}]})
        assert issues == [{"id": "42", "key": "42", "fields": {}}]

    def test_empty_body(self):
        assert normalize_issues({}) == []

    def test_non_object_body_is_upstream_error(self):
        with pytest.raises(UpstreamError):
            normalize_issues(["not", "an", "object"])

    def test_non_object_result_item_is_upstream_error(self):
        with pytest.raises(UpstreamError):
            normalize_issues({"issues": ["EAB-1"]})

    def test_non_dict_fields_are_dropped(self):
        issues = normalize_issues({"issues": [{"id": "1", "key": "EAB-1", "fields": "oops"}]})
        assert issues == [{"id": "1", "key": "EAB-1", "fields": {}}]


class TestClientInit:
    """Test client construction."""

    def test_missing_token_raises_auth_error(self):
        with pytest.raises(AuthError):
            JiraClient(Credentials(domain="acme.atlassian.net", email="a@b.c", token=""))

    def test_base_url_is_normalized(self, credentials):
        client = JiraClient(credentials)
        assert client.base_url == "https://test.atlassian.net"

    def test_ladder_order(self):
        assert [a.name for a in SEARCH_ATTEMPTS] == ["basic", "bearer", "minimal"]


class TestSearchFallbackLadder:
    """Test the auth and payload fallback sequence."""

    @patch("support_services.jira_client.requests.get")
    @patch("support_services.jira_client.requests.post")
    def test_success_on_first_attempt(self, mock_post, mock_get, credentials, jira_response):
        mock_post.return_value = jira_response(200, {"issues": [FULL_ISSUE], "total": 7})

        result = JiraClient(credentials).search(JQL)

        assert result == {"issues": [FULL_ISSUE], "total": 7}
        assert mock_post.call_count == 1
        headers = mock_post.call_args.kwargs["headers"]
        assert headers["Authorization"].startswith("Basic ")
        payload = mock_post.call_args.kwargs["json"]
        assert payload["maxResults"] == 100
        assert "created" in payload["fields"]
        mock_get.assert_not_called()

    @patch("support_services.jira_client.requests.post")
    def test_401_retries_with_bearer(self, mock_post, credentials, jira_response):
        mock_post.side_effect = [
            jira_response(401, {"errorMessages": ["Unauthorized"]}),
            jira_response(200, {"issues": [FULL_ISSUE]})
        ]

        result = JiraClient(credentials).search(JQL)

        assert result["total"] == 1
        second = mock_post.call_args_list[1].kwargs
        assert second["headers"]["Authorization"] == "Bearer test-token-123"
        assert second["json"] == mock_post.call_args_list[0].kwargs["json"]

    @patch("support_services.jira_client.requests.post")
    def test_400_retries_with_minimal_payload(self, mock_post, credentials, jira_response):
        mock_post.side_effect = [
            jira_response(400, {"errorMessages": ["Bad field"]}),
            jira_response(200, {"issues": [FULL_ISSUE]})
        ]

        JiraClient(credentials).search(JQL)

        assert mock_post.call_count == 2
        second = mock_post.call_args_list[1].kwargs
        assert second["json"] == {"jql": JQL, "maxResults": 100}
        assert second["headers"]["Authorization"].startswith("Basic ")

    @patch("support_services.jira_client.requests.post")
    def test_bearer_then_minimal_payload(self, mock_post, credentials, jira_response):
        mock_post.side_effect = [
            jira_response(401),
            jira_response(404),
            jira_response(200, {"issues": [FULL_ISSUE]})
        ]

        JiraClient(credentials).search(JQL)

        assert mock_post.call_count == 3
        third = mock_post.call_args_list[2].kwargs
        assert third["headers"]["Authorization"].startswith("Bearer ")
        assert third["json"] == {"jql": JQL, "maxResults": 100}

    @patch("support_services.jira_client.requests.post")
    def test_rejected_credentials_raise_auth_error(self, mock_post, credentials, jira_response):
        mock_post.side_effect = [jira_response(401), jira_response(401)]

        with pytest.raises(AuthError):
            JiraClient(credentials).search(JQL)

        assert mock_post.call_count == 2

    @patch("support_services.jira_client.requests.post")
    def test_server_error_is_not_retried(self, mock_post, credentials, jira_response):
        mock_post.return_value = jira_response(500)

        with pytest.raises(UpstreamError) as exc_info:
            JiraClient(credentials).search(JQL)

        assert exc_info.value.upstream_status == 500
        assert mock_post.call_count == 1

    @patch("support_services.jira_client.requests.post")
    def test_exhausted_ladder_raises_upstream_error(self, mock_post, credentials, jira_response):
        mock_post.side_effect = [jira_response(404), jira_response(404)]

        with pytest.raises(UpstreamError) as exc_info:
            JiraClient(credentials).search(JQL)

        assert exc_info.value.upstream_status == 404

    @patch("support_services.jira_client.requests.post")
    def test_timeout_raises_network_error(self, mock_post, credentials):
        mock_post.side_effect = requests.exceptions.Timeout()

        with pytest.raises(NetworkError) as exc_info:
            JiraClient(credentials).search(JQL)

        assert exc_info.value.timed_out is True
        assert exc_info.value.status_code == 504

    @patch("support_services.jira_client.requests.post")
    def test_connection_error_raises_network_error(self, mock_post, credentials):
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(NetworkError) as exc_info:
            JiraClient(credentials).search(JQL)

        assert exc_info.value.status_code == 502

    @patch("support_services.jira_client.requests.post")
    def test_results_shape_total_falls_back_to_count(self, mock_post, credentials, jira_response):
        mock_post.return_value = jira_response(200, {
            "results": [{"issue": FULL_ISSUE}, {"issue": dict(FULL_ISSUE, id="2", key="EAB-2")}]
        })

        result = JiraClient(credentials).search(JQL)

        assert result["total"] == 2
        assert [i["key"] for i in result["issues"]] == ["EAB-1", "EAB-2"]

    @patch("support_services.jira_client.requests.post")
    def test_non_object_body_raises_upstream_error(self, mock_post, credentials):
        mock_post.return_value = Mock(
            status_code=200,
            json=lambda: ["not", "an", "object"],
            text='["not", "an", "object"]'
        )

        with pytest.raises(UpstreamError):
            JiraClient(credentials).search(JQL)


class TestEnrichment:
    """Test per-issue enrichment of naked search results."""

    @patch("support_services.jira_client.requests.get")
    @patch("support_services.jira_client.requests.post")
    def test_failed_fetch_keeps_naked_issue_in_place(self, mock_post, mock_get,
                                                     credentials, jira_response):
        naked = [{"id": str(n), "key": f"EAB-{n}"} for n in (1, 2, 3)]
        mock_post.return_value = jira_response(200, {"issues": naked, "total": 3})

        def fetch(url, **kwargs):
            issue_id = url.rsplit("/", 1)[-1]
            if issue_id == "2":
                raise requests.exceptions.ConnectionError("reset")
            return jira_response(200, {
                "id": issue_id,
                "key": f"EAB-{issue_id}",
                "fields": {"created": f"2024-01-0{issue_id}T00:00:00.000+0000"}
            })

        mock_get.side_effect = fetch

        result = JiraClient(credentials).search(JQL)

        issues = result["issues"]
        assert [i["key"] for i in issues] == ["EAB-1", "EAB-2", "EAB-3"]
        assert issues[1] == {"id": "2", "key": "EAB-2", "fields": {}}
        assert issues[0]["fields"]["created"].startswith("2024-01-01")
        assert issues[2]["fields"]["created"].startswith("2024-01-03")
        assert result["total"] == 3

    @patch("support_services.jira_client.requests.get")
    def test_non_object_body_keeps_naked_issue(self, mock_get, credentials, jira_response):
        def fetch(url, **kwargs):
            if url.endswith("/issue/2"):
                return Mock(status_code=200, json=lambda: None, text="null")
            return jira_response(200, FULL_ISSUE)

        mock_get.side_effect = fetch
        naked = [
            {"id": "1", "key": "EAB-1", "fields": {}},
            {"id": "2", "key": "EAB-2", "fields": {}}
        ]

        enriched = JiraClient(credentials).enrich(naked)

        assert len(enriched) == 2
        assert enriched[0] == FULL_ISSUE
        assert enriched[1] == naked[1]

    @patch("support_services.jira_client.requests.get")
    def test_unexpected_error_keeps_naked_issue(self, mock_get, credentials, jira_response):
        mock_get.side_effect = [jira_response(200, FULL_ISSUE), RuntimeError("decoder blew up")]
        naked = [
            {"id": "1", "key": "EAB-1", "fields": {}},
            {"id": "2", "key": "EAB-2", "fields": {}}
        ]

        enriched = JiraClient(credentials, workers=1).enrich(naked)

        assert enriched == [FULL_ISSUE, naked[1]]

    @patch("support_services.jira_client.requests.get")
    def test_not_found_keeps_naked_issue(self, mock_get, credentials, jira_response):
        mock_get.return_value = jira_response(404, {"errorMessages": ["Issue does not exist"]})
        naked = [{"id": "9", "key": "EAB-9", "fields": {}}]

        assert JiraClient(credentials).enrich(naked) == naked

    @patch("support_services.jira_client.requests.get")
    def test_enrichment_is_capped(self, mock_get, credentials, jira_response):
        mock_get.return_value = jira_response(200, FULL_ISSUE)
        naked = [{"id": str(n), "key": f"EAB-{n}", "fields": {}} for n in range(5)]

        client = JiraClient(credentials, max_results=3)
        enriched = client.enrich(naked)

        assert len(enriched) == 3
        assert mock_get.call_count == 3

    @patch("support_services.jira_client.requests.get")
    def test_get_issue_uses_issue_endpoint(self, mock_get, credentials, jira_response):
        mock_get.return_value = jira_response(200, FULL_ISSUE)

        issue = JiraClient(credentials).get_issue("EAB-1")

        assert issue == FULL_ISSUE
        assert mock_get.call_args.args[0] == "https://test.atlassian.net/rest/api/3/issue/EAB-1"
