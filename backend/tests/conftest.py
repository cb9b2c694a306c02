"""Shared fixtures for support metrics tests."""

import json
import os
import sys
from unittest.mock import Mock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from support_services.config import MetricsConfig
from support_services.models import Credentials
from support_services.result_cache import ResultCache


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def credentials():
    """Jira credentials for testing."""
    return Credentials(
        domain="test.atlassian.net",
        email="test@example.com",
        token="test-token-123"
    )


@pytest.fixture
def jira_headers():
    return {
        "X-Jira-Domain": "https://test.atlassian.net",
        "X-Jira-Email": "test@example.com",
        "X-Jira-Token": "token123"
    }


@pytest.fixture
def jira_response():
    """Factory for mocked ``requests`` responses."""
    def make(status_code=200, body=None):
        body = {} if body is None else body
        return Mock(
            status_code=status_code,
            json=lambda: body,
            text=json.dumps(body)
        )
    return make


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def metrics_config():
    return MetricsConfig()


@pytest.fixture
def issue_pool():
    """Search results spanning two projects, in the shape JiraClient returns."""
    return [
        {
            "id": "10001",
            "key": "EAB-1",
            "fields": {
                "created": "2024-01-01T09:00:00.000+0000",
                "resolutiondate": "2024-01-03T10:00:00.000+0000",
                "customfield_workstarted": "2024-01-02T10:00:00.000+0000",
                "status": {"name": "Done"},
                "priority": {"name": "High"},
                "labels": ["InternalSupport"]
            }
        },
        {
            "id": "10002",
            "key": "EAB-2",
            "fields": {
                "created": "2024-01-01T15:00:00.000+0000",
                "resolutiondate": "2024-01-09T08:00:00.000+0000",
                "status": {"name": "Escalated"},
                "priority": {"name": "Medium"},
                "labels": ["delivery-team"]
            }
        },
        {
            "id": "10003",
            "key": "EAB-3",
            "fields": {
                "created": "2024-01-02T11:00:00.000+0000",
                "resolutiondate": None,
                "status": {"name": "In Progress"},
                "priority": {"name": "Low"},
                "labels": []
            }
        },
        {
            "id": "10004",
            "key": "EAB-4",
            "fields": {
                "created": "2023-12-20T11:00:00.000+0000",
                "resolved": "2024-01-02T12:00:00.000+0000",
                "status": {"name": "Engineering"},
                "labels": ["Internal_Support"]
            }
        },
        {
            "id": "20009",
            "key": "SHR-9",
            "fields": {
                "created": "2024-01-01T12:00:00.000+0000",
                "resolutiondate": "2024-01-02T12:00:00.000+0000",
                "status": {"name": "Done"},
                "labels": ["InternalSupport"]
            }
        }
    ]


@pytest.fixture
def app():
    """Create Flask test app with a fresh cache."""
    from support_api import create_app
    app = create_app(config=MetricsConfig(), cache=ResultCache())
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
