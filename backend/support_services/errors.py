"""Error taxonomy for the support metrics service.

Every error carries a ``kind`` and an HTTP ``status_code`` so the API layer
can render it as ``{"error": kind, "details": detail}`` without inspecting
the exception type.
"""

from typing import Optional


class SupportMetricsError(Exception):
    """Base class for errors surfaced to API callers."""

    kind = "internal_error"
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.kind, "details": self.detail}


class AuthError(SupportMetricsError):
    """Credentials are missing or were rejected by Jira."""

    kind = "unauthenticated"
    status_code = 401


class BadRequestError(SupportMetricsError):
    """Required query parameters are missing or malformed."""

    kind = "bad_request"
    status_code = 400


class UpstreamError(SupportMetricsError):
    """Jira returned a non-2xx status after the fallback ladder ran out."""

    kind = "upstream_error"
    status_code = 502

    def __init__(self, detail: str, upstream_status: Optional[int] = None):
        super().__init__(detail)
        self.upstream_status = upstream_status


class NetworkError(SupportMetricsError):
    """Transport-level failure talking to Jira."""

    kind = "network_error"
    status_code = 502

    def __init__(self, detail: str, timed_out: bool = False):
        super().__init__(detail)
        self.timed_out = timed_out
        if timed_out:
            self.status_code = 504
