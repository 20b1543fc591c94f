from __future__ import annotations

from typing import Optional


class DashboardError(Exception):
    """Base class for failures surfaced to the dashboard."""


class Timeout(DashboardError):
    """No response arrived before the deadline. Retry is left to the user."""

    def __init__(self, message: str = "Request timed out"):
        super().__init__(message)


class Cancelled(Timeout):
    def __init__(self, message: str = "Request cancelled"):
        super().__init__(message)


class SessionExpired(DashboardError):
    """401/403 from the API. The session has already been cleared."""

    def __init__(self, message: str = "Session expired or unauthorized. Please login again."):
        super().__init__(message)


class RequestFailed(DashboardError):
    def __init__(self, message: str = "Request failed", status: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.message = message


class ValidationFailed(DashboardError):
    """Client-side precondition failed; nothing was sent."""
