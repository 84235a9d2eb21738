"""
API client exceptions.
"""

from typing import Any

import httpx


class ApiError(Exception):
    """Base exception for API client errors."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class ApiStatusError(ApiError):
    """Server answered with a non-success status code."""

    def __init__(
        self,
        status_code: int,
        path: str | None = None,
        response: httpx.Response | None = None,
        body: Any = None,
    ):
        self.status_code = status_code
        self.response = response
        self.body = body
        super().__init__(f"HTTP {status_code} for {path}", path=path)


class AuthenticationError(ApiStatusError):
    """HTTP 401 that could not be recovered by a token refresh."""

    def __init__(self, path: str | None = None, response: httpx.Response | None = None, body: Any = None):
        super().__init__(401, path=path, response=response, body=body)


class RateLimitError(ApiStatusError):
    """HTTP 429, the endpoint asked us to back off."""

    def __init__(
        self,
        path: str | None = None,
        retry_after: float | None = None,
        response: httpx.Response | None = None,
        body: Any = None,
    ):
        self.retry_after = retry_after
        super().__init__(429, path=path, response=response, body=body)


class RequestTimeoutError(ApiError):
    """Request timed out."""

    def __init__(self, path: str, timeout: float):
        self.timeout = timeout
        super().__init__(f"Request to '{path}' timed out after {timeout}s", path=path)


class NetworkError(ApiError):
    """Transport-level failure (connection refused, DNS, reset...)."""

    pass


class TokenRefreshError(ApiError):
    """Token refresh failed while the request was waiting on it."""

    def __init__(self, path: str | None = None):
        super().__init__("Failed to refresh token", path=path)


def status_error_for(
    status_code: int,
    path: str,
    response: httpx.Response | None = None,
    body: Any = None,
    retry_after: float | None = None,
) -> ApiStatusError:
    """Build the most specific status error for a response."""
    if status_code == 401:
        return AuthenticationError(path, response=response, body=body)
    if status_code == 429:
        return RateLimitError(path, retry_after=retry_after, response=response, body=body)
    return ApiStatusError(status_code, path=path, response=response, body=body)
