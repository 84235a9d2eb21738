"""
Route policy tables.

- RoutePattern: path templates with named `:param` segments
- CachePolicy: which GET endpoints are cacheable and for how long
- RouteTable: criticality of an endpoint (auth / ui / standard)
- Expected errors: (status, route) pairs logged quietly
"""

import json
from datetime import timedelta
from enum import Enum
from typing import Any, Iterable, Mapping


def split_path(path: str) -> list[str]:
    """Split a request path into segments, ignoring the query string."""
    path = path.split("?", 1)[0]
    return [segment for segment in path.split("/") if segment]


class RoutePattern:
    """
    A path template such as "/accounts/:id/balance".

    A pattern matches a request path when its segments occur as a contiguous
    run of the path's segments. `:name` segments match exactly one segment.

        RoutePattern("/accounts/:id/balance").match("/accounts/42/balance")
        -> {"id": "42"}
        RoutePattern("/transactions").match("/transactions/abc")
        -> {}
        RoutePattern("/transactions").match("/transactionsfoo")
        -> None
    """

    __slots__ = ("template", "segments")

    def __init__(self, template: str):
        self.template = template
        self.segments = tuple(split_path(template))
        if not self.segments:
            raise ValueError(f"Empty route template: {template!r}")

    def match(self, path: str) -> dict[str, str] | None:
        path_segments = split_path(path)
        width = len(self.segments)

        for start in range(len(path_segments) - width + 1):
            params: dict[str, str] = {}
            for expected, actual in zip(self.segments, path_segments[start : start + width]):
                if expected.startswith(":"):
                    params[expected[1:]] = actual
                elif expected != actual:
                    break
            else:
                return params
        return None

    def matches(self, path: str) -> bool:
        return self.match(path) is not None

    def __repr__(self) -> str:
        return f"RoutePattern({self.template!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, RoutePattern) and other.template == self.template

    def __hash__(self) -> int:
        return hash(self.template)


def matches_any(path: str, patterns: Iterable[RoutePattern]) -> bool:
    return any(pattern.matches(path) for pattern in patterns)


# ---------------------------------------------------------------------------
# Cache policy
# ---------------------------------------------------------------------------


class CacheTTL:
    """Default TTL values."""

    PROFILE = timedelta(hours=1)
    BALANCES = timedelta(minutes=15)
    TRANSACTIONS = timedelta(minutes=30)
    APP_CONFIG = timedelta(hours=24)
    DEFAULT = timedelta(minutes=5)


DEFAULT_CACHEABLE_ROUTES: dict[str, timedelta] = {
    # User data
    "/auth/me": CacheTTL.PROFILE,
    "/auth/verify-token": CacheTTL.DEFAULT,
    # Financial data
    "/accounts/:id/balance": CacheTTL.BALANCES,
    "/transactions": CacheTTL.TRANSACTIONS,
    # App configuration
    "/app/config": CacheTTL.APP_CONFIG,
}

CACHE_KEY_PREFIX = "api:"


def cache_key(method: str, path: str, params: Mapping[str, Any] | None = None) -> str:
    """Cache key for a request: api:METHOD-path-{params as JSON}."""
    serialized = json.dumps(dict(params or {}), sort_keys=True, separators=(",", ":"), default=str)
    return f"{CACHE_KEY_PREFIX}{method.upper()}-{path}-{serialized}"


def cache_category(method: str, path_prefix: str) -> str:
    """Prefix shared by every cache key of a method/path family."""
    return f"{CACHE_KEY_PREFIX}{method.upper()}-{path_prefix}"


def has_no_cache_directive(headers: Mapping[str, str]) -> bool:
    for name, value in headers.items():
        if name.lower() == "cache-control" and "no-cache" in value.lower():
            return True
    return False


class CachePolicy:
    """Maps route templates to cache TTLs. Only GET requests are eligible."""

    def __init__(
        self,
        routes: Mapping[str, timedelta] | None = None,
        default_ttl: timedelta = CacheTTL.DEFAULT,
    ):
        source = DEFAULT_CACHEABLE_ROUTES if routes is None else routes
        self._routes = [(RoutePattern(template), ttl) for template, ttl in source.items()]
        self.default_ttl = default_ttl

    def add_route(self, template: str, ttl: timedelta) -> None:
        self._routes.append((RoutePattern(template), ttl))

    def _find(self, path: str) -> tuple[RoutePattern, timedelta] | None:
        for pattern, ttl in self._routes:
            if pattern.matches(path):
                return pattern, ttl
        return None

    def is_cacheable(self, method: str, path: str, headers: Mapping[str, str] | None = None) -> bool:
        if method.upper() != "GET":
            return False
        if headers and has_no_cache_directive(headers):
            return False
        return self._find(path) is not None

    def ttl_for(self, path: str) -> timedelta:
        found = self._find(path)
        return found[1] if found else self.default_ttl


# ---------------------------------------------------------------------------
# Endpoint criticality
# ---------------------------------------------------------------------------


class Criticality(str, Enum):
    """How an endpoint behaves when the session needs a refresh."""

    AUTH = "AUTH"  # Waits for refresh, rejected when refresh fails
    UI = "UI"  # Proceeds with the existing token, degrades gracefully
    STANDARD = "STANDARD"  # Refreshes like AUTH, no graceful degradation


DEFAULT_ROUTE_CRITICALITY: dict[str, Criticality] = {
    "/auth/logout": Criticality.AUTH,
    "/auth/refresh": Criticality.AUTH,
    "/auth/me": Criticality.AUTH,
    "/interactions": Criticality.UI,
    "/profiles": Criticality.UI,
    "/accounts": Criticality.UI,
}


class RouteTable:
    """
    Declared criticality per endpoint.

    AUTH declarations win over UI ones; undeclared endpoints are STANDARD.
    """

    def __init__(self, routes: Mapping[str, Criticality] | None = None):
        source = DEFAULT_ROUTE_CRITICALITY if routes is None else routes
        self._routes: list[tuple[RoutePattern, Criticality]] = []
        for template, criticality in source.items():
            self.declare(template, criticality)

    def declare(self, template: str, criticality: Criticality) -> None:
        self._routes.append((RoutePattern(template), Criticality(criticality)))

    def classify(self, path: str) -> Criticality:
        matched = {criticality for pattern, criticality in self._routes if pattern.matches(path)}
        if Criticality.AUTH in matched:
            return Criticality.AUTH
        if Criticality.UI in matched:
            return Criticality.UI
        return Criticality.STANDARD

    def is_auth_path(self, path: str) -> bool:
        return self.classify(path) == Criticality.AUTH

    def is_ui_path(self, path: str) -> bool:
        return self.classify(path) == Criticality.UI


# ---------------------------------------------------------------------------
# Expected errors
# ---------------------------------------------------------------------------

DEFAULT_EXPECTED_ERRORS: list[tuple[int, str]] = [
    (404, "/interactions/direct/:id"),
    (401, "/auth/verify-token"),
    (401, "/auth/login"),
    (401, "/auth/business/login"),
]


class ExpectedErrors:
    """Allow-list of (status, route) pairs that are logged at debug level."""

    def __init__(self, pairs: Iterable[tuple[int, str]] | None = None):
        source = DEFAULT_EXPECTED_ERRORS if pairs is None else pairs
        self._pairs = [(status, RoutePattern(template)) for status, template in source]

    def is_expected(self, status_code: int, path: str) -> bool:
        return any(
            status_code == status and pattern.matches(path) for status, pattern in self._pairs
        )
