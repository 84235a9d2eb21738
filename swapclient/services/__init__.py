"""
Service layer - request lifecycle coordination for the Swap API.

Provides:
- ResponseCache: TTL cache for cacheable GET responses
- RefreshCoordinator: Single-flight token refresh with a FIFO wait list
- RateLimitLedger: Backoff tracking for HTTP 429
- RequestPipeline: Ordered, named request stages
- ApiClient: Unified client combining all patterns
"""

from swapclient.services.errors import (
    ApiError,
    ApiStatusError,
    AuthenticationError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    TokenRefreshError,
)
from swapclient.services.events import AuthEvent, AuthEventBus
from swapclient.services.cache import CachedEntry, ResponseCache
from swapclient.services.routes import (
    CachePolicy,
    CacheTTL,
    Criticality,
    ExpectedErrors,
    RoutePattern,
    RouteTable,
    cache_key,
)
from swapclient.services.diagnostics import CallDiagnostics
from swapclient.services.rate_limit import RateLimitLedger
from swapclient.services.tokens import TokenStore, is_token_expired
from swapclient.services.refresh import RefreshCoordinator, RefreshState
from swapclient.services.pipeline import ApiResponse, RequestContext, RequestPipeline, Stage
from swapclient.services.client import ApiClient, get_api_client, close_api_client

__all__ = [
    # Errors
    "ApiError",
    "ApiStatusError",
    "AuthenticationError",
    "NetworkError",
    "RateLimitError",
    "RequestTimeoutError",
    "TokenRefreshError",
    # Events
    "AuthEvent",
    "AuthEventBus",
    # Cache
    "CachedEntry",
    "ResponseCache",
    # Routes
    "CachePolicy",
    "CacheTTL",
    "Criticality",
    "ExpectedErrors",
    "RoutePattern",
    "RouteTable",
    "cache_key",
    # Resilience
    "CallDiagnostics",
    "RateLimitLedger",
    "TokenStore",
    "is_token_expired",
    "RefreshCoordinator",
    "RefreshState",
    # Pipeline
    "ApiResponse",
    "RequestContext",
    "RequestPipeline",
    "Stage",
    # Client
    "ApiClient",
    "get_api_client",
    "close_api_client",
]
