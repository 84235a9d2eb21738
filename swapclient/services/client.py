"""
ApiClient - async HTTP client for the Swap backend with resilience patterns.

Combines:
- RequestPipeline for path fixes, diagnostics, body remaps and rate limits
- ResponseCache for cacheable GET responses
- RefreshCoordinator for single-flight token refresh
- Response handling for 401 (refresh + one retry), 429 (backoff ledger)
  and quiet logging of expected errors
"""

from typing import Any

import httpx
from loguru import logger

from swapclient.services.cache import ResponseCache
from swapclient.services.diagnostics import CallDiagnostics
from swapclient.services.errors import (
    ApiError,
    ApiStatusError,
    NetworkError,
    RequestTimeoutError,
    TokenRefreshError,
    status_error_for,
)
from swapclient.services.events import AuthEvent, AuthEventBus
from swapclient.services.pipeline import (
    ApiResponse,
    AuthStage,
    BodyRemapStage,
    CacheLookupStage,
    DiagnosticsStage,
    NormalizePathStage,
    ProfileHeaderStage,
    RateLimitStage,
    RequestContext,
    RequestPipeline,
)
from swapclient.services.rate_limit import RateLimitLedger
from swapclient.services.refresh import RefreshCoordinator
from swapclient.services.routes import (
    CachePolicy,
    Criticality,
    ExpectedErrors,
    RoutePattern,
    RouteTable,
    cache_category,
    matches_any,
)
from swapclient.services.tokens import TokenStore, is_token_expired
from swapclient.settings import Settings, global_settings

# POSTs to these routes get the long timeout
LONG_TIMEOUT_ROUTES = [RoutePattern("/transactions"), RoutePattern("/rosca/payments")]

USER_CACHE_PREFIXES = ["/auth/me"]
FINANCIAL_CACHE_PREFIXES = ["/accounts", "/transactions"]


class ApiClient:
    """
    HTTP client with token refresh, response caching and rate-limit backoff.

    Usage:
        client = ApiClient(tokens=TokenStore(refresh_url=...))
        client.set_profile_id("profile-123")

        response = await client.get("/accounts/42/balance")
        response.data

        await client.post("/transactions", json={"amount": 10, "currency": "HTG"})
    """

    def __init__(
        self,
        tokens: TokenStore | None = None,
        settings: Settings | None = None,
        cache: ResponseCache | None = None,
        cache_policy: CachePolicy | None = None,
        routes: RouteTable | None = None,
        expected_errors: ExpectedErrors | None = None,
        rate_limits: RateLimitLedger | None = None,
        diagnostics: CallDiagnostics | None = None,
        events: AuthEventBus | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings or global_settings
        self._tokens = tokens or TokenStore(
            refresh_url=f"{self._settings.api_url}/auth/refresh",
            timeout=self._settings.request_timeout,
        )
        self._cache = cache or ResponseCache(
            max_size=self._settings.cache_max_size,
            debug=self._settings.debug,
        )
        self._cache_policy = cache_policy or CachePolicy()
        self._routes = routes or RouteTable()
        self._expected_errors = expected_errors or ExpectedErrors()
        self._rate_limits = rate_limits or RateLimitLedger(
            default_retry_after=self._settings.default_retry_after_seconds
        )
        self._diagnostics = diagnostics or CallDiagnostics(
            history_size=self._settings.diagnostics_history_size,
            window_seconds=self._settings.diagnostics_window_seconds,
            loop_threshold=self._settings.diagnostics_loop_threshold,
        )
        self.events = events or AuthEventBus()
        self._coordinator = RefreshCoordinator(
            self._tokens.refresh_access_token, events=self.events
        )
        self._transport = transport
        self._profile_id: str | None = None

        self._pipeline = RequestPipeline(
            [
                NormalizePathStage(self._settings.api_prefix),
                DiagnosticsStage(self._diagnostics),
                BodyRemapStage(),
                RateLimitStage(self._rate_limits),
                CacheLookupStage(self._cache, self._cache_policy),
                AuthStage(
                    self._tokens,
                    self._coordinator,
                    self._routes,
                    self.events,
                    leeway=self._settings.token_expiry_leeway_seconds,
                    proactive_window=self._settings.proactive_refresh_window_seconds,
                ),
                ProfileHeaderStage(lambda: self._profile_id),
            ]
        )

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._settings.api_url,
                timeout=httpx.Timeout(self._settings.request_timeout),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._http_client

    @property
    def tokens(self) -> TokenStore:
        return self._tokens

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def coordinator(self) -> RefreshCoordinator:
        return self._coordinator

    @property
    def rate_limits(self) -> RateLimitLedger:
        return self._rate_limits

    @property
    def diagnostics(self) -> CallDiagnostics:
        return self._diagnostics

    @property
    def pipeline(self) -> RequestPipeline:
        return self._pipeline

    # Requests

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> ApiResponse:
        """
        Make a request through the pipeline.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: Path relative to the API prefix
            params: Query parameters
            json: JSON body
            headers: Additional headers ("Cache-Control: no-cache" bypasses the cache)
            timeout: Override request timeout

        Returns:
            ApiResponse, possibly served from cache or degraded (UI paths only)

        Raises:
            ApiStatusError: Non-recoverable HTTP status (401 after failed refresh, 429, 4xx, 5xx)
            TokenRefreshError: Expired session on an auth path that could not be refreshed
            RequestTimeoutError: If the request times out
            NetworkError: For transport failures
        """
        ctx = RequestContext(
            method=method,
            path=path,
            params=params,
            headers=dict(headers or {}),
            json=json,
            timeout=timeout,
        )

        result = await self._pipeline.run(ctx)
        if isinstance(result, ApiResponse):
            return result
        return await self._send(result)

    async def get(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> ApiResponse:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Any = None, **kwargs: Any) -> ApiResponse:
        return await self.request("PUT", path, json=json, **kwargs)

    async def patch(self, path: str, json: Any = None, **kwargs: Any) -> ApiResponse:
        return await self.request("PATCH", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("DELETE", path, **kwargs)

    def _timeout_for(self, ctx: RequestContext) -> float:
        if ctx.timeout is not None:
            return ctx.timeout
        if ctx.method == "POST" and matches_any(ctx.path, LONG_TIMEOUT_ROUTES):
            return self._settings.transaction_timeout
        return self._settings.request_timeout

    async def _send(self, ctx: RequestContext) -> ApiResponse:
        """Dispatch and run the response phase."""
        try:
            response = await self._dispatch(ctx)
        except ApiStatusError as e:
            return await self._handle_status_error(ctx, e)
        except ApiError as e:
            logger.error(f"API Network Error {ctx.method} {ctx.path}: {e}")
            raise

        if self._cache_policy.is_cacheable(ctx.method, ctx.path, ctx.headers):
            logger.debug(f"Caching response for: {ctx.path}")
            await self._cache.save_to_cache(
                ctx.cache_key, response.data, self._cache_policy.ttl_for(ctx.path)
            )

        logger.debug(f"API Response {response.status_code} {ctx.method} {ctx.path}")
        return response

    async def _dispatch(self, ctx: RequestContext) -> ApiResponse:
        """Execute the actual HTTP request."""
        client = await self._get_http_client()
        timeout = self._timeout_for(ctx)

        try:
            response = await client.request(
                method=ctx.method,
                url=ctx.path,
                params=ctx.params,
                headers=ctx.headers,
                json=ctx.json,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Request timeout for {ctx.path} after {timeout}s")
            raise RequestTimeoutError(ctx.path, timeout) from e
        except httpx.RequestError as e:
            raise NetworkError(str(e) or type(e).__name__, path=ctx.path) from e

        data = _decode_body(response)
        if not response.is_success:
            retry_after = None
            if response.status_code == 429:
                retry_after = RateLimitLedger.parse_retry_after(
                    response.headers.get("retry-after"),
                    default=self._settings.default_retry_after_seconds,
                )
            raise status_error_for(
                response.status_code,
                ctx.path,
                response=response,
                body=data,
                retry_after=retry_after,
            )

        return ApiResponse(
            status_code=response.status_code,
            data=data,
            context=ctx,
            headers=dict(response.headers),
            status_text=response.reason_phrase,
        )

    async def _handle_status_error(self, ctx: RequestContext, error: ApiStatusError) -> ApiResponse:
        if error.status_code == 401 and not ctx.retry:
            return await self._recover_unauthorized(ctx, error)

        if error.status_code == 429:
            self._rate_limits.record(ctx.path, getattr(error, "retry_after", None))

        self._log_status_error(ctx, error)
        raise error

    async def _recover_unauthorized(self, ctx: RequestContext, error: ApiStatusError) -> ApiResponse:
        """
        401 handling: refresh once (or wait for the in-flight refresh) and retry.

        UI paths are answered from cache when possible, and degrade to an empty
        200 when the refresh fails. Other paths are rejected.
        """
        logger.warning(f"Authentication error on {ctx.method} {ctx.path}, token may be expired")
        criticality = self._routes.classify(ctx.path)

        if criticality == Criticality.UI:
            entry = await self._cache.get_from_cache(ctx.cache_key)
            if entry is not None:
                logger.debug(f"Using cached data for failed auth on UI path: {ctx.path}")
                return ApiResponse(
                    status_code=200,
                    data=entry.data,
                    context=ctx,
                    status_text="OK (from cache)",
                    cached=True,
                )

        ctx.retry = True
        try:
            token = await self._coordinator.acquire_or_wait(ctx)
        except TokenRefreshError:
            if criticality == Criticality.UI:
                logger.debug(f"Token refresh failed for UI path: {ctx.path}, returning empty result")
                return ApiResponse(
                    status_code=200,
                    data=[],
                    context=ctx,
                    status_text="OK (empty due to auth failure)",
                    degraded=True,
                )

            logger.debug(f"Token refresh failed for {ctx.path}, rejecting request")
            self.events.emit(AuthEvent.AUTH_ERROR, "Token refresh failed")
            raise error

        ctx.set_bearer(token)
        logger.debug(f"Retrying {ctx.method} {ctx.path} with refreshed token")
        return await self._send(ctx)

    def _log_status_error(self, ctx: RequestContext, error: ApiStatusError) -> None:
        if self._expected_errors.is_expected(error.status_code, ctx.path):
            logger.debug(f"Expected API status: {error.status_code} for {ctx.path}")
            return

        body = str(error.body)[:200] if error.body is not None else ""
        logger.error(f"API Error {error.status_code} {ctx.method} {ctx.path}: {body}")

    # Session helpers

    def set_profile_id(self, profile_id: str | None) -> None:
        """Set the active profile sent with every request."""
        self._profile_id = profile_id
        if profile_id:
            logger.debug(f"Set X-Profile-ID header to {profile_id}")
        else:
            logger.debug("Removed X-Profile-ID header")

    @property
    def profile_id(self) -> str | None:
        return self._profile_id

    async def refresh_token(self) -> bool:
        """Refresh the access token explicitly (joins an in-flight refresh)."""
        try:
            await self._coordinator.acquire_or_wait()
        except TokenRefreshError:
            logger.warning("Explicit token refresh failed")
            return False
        return True

    async def is_auth_token_valid(self) -> bool:
        token = await self._tokens.get_access_token()
        return bool(token) and not is_token_expired(
            token, leeway=self._settings.token_expiry_leeway_seconds
        )

    async def logout(self) -> None:
        """Tell the server (best effort), then drop tokens and cached responses."""
        try:
            await self.post("/auth/logout")
        except ApiError as e:
            logger.debug(f"Logout call failed, clearing session anyway: {e}")

        await self._tokens.clear_tokens()
        await self.clear_cache()
        self.set_profile_id(None)
        self.events.emit(AuthEvent.LOGGED_OUT)

    # Cache maintenance

    async def clear_cache(self) -> None:
        await self._cache.clear_cache()
        logger.info("API cache cleared")

    async def clear_user_cache(self) -> int:
        removed = 0
        for prefix in USER_CACHE_PREFIXES:
            removed += await self._cache.clear_cache_category(cache_category("GET", prefix))
        logger.info("User cache cleared")
        return removed

    async def clear_financial_cache(self) -> int:
        removed = 0
        for prefix in FINANCIAL_CACHE_PREFIXES:
            removed += await self._cache.clear_cache_category(cache_category("GET", prefix))
        logger.info("Financial cache cleared")
        return removed

    # Lifecycle

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("ApiClient closed")

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def get_health_status(self) -> dict[str, Any]:
        return {
            "cache": self._cache.get_stats().to_dict(),
            "refresh": self._coordinator.get_status(),
            "rate_limited": self._rate_limits.limited_paths,
            "diagnostics": self._diagnostics.to_dict(),
        }


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


# Global client instance
_global_client: ApiClient | None = None


def get_api_client() -> ApiClient:
    """Get the global API client instance."""
    global _global_client
    if _global_client is None:
        _global_client = ApiClient()
    return _global_client


async def close_api_client() -> None:
    """Close the global API client."""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
