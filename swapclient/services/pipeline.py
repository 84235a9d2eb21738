"""
Request pipeline - an explicit, ordered list of named request stages.

Each stage takes the RequestContext and returns either the (possibly mutated)
context, or an ApiResponse that short-circuits the remaining stages and the
network dispatch.

Default order:
    normalize_path → diagnostics → body_remap → rate_limit →
    cache_lookup → auth → profile_header
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from swapclient.services.cache import ResponseCache
from swapclient.services.diagnostics import CallDiagnostics
from swapclient.services.errors import TokenRefreshError
from swapclient.services.events import AuthEvent, AuthEventBus
from swapclient.services.rate_limit import RateLimitLedger
from swapclient.services.refresh import RefreshCoordinator
from swapclient.services.routes import (
    CachePolicy,
    Criticality,
    RouteTable,
    cache_key,
)
from swapclient.services.tokens import (
    TokenStore,
    is_token_about_to_expire,
    is_token_expired,
)

PROFILE_HEADER = "X-Profile-ID"
NO_PROFILE = "none"


@dataclass
class RequestContext:
    """Outgoing call descriptor, mutated in place by the stages."""

    method: str
    path: str
    params: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    json: Any = None
    timeout: float | None = None
    retry: bool = False  # Set once the call was retried after a 401

    def __post_init__(self):
        self.method = self.method.upper()

    @property
    def cache_key(self) -> str:
        return cache_key(self.method, self.path, self.params)

    def set_bearer(self, token: str) -> None:
        self.headers["Authorization"] = f"Bearer {token}"

    def redacted_headers(self) -> dict[str, str]:
        headers = dict(self.headers)
        if "Authorization" in headers:
            headers["Authorization"] = "Bearer [REDACTED]"
        return headers


@dataclass
class ApiResponse:
    """A network response, or one synthesized from cache or degradation."""

    status_code: int
    data: Any
    context: RequestContext
    headers: dict[str, str] = field(default_factory=dict)
    status_text: str = "OK"
    cached: bool = False
    degraded: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Stage(ABC):
    """A named request stage."""

    name: str = "stage"

    @abstractmethod
    async def process(self, ctx: RequestContext) -> RequestContext | ApiResponse:
        ...


class RequestPipeline:
    """Runs stages in order until one short-circuits."""

    def __init__(self, stages: list[Stage]):
        self._stages = list(stages)

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self._stages]

    async def run(self, ctx: RequestContext) -> RequestContext | ApiResponse:
        for stage in self._stages:
            result = await stage.process(ctx)
            if isinstance(result, ApiResponse):
                logger.debug(f"Stage '{stage.name}' short-circuited {ctx.method} {ctx.path}")
                return result
            ctx = result
        return ctx


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


class NormalizePathStage(Stage):
    """Strip a base prefix that callers included by mistake."""

    name = "normalize_path"

    def __init__(self, prefix: str = "/api/v1"):
        self._prefix = "/" + prefix.strip("/")

    async def process(self, ctx: RequestContext) -> RequestContext:
        path = ctx.path
        for prefix in (self._prefix, self._prefix.lstrip("/")):
            if path == prefix or path.startswith(prefix + "/"):
                path = path[len(prefix) :]
                logger.debug(f"Fixed API URL by removing duplicate prefix: {path}")
                break

        if not path.startswith("/"):
            path = "/" + path
        ctx.path = path
        return ctx


class DiagnosticsStage(Stage):
    """Record the call for loop detection. Never blocks."""

    name = "diagnostics"

    def __init__(self, diagnostics: CallDiagnostics):
        self._diagnostics = diagnostics

    async def process(self, ctx: RequestContext) -> RequestContext:
        self._diagnostics.record(ctx.method, ctx.path)
        logger.debug(
            f"API Request {ctx.method} {ctx.path} headers={ctx.redacted_headers()}"
        )
        return ctx


@dataclass
class BodyRemapRule:
    """Rename legacy body fields for one endpoint, unless the new name is present."""

    method: str
    path: str
    renames: dict[str, str]

    def applies(self, ctx: RequestContext) -> bool:
        return (
            ctx.method == self.method.upper()
            and ctx.path == self.path
            and isinstance(ctx.json, dict)
        )

    def apply(self, body: dict[str, Any]) -> dict[str, Any]:
        body = dict(body)
        for old, new in self.renames.items():
            if old in body and new not in body:
                body[new] = body.pop(old)
        return body


DEFAULT_BODY_REMAPS = [
    BodyRemapRule(
        method="POST",
        path="/transactions",
        renames={"amount": "amountFiat", "currency": "currencyCode"},
    ),
]


class BodyRemapStage(Stage):
    name = "body_remap"

    def __init__(self, rules: list[BodyRemapRule] | None = None):
        self._rules = DEFAULT_BODY_REMAPS if rules is None else rules

    async def process(self, ctx: RequestContext) -> RequestContext:
        for rule in self._rules:
            if rule.applies(ctx):
                ctx.json = rule.apply(ctx.json)
                logger.debug(f"Remapped request body fields for {ctx.method} {ctx.path}")
        return ctx


class RateLimitStage(Stage):
    """Suspend callers of a rate-limited path until its retry time passes."""

    name = "rate_limit"

    def __init__(self, ledger: RateLimitLedger):
        self._ledger = ledger

    async def process(self, ctx: RequestContext) -> RequestContext:
        await self._ledger.wait_if_limited(ctx.path)
        return ctx


class CacheLookupStage(Stage):
    """Answer cacheable GETs from the response cache."""

    name = "cache_lookup"

    def __init__(self, cache: ResponseCache, policy: CachePolicy):
        self._cache = cache
        self._policy = policy

    async def process(self, ctx: RequestContext) -> RequestContext | ApiResponse:
        if not self._policy.is_cacheable(ctx.method, ctx.path, ctx.headers):
            if ctx.method == "GET" and self._policy.is_cacheable(ctx.method, ctx.path):
                logger.debug(f"Skipping cache for: {ctx.path} (Cache-Control: no-cache)")
            return ctx

        entry = await self._cache.get_from_cache(ctx.cache_key)
        if entry is None:
            return ctx

        logger.debug(f"Using cached response for: {ctx.path}")
        return ApiResponse(status_code=200, data=entry.data, context=ctx, cached=True)


class AuthStage(Stage):
    """
    Attach the bearer token, refreshing it first when required.

    - Expired token on AUTH/STANDARD paths: refresh (or wait for the
      in-flight refresh) before sending. Failure is fatal to the call.
    - Expired token on UI paths: send with the existing token.
    - Token about to expire (when enabled): send as-is, refresh in background.
    """

    name = "auth"

    def __init__(
        self,
        tokens: TokenStore,
        coordinator: RefreshCoordinator,
        routes: RouteTable,
        events: AuthEventBus,
        leeway: float = 5,
        proactive_window: float = 0,
    ):
        self._tokens = tokens
        self._coordinator = coordinator
        self._routes = routes
        self._events = events
        self._leeway = leeway
        self._proactive_window = proactive_window

    async def process(self, ctx: RequestContext) -> RequestContext:
        token = await self._tokens.get_access_token()
        if not token:
            return ctx

        criticality = self._routes.classify(ctx.path)

        if is_token_expired(token, leeway=self._leeway):
            if criticality == Criticality.UI:
                ctx.set_bearer(token)
                logger.debug(f"Using existing token for UI path: {ctx.path}")
                return ctx

            logger.debug(f"Token is expired, refreshing before {ctx.method} {ctx.path}")
            try:
                new_token = await self._coordinator.acquire_or_wait(ctx)
            except TokenRefreshError:
                self._events.emit(AuthEvent.AUTH_ERROR, "Token refresh failed")
                raise
            ctx.set_bearer(new_token)
            return ctx

        if is_token_about_to_expire(token, self._proactive_window, leeway=self._leeway):
            self._coordinator.schedule_background_refresh()

        ctx.set_bearer(token)
        return ctx


class ProfileHeaderStage(Stage):
    """Always send the active profile header; absent profile is the literal 'none'."""

    name = "profile_header"

    def __init__(self, profile_id: Callable[[], str | None]):
        self._profile_id = profile_id

    async def process(self, ctx: RequestContext) -> RequestContext:
        ctx.headers[PROFILE_HEADER] = self._profile_id() or NO_PROFILE
        return ctx
