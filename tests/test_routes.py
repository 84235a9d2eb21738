"""
Tests for route patterns, cache policy, criticality and expected errors.
"""

from datetime import timedelta

import pytest

from swapclient.services.routes import (
    CachePolicy,
    CacheTTL,
    Criticality,
    ExpectedErrors,
    RoutePattern,
    RouteTable,
    cache_category,
    cache_key,
)


class TestRoutePattern:
    def test_captures_named_segments(self):
        assert RoutePattern("/accounts/:id/balance").match("/accounts/42/balance") == {"id": "42"}

    def test_matches_contiguous_run_inside_path(self):
        pattern = RoutePattern("/transactions")
        assert pattern.matches("/transactions")
        assert pattern.matches("/transactions/abc")
        assert pattern.matches("/accounts/42/transactions")

    def test_does_not_match_partial_segments(self):
        assert not RoutePattern("/transactions").matches("/transactionsfoo")
        assert not RoutePattern("/accounts/:id/balance").matches("/accounts/balance")

    def test_ignores_query_string(self):
        assert RoutePattern("/auth/me").matches("/auth/me?fields=all")

    def test_empty_template_is_rejected(self):
        with pytest.raises(ValueError):
            RoutePattern("/")


class TestCacheKey:
    def test_key_uses_uppercase_method_and_sorted_params(self):
        assert cache_key("get", "/accounts", {"b": 2, "a": 1}) == 'api:GET-/accounts-{"a":1,"b":2}'

    def test_key_without_params(self):
        assert cache_key("GET", "/auth/me") == "api:GET-/auth/me-{}"

    def test_category_is_prefix_of_keys(self):
        key = cache_key("GET", "/accounts/42/balance")
        assert key.startswith(cache_category("GET", "/accounts"))


class TestCachePolicy:
    def test_only_get_is_cacheable(self):
        policy = CachePolicy()
        assert policy.is_cacheable("GET", "/accounts/42/balance")
        assert not policy.is_cacheable("POST", "/accounts/42/balance")

    def test_no_cache_header_bypasses(self):
        policy = CachePolicy()
        assert not policy.is_cacheable("GET", "/auth/me", {"Cache-Control": "no-cache"})
        assert not policy.is_cacheable("GET", "/auth/me", {"cache-control": "No-Cache, private"})

    def test_unlisted_path_is_not_cacheable(self):
        assert not CachePolicy().is_cacheable("GET", "/rosca/pools")

    def test_ttl_per_route(self):
        policy = CachePolicy()
        assert policy.ttl_for("/accounts/42/balance") == CacheTTL.BALANCES
        assert policy.ttl_for("/auth/me") == CacheTTL.PROFILE
        assert policy.ttl_for("/app/config") == CacheTTL.APP_CONFIG
        assert policy.ttl_for("/unknown") == CacheTTL.DEFAULT

    def test_add_route(self):
        policy = CachePolicy(routes={})
        policy.add_route("/rosca/pools", timedelta(minutes=10))
        assert policy.is_cacheable("GET", "/rosca/pools")
        assert policy.ttl_for("/rosca/pools") == timedelta(minutes=10)


class TestRouteTable:
    def test_default_classification(self):
        routes = RouteTable()
        assert routes.classify("/auth/me") == Criticality.AUTH
        assert routes.classify("/auth/refresh") == Criticality.AUTH
        assert routes.classify("/accounts/42/balance") == Criticality.UI
        assert routes.classify("/interactions/direct/9") == Criticality.UI

    def test_undeclared_endpoint_is_standard(self):
        assert RouteTable().classify("/rosca/pools") == Criticality.STANDARD

    def test_auth_declaration_wins(self):
        routes = RouteTable({"/profiles": Criticality.UI})
        routes.declare("/profiles/switch", Criticality.AUTH)
        assert routes.is_auth_path("/profiles/switch")
        assert routes.is_ui_path("/profiles/123")


class TestExpectedErrors:
    def test_allow_list(self):
        expected = ExpectedErrors()
        assert expected.is_expected(404, "/interactions/direct/abc")
        assert expected.is_expected(401, "/auth/login")
        assert not expected.is_expected(500, "/auth/login")
        assert not expected.is_expected(404, "/interactions")
