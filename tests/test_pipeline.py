"""
Tests for the request pipeline and its individual stages.
"""

import pytest

from swapclient.services.pipeline import (
    ApiResponse,
    BodyRemapStage,
    NormalizePathStage,
    ProfileHeaderStage,
    RequestContext,
    RequestPipeline,
    Stage,
)


class ShortCircuit(Stage):
    name = "short_circuit"

    async def process(self, ctx):
        return ApiResponse(status_code=200, data="early", context=ctx)


class Recorder(Stage):
    name = "recorder"

    def __init__(self):
        self.seen = []

    async def process(self, ctx):
        self.seen.append(ctx.path)
        return ctx


class TestRequestPipeline:
    @pytest.mark.asyncio
    async def test_short_circuit_skips_remaining_stages(self):
        recorder = Recorder()
        pipeline = RequestPipeline([ShortCircuit(), recorder])

        result = await pipeline.run(RequestContext("get", "/auth/me"))

        assert isinstance(result, ApiResponse)
        assert result.data == "early"
        assert recorder.seen == []

    @pytest.mark.asyncio
    async def test_stages_run_in_order(self):
        recorder = Recorder()
        pipeline = RequestPipeline([NormalizePathStage(), recorder])

        ctx = await pipeline.run(RequestContext("GET", "api/v1/rosca/pools"))

        assert ctx.path == "/rosca/pools"
        assert recorder.seen == ["/rosca/pools"]
        assert pipeline.stage_names == ["normalize_path", "recorder"]

    @pytest.mark.asyncio
    async def test_client_stage_order(self, client):
        assert client.pipeline.stage_names == [
            "normalize_path",
            "diagnostics",
            "body_remap",
            "rate_limit",
            "cache_lookup",
            "auth",
            "profile_header",
        ]


class TestStages:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/api/v1/accounts", "/accounts"),
            ("api/v1/accounts", "/accounts"),
            ("accounts", "/accounts"),
            ("/accounts/api/v1", "/accounts/api/v1"),
        ],
    )
    async def test_normalize_path(self, path, expected):
        ctx = await NormalizePathStage("/api/v1").process(RequestContext("GET", path))
        assert ctx.path == expected

    @pytest.mark.asyncio
    async def test_body_remap_renames_legacy_fields(self):
        body = {"amount": 10, "currency": "HTG", "note": "rent"}
        ctx = await BodyRemapStage().process(RequestContext("POST", "/transactions", json=body))

        assert ctx.json == {"amountFiat": 10, "currencyCode": "HTG", "note": "rent"}
        assert body == {"amount": 10, "currency": "HTG", "note": "rent"}

    @pytest.mark.asyncio
    async def test_body_remap_keeps_existing_new_names(self):
        body = {"amount": 10, "amountFiat": 12}
        ctx = await BodyRemapStage().process(RequestContext("POST", "/transactions", json=body))
        assert ctx.json == {"amount": 10, "amountFiat": 12}

    @pytest.mark.asyncio
    async def test_body_remap_only_for_matching_route(self):
        body = {"amount": 10}
        ctx = await BodyRemapStage().process(RequestContext("POST", "/rosca/payments", json=body))
        assert ctx.json == {"amount": 10}

    @pytest.mark.asyncio
    async def test_profile_header_uses_sentinel_when_absent(self):
        profile = {"id": None}
        stage = ProfileHeaderStage(lambda: profile["id"])

        ctx = await stage.process(RequestContext("GET", "/accounts"))
        assert ctx.headers["X-Profile-ID"] == "none"

        profile["id"] = "profile-1"
        ctx = await stage.process(RequestContext("GET", "/accounts"))
        assert ctx.headers["X-Profile-ID"] == "profile-1"

    def test_redacted_headers(self):
        ctx = RequestContext("get", "/auth/me")
        ctx.set_bearer("secret")

        assert ctx.method == "GET"
        assert ctx.headers["Authorization"] == "Bearer secret"
        assert ctx.redacted_headers()["Authorization"] == "Bearer [REDACTED]"
