"""
Tests for response envelope parsing.
"""

import json

import pytest

from swapclient.models import RoscaPool
from swapclient.sync.parsing import parse_api_object, parse_api_response, parse_models

ITEMS = [{"id": "a"}, {"id": "b"}]


@pytest.mark.parametrize(
    "payload",
    [
        ITEMS,
        {"result": ITEMS, "meta": {"total": 2}},
        {"data": ITEMS},
        {"items": ITEMS},
        {"wallets": ITEMS},
        {"data": {"result": ITEMS}},
        json.dumps(ITEMS),
        json.dumps(json.dumps({"result": ITEMS})),
        {"0": {"id": "a"}, "1": {"id": "b"}},
        {"1": json.dumps({"id": "b"}), "0": json.dumps({"id": "a"})},
    ],
)
def test_supported_list_shapes(payload):
    assert parse_api_response(payload) == ITEMS


@pytest.mark.parametrize("payload", [None, 42, "not json", {"message": "ok"}, {"result": []}])
def test_unknown_shapes_give_empty_list(payload):
    assert parse_api_response(payload, context="pools") == []


def test_parse_api_object_unwraps():
    assert parse_api_object({"data": {"id": "a"}}) == {"id": "a"}
    assert parse_api_object(json.dumps({"result": {"id": "a"}})) == {"id": "a"}
    assert parse_api_object({"id": "a", "data": [1]}) == {"id": "a", "data": [1]}


def test_parse_models_drops_invalid_items():
    payload = {
        "result": [
            {
                "id": "p1",
                "name": "Weekly",
                "contributionAmount": 50,
                "currencyCode": "HTG",
                "frequency": "weekly",
            },
            {"id": "p2"},
        ]
    }

    pools = parse_models(payload, RoscaPool, "pools")

    assert [pool.id for pool in pools] == ["p1"]
    assert pools[0].contribution_amount == 50
