"""
Response envelope parsing.

The backend returns lists in several shapes:
- Direct array: [...]
- Wrapped: {"result": [...], "meta": {...}}, {"data": [...]}, {"items": [...]}
- JSON encoded strings, sometimes more than once
- Numbered keys: {"0": {...}, "1": {...}}
"""

import json
import re
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

M = TypeVar("M", bound=BaseModel)

MAX_DECODE_ATTEMPTS = 5
WRAPPER_KEYS = ("result", "data", "wallets", "items")

_NUMBERED_KEY = re.compile(r"^\d+$")


def _decode_strings(value: Any, context: str) -> Any:
    attempts = 0
    while isinstance(value, str) and attempts < MAX_DECODE_ATTEMPTS:
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            logger.error(f"[{context}] Failed to parse JSON string (attempt {attempts + 1}): {e}")
            break
        attempts += 1
    return value


def parse_api_response(data: Any, context: str = "api") -> list[Any]:
    """Extract the item list from any supported envelope. Unknown shapes give []."""
    result = _decode_strings(data, context)

    if isinstance(result, list):
        return result

    if isinstance(result, dict):
        numbered = sorted((k for k in result if _NUMBERED_KEY.match(k)), key=int)
        if numbered:
            return [_decode_strings(result[k], context) for k in numbered]

        for wrapper in WRAPPER_KEYS:
            if result.get(wrapper):
                return parse_api_response(result[wrapper], context)

    logger.warning(f"[{context}] Unexpected response structure, returning empty list")
    return []


def parse_api_object(data: Any, context: str = "api") -> Any:
    """Unwrap a single resource from {"data": {...}} or {"result": {...}}."""
    result = _decode_strings(data, context)
    if isinstance(result, dict):
        for wrapper in ("result", "data"):
            inner = result.get(wrapper)
            if isinstance(inner, dict):
                return inner
    return result


def parse_models(data: Any, model_cls: type[M], context: str = "api") -> list[M]:
    """parse_api_response, then validate each item. Invalid items are dropped."""
    models = []
    for item in parse_api_response(data, context):
        try:
            models.append(model_cls.model_validate(item))
        except ValidationError as e:
            logger.warning(f"[{context}] Skipping invalid {model_cls.__name__}: {e}")
    return models
