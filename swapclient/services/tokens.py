"""
Token storage and client-side token checks.

Expiry checks decode the JWT without verifying the signature; they are
advisory only, the server remains the authority.
"""

import time
from typing import Any

import httpx
import jwt
from loguru import logger


def decode_token_claims(token: str) -> dict[str, Any] | None:
    """Decode JWT claims without signature verification. None if malformed."""
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.PyJWTError as e:
        logger.error(f"Error decoding token: {e}")
        return None


def is_token_expired(token: str, leeway: float = 5, now: float | None = None) -> bool:
    """
    True when the token has no `exp` claim or expires within `leeway` seconds.
    Undecodable tokens count as expired.
    """
    claims = decode_token_claims(token)
    if not claims or "exp" not in claims:
        return True

    current = time.time() if now is None else now
    try:
        return float(claims["exp"]) - current < leeway
    except (TypeError, ValueError):
        return True


def is_token_about_to_expire(
    token: str,
    window: float,
    leeway: float = 5,
    now: float | None = None,
) -> bool:
    """
    True when the token is still usable but expires within `window` seconds.
    A non-positive window disables proactive refresh.
    """
    if window <= 0:
        return False

    claims = decode_token_claims(token)
    if not claims or "exp" not in claims:
        return False

    current = time.time() if now is None else now
    try:
        remaining = float(claims["exp"]) - current
    except (TypeError, ValueError):
        return False
    return leeway <= remaining < window


class TokenStore:
    """
    Holds the access/refresh token pair and performs the refresh call.

    Usage:
        store = TokenStore(refresh_url="https://api.example.com/api/v1/auth/refresh")
        await store.save_access_token(access)
        await store.save_refresh_token(refresh)

        new_token = await store.refresh_access_token()  # None on failure
    """

    def __init__(
        self,
        refresh_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._refresh_url = refresh_url
        self._timeout = timeout
        self._transport = transport
        self._access_token: str | None = None
        self._refresh_token: str | None = None
        self.refresh_calls = 0

    async def get_access_token(self) -> str | None:
        return self._access_token

    async def save_access_token(self, token: str) -> None:
        self._access_token = token

    async def get_refresh_token(self) -> str | None:
        return self._refresh_token

    async def save_refresh_token(self, token: str) -> None:
        self._refresh_token = token

    async def clear_tokens(self) -> None:
        self._access_token = None
        self._refresh_token = None
        logger.debug("Tokens cleared")

    async def refresh_access_token(self) -> str | None:
        """
        Exchange the refresh token for a new access token.

        Never raises for "no refresh possible": returns None when there is no
        refresh token, the server rejects it, or the network call fails.
        """
        refresh_token = await self.get_refresh_token()
        if not refresh_token:
            logger.debug("No refresh token found")
            return None

        self.refresh_calls += 1
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self._refresh_url,
                    json={"refresh_token": refresh_token},
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Token refresh request failed: {e}")
            return None

        if not response.is_success:
            logger.warning(f"Token refresh failed with status {response.status_code}")
            return None

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning(f"Token refresh returned invalid JSON: {e}")
            return None

        # Supports both { data: { access_token } } and { access_token }
        token_data = (payload.get("data") or payload) if isinstance(payload, dict) else None
        if not isinstance(token_data, dict):
            token_data = {}
        access_token = token_data.get("access_token")
        if not access_token:
            logger.warning("Refresh succeeded but no access_token in response data")
            return None

        await self.save_access_token(access_token)
        if token_data.get("refresh_token"):
            await self.save_refresh_token(token_data["refresh_token"])

        logger.debug("Token refreshed successfully")
        return access_token
