"""Credential extraction and upstream validation.

Clients present their Shortcut API token either as ``Authorization: Bearer <token>``
or ``X-Shortcut-API-Token: <token>``; the Authorization header wins when both
are usable.
"""
import logging
from typing import Mapping, Optional, Protocol

import httpx

logger = logging.getLogger("shortcut-mcp.auth")

AUTHORIZATION_HEADER = "authorization"
SHORTCUT_TOKEN_HEADER = "x-shortcut-api-token"
BEARER_SCHEME = "bearer"


def extract_credential(headers: Mapping[str, str]) -> Optional[str]:
    """
    Pull the API token out of request headers.

    Args:
        headers: Case-insensitive header mapping (e.g. starlette Headers)

    Returns:
        The token, or None if no usable credential was sent
    """
    authorization = headers.get(AUTHORIZATION_HEADER)
    if authorization:
        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() == BEARER_SCHEME and token.strip():
            return token.strip()

    custom = headers.get(SHORTCUT_TOKEN_HEADER)
    if custom and custom.strip():
        return custom.strip()

    return None


class CredentialValidator(Protocol):
    async def validate(self, credential: str) -> bool:
        ...


class ShortcutTokenValidator:
    """
    Confirms a token is currently accepted by Shortcut by fetching the current member.

    Never raises for a bad token: rejected tokens and an unreachable upstream both
    return False. Only called on bootstrap requests.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def validate(self, credential: str) -> bool:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Shortcut-Token": credential, "Accept": "application/json"},
            transport=self._transport,
        ) as client:
            try:
                response = await client.get("/member")
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.debug(f"API token validation failed: upstream returned {e.response.status_code}")
                return False
            except httpx.RequestError as e:
                logger.warning(f"API token validation failed: {type(e).__name__}: {e}")
                return False

        logger.debug("API token validated")
        return True
