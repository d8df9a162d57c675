"""HTTP client for external price APIs.

Retries are left to callers; a single failed request surfaces immediately.
"""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# JSON can be any of these types
JsonValue = dict[str, Any] | list[Any] | str | int | float | bool | None


async def get(
    url: str,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 10.0,
) -> JsonValue:
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        return response.json()
