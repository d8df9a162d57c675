"""CoinGecko price source.

API docs: https://docs.coingecko.com/reference/simple-price
"""

import logging
from collections.abc import Collection, Mapping
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from feed_updater.errors import SourceMalformed, SourceUnavailable
from feed_updater.infrastructure import http_client
from feed_updater.sources.dto import ReferencePrice

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.coingecko.com/api/v3"
DEMO_API_KEY_HEADER = "x-cg-demo-api-key"


class CoinGeckoSource:
    """Fetches USD prices via GET /simple/price.

    Symbols are translated to CoinGecko ids through ``source_ids``; a symbol
    without a mapping, or one CoinGecko does not return, is simply absent from
    the result.
    """

    SOURCE_ID = "coingecko"

    def __init__(
        self,
        source_ids: Mapping[str, str],
        api_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        api_key: str | None = None,
    ) -> None:
        self._source_ids = dict(source_ids)
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._api_key = api_key

    async def fetch(self, symbols: Collection[str]) -> dict[str, ReferencePrice]:
        requested = {symbol: self._source_ids.get(symbol) for symbol in symbols}
        for symbol, source_id in requested.items():
            if source_id is None:
                logger.warning(f"No {self.SOURCE_ID} id configured for {symbol}")

        ids = sorted({source_id for source_id in requested.values() if source_id})
        if not ids:
            return {}

        logger.debug(f"Fetching prices from {self.SOURCE_ID} for ids: {ids}")

        headers = {DEMO_API_KEY_HEADER: self._api_key} if self._api_key else None
        try:
            response = await http_client.get(
                f"{self._api_url}/simple/price",
                params={"ids": ",".join(ids), "vs_currencies": "usd"},
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise SourceUnavailable(f"{self.SOURCE_ID} request failed: {e}") from e
        except ValueError as e:
            raise SourceMalformed(f"{self.SOURCE_ID} returned invalid JSON: {e}") from e

        if not isinstance(response, dict):
            raise SourceMalformed(
                f"{self.SOURCE_ID} returned {type(response).__name__}, expected object"
            )

        fetched_at = datetime.now(timezone.utc)
        prices = {}
        for symbol, source_id in requested.items():
            if source_id is None or source_id not in response:
                continue
            usd_value = _parse_usd(symbol, response[source_id])
            if usd_value is None:
                logger.warning(f"No USD price returned for {symbol} ({source_id})")
                continue
            prices[symbol] = ReferencePrice(
                symbol=symbol, usd_value=usd_value, fetched_at=fetched_at
            )

        logger.info(f"Fetched {len(prices)}/{len(requested)} prices from {self.SOURCE_ID}")
        return prices


def _parse_usd(symbol: str, entry: Any) -> Decimal | None:
    if not isinstance(entry, dict):
        raise SourceMalformed(f"Entry for {symbol} is {type(entry).__name__}, expected object")

    raw = entry.get("usd")
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise SourceMalformed(f"USD price for {symbol} is not numeric: {raw!r}")

    # str() keeps the shortest decimal repr of a float, not its binary expansion
    try:
        value = Decimal(str(raw))
    except InvalidOperation as e:
        raise SourceMalformed(f"USD price for {symbol} is not numeric: {raw!r}") from e

    if not value.is_finite() or value < 0:
        raise SourceMalformed(f"USD price for {symbol} is out of range: {raw!r}")
    return value
