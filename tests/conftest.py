from __future__ import annotations

from collections.abc import Collection
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import pytest

from feed_updater.errors import PriceSourceError
from feed_updater.ledger.dto import FeedState
from feed_updater.settings import Settings
from feed_updater.sources.dto import ReferencePrice

# Well-known local development key (hardhat/anvil account #0)
TEST_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
SIGNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
ORACLE = "0x5fbdb2315678afecb367f032d93f642f64180aa3"

FETCHED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_price(symbol: str, usd_value: str) -> ReferencePrice:
    return ReferencePrice(symbol=symbol, usd_value=Decimal(usd_value), fetched_at=FETCHED_AT)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "SIGNER_PRIVATE_KEY": TEST_KEY,
        "ORACLE_ADDRESS": ORACLE,
        "SYMBOLS": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class Timeline:
    """Shared event log so writes and sleeps can be checked in order."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    async def sleep(self, seconds: float) -> None:
        self.events.append(("sleep", seconds))

    @property
    def sleeps(self) -> list[float]:
        return [event[1] for event in self.events if event[0] == "sleep"]


class FakePriceSource:
    SOURCE_ID = "fake"

    def __init__(
        self,
        prices: dict[str, ReferencePrice] | None = None,
        error: PriceSourceError | None = None,
    ) -> None:
        self.prices = prices or {}
        self.error = error
        self.requests: list[list[str]] = []

    async def fetch(self, symbols: Collection[str]) -> dict[str, ReferencePrice]:
        self.requests.append(list(symbols))
        if self.error is not None:
            raise self.error
        return {symbol: price for symbol, price in self.prices.items() if symbol in symbols}


class FakeLedger:
    """Ledger double with scripted write results.

    ``write_results[symbol]`` is consumed one item per write attempt: an
    exception instance is raised, anything else is returned as the tx hash.
    """

    address = SIGNER
    has_signer = True

    def __init__(
        self,
        timeline: Timeline,
        states: dict[str, FeedState] | None = None,
        write_results: dict[str, list[Any]] | None = None,
        read_errors: dict[str, Exception] | None = None,
        owner: str | Exception = SIGNER,
    ) -> None:
        self.timeline = timeline
        self.states = states or {}
        self.write_results = write_results or {}
        self.read_errors = read_errors or {}
        self.reads: list[str] = []
        self.writes: list[tuple[str, str, int]] = []
        self.nonce_resets = 0
        self.owner_address = owner
        self.owner_reads = 0
        self.closed = False

    async def owner(self) -> str:
        self.owner_reads += 1
        if isinstance(self.owner_address, Exception):
            raise self.owner_address
        return self.owner_address

    async def close(self) -> None:
        self.closed = True

    def reset_nonce(self) -> None:
        self.nonce_resets += 1

    async def feed_state(self, symbol: str) -> FeedState:
        self.reads.append(symbol)
        if symbol in self.read_errors:
            raise self.read_errors[symbol]
        return self.states.get(symbol, FeedState.missing(symbol))

    async def create_feed(self, symbol: str, encoded_price: int) -> str:
        return self._write("createFeed", symbol, encoded_price)

    async def update_price(self, symbol: str, encoded_price: int) -> str:
        return self._write("updatePrice", symbol, encoded_price)

    def _write(self, method: str, symbol: str, encoded_price: int) -> str:
        self.writes.append((method, symbol, encoded_price))
        self.timeline.events.append((method, symbol, encoded_price))
        results = self.write_results.get(symbol)
        result = results.pop(0) if results else f"0x{len(self.writes):064x}"
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def timeline() -> Timeline:
    return Timeline()
