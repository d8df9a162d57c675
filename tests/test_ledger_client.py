import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest
from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from feed_updater.errors import (
    ConfigurationError,
    ConfirmationTimeout,
    FeedAlreadyExists,
    LedgerRejected,
    LedgerUnreachable,
    NonceConflict,
    TransientRejection,
)
from feed_updater.ledger.client import FeedLedgerClient, classify_ledger_error

# Well-known local development key (hardhat/anvil account #0)
TEST_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ORACLE = Web3.to_checksum_address("0x5fbdb2315678afecb367f032d93f642f64180aa3")
TX_HASH = bytes.fromhex("ab" * 32)
TX_REFERENCE = "0x" + "ab" * 32


class FakeFunction:
    def __init__(self, contract: "FakeContract", name: str, args: tuple) -> None:
        self.contract = contract
        self.name = name
        self.args = args

    async def call(self) -> Any:
        self.contract.calls.append((self.name, self.args))
        result = self.contract.reads[self.name]
        if isinstance(result, Exception):
            raise result
        return result

    async def build_transaction(self, params: dict) -> dict:
        self.contract.built.append((self.name, self.args, dict(params)))
        if self.contract.build_errors:
            raise self.contract.build_errors.pop(0)
        return {
            "from": params["from"],
            "to": ORACLE,
            "data": "0x",
            "value": 0,
            "gas": 100_000,
            "maxFeePerGas": 2_000_000_000,
            "maxPriorityFeePerGas": 1_000_000_000,
            "nonce": params["nonce"],
            "chainId": params.get("chainId", 420420421),
        }


class FakeFunctions:
    def __init__(self, contract: "FakeContract") -> None:
        self._contract = contract

    def __getattr__(self, name: str):
        return lambda *args: FakeFunction(self._contract, name, args)


class FakeContract:
    address = ORACLE

    def __init__(self) -> None:
        self.reads: dict[str, Any] = {"feedExists": False}
        self.calls: list[tuple[str, tuple]] = []
        self.built: list[tuple[str, tuple, dict]] = []
        self.build_errors: list[Exception] = []
        self.functions = FakeFunctions(self)


class FakeEth:
    def __init__(self) -> None:
        self.pending_counts = [7]
        self.count_requests: list[tuple[str, str]] = []
        self.sent: list[bytes] = []
        self.send_errors: list[Exception] = []
        self.receipts: list[Any] = []

    async def get_transaction_count(self, address: str, block: str) -> int:
        self.count_requests.append((address, block))
        return self.pending_counts.pop(0)

    async def send_raw_transaction(self, raw: bytes) -> bytes:
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append(raw)
        return TX_HASH

    async def wait_for_transaction_receipt(
        self, tx_hash: bytes, timeout: float, poll_latency: float
    ) -> dict:
        result = self.receipts.pop(0) if self.receipts else {"status": 1, "blockNumber": 42}
        if isinstance(result, Exception):
            raise result
        return result


class FakeWeb3:
    def __init__(self) -> None:
        self.eth = FakeEth()


@pytest.fixture
def contract() -> FakeContract:
    return FakeContract()


@pytest.fixture
def w3() -> FakeWeb3:
    return FakeWeb3()


@pytest.fixture
def client(w3: FakeWeb3, contract: FakeContract) -> FeedLedgerClient:
    return FeedLedgerClient(w3, contract, Account.from_key(TEST_KEY))  # type: ignore[arg-type]


def rpc_error(code: int, message: str) -> ValueError:
    return ValueError({"code": code, "message": message})


def nonces(contract: FakeContract) -> list[int]:
    return [params["nonce"] for _, _, params in contract.built]


def test_feed_state_for_missing_feed_reads_only_existence(
    client: FeedLedgerClient, contract: FakeContract
) -> None:
    state = asyncio.run(client.feed_state("BTC"))

    assert not state.exists
    assert state.encoded_price == 0
    assert contract.calls == [("feedExists", ("BTC",))]


def test_feed_state_for_existing_feed(client: FeedLedgerClient, contract: FakeContract) -> None:
    contract.reads.update(
        feedExists=True, isActive=True, getPrice=300_000_000_000, getLastUpdated=1_714_564_800
    )

    state = asyncio.run(client.feed_state("ETH"))

    assert state.exists
    assert state.is_active
    assert state.encoded_price == 300_000_000_000
    assert state.last_updated_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_read_failure_is_unreachable(client: FeedLedgerClient, contract: FakeContract) -> None:
    contract.reads["feedExists"] = ConnectionError("connection refused")

    with pytest.raises(LedgerUnreachable):
        asyncio.run(client.feed_state("BTC"))


def test_nonce_loaded_once_then_incremented(
    client: FeedLedgerClient, contract: FakeContract, w3: FakeWeb3
) -> None:
    async def run() -> list[str]:
        return [
            await client.create_feed("BTC", 6_000_000_000_000),
            await client.update_price("ETH", 300_000_000_000),
        ]

    references = asyncio.run(run())

    assert references == [TX_REFERENCE, TX_REFERENCE]
    assert nonces(contract) == [7, 8]
    assert [name for name, _, _ in contract.built] == ["createFeed", "updatePrice"]
    assert w3.eth.count_requests == [(client.address, "pending")]
    assert len(w3.eth.sent) == 2


def test_reset_nonce_reloads_pending_count(
    client: FeedLedgerClient, contract: FakeContract, w3: FakeWeb3
) -> None:
    w3.eth.pending_counts = [7, 11]

    async def run() -> None:
        await client.create_feed("BTC", 1)
        client.reset_nonce()
        await client.create_feed("ETH", 1)

    asyncio.run(run())

    assert nonces(contract) == [7, 11]
    assert len(w3.eth.count_requests) == 2


def test_chain_id_is_passed_when_configured(w3: FakeWeb3, contract: FakeContract) -> None:
    client = FeedLedgerClient(
        w3, contract, Account.from_key(TEST_KEY), chain_id=420420421  # type: ignore[arg-type]
    )

    asyncio.run(client.create_feed("BTC", 1))

    assert contract.built[0][2]["chainId"] == 420420421


def test_nonce_conflict_resets_cursor(
    client: FeedLedgerClient, contract: FakeContract, w3: FakeWeb3
) -> None:
    w3.eth.pending_counts = [7, 8]
    w3.eth.send_errors = [ValueError({"code": -32000, "message": "nonce too low"})]

    async def run() -> None:
        with pytest.raises(NonceConflict):
            await client.create_feed("BTC", 1)
        await client.create_feed("BTC", 1)

    asyncio.run(run())

    assert nonces(contract) == [7, 8]
    assert len(w3.eth.count_requests) == 2


def test_already_exists_revert_keeps_nonce(
    client: FeedLedgerClient, contract: FakeContract, w3: FakeWeb3
) -> None:
    contract.build_errors = [ContractLogicError("execution reverted: Feed already exists")]

    async def run() -> None:
        with pytest.raises(FeedAlreadyExists):
            await client.create_feed("BTC", 1)
        await client.create_feed("ETH", 1)

    asyncio.run(run())

    assert nonces(contract) == [7, 7]
    assert len(w3.eth.count_requests) == 1


def test_missing_receipt_is_ambiguous_and_spends_nonce(
    client: FeedLedgerClient, contract: FakeContract, w3: FakeWeb3
) -> None:
    w3.eth.receipts = [TimeExhausted("not in chain after 120 seconds")]

    async def run() -> ConfirmationTimeout:
        with pytest.raises(ConfirmationTimeout) as exc_info:
            await client.create_feed("BTC", 1)
        await client.create_feed("ETH", 1)
        return exc_info.value

    error = asyncio.run(run())

    assert error.ambiguous
    assert error.tx_reference == TX_REFERENCE
    assert nonces(contract) == [7, 8]


def test_reverted_receipt_is_rejection(client: FeedLedgerClient, w3: FakeWeb3) -> None:
    w3.eth.receipts = [{"status": 0, "blockNumber": 43}]

    with pytest.raises(LedgerRejected) as exc_info:
        asyncio.run(client.update_price("BTC", 1))

    assert type(exc_info.value) is LedgerRejected
    assert exc_info.value.code == "reverted"


def test_write_without_signer_is_configuration_error(
    w3: FakeWeb3, contract: FakeContract
) -> None:
    client = FeedLedgerClient(w3, contract, None)  # type: ignore[arg-type]

    assert not client.has_signer
    with pytest.raises(ConfigurationError):
        asyncio.run(client.create_feed("BTC", 1))
    assert contract.built == []


@pytest.mark.parametrize(
    "exc, expected",
    [
        (rpc_error(1012, "Transaction is temporarily banned"), TransientRejection),
        (rpc_error(-32000, "txpool is full"), TransientRejection),
        (rpc_error(-32000, "nonce too low"), NonceConflict),
        (rpc_error(-32000, "already known"), NonceConflict),
        (rpc_error(1010, "Invalid Transaction"), LedgerRejected),
        (rpc_error(-32603, "Feed already exists"), FeedAlreadyExists),
        (ContractLogicError("execution reverted: Feed already exists"), FeedAlreadyExists),
        (ContractLogicError("execution reverted: caller is not the owner"), LedgerRejected),
        (ConnectionError("connection refused"), LedgerUnreachable),
        (asyncio.TimeoutError(), LedgerUnreachable),
    ],
)
def test_classify_ledger_error(exc: Exception, expected: type) -> None:
    error = classify_ledger_error(exc, "BTC")

    assert type(error) is expected


def test_classify_keeps_rpc_code() -> None:
    error = classify_ledger_error(rpc_error(1010, "Invalid Transaction"), "BTC")

    assert isinstance(error, LedgerRejected)
    assert error.code == 1010
    assert error.message == "Invalid Transaction"


def test_feed_state_collects_every_failed_read(
    client: FeedLedgerClient, contract: FakeContract
) -> None:
    contract.reads.update(
        feedExists=True,
        isActive=ConnectionError("connection reset"),
        getPrice=ConnectionError("connection reset"),
        getLastUpdated=1_714_564_800,
    )

    with pytest.raises(LedgerUnreachable):
        asyncio.run(client.feed_state("ETH"))

    assert contract.calls[0] == ("feedExists", ("ETH",))
    assert sorted(name for name, _ in contract.calls[1:]) == [
        "getLastUpdated",
        "getPrice",
        "isActive",
    ]


def test_send_timeout_is_ambiguous_and_reloads_nonce(
    client: FeedLedgerClient, contract: FakeContract, w3: FakeWeb3
) -> None:
    w3.eth.pending_counts = [7, 8]
    w3.eth.send_errors = [asyncio.TimeoutError()]

    async def run() -> ConfirmationTimeout:
        with pytest.raises(ConfirmationTimeout) as exc_info:
            await client.create_feed("BTC", 1)
        await client.create_feed("BTC", 1)
        return exc_info.value

    error = asyncio.run(run())

    assert error.ambiguous
    assert error.tx_reference.startswith("0x")
    assert len(error.tx_reference) == 66
    assert nonces(contract) == [7, 8]
    assert len(w3.eth.count_requests) == 2


def test_build_timeout_is_plain_unreachable(
    client: FeedLedgerClient, contract: FakeContract
) -> None:
    contract.build_errors = [asyncio.TimeoutError()]

    with pytest.raises(LedgerUnreachable) as exc_info:
        asyncio.run(client.create_feed("BTC", 1))

    assert not exc_info.value.ambiguous
