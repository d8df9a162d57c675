"""Read/write access to the on-chain price oracle.

FeedLedgerClient owns the signing credential and the nonce cursor for it.
Writes are serialized through a lock: every transaction from the credential
draws from the same nonce sequence, so two in-flight writes would collide.
"""

import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import Any, TypeVar

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError

from feed_updater.errors import (
    ConfigurationError,
    ConfirmationTimeout,
    FeedAlreadyExists,
    LedgerError,
    LedgerRejected,
    LedgerUnreachable,
    NonceConflict,
    TransientRejection,
)
from feed_updater.ledger.abi import ORACLE_ABI
from feed_updater.ledger.dto import FeedState

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrate-backed EVM RPCs report pool pressure with these codes:
# 1012 = temporarily banned, 1014 = priority too low. -32005 = limit exceeded.
TRANSIENT_CODES = frozenset({1012, 1014, -32005, 429})
TRANSIENT_MARKERS = (
    "temporarily banned",
    "rate limit",
    "too many requests",
    "transaction pool is full",
    "txpool is full",
)
NONCE_MARKERS = ("nonce", "already known", "replacement transaction underpriced")
ALREADY_EXISTS_MARKER = "already exists"


class FeedLedgerClient:
    """Oracle contract wrapper: feed reads, createFeed/updatePrice writes."""

    def __init__(
        self,
        w3: AsyncWeb3,
        contract: Any,
        account: LocalAccount | None,
        chain_id: int | None = None,
        rpc_timeout: float = 30.0,
        confirmation_timeout: float = 120.0,
        confirmation_poll: float = 2.0,
    ) -> None:
        self._w3 = w3
        self._contract = contract
        self._account = account
        self._chain_id = chain_id
        self._rpc_timeout = rpc_timeout
        self._confirmation_timeout = confirmation_timeout
        self._confirmation_poll = confirmation_poll
        self._write_lock = asyncio.Lock()
        self._next_nonce: int | None = None

    @classmethod
    def connect(
        cls,
        rpc_url: str,
        oracle_address: str,
        private_key: str | None,
        chain_id: int | None = None,
        rpc_timeout: float = 30.0,
        confirmation_timeout: float = 120.0,
        confirmation_poll: float = 2.0,
    ) -> "FeedLedgerClient":
        """Build a client for the oracle at oracle_address.

        Without a private key the client is read-only.

        Raises:
            ValueError: malformed private key or contract address
        """
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        contract = w3.eth.contract(address=Web3.to_checksum_address(oracle_address), abi=ORACLE_ABI)
        account = Account.from_key(private_key) if private_key else None
        return cls(
            w3,
            contract,
            account,
            chain_id=chain_id,
            rpc_timeout=rpc_timeout,
            confirmation_timeout=confirmation_timeout,
            confirmation_poll=confirmation_poll,
        )

    async def close(self) -> None:
        """Release cached HTTP sessions held by the provider."""
        await self._w3.provider.disconnect()

    @property
    def has_signer(self) -> bool:
        return self._account is not None

    @property
    def address(self) -> str:
        return self._signer().address

    @property
    def contract_address(self) -> str:
        return self._contract.address

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def feed_state(self, symbol: str) -> FeedState:
        functions = self._contract.functions
        exists = await self._read(functions.feedExists(symbol), f"feedExists({symbol})")
        if not exists:
            return FeedState.missing(symbol)

        results = await asyncio.gather(
            self._read(functions.isActive(symbol), f"isActive({symbol})"),
            self._read(functions.getPrice(symbol), f"getPrice({symbol})"),
            self._read(functions.getLastUpdated(symbol), f"getLastUpdated({symbol})"),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        is_active, price, last_updated = results
        return FeedState(
            symbol=symbol,
            exists=True,
            is_active=bool(is_active),
            encoded_price=int(price),
            last_updated_at=(
                datetime.fromtimestamp(int(last_updated), tz=timezone.utc) if last_updated else None
            ),
        )

    async def owner(self) -> str:
        return await self._read(self._contract.functions.owner(), "owner()")

    async def _read(self, call: Any, label: str) -> Any:
        try:
            return await self._with_timeout(call.call())
        except Exception as e:
            raise LedgerUnreachable(f"Ledger read {label} failed: {e}") from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_feed(self, symbol: str, encoded_price: int) -> str:
        return await self._transact("createFeed", symbol, encoded_price)

    async def update_price(self, symbol: str, encoded_price: int) -> str:
        return await self._transact("updatePrice", symbol, encoded_price)

    def reset_nonce(self) -> None:
        """Forget the cursor; the next write reloads it from the pending count."""
        self._next_nonce = None

    async def _transact(self, fn_name: str, symbol: str, encoded_price: int) -> str:
        account = self._signer()
        async with self._write_lock:
            nonce = await self._load_nonce()
            function = getattr(self._contract.functions, fn_name)(symbol, encoded_price)

            params: dict[str, Any] = {"from": account.address, "nonce": nonce}
            if self._chain_id is not None:
                params["chainId"] = self._chain_id

            signed_reference: str | None = None
            try:
                tx = await self._with_timeout(function.build_transaction(params))
                signed = account.sign_transaction(tx)
                signed_reference = Web3.to_hex(signed.hash)
                tx_hash = await self._with_timeout(
                    self._w3.eth.send_raw_transaction(signed.raw_transaction)
                )
            except asyncio.TimeoutError as e:
                if signed_reference is None:
                    raise classify_ledger_error(e, symbol) from e
                # The node may have taken it; reload the nonce from the pending count.
                self.reset_nonce()
                logger.warning(f"Submission of {signed_reference} timed out, outcome unknown")
                raise ConfirmationTimeout(signed_reference, self._rpc_timeout) from e
            except Exception as e:
                error = classify_ledger_error(e, symbol)
                if isinstance(error, NonceConflict):
                    self.reset_nonce()
                raise error from e

            # Accepted by the node: the nonce is spent whatever the receipt says.
            self._next_nonce = nonce + 1
            tx_reference = Web3.to_hex(tx_hash)
            logger.info(
                f"Submitted {fn_name}({symbol}, {encoded_price}) nonce={nonce} tx={tx_reference}"
            )

            receipt = await self._wait_for_receipt(tx_hash, tx_reference)
            if receipt["status"] != 1:
                raise LedgerRejected(
                    "reverted", f"{fn_name}({symbol}) reverted in block {receipt['blockNumber']}"
                )

            logger.debug(f"Confirmed {tx_reference} in block {receipt['blockNumber']}")
            return tx_reference

    def _signer(self) -> LocalAccount:
        if self._account is None:
            raise ConfigurationError("No signing credential configured")
        return self._account

    async def _load_nonce(self) -> int:
        if self._next_nonce is None:
            try:
                self._next_nonce = await self._with_timeout(
                    self._w3.eth.get_transaction_count(self.address, "pending")
                )
            except Exception as e:
                raise LedgerUnreachable(f"Failed to load nonce for {self.address}: {e}") from e
            logger.debug(f"Loaded nonce {self._next_nonce} for {self.address}")
        return self._next_nonce

    async def _wait_for_receipt(self, tx_hash: Any, tx_reference: str) -> Any:
        try:
            return await asyncio.wait_for(
                self._w3.eth.wait_for_transaction_receipt(
                    tx_hash,
                    timeout=self._confirmation_timeout,
                    poll_latency=self._confirmation_poll,
                ),
                timeout=self._confirmation_timeout + self._rpc_timeout,
            )
        except Exception as e:
            logger.warning(f"No receipt for {tx_reference}: {e}")
            raise ConfirmationTimeout(tx_reference, self._confirmation_timeout) from e

    async def _with_timeout(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._rpc_timeout)


def classify_ledger_error(exc: BaseException, symbol: str) -> LedgerError:
    """Map an exception raised while building or submitting a write."""
    if isinstance(exc, LedgerError):
        return exc

    if isinstance(exc, ContractLogicError):
        message = exc.message or str(exc)
        if ALREADY_EXISTS_MARKER in message.lower():
            return FeedAlreadyExists(symbol)
        return LedgerRejected("revert", message)

    code, message = _rpc_error_details(exc)
    if code is None and message is None:
        return LedgerUnreachable(f"Ledger unreachable: {exc!r}")

    message = message or str(exc)
    lowered = message.lower()
    if ALREADY_EXISTS_MARKER in lowered and "feed" in lowered:
        return FeedAlreadyExists(symbol)
    if code in TRANSIENT_CODES or any(marker in lowered for marker in TRANSIENT_MARKERS):
        return TransientRejection(code, message)
    if any(marker in lowered for marker in NONCE_MARKERS):
        return NonceConflict(code, message)
    return LedgerRejected(code, message)


def _rpc_error_details(exc: BaseException) -> tuple[Any, str | None]:
    """Extract (code, message) from a JSON-RPC error, or (None, None) for transport errors."""
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict) and isinstance(rpc_response.get("error"), dict):
        error = rpc_response["error"]
        return error.get("code"), str(error.get("message", ""))

    if exc.args and isinstance(exc.args[0], dict):
        error = exc.args[0]
        return error.get("code"), str(error.get("message", ""))

    if getattr(exc, "status", None) == 429:
        return 429, str(exc)

    if isinstance(exc, ValueError):
        return None, str(exc)

    return None, None
