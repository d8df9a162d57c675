"""On-chain oracle access: client, state DTO and price encoding."""

from feed_updater.ledger.client import FeedLedgerClient, classify_ledger_error
from feed_updater.ledger.dto import FeedState
from feed_updater.ledger.encoding import PRICE_DECIMALS, decode_price, encode_price

__all__ = [
    "FeedLedgerClient",
    "FeedState",
    "PRICE_DECIMALS",
    "classify_ledger_error",
    "decode_price",
    "encode_price",
]
