"""Data Transfer Objects for the oracle ledger."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class FeedState:
    symbol: str
    exists: bool
    is_active: bool = False
    encoded_price: int = 0
    last_updated_at: datetime | None = None

    @classmethod
    def missing(cls, symbol: str) -> "FeedState":
        return cls(symbol=symbol, exists=False)
