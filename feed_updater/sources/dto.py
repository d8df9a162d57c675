"""Data Transfer Objects for price sources."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class ReferencePrice:
    symbol: str
    usd_value: Decimal
    fetched_at: datetime
