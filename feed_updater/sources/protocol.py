"""Price source protocol.

Sources implement the method without explicit inheritance.
"""

from collections.abc import Collection
from typing import Protocol, runtime_checkable

from feed_updater.sources.dto import ReferencePrice


@runtime_checkable
class PriceSource(Protocol):
    """Contract for external reference price APIs."""

    SOURCE_ID: str

    async def fetch(self, symbols: Collection[str]) -> dict[str, ReferencePrice]:
        """Fetch current USD prices for symbols.

        Symbols the API has no data for are absent from the result.

        Raises:
            SourceUnavailable: network, timeout or HTTP status failure
            SourceMalformed: body or a requested symbol's entry cannot be parsed
        """
        ...
