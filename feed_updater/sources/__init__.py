"""Reference price sources.

Each source implements the PriceSource protocol; CoinGecko is the only one
wired in by default.
"""

from feed_updater.sources.coingecko import CoinGeckoSource
from feed_updater.sources.dto import ReferencePrice
from feed_updater.sources.protocol import PriceSource

__all__ = ["CoinGeckoSource", "PriceSource", "ReferencePrice"]
