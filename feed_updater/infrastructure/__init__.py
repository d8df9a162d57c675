"""Infrastructure layer providing reusable components.

- HTTP client shared by price source adapters
"""

from feed_updater.infrastructure.http_client import get

__all__ = ["get"]
