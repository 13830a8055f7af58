"""Abstract base for listing sources.

A source turns a list of sellers and a search query into one Snapshot.
The monitoring cycle depends only on this interface, so tests can supply
an in-memory source.
"""

from abc import ABC, abstractmethod
from typing import List

from src.api.schemas import Snapshot


class BaseListingSource(ABC):
    """Abstract base class for all listing sources."""

    @abstractmethod
    async def fetch_snapshot(self, sellers: List[str], query: str) -> Snapshot:
        """Fetch the current listings of every seller as one Snapshot."""
        ...
