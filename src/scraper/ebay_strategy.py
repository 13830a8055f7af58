"""eBay Browse API listing source.

Searches each monitored seller's listings with the item_summary/search
endpoint and aggregates the results into one Snapshot.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

import httpx

from src.api.schemas import ListingRecord, Snapshot
from src.monitor.config import MonitorConfig
from src.monitor.errors import UpstreamError
from src.pipeline.normalizer import normalize_item
from src.scraper.base_strategy import BaseListingSource
from src.scraper.ebay_auth import EbayAuth

logger = logging.getLogger(__name__)

SEARCH_PATH = "/buy/browse/v1/item_summary/search"


class EbayBrowseStrategy(BaseListingSource):
    """Concrete source backed by the eBay Browse API."""

    def __init__(
        self,
        config: MonitorConfig,
        auth: Optional[EbayAuth] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        self.auth = auth or EbayAuth(config, transport=transport)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.http_timeout, transport=self._transport)

    async def _search(self, client: httpx.AsyncClient, params: dict) -> list:
        token = await self.auth.get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "X-EBAY-C-MARKETPLACE-ID": self.config.marketplace_id,
        }
        response = await client.get(
            f"{self.config.ebay_api_base}{SEARCH_PATH}", params=params, headers=headers,
        )
        if response.status_code == 401:
            self.auth.invalidate()
        if response.status_code != 200:
            raise UpstreamError(
                f"eBay search failed: {response.status_code}",
                status_code=response.status_code,
                details={"params": params, "body": response.text[:500]},
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(
                "eBay search returned a non-JSON body",
                status_code=response.status_code,
                details={"params": params, "body": response.text[:500]},
                cause=e,
            )
        if not isinstance(payload, dict):
            raise UpstreamError(
                "eBay search returned an unexpected payload",
                status_code=response.status_code,
                details={"params": params},
            )
        items = payload.get("itemSummaries") or []
        if not isinstance(items, list):
            raise UpstreamError(
                "eBay search returned malformed itemSummaries",
                status_code=response.status_code,
                details={"params": params},
            )
        return items

    def _normalize_all(self, items: list, seller_of) -> List[ListingRecord]:
        listings = []
        for item in items:
            try:
                listing = normalize_item(item, seller_of(item))
            except (ValueError, TypeError, AttributeError) as e:
                # pydantic's ValidationError is a ValueError
                raise UpstreamError(
                    f"eBay returned a malformed item: {e}",
                    details={"item": str(item)[:500]},
                    cause=e,
                )
            if listing:
                listings.append(listing)
        return listings

    async def search_items_by_seller(
        self, seller: str, query: str, client: Optional[httpx.AsyncClient] = None,
    ) -> List[ListingRecord]:
        params = {
            "q": query,
            "limit": str(self.config.result_limit),
            "filter": f"sellers:{{{seller}}}",
        }
        if client is None:
            async with self._client() as own_client:
                items = await self._search(own_client, params)
        else:
            items = await self._search(client, params)

        listings = self._normalize_all(items, lambda item: seller)
        logger.info("Found %d listings for seller %s", len(listings), seller)
        return listings

    async def fetch_snapshot(self, sellers: List[str], query: str) -> Snapshot:
        # A seller missing from the snapshot would show up as mass removals,
        # so any failed seller fails the whole fetch.
        listings: List[ListingRecord] = []
        async with self._client() as client:
            for seller in sellers:
                listings.extend(await self.search_items_by_seller(seller, query, client=client))

        return Snapshot(
            timestamp=datetime.now(timezone.utc).isoformat(),
            listings=listings,
        )

    async def search(self, query: str, limit: int = 20) -> List[ListingRecord]:
        """Keyword search across all sellers."""
        params = {"q": query, "limit": str(limit)}
        async with self._client() as client:
            items = await self._search(client, params)

        return self._normalize_all(
            items, lambda item: (item.get("seller") or {}).get("username", ""),
        )
