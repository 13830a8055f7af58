"""eBay OAuth client-credentials token acquisition.

Application tokens grant access to public Browse API data. The token is
cached in memory until shortly before it expires.
"""

import logging
import time
from typing import Optional

import httpx

from src.monitor.config import MonitorConfig
from src.monitor.errors import UpstreamError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/identity/v1/oauth2/token"
OAUTH_SCOPE = "https://api.ebay.com/oauth/api_scope"
EXPIRY_MARGIN_SECONDS = 60


class EbayAuth:
    """Fetches and caches an application access token."""

    def __init__(self, config: MonitorConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._token: Optional[str] = None
        self._expires_at = 0.0

    async def get_access_token(self) -> str:
        if self._token and time.monotonic() < self._expires_at:
            return self._token

        client_id, client_secret = self.config.require_ebay_credentials()
        url = f"{self.config.ebay_api_base}{TOKEN_PATH}"

        async with httpx.AsyncClient(timeout=self.config.http_timeout, transport=self._transport) as client:
            logger.info("Requesting eBay application token")
            response = await client.post(
                url,
                auth=(client_id, client_secret),
                data={"grant_type": "client_credentials", "scope": OAUTH_SCOPE},
            )

        if response.status_code != 200:
            raise UpstreamError(
                f"eBay token request failed: {response.status_code}",
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )

        data = response.json()
        token = data.get("access_token")
        if not token:
            raise UpstreamError("eBay token response has no access_token")

        expires_in = int(data.get("expires_in", 7200))
        self._token = token
        self._expires_at = time.monotonic() + max(expires_in - EXPIRY_MARGIN_SECONDS, 0)
        logger.info("eBay token acquired, expires in %ds", expires_in)
        return token

    def invalidate(self):
        self._token = None
        self._expires_at = 0.0
