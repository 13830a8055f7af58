"""Monitoring configuration.

Built once by the entry point (usually via `MonitorConfig.from_env()` after
`load_dotenv()`) and passed explicitly to the cycle and its collaborators.
"""

import os
from typing import List, Literal, Mapping, Optional

from pydantic import BaseModel

from src.monitor.errors import CredentialsError

DEFAULT_SELLERS = ["cellfc", "electronicdea1s"]
DEFAULT_EMAIL_API_URL = "https://backend.composio.dev/api/v1/actions/GMAIL_SEND_EMAIL/execute"


def _split(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class MonitorConfig(BaseModel):
    # eBay
    ebay_client_id: Optional[str] = None
    ebay_client_secret: Optional[str] = None
    ebay_api_base: str = "https://api.ebay.com"
    marketplace_id: str = "EBAY_US"
    http_timeout: float = 30.0

    # What to watch
    sellers: List[str] = DEFAULT_SELLERS
    search_query: str = "iphone"
    result_limit: int = 50
    dedupe_rating_changes: bool = False

    # Notification
    recipients: List[str] = []
    email_api_url: str = DEFAULT_EMAIL_API_URL
    email_api_key: Optional[str] = None

    # Storage
    store_backend: Literal["supabase", "sqlite"] = "supabase"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    sqlite_path: str = "sellerwatch.db"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "MonitorConfig":
        env = os.environ if env is None else env
        values = {
            "ebay_client_id": env.get("EBAY_PROD_CLIENT_ID"),
            "ebay_client_secret": env.get("EBAY_PROD_CLIENT_SECRET"),
            "ebay_api_base": env.get("EBAY_API_BASE"),
            "marketplace_id": env.get("EBAY_MARKETPLACE_ID"),
            "http_timeout": env.get("HTTP_TIMEOUT"),
            "sellers": _split(env.get("MONITOR_SELLERS")) or None,
            "search_query": env.get("MONITOR_QUERY"),
            "result_limit": env.get("MONITOR_RESULT_LIMIT"),
            "dedupe_rating_changes": env.get("MONITOR_DEDUPE_RATINGS"),
            "recipients": _split(env.get("MONITOR_RECIPIENTS")) or None,
            "email_api_url": env.get("EMAIL_API_URL"),
            "email_api_key": env.get("EMAIL_API_KEY"),
            "store_backend": env.get("STORE_BACKEND"),
            "supabase_url": env.get("SUPABASE_URL"),
            "supabase_key": env.get("SUPABASE_ANON_KEY"),
            "sqlite_path": env.get("SELLERWATCH_DB"),
        }
        # Unset variables fall back to field defaults.
        return cls(**{k: v for k, v in values.items() if v is not None})

    def require_ebay_credentials(self):
        if not self.ebay_client_id or not self.ebay_client_secret:
            raise CredentialsError()
        return self.ebay_client_id, self.ebay_client_secret
