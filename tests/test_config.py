"""Tests for monitoring configuration."""

import pytest

from src.monitor.config import DEFAULT_SELLERS, MonitorConfig
from src.monitor.errors import CredentialsError


class TestFromEnv:
    def test_defaults(self):
        config = MonitorConfig.from_env({})
        assert config.sellers == DEFAULT_SELLERS
        assert config.search_query == "iphone"
        assert config.store_backend == "supabase"
        assert config.recipients == []
        assert config.dedupe_rating_changes is False

    def test_reads_environment(self):
        config = MonitorConfig.from_env({
            "EBAY_PROD_CLIENT_ID": "id",
            "EBAY_PROD_CLIENT_SECRET": "secret",
            "MONITOR_SELLERS": "a, b ,,c",
            "MONITOR_QUERY": "ipad",
            "MONITOR_RESULT_LIMIT": "10",
            "MONITOR_RECIPIENTS": "x@example.com",
            "MONITOR_DEDUPE_RATINGS": "true",
            "STORE_BACKEND": "sqlite",
            "SELLERWATCH_DB": "/tmp/sw.db",
        })
        assert config.sellers == ["a", "b", "c"]
        assert config.search_query == "ipad"
        assert config.result_limit == 10
        assert config.recipients == ["x@example.com"]
        assert config.dedupe_rating_changes is True
        assert config.store_backend == "sqlite"
        assert config.sqlite_path == "/tmp/sw.db"

    def test_rejects_unknown_backend(self):
        with pytest.raises(ValueError):
            MonitorConfig.from_env({"STORE_BACKEND": "redis"})


class TestCredentials:
    def test_present(self):
        config = MonitorConfig(ebay_client_id="id", ebay_client_secret="s")
        assert config.require_ebay_credentials() == ("id", "s")

    def test_missing(self):
        with pytest.raises(CredentialsError) as exc:
            MonitorConfig(ebay_client_id="id").require_ebay_credentials()
        assert exc.value.to_dict()["error"] == "CREDENTIALS_MISSING"
