from datetime import timedelta

import pytest

from storefront.client import fetch_policy
from storefront.config import DEFAULT_BASE_URL, StorefrontConfig


class TestStorefrontConfig:
    def test_defaults(self):
        config = StorefrontConfig()

        assert config.base_url == DEFAULT_BASE_URL
        assert config.session_header == "x-session-id"
        assert config.cache_ttl == timedelta(minutes=5)
        assert config.storage_url is None

    def test_builders_do_not_mutate(self):
        base = StorefrontConfig()
        tuned = base.with_base_url("https://shop.example.com/api/").with_timeout(seconds=5)

        assert tuned.base_url == "https://shop.example.com/api"
        assert tuned.timeout == timedelta(seconds=5)
        assert base.timeout == timedelta(seconds=10)

    def test_cache_ttl(self):
        assert StorefrontConfig().with_cache_ttl(minutes=1, seconds=30).cache_ttl == timedelta(seconds=90)
        assert StorefrontConfig().with_cache_ttl(seconds=0).cache_ttl == timedelta(0)

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            StorefrontConfig().with_retries(-1)

    def test_backoff_keeps_cap_valid(self):
        config = StorefrontConfig().with_backoff(60)

        assert config.backoff_max == 60

    def test_session_header_is_lowercased(self):
        assert StorefrontConfig().with_session_header("X-Cart-Token").session_header == "x-cart-token"

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("STOREFRONT_BASE_URL", "https://api.shop.test/")
        monkeypatch.setenv("STOREFRONT_TIMEOUT", "2.5")
        monkeypatch.setenv("STOREFRONT_CACHE_TTL", "30")
        monkeypatch.setenv("STOREFRONT_MAX_RETRIES", "1")
        monkeypatch.setenv("STOREFRONT_BACKOFF_INITIAL", "0.5")
        monkeypatch.setenv("STOREFRONT_STORAGE_URL", "sqlite+aiosqlite:///shop.db")

        config = StorefrontConfig.from_env()

        assert config.base_url == "https://api.shop.test"
        assert config.timeout == timedelta(seconds=2.5)
        assert config.cache_ttl == timedelta(seconds=30)
        assert config.max_retries == 1
        assert config.backoff_initial == 0.5
        assert config.storage_url == "sqlite+aiosqlite:///shop.db"

    def test_from_env_ignores_blank(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SHOP_MAX_RETRIES", "")

        assert StorefrontConfig.from_env(prefix="SHOP_") == StorefrontConfig()

    def test_fetch_policy_follows_config(self):
        policy = fetch_policy(StorefrontConfig().with_retries(2).with_backoff(0).with_cache_ttl(seconds=10))

        assert policy.max_retries == 2
        assert policy.backoff_initial == 0
        assert policy.ttl == timedelta(seconds=10)
