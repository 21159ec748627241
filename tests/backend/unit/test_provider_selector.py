"""
Unit tests for services.provider_selector.
"""
from types import SimpleNamespace

import pytest

from firstrun.services.provider_selector import SUPPORT, ProviderSelector, Support
from firstrun.services.providers import (
    MysqlConfig,
    NeonConfig,
    PlanetScaleConfig,
    PostgresConfig,
    Provider,
    SqliteConfig,
    SupabaseConfig,
)


@pytest.fixture
def selector_calls(fake_storage):
    """Selector whose factory records (provider, url) for every capability it builds."""
    calls: list[tuple[Provider, str]] = []

    def factory(provider, url):
        calls.append((provider, url))
        return fake_storage(provider)

    return ProviderSelector("/srv/data/app.db", storage_factory=factory), calls


class TestSupportPolicy:
    def test_every_provider_has_a_policy(self):
        assert set(SUPPORT) == set(Provider)

    def test_direct_providers(self):
        direct = {p for p, s in SUPPORT.items() if s is Support.DIRECT}
        assert direct == {Provider.SQLITE, Provider.POSTGRESQL, Provider.NEON}


class TestSelect:
    @pytest.mark.parametrize(
        "config",
        [
            SqliteConfig(path="./data/custom.db"),
            PostgresConfig(connection_string="postgresql://u:p@db/app"),
            NeonConfig(connection_string="postgresql://u:p@ep-x.neon.tech/app"),
        ],
    )
    def test_direct_support_uses_the_requested_provider(self, selector_calls, config):
        selector, calls = selector_calls
        selection = selector.select(config)
        assert selection.fell_back is False
        assert selection.capability.provider is config.provider
        assert calls == [(config.provider, config.connection_url())]

    @pytest.mark.parametrize(
        "config",
        [
            MysqlConfig(connection_string="mysql://u:p@db/app"),
            PlanetScaleConfig(connection_string="mysql://u:p@aws.connect.psdb.cloud/app"),
            SupabaseConfig(url="https://p.supabase.co", anon_key="a", service_key="s"),
        ],
    )
    def test_fallback_is_always_reported(self, selector_calls, config):
        selector, calls = selector_calls
        selection = selector.select(config)
        assert selection.fell_back is True
        assert selection.requested == config.provider.value
        assert selection.capability.provider is Provider.SQLITE
        assert config.provider.value in selection.warning
        assert "/srv/data/app.db" in selection.warning
        assert calls == [(Provider.SQLITE, "sqlite:///srv/data/app.db")]

    def test_unknown_provider_falls_back_with_warning(self, selector_calls):
        selector, _ = selector_calls
        selection = selector.select(SimpleNamespace(provider="oracle"))
        assert selection.capability.provider is Provider.SQLITE
        assert "Unknown provider 'oracle'" in selection.warning

    def test_local_storage(self, selector_calls):
        selector, calls = selector_calls
        assert selector.local_storage().provider is Provider.SQLITE
        assert calls == [(Provider.SQLITE, "sqlite:///srv/data/app.db")]
