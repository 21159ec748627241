"""
Provider selection

Maps a validated provider configuration to the storage capability that
will hold the administrative account. Providers that are recognized but
not implemented yet fall back to the local SQLite storage, and the
fallback is always reported back as a warning.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..storage.base import StorageCapability
from ..storage.tortoise_storage import TortoiseStorage
from .providers import Provider, SqliteConfig

logger = logging.getLogger("uvicorn.error")


class Support(str, Enum):
    DIRECT = "direct"
    FALLBACK = "fallback"


# Every Provider member must appear here; checked at import time below.
SUPPORT: dict[Provider, Support] = {
    Provider.SQLITE: Support.DIRECT,
    Provider.POSTGRESQL: Support.DIRECT,
    Provider.NEON: Support.DIRECT,
    Provider.MYSQL: Support.FALLBACK,
    Provider.PLANETSCALE: Support.FALLBACK,
    Provider.SUPABASE: Support.FALLBACK,
}

_unhandled = set(Provider) - set(SUPPORT)
if _unhandled:
    raise RuntimeError(f"No storage support policy for providers: {sorted(p.value for p in _unhandled)}")


@dataclass
class ProviderSelection:
    requested: str
    capability: StorageCapability
    warning: Optional[str] = None

    @property
    def fell_back(self) -> bool:
        return self.warning is not None


StorageFactory = Callable[[Provider, str], StorageCapability]


class ProviderSelector:
    """
    Parameters:
    - sqlite_path: database file used for sqlite and for every fallback
    - storage_factory: builds a capability from (provider, connection url)
    """

    def __init__(self, sqlite_path: str, storage_factory: StorageFactory = TortoiseStorage):
        self.sqlite_path = sqlite_path
        self._storage_factory = storage_factory

    def local_storage(self) -> StorageCapability:
        return self._storage_factory(Provider.SQLITE, SqliteConfig(path=self.sqlite_path).connection_url())

    def select(self, config) -> ProviderSelection:
        provider = getattr(config, "provider", None)
        requested = provider.value if isinstance(provider, Provider) else str(provider)
        support = SUPPORT.get(provider) if isinstance(provider, Provider) else None

        if support is Support.DIRECT:
            capability = self._storage_factory(provider, config.connection_url())
            logger.info("[storage] using %s storage", requested)
            return ProviderSelection(requested=requested, capability=capability)

        if support is Support.FALLBACK:
            warning = (
                f"{requested} storage is not fully supported yet; "
                f"accounts are stored in local SQLite ({self.sqlite_path})"
            )
        else:
            warning = f"Unknown provider '{requested}'; accounts are stored in local SQLite ({self.sqlite_path})"
        logger.warning("[storage] %s", warning)
        return ProviderSelection(requested=requested, capability=self.local_storage(), warning=warning)
