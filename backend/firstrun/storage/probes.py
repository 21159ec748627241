"""
Connectivity probes

Low level checks the connection verifier runs against a candidate
provider: open a connection and report the server version, and list the
tables that already exist. Probes never keep a connection open.
"""
import importlib
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from tortoise.backends.base.client import BaseDBAsyncClient
from tortoise.backends.base.config_generator import expand_db_url

from ..core.db import sqlite_file_path, to_tortoise_url
from ..services.providers import Provider, ProviderConfig


class DatabaseProbe(ABC):
    """Probe Abstract Base Class"""

    @abstractmethod
    async def ping(self, config: ProviderConfig) -> str:
        """Connect once and return the server version string"""
        pass

    @abstractmethod
    async def list_tables(self, config: ProviderConfig) -> set[str]:
        """Names of tables that exist in the target database"""
        pass


class SqlProbe(DatabaseProbe):
    """
    Probe through a raw Tortoise backend client.

    Works for every engine Tortoise ships (sqlite, asyncpg, mysql). A missing
    driver package surfaces as an ordinary connection failure.
    """

    VERSION_QUERIES = {
        "sqlite": "SELECT sqlite_version() AS version",
        "postgres": "SELECT version() AS version",
        "mysql": "SELECT VERSION() AS version",
    }
    TABLE_QUERIES = {
        "sqlite": "SELECT name AS table_name FROM sqlite_master WHERE type = 'table'",
        "postgres": "SELECT table_name FROM information_schema.tables WHERE table_schema = 'public'",
        "mysql": "SELECT table_name AS table_name FROM information_schema.tables WHERE table_schema = DATABASE()",
    }

    @asynccontextmanager
    async def _connect(self, config: ProviderConfig) -> AsyncIterator[BaseDBAsyncClient]:
        url = config.connection_url()
        db_file = sqlite_file_path(url)
        if db_file is not None:
            db_file.parent.mkdir(parents=True, exist_ok=True)

        db_info = expand_db_url(to_tortoise_url(url))
        engine = importlib.import_module(db_info["engine"])
        credentials = dict(db_info["credentials"])
        credentials["connection_name"] = "probe"
        client = engine.client_class(**credentials)
        await client.create_connection(with_db=True)
        try:
            yield client
        finally:
            await client.close()

    async def ping(self, config: ProviderConfig) -> str:
        async with self._connect(config) as client:
            dialect = client.capabilities.dialect
            rows = await client.execute_query_dict(self.VERSION_QUERIES[dialect])
        return str(rows[0]["version"]) if rows else "Unknown"

    async def list_tables(self, config: ProviderConfig) -> set[str]:
        async with self._connect(config) as client:
            dialect = client.capabilities.dialect
            rows = await client.execute_query_dict(self.TABLE_QUERIES[dialect])
        # MySQL 8 returns TABLE_NAME regardless of the alias case on some servers
        return {str(row.get("table_name") or row.get("TABLE_NAME")) for row in rows}


class SupabaseProbe(DatabaseProbe):
    """Probe the PostgREST endpoint of a Supabase project with the service role key."""

    def __init__(self, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport

    def _client(self, config: ProviderConfig) -> httpx.AsyncClient:
        headers = {
            "apikey": config.service_key,
            "Authorization": f"Bearer {config.service_key}",
        }
        return httpx.AsyncClient(
            base_url=f"{config.connection_url()}/rest/v1",
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _openapi(self, config: ProviderConfig) -> dict:
        async with self._client(config) as client:
            resp = await client.get("/")
            resp.raise_for_status()
            return resp.json()

    async def ping(self, config: ProviderConfig) -> str:
        spec = await self._openapi(config)
        version = (spec.get("info") or {}).get("version", "")
        return f"PostgreSQL (Supabase) {version}".strip()

    async def list_tables(self, config: ProviderConfig) -> set[str]:
        spec = await self._openapi(config)
        # every exposed table appears as "/<table>" in the OpenAPI paths
        return {path.strip("/") for path in (spec.get("paths") or {}) if path.strip("/") and "/" not in path.strip("/")}


def default_probes() -> dict[Provider, DatabaseProbe]:
    sql = SqlProbe()
    return {
        Provider.SQLITE: sql,
        Provider.POSTGRESQL: sql,
        Provider.NEON: sql,
        Provider.MYSQL: sql,
        Provider.PLANETSCALE: sql,
        Provider.SUPABASE: SupabaseProbe(),
    }
