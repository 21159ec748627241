"""
Backup configuration store

Ordered collection of named provider configurations kept in
``./data/database-configs.json`` with exactly one entry active at a time.
Configurations found in the environment are synthesized on load, take
precedence over the file and are never written back to it.
"""
import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from ..core.fileio import atomic_write_text
from ..core.security import redact_url
from .init_state import utcnow_iso
from .providers import Provider, ProviderConfig

logger = logging.getLogger("uvicorn.error")

ENV_SUPABASE_ID = "env-supabase"
ENV_DATABASE_URL_ID = "env-database-url"


@dataclass
class StoredDatabaseConfig:
    id: str
    name: str
    provider: str
    connection_string: Optional[str] = None
    is_active: bool = False
    source: str = "file"  # "file" or "environment"
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)

    def to_dict(self, redact: bool = False) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "connectionString": redact_url(self.connection_string) if redact else self.connection_string,
            "isActive": self.is_active,
            "source": self.source,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StoredDatabaseConfig":
        return cls(
            id=data["id"],
            name=data["name"],
            provider=data["provider"],
            connection_string=data.get("connectionString"),
            is_active=bool(data.get("isActive", False)),
            created_at=data.get("createdAt") or utcnow_iso(),
            updated_at=data.get("updatedAt") or utcnow_iso(),
        )


class DatabaseConfigStore:
    def __init__(self, path: Path, environ: Optional[Mapping[str, str]] = None):
        self.path = Path(path)
        self._environ = environ
        self._entries: dict[str, StoredDatabaseConfig] = {}
        self.load()

    def load(self) -> None:
        self._entries = {}
        for entry in self._from_environment():
            self._entries[entry.id] = entry

        if self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                for item in data:
                    entry = StoredDatabaseConfig.from_dict(item)
                    self._entries.setdefault(entry.id, entry)
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.warning("[configs] failed to load %s: %s", self.path, exc)

        env_active = [e for e in self._entries.values() if e.source == "environment"]
        if env_active:
            for entry in self._entries.values():
                entry.is_active = entry.id == env_active[0].id

    def _from_environment(self) -> list[StoredDatabaseConfig]:
        env = os.environ if self._environ is None else self._environ
        entries = []
        if env.get("SUPABASE_URL") and env.get("SUPABASE_ANON_KEY") and env.get("SUPABASE_SERVICE_KEY"):
            entries.append(StoredDatabaseConfig(
                id=ENV_SUPABASE_ID,
                name="Environment Supabase",
                provider=Provider.SUPABASE.value,
                connection_string=env["SUPABASE_URL"],
                is_active=True,
                source="environment",
            ))
        if env.get("DATABASE_URL"):
            scheme = env["DATABASE_URL"].split("://", 1)[0]
            provider = Provider.MYSQL if scheme == "mysql" else Provider.POSTGRESQL
            entries.append(StoredDatabaseConfig(
                id=ENV_DATABASE_URL_ID,
                name=f"Environment {provider.value}",
                provider=provider.value,
                connection_string=env["DATABASE_URL"],
                is_active=not entries,
                source="environment",
            ))
        return entries

    def _save(self) -> None:
        payload = [e.to_dict() for e in self._entries.values() if e.source == "file"]
        atomic_write_text(self.path, json.dumps(payload, indent=2), mode=0o600)

    def all(self) -> list[StoredDatabaseConfig]:
        return list(self._entries.values())

    def get(self, config_id: str) -> Optional[StoredDatabaseConfig]:
        return self._entries.get(config_id)

    def active(self) -> Optional[StoredDatabaseConfig]:
        return next((e for e in self._entries.values() if e.is_active), None)

    def save(self, entry: StoredDatabaseConfig) -> StoredDatabaseConfig:
        if entry.source != "file":
            raise ValueError("environment configurations cannot be saved")
        entry.updated_at = utcnow_iso()
        self._entries[entry.id] = entry
        if entry.is_active:
            self._deactivate_others(entry.id)
        self._save()
        return entry

    def delete(self, config_id: str) -> bool:
        entry = self._entries.get(config_id)
        if entry is None or entry.source != "file":
            return False
        del self._entries[config_id]
        self._save()
        return True

    def activate(self, config_id: str) -> StoredDatabaseConfig:
        entry = self._entries.get(config_id)
        if entry is None:
            raise KeyError(config_id)
        entry.is_active = True
        entry.updated_at = utcnow_iso()
        self._deactivate_others(config_id)
        self._save()
        return entry

    def _deactivate_others(self, config_id: str) -> None:
        for other in self._entries.values():
            if other.id != config_id:
                other.is_active = False

    def add_from_config(self, config: ProviderConfig, activate: bool = True) -> StoredDatabaseConfig:
        """Record a verified provider configuration and (by default) make it active."""
        entry = StoredDatabaseConfig(
            id=uuid.uuid4().hex,
            name=config.name,
            provider=config.provider.value,
            connection_string=config.connection_url(),
            is_active=activate,
        )
        return self.save(entry)
