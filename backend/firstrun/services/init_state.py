"""
Initialization state store

Sole owner of the marker file that records a completed initialization.

``is_initialized`` is an ordered list of named checks. Each check answers
yes, no or unknown and the first definitive answer wins:

1. environment: a detected provider whose variables validate means the
   deployment is configured externally and no marker will ever exist
2. marker: the persisted record; missing or malformed means "no"

Status queries never raise. Writes go to a temporary file that is renamed
over the marker, so readers see either the old or the new record.
"""
import asyncio
import fcntl
import json
import logging
import os
import time
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..core.errors import AlreadyInitializedError, PersistenceError, ProvisioningInProgressError
from ..core.fileio import atomic_write_text
from ..storage.base import AdminIdentity
from .deployment_context import DeploymentContext, DeploymentContextResolver
from .env_file import EnvironmentFileManager

logger = logging.getLogger("uvicorn.error")


class Verdict(str, Enum):
    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"


@dataclass
class DatabaseRecord:
    provider: str  # provider the operator asked for
    name: str
    connection_string: Optional[str]  # redacted
    env_generated: bool
    storage_provider: Optional[str] = None  # provider actually holding accounts
    config_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "name": self.name,
            "connectionString": self.connection_string,
            "envGenerated": self.env_generated,
            "storageProvider": self.storage_provider,
            "configId": self.config_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DatabaseRecord":
        return cls(
            provider=data["provider"],
            name=data["name"],
            connection_string=data.get("connectionString"),
            env_generated=bool(data.get("envGenerated", False)),
            storage_provider=data.get("storageProvider"),
            config_id=data.get("configId"),
        )


@dataclass
class InitializationRecord:
    is_initialized: bool
    admin_user: Optional[AdminIdentity] = None
    database: Optional[DatabaseRecord] = None
    deployment_context: dict = field(default_factory=dict)
    created_at: Optional[str] = None
    source: str = "marker"  # where the answer came from: marker, environment or none

    @classmethod
    def uninitialized(cls, context: Optional[DeploymentContext] = None) -> "InitializationRecord":
        return cls(is_initialized=False, deployment_context=context.to_dict() if context else {}, source="none")

    def to_dict(self) -> dict:
        return {
            "isInitialized": self.is_initialized,
            "adminUser": self.admin_user.to_dict() if self.admin_user else None,
            "database": self.database.to_dict() if self.database else None,
            "deploymentContext": self.deployment_context,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InitializationRecord":
        """
        Raises ValueError when an initialized record lacks required fields.
        """
        if not isinstance(data, dict):
            raise ValueError("marker must contain a JSON object")
        is_initialized = data.get("isInitialized") is True
        admin = data.get("adminUser")
        database = data.get("database")
        if is_initialized and not (admin and database and data.get("createdAt")):
            raise ValueError("initialized marker is missing adminUser, database or createdAt")
        return cls(
            is_initialized=is_initialized,
            admin_user=AdminIdentity.from_dict(admin) if admin else None,
            database=DatabaseRecord.from_dict(database) if database else None,
            deployment_context=data.get("deploymentContext") or {},
            created_at=data.get("createdAt"),
        )


@dataclass
class ResetResult:
    marker_removed: bool
    env_backup: Optional[str] = None
    env_removed: bool = False

    def to_dict(self) -> dict:
        return {"markerRemoved": self.marker_removed, "envBackup": self.env_backup, "envRemoved": self.env_removed}


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InitializationStateStore:
    """
    Parameters:
    - marker_path: the initialization marker (./data/initialization.json)
    - resolver: deployment context resolver for the environment check
    - env_files: manager of the local env file, used for reset backups
    """

    def __init__(self, marker_path: Path, resolver: DeploymentContextResolver, env_files: EnvironmentFileManager):
        self.path = Path(marker_path)
        self.resolver = resolver
        self.env_files = env_files
        self.checks: list[tuple[str, Callable[[], Verdict]]] = [
            ("environment", self._environment_check),
            ("marker", self._marker_check),
        ]

    # ----- reads -----

    def _read_marker(self) -> Optional[InitializationRecord]:
        if not self.path.exists():
            return None
        try:
            return InitializationRecord.from_dict(json.loads(self.path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("[marker] ignoring unreadable marker %s: %s", self.path, exc)
            return None

    def _environment_check(self) -> Verdict:
        return Verdict.YES if self.resolver.resolve().has_valid_provider else Verdict.UNKNOWN

    def _marker_check(self) -> Verdict:
        record = self._read_marker()
        return Verdict.YES if record and record.is_initialized else Verdict.NO

    def decide(self) -> tuple[bool, str]:
        """Run the checks in order; returns (initialized, name of deciding check)."""
        for name, check in self.checks:
            try:
                verdict = check()
            except Exception:
                logger.exception("[marker] %s check failed, treating as unknown", name)
                verdict = Verdict.UNKNOWN
            if verdict is not Verdict.UNKNOWN:
                return verdict is Verdict.YES, name
        return False, "none"

    def is_initialized(self) -> bool:
        return self.decide()[0]

    def status(self) -> InitializationRecord:
        """Marker record, environment-derived record, or an uninitialized stub. Never raises."""
        try:
            context = self.resolver.resolve()
        except Exception:
            logger.exception("[marker] deployment context unavailable")
            context = None
        try:
            initialized, source = self.decide()
            if not initialized:
                return InitializationRecord.uninitialized(context)
            record = self._read_marker()
            if record and record.is_initialized:
                return record
            # configured purely through the environment
            return InitializationRecord(
                is_initialized=True,
                database=DatabaseRecord(
                    provider=context.detected_provider.value,
                    name="Environment configuration",
                    connection_string=None,
                    env_generated=False,
                ) if context and context.detected_provider else None,
                deployment_context=context.to_dict() if context else {},
                source=source,
            )
        except Exception:
            logger.exception("[marker] status query failed")
            return InitializationRecord.uninitialized(context)

    # ----- writes -----

    @contextmanager
    def _write_lock(self):
        lock_path = self.path.with_name(self.path.name + ".lock")
        fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def persist(self, record: InitializationRecord) -> None:
        """
        Atomically write ``record`` as the marker.

        Raises:
            AlreadyInitializedError: an initialized marker is already present
            PersistenceError: the marker could not be written
        """
        payload = json.dumps(record.to_dict(), indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._write_lock():
                current = self._read_marker()
                if current and current.is_initialized:
                    raise AlreadyInitializedError(f"{self.path} already records a completed initialization")
                atomic_write_text(self.path, payload)
        except OSError as exc:
            raise PersistenceError(f"Failed to write initialization marker {self.path}: {exc}") from exc
        logger.info("[marker] initialization recorded in %s", self.path)

    @asynccontextmanager
    async def provisioning_lock(self, timeout: float = 30.0, poll_interval: float = 0.1):
        """
        Exclusive lock held for a whole provisioning run.

        Polls a non-blocking flock so waiting never blocks the event loop.
        Raises ProvisioningInProgressError after ``timeout`` seconds.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lock_path = self.path.with_name(self.path.name + ".provision.lock")
        fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o600)
        deadline = time.monotonic() + timeout
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        raise ProvisioningInProgressError("Another initialization is already in progress")
                    await asyncio.sleep(poll_interval)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def reset(self, remove_env_file: bool = False) -> ResetResult:
        """
        Remove the marker. Development/test escape hatch.

        The local env file is always backed up before anything is removed;
        if the backup fails nothing is touched.
        """
        backup = self.env_files.backup()
        marker_removed = self.path.exists()
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to remove initialization marker {self.path}: {exc}") from exc

        env_removed = False
        if remove_env_file and backup is not None:
            self.env_files.remove()
            env_removed = True
        logger.warning("[marker] initialization reset (marker_removed=%s env_backup=%s env_removed=%s)",
                       marker_removed, backup, env_removed)
        return ResetResult(marker_removed=marker_removed, env_backup=str(backup) if backup else None,
                           env_removed=env_removed)
