"""
Initialization orchestration

Drives the one-way transition of a deployment from uninitialized to
initialized:

    UNINITIALIZED -> CONNECTION_VERIFIED -> STORAGE_PROVISIONED
                  -> ADMIN_CREATED -> PERSISTED

Any stage can end in FAILED(reason). Once the marker is persisted every
further call is a read-only status report, so the entry point can be
called repeatedly without creating a second administrator.

Storage side effects are not rolled back. Schema created before a failed
account creation stays in place, and an account created before a failed
marker write stays too; both are reported distinctly so the operator can
rerun (or reset) after fixing the cause.

The generated env file is the exception: it is restored from its backup
(or removed) when the run stops before the marker is written, since a
complete set of database variables on its own counts as initialized.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..core.errors import (
    AdminCreationError,
    AlreadyInitializedError,
    ConfigurationValidationError,
    DatabaseConnectionError,
    EnvironmentFileError,
    InitializationError,
    PersistenceError,
    SchemaInitializationError,
)
from ..core.security import hash_password, redact_url
from ..storage.base import AdminIdentity, NewUser, StorageCapability
from .connection_tester import ConnectionTester, ConnectionTestResult
from .database_configs import DatabaseConfigStore
from .env_file import EnvironmentFileManager, deployment_instructions
from .init_state import DatabaseRecord, InitializationRecord, InitializationStateStore, utcnow_iso
from .provider_selector import ProviderSelector
from .providers import Provider, ProviderConfig, build_provider_config

logger = logging.getLogger("uvicorn.error")


class Stage(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTION_VERIFIED = "connection-verified"
    STORAGE_PROVISIONED = "storage-provisioned"
    ADMIN_CREATED = "admin-created"
    PERSISTED = "persisted"
    FAILED = "failed"


@dataclass
class InitializationResult:
    success: bool
    admin_user: Optional[AdminIdentity] = None
    database: Optional[DatabaseRecord] = None
    env_generated: bool = False
    deployment_instructions: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    error: Optional[str] = None
    reason: Optional[str] = None  # failed stage, e.g. "connection" or "persist"
    stages: list[Stage] = field(default_factory=list)

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error, "reason": self.reason}
        return {
            "success": True,
            "adminUser": self.admin_user.to_dict(),
            "database": self.database.to_dict(),
            "envGenerated": self.env_generated,
            "deploymentInstructions": self.deployment_instructions,
            "warnings": self.warnings,
        }


class InitializationOrchestrator:
    """
    Parameters:
    - store: initialization state store (marker owner)
    - tester: connection verifier
    - selector: provider -> storage capability
    - env_files: local env file manager
    - config_store: optional backup store for networked configurations
    - hasher: password hashing function
    - max_attempts: connection attempts before giving up
    - default_sqlite_path: sqlite file when the request names none
    - lock_timeout: seconds to wait for a concurrent run to finish
    """

    def __init__(
        self,
        store: InitializationStateStore,
        tester: ConnectionTester,
        selector: ProviderSelector,
        env_files: EnvironmentFileManager,
        config_store: Optional[DatabaseConfigStore] = None,
        hasher: Callable[[str], str] = hash_password,
        max_attempts: int = 3,
        default_sqlite_path: str = "./data/app.db",
        lock_timeout: float = 30.0,
        app_port: int = 8000,
    ):
        self.store = store
        self.tester = tester
        self.selector = selector
        self.env_files = env_files
        self.config_store = config_store
        self.hasher = hasher
        self.max_attempts = max_attempts
        self.default_sqlite_path = default_sqlite_path
        self.lock_timeout = lock_timeout
        self.app_port = app_port

    async def test_database_connection(self, database, max_attempts: int = 1) -> ConnectionTestResult:
        """Verify a configuration without committing to it."""
        try:
            config = build_provider_config(database, self.default_sqlite_path)
        except ConfigurationValidationError as exc:
            return ConnectionTestResult(success=False, error=exc.message, error_type=exc.stage)
        return await self.tester.test_connection_with_retry(config, max_attempts)

    async def initialize(self, admin, database, timeout: Optional[float] = None) -> InitializationResult:
        """
        Provision storage and the administrator, then persist the marker.

        ``admin`` is an AdminSetupIn, ``database`` a DatabaseSetupIn. With a
        ``timeout`` the run is cancelled at the next suspension point once it
        expires; everything done up to then stays in place.
        """
        if timeout is None:
            return await self._initialize(admin, database)
        try:
            return await asyncio.wait_for(self._initialize(admin, database), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("[init] initialization timed out after %ss", timeout)
            return InitializationResult(
                success=False,
                error=(
                    f"Initialization timed out after {timeout:g}s. Storage may be partially "
                    "provisioned; check the database and rerun."
                ),
                reason="timeout",
                stages=[Stage.FAILED],
            )

    async def _initialize(self, admin, database) -> InitializationResult:
        if self.store.is_initialized():
            return self._already_initialized()
        try:
            async with self.store.provisioning_lock(timeout=self.lock_timeout):
                # another run may have finished while we waited
                if self.store.is_initialized():
                    return self._already_initialized()
                return await self._provision(admin, database)
        except InitializationError as exc:
            return self._failure(exc, [Stage.UNINITIALIZED])

    def _already_initialized(self) -> InitializationResult:
        logger.info("[init] already initialized, nothing to do")
        exc = AlreadyInitializedError("Application is already initialized")
        return InitializationResult(success=False, error=exc.message, reason=exc.stage)

    def _failure(self, exc: InitializationError, stages: list[Stage]) -> InitializationResult:
        logger.error("[init] initialization failed at %s: %s", exc.stage, exc.message)
        return InitializationResult(
            success=False,
            error=exc.message,
            reason=exc.stage,
            stages=stages + [Stage.FAILED],
        )

    async def _provision(self, admin, database) -> InitializationResult:
        stages = [Stage.UNINITIALIZED]
        warnings: list[str] = []
        capability: Optional[StorageCapability] = None
        env_backup: Optional[Path] = None
        env_generated = False
        persisted = False
        try:
            config = build_provider_config(database, self.default_sqlite_path)
            await self._verify_connection(config)
            stages.append(Stage.CONNECTION_VERIFIED)

            if database.generateEnvFile and not database.useExistingEnv:
                env_backup = self.env_files.generate(config)
                env_generated = True
            config_id = self._remember_config(config, warnings)

            selection = self.selector.select(config)
            capability = selection.capability
            if selection.warning:
                warnings.append(selection.warning)
            await self._initialize_schema(capability)
            stages.append(Stage.STORAGE_PROVISIONED)

            admin_user = await self._create_admin(capability, admin)
            stages.append(Stage.ADMIN_CREATED)

            db_record = DatabaseRecord(
                provider=config.provider.value,
                name=config.name,
                connection_string=redact_url(config.connection_url()),
                env_generated=env_generated,
                storage_provider=capability.provider.value,
                config_id=config_id,
            )
            record = InitializationRecord(
                is_initialized=True,
                admin_user=admin_user,
                database=db_record,
                deployment_context=self.store.resolver.resolve().to_dict(),
                created_at=utcnow_iso(),
            )
            self._persist(record)
            persisted = True
            stages.append(Stage.PERSISTED)
        except InitializationError as exc:
            return self._failure(exc, stages)
        finally:
            # a generated env file alone reads as a configured deployment
            if env_generated and not persisted:
                self._restore_env_file(env_backup)
            if capability is not None:
                await capability.close()

        logger.info("[init] initialized with %s storage, admin=%s", db_record.storage_provider, admin_user.username)
        return InitializationResult(
            success=True,
            admin_user=admin_user,
            database=db_record,
            env_generated=env_generated,
            deployment_instructions=deployment_instructions(config, env_generated, self.app_port),
            warnings=warnings,
            stages=stages,
        )

    async def _verify_connection(self, config: ProviderConfig) -> None:
        result = await self.tester.test_connection_with_retry(config, self.max_attempts)
        if result.success:
            return
        if result.is_configuration_error:
            errors = config.validate()
            if errors:
                raise ConfigurationValidationError(errors)
            raise ConfigurationValidationError([result.error or "invalid configuration"])
        raise DatabaseConnectionError(
            f"Database connection failed after {result.attempts} attempt(s): {result.error}"
        )

    def _restore_env_file(self, backup: Optional[Path]) -> None:
        try:
            self.env_files.restore(backup)
        except EnvironmentFileError as exc:
            logger.error("[init] could not roll back %s: %s", self.env_files.env_path, exc.message)

    def _remember_config(self, config: ProviderConfig, warnings: list[str]) -> Optional[str]:
        if self.config_store is None or config.provider is Provider.SQLITE:
            return None
        try:
            return self.config_store.add_from_config(config, activate=True).id
        except OSError as exc:
            # the backup store is auxiliary; the env file and marker remain authoritative
            message = f"Could not record configuration in {self.config_store.path}: {exc}"
            logger.warning("[init] %s", message)
            warnings.append(message)
            return None

    async def _initialize_schema(self, capability: StorageCapability) -> None:
        if not capability.requires_schema_setup:
            return
        try:
            await capability.initialize_schema()
        except InitializationError:
            raise
        except Exception as exc:
            raise SchemaInitializationError(f"Schema initialization failed: {exc}") from exc

    async def _create_admin(self, capability: StorageCapability, admin) -> AdminIdentity:
        new_user = NewUser(
            username=admin.username,
            email=admin.email,
            password_hash=self.hasher(admin.password),
            first_name=admin.firstName,
            last_name=admin.lastName,
            role="admin",
            is_active=True,
            is_email_verified=True,
        )
        try:
            return await capability.create_user(new_user)
        except InitializationError:
            raise
        except Exception as exc:
            raise AdminCreationError(f"Administrator account could not be created: {exc}") from exc

    def _persist(self, record: InitializationRecord) -> None:
        try:
            self.store.persist(record)
        except PersistenceError as exc:
            raise PersistenceError(
                f"Administrator '{record.admin_user.username}' was created but the initialization "
                f"marker was not written ({exc.message}). Reset or remove the account before rerunning."
            ) from exc
        except AlreadyInitializedError as exc:
            raise PersistenceError(
                f"Administrator '{record.admin_user.username}' was created but another run already "
                f"recorded initialization ({exc.message})."
            ) from exc
