# firstrun/api/v1/deps.py
from functools import lru_cache

from fastapi import Depends, HTTPException, status

from firstrun.config import settings
from firstrun.services.connection_tester import ConnectionTester
from firstrun.services.database_configs import DatabaseConfigStore
from firstrun.services.deployment_context import DeploymentContextResolver
from firstrun.services.env_file import EnvironmentFileManager
from firstrun.services.init_state import InitializationStateStore
from firstrun.services.initialization import InitializationOrchestrator
from firstrun.services.provider_selector import ProviderSelector


@lru_cache
def get_orchestrator() -> InitializationOrchestrator:
    """
    FastAPI dependency returning the process-wide orchestrator.

    Everything is wired from ``settings`` once. Tests replace this
    dependency through ``app.dependency_overrides``.
    """
    env_files = EnvironmentFileManager(settings.env_file_path, app_port=settings.port)
    resolver = DeploymentContextResolver(settings.env_file_path)
    store = InitializationStateStore(settings.initialization_path, resolver, env_files)
    tester = ConnectionTester(
        required_tables=settings.required_tables,
        backoff_base_ms=settings.connection_backoff_base_ms,
        backoff_cap_ms=settings.connection_backoff_cap_ms,
    )
    return InitializationOrchestrator(
        store=store,
        tester=tester,
        selector=ProviderSelector(settings.sqlite_database_path),
        env_files=env_files,
        config_store=DatabaseConfigStore(settings.database_configs_path),
        max_attempts=settings.connection_max_attempts,
        default_sqlite_path=settings.sqlite_database_path,
        lock_timeout=settings.lock_timeout_seconds,
        app_port=settings.port,
    )


def get_state_store(orchestrator: InitializationOrchestrator = Depends(get_orchestrator)) -> InitializationStateStore:
    return orchestrator.store


def require_reset_allowed() -> None:
    """
    Reset deletes the marker, so it is refused in production unless
    ALLOW_RESET is set.

    Raises:
        HTTPException (403): RESET_DISABLED
    """
    if not settings.allow_reset:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="RESET_DISABLED")
