# firstrun/api/v1/routers/initialization.py
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status

from firstrun.api.v1.deps import get_orchestrator, get_state_store, require_reset_allowed
from firstrun.config import settings
from firstrun.core.errors import InitializationError
from firstrun.schemas.initialization import ConnectionCheckIn, InitializeIn, ResetIn
from firstrun.services.init_state import InitializationStateStore
from firstrun.services.initialization import InitializationOrchestrator
from firstrun.services.providers import Provider, recommendations

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/initialization", tags=["initialization"])

# failure reasons that are conflicts with state, not bad input
_CONFLICTS = {
    "already-initialized": "ALREADY_INITIALIZED",
    "busy": "INITIALIZATION_IN_PROGRESS",
}


@router.get("/status")
async def get_status(store: InitializationStateStore = Depends(get_state_store)):
    """
    Report whether the application is initialized.

    Safe to poll: failures degrade to ``isInitialized: false``.

    Returns:
        dict: ``{"success": True, "data": InitializationRecord}`` plus the
        name of the check that decided (``marker``, ``environment`` or ``none``)
    """
    record = store.status()
    data = record.to_dict()
    data["source"] = record.source
    return {"success": True, "data": data}


@router.get("/context")
async def get_context(store: InitializationStateStore = Depends(get_state_store)):
    """Deployment context and per-provider setup hints for the wizard."""
    context = store.resolver.resolve()
    hints = {
        p.value: asdict(recommendations(p.value, context.is_containerized))
        for p in Provider
    }
    return {"success": True, "data": {"context": context.to_dict(), "recommendations": hints}}


@router.post("/test-connection")
async def test_connection(
    body: ConnectionCheckIn,
    orchestrator: InitializationOrchestrator = Depends(get_orchestrator),
):
    """
    Verify a database configuration without saving anything.

    Missing tables are reported in ``schemaStatus``/``missingTables`` and do
    not make the test fail.
    """
    result = await orchestrator.test_database_connection(body, max_attempts=body.maxAttempts)
    return {"success": result.success, "data": result.to_dict()}


@router.post("/initialize")
async def initialize(
    body: InitializeIn,
    orchestrator: InitializationOrchestrator = Depends(get_orchestrator),
):
    """
    Run first-time initialization.

    Every provisioning failure comes back as HTTP 200 with
    ``{success: False, error, reason}``. The two exceptions are
    ``already-initialized`` and ``busy``: those are conflicts with server
    state rather than a failed run, so they are raised as 409 with
    ``detail.code`` set and no result body.

    Returns:
        dict: ``{success, adminUser, database, envGenerated,
        deploymentInstructions, warnings}`` or ``{success: False, error, reason}``

    Raises:
        HTTPException (409): ALREADY_INITIALIZED / INITIALIZATION_IN_PROGRESS
    """
    result = await orchestrator.initialize(
        body.admin, body.database, timeout=settings.initialization_timeout_seconds
    )
    if not result.success and result.reason in _CONFLICTS:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": _CONFLICTS[result.reason], "message": result.error},
        )
    return result.to_dict()


@router.post("/reset", dependencies=[Depends(require_reset_allowed)])
async def reset(
    body: ResetIn | None = None,
    store: InitializationStateStore = Depends(get_state_store),
):
    """
    Remove the initialization marker (development / test only).

    Any local env file is backed up first; it is removed only when
    ``removeEnvFile`` is true.
    """
    try:
        result = store.reset(remove_env_file=bool(body and body.removeEnvFile))
    except InitializationError as exc:
        logger.error("[init] reset failed: %s", exc.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": "RESET_FAILED", "message": exc.message},
        )
    return {"success": True, "data": result.to_dict()}


@router.get("/database-configs")
async def list_database_configs(orchestrator: InitializationOrchestrator = Depends(get_orchestrator)):
    """Stored provider configurations with credentials redacted."""
    store = orchestrator.config_store
    items = [entry.to_dict(redact=True) for entry in store.all()] if store else []
    return {"success": True, "items": items}
