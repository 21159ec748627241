import pytest

from firstrun.config import settings


pytestmark = pytest.mark.asyncio

ADMIN = {
    "username": "admin",
    "email": "admin@example.com",
    "password": "Sup3rSecret!",
    "confirmPassword": "Sup3rSecret!",
    "firstName": "Ada",
    "lastName": "Admin",
}


async def initialize(client, database=None, admin=None):
    return await client.post(
        "/api/v1/initialization/initialize",
        json={"admin": admin or ADMIN, "database": database or {"provider": "sqlite"}},
    )


async def test_health(client):
    resp = await client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


async def test_initialize_then_status_then_conflict(client):
    status_resp = await client.get("/api/v1/initialization/status")
    assert status_resp.status_code == 200
    assert status_resp.json()["data"]["isInitialized"] is False
    assert status_resp.json()["data"]["source"] == "none"

    init_resp = await initialize(client)
    body = init_resp.json()
    assert init_resp.status_code == 200
    assert body["success"] is True
    assert body["adminUser"]["username"] == "admin"
    assert body["database"]["storageProvider"] == "sqlite"
    assert body["envGenerated"] is True
    assert "Deployment Instructions" in body["deploymentInstructions"]
    assert "error" not in body

    status_resp = await client.get("/api/v1/initialization/status")
    data = status_resp.json()["data"]
    assert data["isInitialized"] is True
    assert data["source"] == "marker"
    assert data["adminUser"]["email"] == "admin@example.com"

    again = await initialize(client)
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "ALREADY_INITIALIZED"


async def test_initialize_while_another_run_holds_the_lock(client, harness):
    async with harness.store.provisioning_lock():
        resp = await initialize(client)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "INITIALIZATION_IN_PROGRESS"
    assert harness.store.is_initialized() is False


async def test_initialize_failure_is_structured(client):
    resp = await initialize(client, database={"provider": "postgresql", "host": "db"})
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is False
    assert body["reason"] == "configuration"
    assert "adminUser" not in body


async def test_initialize_rejects_mismatched_passwords(client):
    resp = await initialize(client, admin={**ADMIN, "confirmPassword": "different"})
    assert resp.status_code == 422


async def test_initialize_rejects_short_username(client):
    resp = await initialize(client, admin={**ADMIN, "username": "ab"})
    assert resp.status_code == 422


async def test_test_connection(client):
    resp = await client.post(
        "/api/v1/initialization/test-connection",
        json={"provider": "sqlite", "maxAttempts": 2},
    )
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["data"]["schemaStatus"] == "ok"
    assert body["data"]["attempts"] == 1


async def test_test_connection_invalid_config(client):
    resp = await client.post(
        "/api/v1/initialization/test-connection",
        json={"provider": "neon"},
    )
    body = resp.json()
    assert body["success"] is False
    assert body["data"]["errorType"] == "configuration"


async def test_context_lists_recommendations(client):
    resp = await client.get("/api/v1/initialization/context")
    data = resp.json()["data"]
    assert data["context"]["detectedProvider"] is None
    assert set(data["recommendations"]) == {"supabase", "neon", "planetscale", "postgresql", "mysql", "sqlite"}
    assert data["recommendations"]["sqlite"]["title"] == "SQLite Setup"


async def test_reset_flow(client, harness, monkeypatch):
    monkeypatch.setattr(settings, "allow_reset", True)
    await initialize(client)
    assert harness.store.is_initialized() is True

    resp = await client.post("/api/v1/initialization/reset", json={"removeEnvFile": False})
    body = resp.json()
    assert resp.status_code == 200
    assert body["data"]["markerRemoved"] is True
    assert body["data"]["envBackup"] is not None
    assert harness.env_path.exists()
    assert harness.store.is_initialized() is False


async def test_reset_disabled(client, harness, monkeypatch):
    monkeypatch.setattr(settings, "allow_reset", False)
    await initialize(client)

    resp = await client.post("/api/v1/initialization/reset")
    assert resp.status_code == 403
    assert resp.json()["detail"] == "RESET_DISABLED"
    assert harness.store.is_initialized() is True


async def test_database_configs_are_redacted(client):
    database = {"provider": "postgresql", "connectionString": "postgresql://app:s3cret@db:5432/app", "ssl": False}
    init_resp = await initialize(client, database=database)
    assert init_resp.json()["success"] is True

    resp = await client.get("/api/v1/initialization/database-configs")
    items = resp.json()["items"]
    assert len(items) == 1
    assert items[0]["connectionString"] == "postgresql://app:***@db:5432/app"
    assert items[0]["isActive"] is True
