# firstrun/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from firstrun.config import settings
from firstrun.core.db import close_db
from firstrun.api.v1.deps import get_orchestrator
from firstrun.api.v1.routers import initialization

logger = logging.getLogger("uvicorn.error")

app = FastAPI(title=settings.APP_NAME)

# CORS (setup wizard frontend)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def on_startup():
    # Report where initialization stands; the wizard takes over if it hasn't run
    record = get_orchestrator().store.status()
    if record.is_initialized:
        logger.info("[init] application initialized (source=%s)", record.source)
    else:
        logger.warning("[init] application not initialized, POST /api/v1/initialization/initialize to set it up")

@app.on_event("shutdown")
async def on_shutdown():
    await close_db()

# REST
app.include_router(initialization.router, prefix="/api/v1")

@app.get("/healthz")
def healthz():
    return {"ok": True}
