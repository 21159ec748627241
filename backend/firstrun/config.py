# firstrun/config.py
import os
from pathlib import Path
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

_DATA_DIR = os.getenv("FIRSTRUN_DATA_DIR", "./data")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "First-Run Initialization API"
    env: str = os.getenv("ENV", "dev")

    # Host & Port settings
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))

    # CORS origins for the setup wizard frontend
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Local state files (marker, backup config store, generated env file)
    initialization_path: Path = Path(_DATA_DIR) / "initialization.json"
    database_configs_path: Path = Path(_DATA_DIR) / "database-configs.json"
    env_file_path: Path = Path(os.getenv("FIRSTRUN_ENV_FILE", "./.env"))

    # Local-file storage used for sqlite and for provider fallback
    sqlite_database_path: str = os.getenv("SQLITE_DATABASE_PATH", f"{_DATA_DIR}/app.db")

    # Connection verification
    connection_max_attempts: int = int(os.getenv("CONNECTION_MAX_ATTEMPTS", "3"))
    connection_backoff_base_ms: int = int(os.getenv("CONNECTION_BACKOFF_BASE_MS", "1000"))
    connection_backoff_cap_ms: int = int(os.getenv("CONNECTION_BACKOFF_CAP_MS", "5000"))
    # Tables the application expects once schema has been applied
    required_tables: list[str] = ["users"]

    # Orchestration limits
    initialization_timeout_seconds: float = float(os.getenv("INITIALIZATION_TIMEOUT_SECONDS", "120"))
    lock_timeout_seconds: float = float(os.getenv("LOCK_TIMEOUT_SECONDS", "30"))

    # ⚠️ Reset is destructive, only allowed outside production unless forced
    allow_reset: bool = _flag("ALLOW_RESET", "false" if os.getenv("ENV", "dev") == "production" else "true")

settings = Settings()  # Instantiate configuration
