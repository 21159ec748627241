"""
Local environment file management

Generates the ``.env`` file that lets later runs find the chosen database,
and keeps timestamped backups so credentials are never overwritten or
deleted without a copy.
"""
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values

from ..core.errors import EnvironmentFileError
from ..core.fileio import atomic_write_text
from ..core.security import generate_session_secret
from .providers import (
    MysqlConfig,
    PostgresConfig,
    Provider,
    ProviderConfig,
    SqliteConfig,
    SupabaseConfig,
)

logger = logging.getLogger("uvicorn.error")

APP_KEYS = ("ENV", "PORT", "SESSION_SECRET")
DATABASE_KEYS = (
    "SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_KEY",
    "DATABASE_URL",
    "POSTGRES_HOST", "POSTGRES_PORT", "POSTGRES_DB", "POSTGRES_USER", "POSTGRES_PASSWORD",
    "MYSQL_HOST", "MYSQL_PORT", "MYSQL_DATABASE", "MYSQL_USER", "MYSQL_PASSWORD",
    "SQLITE_DATABASE_PATH",
)


def provider_env(config: ProviderConfig) -> dict[str, str]:
    """Database variables a generated env file carries for ``config``."""
    if isinstance(config, SupabaseConfig):
        return {
            "SUPABASE_URL": config.url or "",
            "SUPABASE_ANON_KEY": config.anon_key or "",
            "SUPABASE_SERVICE_KEY": config.service_key or "",
        }
    if isinstance(config, SqliteConfig):
        return {"SQLITE_DATABASE_PATH": config.path}

    env = {"DATABASE_URL": config.connection_url()}
    if config.connection_string:
        return env
    if isinstance(config, MysqlConfig):
        env.update({
            "MYSQL_HOST": config.host or "",
            "MYSQL_PORT": str(config.port or config.default_port),
            "MYSQL_DATABASE": config.database or "",
            "MYSQL_USER": config.username or "",
            "MYSQL_PASSWORD": config.password or "",
        })
    elif isinstance(config, PostgresConfig):
        env.update({
            "POSTGRES_HOST": config.host or "",
            "POSTGRES_PORT": str(config.port or config.default_port),
            "POSTGRES_DB": config.database or "",
            "POSTGRES_USER": config.username or "",
            "POSTGRES_PASSWORD": config.password or "",
        })
    return env


def _format_value(value: str) -> str:
    if value and any(c in value for c in " #\"'"):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return value


class EnvironmentFileManager:
    def __init__(self, env_path: Path, app_port: int = 8000):
        self.env_path = Path(env_path)
        self.app_port = app_port

    def exists(self) -> bool:
        return self.env_path.is_file()

    def read(self) -> dict[str, str]:
        if not self.exists():
            return {}
        return {k: v for k, v in dotenv_values(self.env_path).items() if v is not None}

    def backup(self) -> Optional[Path]:
        """
        Copy the env file to ``<name>.backup.<timestamp>`` next to it.

        Returns the backup path, or None when there is no env file.
        Raises EnvironmentFileError if the copy fails.
        """
        if not self.exists():
            return None
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        backup_path = self.env_path.with_name(f"{self.env_path.name}.backup.{stamp}")
        n = 1
        while backup_path.exists():
            backup_path = self.env_path.with_name(f"{self.env_path.name}.backup.{stamp}.{n}")
            n += 1
        try:
            shutil.copy2(self.env_path, backup_path)
        except OSError as exc:
            raise EnvironmentFileError(f"Failed to back up {self.env_path}: {exc}") from exc
        logger.info("[env] backed up %s to %s", self.env_path, backup_path)
        return backup_path

    def generate(self, config: ProviderConfig) -> Optional[Path]:
        """
        Write an env file for ``config``, keeping unrelated existing variables.

        Any existing file is backed up first. Returns the backup path (if any).
        """
        existing = self.read()
        backup_path = self.backup()

        variables = {
            "ENV": existing.get("ENV", "production"),
            "PORT": existing.get("PORT", str(self.app_port)),
            # keep an existing secret so live sessions survive regeneration
            "SESSION_SECRET": existing.get("SESSION_SECRET") or generate_session_secret(),
        }
        others = {k: v for k, v in existing.items() if k not in APP_KEYS and k not in DATABASE_KEYS}
        content = self.render(variables, provider_env(config), others, config.provider)

        try:
            atomic_write_text(self.env_path, content, mode=0o600)
        except OSError as exc:
            raise EnvironmentFileError(f"Failed to write {self.env_path}: {exc}") from exc
        logger.info("[env] generated %s for %s provider", self.env_path, config.provider.value)
        return backup_path

    @staticmethod
    def render(app_vars: dict[str, str], db_vars: dict[str, str], others: dict[str, str], provider: Provider) -> str:
        lines = [
            "# Environment configuration",
            f"# Generated on: {datetime.now(timezone.utc).isoformat()}",
            f"# Database Provider: {provider.value.upper()}",
            "",
            "# Application Configuration",
        ]
        lines += [f"{k}={_format_value(v)}" for k, v in app_vars.items()]
        lines += ["", "# Database Configuration"]
        lines += [f"{k}={_format_value(v)}" for k, v in db_vars.items()]
        if others:
            lines += ["", "# Other Configuration"]
            lines += [f"{k}={_format_value(v)}" for k, v in others.items()]
        lines.append("")
        return "\n".join(lines)

    def restore(self, backup_path: Optional[Path]) -> None:
        """
        Undo ``generate``: copy ``backup_path`` back over the env file, or
        remove the file when there was none before.

        Raises EnvironmentFileError if the env file could not be restored.
        """
        if backup_path is None:
            self.remove()
            logger.info("[env] removed generated %s", self.env_path)
            return
        try:
            atomic_write_text(self.env_path, Path(backup_path).read_text(encoding="utf-8"), mode=0o600)
        except OSError as exc:
            raise EnvironmentFileError(f"Failed to restore {self.env_path} from {backup_path}: {exc}") from exc
        logger.info("[env] restored %s from %s", self.env_path, backup_path)

    def remove(self) -> None:
        try:
            self.env_path.unlink(missing_ok=True)
        except OSError as exc:
            raise EnvironmentFileError(f"Failed to remove {self.env_path}: {exc}") from exc


_PROVIDER_NOTES = {
    Provider.SUPABASE: [
        "## Supabase Notes",
        "- Accounts are kept in local SQLite until Supabase storage is supported",
        "- Keep the service role key out of client-side code",
    ],
    Provider.NEON: [
        "## Neon Database Notes",
        "- Ensure your Neon database is running",
        "- Tables are created automatically on first run",
        "- Connection pooling is handled by Neon",
    ],
    Provider.PLANETSCALE: [
        "## PlanetScale Notes",
        "- Accounts are kept in local SQLite until MySQL storage is supported",
        "- Consider using PlanetScale branching for schema changes",
    ],
    Provider.POSTGRESQL: [
        "## PostgreSQL Notes",
        "- Ensure PostgreSQL server is running and accessible",
        "- Database and user should already exist",
        "- Tables are created automatically on first run",
    ],
    Provider.MYSQL: [
        "## MySQL Notes",
        "- Accounts are kept in local SQLite until MySQL storage is supported",
        "- Ensure MySQL server is running and accessible",
    ],
    Provider.SQLITE: [
        "## SQLite Notes",
        "- Database file is created automatically",
        "- No external database server required",
        "- Back up the data directory regularly",
    ],
}


def deployment_instructions(config: ProviderConfig, env_generated: bool, port: int = 8000) -> str:
    env_step = "Ensure .env file is configured (already done)" if env_generated else "Configure the .env file for your database"
    lines = [
        "# Deployment Instructions",
        "",
        "## Standalone Deployment",
        "",
        f"1. {env_step}",
        "2. Install the package: `pip install .`",
        f"3. Start the server: `uvicorn firstrun.main:app --host 0.0.0.0 --port {port}`",
        "",
        "## Docker Deployment",
        "",
        f"1. {env_step}",
        "2. Build and start: `docker compose up -d --build`",
        "",
    ]
    lines += _PROVIDER_NOTES.get(config.provider, [])
    lines += [
        "",
        "## Health Check",
        f"- Initialization status: http://localhost:{port}/api/v1/initialization/status",
        "- Admin login: use the credentials you just created",
    ]
    return "\n".join(lines)
