# firstrun/core/db.py
"""
Database configuration and initialization module.
Handles Tortoise ORM setup for the storage chosen during initialization.
"""
from pathlib import Path
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from tortoise import Tortoise

# Models owned by this application; their tables make up the required schema
MODELS = ["firstrun.models.user"]

# Tortoise engine names differ from the URL schemes users paste in
_SCHEME_ALIASES = {"postgresql": "postgres"}
# libpq style sslmode is spelled ssl for asyncpg
_QUERY_ALIASES = {"sslmode": "ssl"}


def to_tortoise_url(url: str) -> str:
    """
    Translate a user-facing connection URL into one Tortoise understands.

    ``postgresql://u:p@h/db?sslmode=require`` -> ``postgres://u:p@h/db?ssl=require``
    """
    parts = urlsplit(url)
    scheme = _SCHEME_ALIASES.get(parts.scheme, parts.scheme)
    query = urlencode([(_QUERY_ALIASES.get(k, k), v) for k, v in parse_qsl(parts.query)])
    return urlunsplit((scheme, parts.netloc, parts.path, query, parts.fragment))


def sqlite_file_path(url: str) -> Path | None:
    """File backing a sqlite URL, or None for non-sqlite / in-memory URLs."""
    parts = urlsplit(url)
    if parts.scheme != "sqlite":
        return None
    path = parts.netloc + parts.path
    if not path or path.startswith(":memory:"):
        return None
    return Path(path)


def build_tortoise_config(db_url: str) -> dict:
    """Tortoise ORM configuration dictionary for ``db_url``."""
    return {
        "connections": {"default": to_tortoise_url(db_url)},
        "apps": {
            "models": {
                "models": list(MODELS),
                "default_connection": "default",
            },
        },
    }


async def init_db(db_url: str):
    """
    Initialize Tortoise ORM against ``db_url``.

    The parent directory of a sqlite file is created on demand.
    """
    db_file = sqlite_file_path(db_url)
    if db_file is not None:
        db_file.parent.mkdir(parents=True, exist_ok=True)
    await Tortoise.init(config=build_tortoise_config(db_url))


async def close_db():
    """Close all database connections if Tortoise was initialized."""
    if Tortoise._inited:
        await Tortoise.close_connections()
