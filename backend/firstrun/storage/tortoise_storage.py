"""
Tortoise ORM storage

Storage capability for SQL backends Tortoise can drive directly: the local
SQLite file and PostgreSQL (including Neon).
"""
import logging

from tortoise import Tortoise
from tortoise.exceptions import BaseORMException, IntegrityError

from ..core.db import close_db, init_db
from ..core.errors import AdminCreationError, SchemaInitializationError
from ..core.security import redact_url
from ..models.user import User
from ..services.providers import Provider
from .base import AdminIdentity, NewUser, StorageCapability

logger = logging.getLogger("uvicorn.error")


class TortoiseStorage(StorageCapability):
    """
    Parameters:
    - provider: provider backing the URL (sqlite, postgresql, neon)
    - db_url: connection URL as entered by the user
    """

    def __init__(self, provider: Provider, db_url: str):
        self._provider = provider
        self.db_url = db_url
        self._connected = False

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def name(self) -> str:
        return f"{self._provider.value} ({redact_url(self.db_url)})"

    @property
    def requires_schema_setup(self) -> bool:
        return True

    async def _connect(self) -> None:
        if not self._connected:
            await init_db(self.db_url)
            self._connected = True

    async def initialize_schema(self) -> None:
        try:
            await self._connect()
            await Tortoise.generate_schemas(safe=True)
        except (BaseORMException, OSError) as exc:
            raise SchemaInitializationError(f"Schema initialization failed on {self.name}: {exc}") from exc
        logger.info("[storage] schema ready on %s", self.name)

    async def create_user(self, data: NewUser) -> AdminIdentity:
        try:
            await self._connect()
            if await User.filter(username=data.username).exists():
                raise AdminCreationError(f"Username '{data.username}' already exists")
            user = await User.create(
                username=data.username,
                email=data.email,
                password_hash=data.password_hash,
                first_name=data.first_name,
                last_name=data.last_name,
                role=data.role,
                is_active=data.is_active,
                is_email_verified=data.is_email_verified,
            )
        except IntegrityError as exc:
            raise AdminCreationError(f"Account could not be created: {exc}") from exc
        except (BaseORMException, OSError) as exc:
            raise AdminCreationError(f"Storage error while creating account: {exc}") from exc
        return AdminIdentity(id=str(user.id), username=user.username, email=user.email)

    async def close(self) -> None:
        if self._connected:
            await close_db()
            self._connected = False
