"""
Storage Capability Abstract Interface

The narrow surface the initialization flow needs from a storage backend:
create the administrative account and, where the backend needs it, apply
the schema first.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..services.providers import Provider


@dataclass
class NewUser:
    """Account creation request handed to a storage capability"""
    username: str
    email: str
    password_hash: str  # never the plain password
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str = "user"
    is_active: bool = False
    is_email_verified: bool = False


@dataclass
class AdminIdentity:
    """Identifying triple kept in the marker after the account is created"""
    id: str
    username: str
    email: str

    def to_dict(self) -> dict:
        return {"id": self.id, "username": self.username, "email": self.email}

    @classmethod
    def from_dict(cls, data: dict) -> "AdminIdentity":
        return cls(id=str(data["id"]), username=data["username"], email=data["email"])


class StorageCapability(ABC):
    """Storage Capability Abstract Base Class"""

    @property
    @abstractmethod
    def provider(self) -> Provider:
        """Provider actually backing this storage"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable name (e.g., "SQLite (./data/app.db)")"""
        pass

    @property
    def requires_schema_setup(self) -> bool:
        return False

    async def initialize_schema(self) -> None:
        """
        Create the tables the application needs.

        Raises:
            SchemaInitializationError: schema could not be prepared
        """
        return None

    @abstractmethod
    async def create_user(self, data: NewUser) -> AdminIdentity:
        """
        Create an account.

        Raises:
            AdminCreationError: the account was not created
        """
        pass

    async def close(self) -> None:
        return None
