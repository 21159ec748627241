# firstrun/schemas/initialization.py
"""
Pydantic schemas for the initialization endpoints.
Database fields are deliberately loose here: which fields are required
depends on the provider and is checked by the connection verifier, so a
missing credential comes back as a configuration error instead of a 422.
"""
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class AdminSetupIn(BaseModel):
    """
    Administrator account requested during first run.
    """
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=8, max_length=100)
    confirmPassword: str
    firstName: str = Field(min_length=1, max_length=100)
    lastName: str = Field(min_length=1, max_length=100)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirmPassword:
            raise ValueError("Passwords don't match")
        return self


class DatabaseSetupIn(BaseModel):
    """
    Provider configuration request.
    """
    provider: str  # sqlite, postgresql, neon, mysql, planetscale, supabase
    name: str = Field(default="Primary Database", min_length=1)

    # PostgreSQL fields
    host: Optional[str] = None
    port: Optional[str] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    # Connection string (Neon, PlanetScale, external PostgreSQL/MySQL)
    connectionString: Optional[str] = None

    # Supabase fields
    supabaseUrl: Optional[str] = None
    supabaseAnonKey: Optional[str] = None
    supabaseServiceKey: Optional[str] = None

    # MySQL fields
    mysqlHost: Optional[str] = None
    mysqlPort: Optional[str] = None
    mysqlDatabase: Optional[str] = None
    mysqlUsername: Optional[str] = None
    mysqlPassword: Optional[str] = None

    # SQLite file (defaults to the configured data directory)
    sqlitePath: Optional[str] = None

    ssl: bool = True

    # Environment file generation
    generateEnvFile: bool = True
    useExistingEnv: bool = False  # keep the current .env untouched


class InitializeIn(BaseModel):
    admin: AdminSetupIn
    database: DatabaseSetupIn


class ConnectionCheckIn(DatabaseSetupIn):
    maxAttempts: int = Field(default=1, ge=1, le=10)


class ResetIn(BaseModel):
    removeEnvFile: bool = False
