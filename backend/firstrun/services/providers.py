"""
Provider configurations

One frozen dataclass per storage provider. Each variant carries only the
fields that provider needs and knows how to validate itself and render a
connection URL. ``ProviderConfig`` is the union of all variants.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional, Union
from urllib.parse import parse_qs, quote, urlsplit

from ..core.errors import ConfigurationValidationError
from ..core.security import mask_secret, redact_url


class Provider(str, Enum):
    """Supported provider identifiers, in environment detection priority order."""
    SUPABASE = "supabase"
    NEON = "neon"
    PLANETSCALE = "planetscale"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"


@dataclass(frozen=True)
class SqliteConfig:
    """Local file-backed database"""
    path: str
    name: str = "Local SQLite"
    ssl: bool = False

    provider: ClassVar[Provider] = Provider.SQLITE

    def validate(self) -> list[str]:
        if not self.path or not self.path.strip():
            return ["SQLite database path is required"]
        return []

    def connection_url(self) -> str:
        return f"sqlite://{self.path}"

    def public_dict(self) -> dict:
        return {"provider": self.provider.value, "name": self.name, "path": self.path}


@dataclass(frozen=True)
class _SqlServerConfig:
    """Shared shape of networked SQL servers: a URL or a host/credential set."""
    name: str = "Primary Database"
    connection_string: Optional[str] = None
    host: Optional[str] = None
    port: Optional[str] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    ssl: bool = True

    provider: ClassVar[Provider]
    label: ClassVar[str]
    url_schemes: ClassVar[tuple[str, ...]]
    default_port: ClassVar[int]
    # query parameter (key, value) that forces TLS in a connection string
    ssl_param: ClassVar[tuple[str, str]]
    requires_connection_string: ClassVar[bool] = False

    def validate(self) -> list[str]:
        errors: list[str] = []
        if self.connection_string:
            scheme = urlsplit(self.connection_string).scheme
            if scheme not in self.url_schemes:
                errors.append(f"{self.label} connection string must start with {self.url_schemes[-1]}://")
            elif self._url_requires_ssl() and not self.ssl:
                errors.append(f"{self.label} connection string requires SSL but ssl is disabled")
            return errors

        if self.requires_connection_string:
            return [f"{self.label} connection string is required"]
        for attr, title in (("host", "host"), ("database", "database name"),
                            ("username", "username"), ("password", "password")):
            if not getattr(self, attr):
                errors.append(f"{self.label} {title} is required")
        if self.port and not str(self.port).isdigit():
            errors.append(f"{self.label} port must be a number")
        return errors

    def _url_requires_ssl(self) -> bool:
        key, value = self.ssl_param
        query = parse_qs(urlsplit(self.connection_string or "").query)
        return value in [v.lower() for v in query.get(key, [])]

    def connection_url(self) -> str:
        if self.connection_string:
            return self.connection_string
        port = self.port or self.default_port
        url = (
            f"{self.url_schemes[-1]}://{quote(self.username or '', safe='')}:"
            f"{quote(self.password or '', safe='')}@{self.host}:{port}/{self.database}"
        )
        if self.ssl:
            key, value = self.ssl_param
            url += f"?{key}={value}"
        return url

    def public_dict(self) -> dict:
        return {
            "provider": self.provider.value,
            "name": self.name,
            "connectionString": redact_url(self.connection_url()),
            "ssl": self.ssl,
        }


@dataclass(frozen=True)
class PostgresConfig(_SqlServerConfig):
    provider: ClassVar[Provider] = Provider.POSTGRESQL
    label: ClassVar[str] = "PostgreSQL"
    url_schemes: ClassVar[tuple[str, ...]] = ("postgres", "postgresql")
    default_port: ClassVar[int] = 5432
    ssl_param: ClassVar[tuple[str, str]] = ("sslmode", "require")


@dataclass(frozen=True)
class NeonConfig(PostgresConfig):
    """Serverless PostgreSQL, connection string only"""
    provider: ClassVar[Provider] = Provider.NEON
    label: ClassVar[str] = "Neon"
    requires_connection_string: ClassVar[bool] = True


@dataclass(frozen=True)
class MysqlConfig(_SqlServerConfig):
    provider: ClassVar[Provider] = Provider.MYSQL
    label: ClassVar[str] = "MySQL"
    url_schemes: ClassVar[tuple[str, ...]] = ("mysql",)
    default_port: ClassVar[int] = 3306
    ssl_param: ClassVar[tuple[str, str]] = ("ssl", "true")


@dataclass(frozen=True)
class PlanetScaleConfig(MysqlConfig):
    """Serverless MySQL, connection string only"""
    provider: ClassVar[Provider] = Provider.PLANETSCALE
    label: ClassVar[str] = "PlanetScale"
    requires_connection_string: ClassVar[bool] = True


@dataclass(frozen=True)
class SupabaseConfig:
    url: Optional[str] = None
    anon_key: Optional[str] = None
    service_key: Optional[str] = None
    name: str = "Supabase"
    ssl: bool = True

    provider: ClassVar[Provider] = Provider.SUPABASE

    def validate(self) -> list[str]:
        errors: list[str] = []
        if not self.url:
            errors.append("Supabase URL is required")
        elif not self.url.startswith("https://"):
            errors.append("Supabase URL must start with https://")
        if not self.anon_key:
            errors.append("Supabase anonymous key is required")
        if not self.service_key:
            errors.append("Supabase service role key is required")
        if not self.ssl:
            errors.append("Supabase requires SSL")
        return errors

    def connection_url(self) -> str:
        return (self.url or "").rstrip("/")

    def public_dict(self) -> dict:
        return {
            "provider": self.provider.value,
            "name": self.name,
            "connectionString": self.connection_url(),
            "anonKey": mask_secret(self.anon_key),
        }


ProviderConfig = Union[
    SqliteConfig, PostgresConfig, NeonConfig, MysqlConfig, PlanetScaleConfig, SupabaseConfig
]


def build_provider_config(request, default_sqlite_path: str) -> ProviderConfig:
    """
    Turn a loose database setup request into a typed provider variant.

    ``request`` is a ``DatabaseSetupIn`` (or anything with the same
    attributes). Only the provider id is checked here; required fields are
    checked by ``validate()`` so all problems are reported together.

    Raises:
        ConfigurationValidationError: unknown provider id
    """
    try:
        provider = Provider(request.provider)
    except ValueError:
        raise ConfigurationValidationError([f"Unsupported database provider: {request.provider}"])

    name = request.name
    if provider is Provider.SQLITE:
        return SqliteConfig(path=request.sqlitePath or default_sqlite_path, name=name)
    if provider is Provider.SUPABASE:
        return SupabaseConfig(
            url=request.supabaseUrl,
            anon_key=request.supabaseAnonKey,
            service_key=request.supabaseServiceKey,
            name=name,
            ssl=request.ssl,
        )
    if provider in (Provider.MYSQL, Provider.PLANETSCALE):
        cls = MysqlConfig if provider is Provider.MYSQL else PlanetScaleConfig
        return cls(
            name=name,
            connection_string=request.connectionString or None,
            host=request.mysqlHost or request.host,
            port=request.mysqlPort or request.port,
            database=request.mysqlDatabase or request.database,
            username=request.mysqlUsername or request.username,
            password=request.mysqlPassword or request.password,
            ssl=request.ssl,
        )
    cls = PostgresConfig if provider is Provider.POSTGRESQL else NeonConfig
    return cls(
        name=name,
        connection_string=request.connectionString or None,
        host=request.host,
        port=request.port,
        database=request.database,
        username=request.username,
        password=request.password,
        ssl=request.ssl,
    )


@dataclass
class ProviderRecommendation:
    """Setup hints shown next to each provider in the wizard"""
    title: str
    description: str
    tips: list[str]
    warnings: list[str] = field(default_factory=list)


def recommendations(provider: str, is_containerized: bool) -> ProviderRecommendation:
    if provider == Provider.SUPABASE.value:
        return ProviderRecommendation(
            "Supabase Setup",
            "Cloud-hosted PostgreSQL with automatic scaling",
            [
                "Get credentials from Supabase Dashboard -> Settings -> API",
                "Service Role Key is required for table inspection",
                "Accounts are stored locally until Supabase storage is supported",
            ],
            ["Ensure the container has internet access to reach Supabase"] if is_containerized else [],
        )
    if provider == Provider.NEON.value:
        return ProviderRecommendation(
            "Neon Database Setup",
            "Serverless PostgreSQL with branching and automatic scaling",
            [
                "Get the connection string from Neon Console -> Connection Details",
                "Use the pooled connection string for better performance",
                "Tables are created automatically on first connection",
            ],
        )
    if provider == Provider.PLANETSCALE.value:
        return ProviderRecommendation(
            "PlanetScale Setup",
            "Serverless MySQL with branching and global distribution",
            [
                "Get the connection string from PlanetScale Dashboard -> Connect",
                "Use the 'General' connection string format",
            ],
            ["MySQL storage is not supported yet, accounts fall back to local SQLite"],
        )
    if provider == Provider.POSTGRESQL.value:
        return ProviderRecommendation(
            "PostgreSQL Setup",
            "Traditional PostgreSQL database server",
            [
                "Ensure PostgreSQL server is running and accessible",
                "Create database and user before connecting",
                "Use 'postgres' as hostname in Docker Compose" if is_containerized
                else "Use actual server hostname/IP",
            ],
            ["Make sure the PostgreSQL service is defined in docker-compose.yml"] if is_containerized
            else ["Ensure firewall allows connections on PostgreSQL port (5432)"],
        )
    if provider == Provider.MYSQL.value:
        return ProviderRecommendation(
            "MySQL Setup",
            "Traditional MySQL database server",
            [
                "Ensure MySQL server is running and accessible",
                "Create database and user before connecting",
                "Use 'mysql' as hostname in Docker Compose" if is_containerized
                else "Use actual server hostname/IP",
            ],
            ["MySQL storage is not supported yet, accounts fall back to local SQLite"],
        )
    if provider == Provider.SQLITE.value:
        return ProviderRecommendation(
            "SQLite Setup",
            "File-based database, good for development and small deployments",
            [
                "No external database server required",
                "Database file is created automatically",
            ],
            ["Not recommended for high-concurrency production use", "Back up the database file regularly"],
        )
    return ProviderRecommendation(
        "Unknown Provider",
        "Configuration for unknown database provider",
        ["Please select a supported database provider"],
        ["This provider is not supported"],
    )
