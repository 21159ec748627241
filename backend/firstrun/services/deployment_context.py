"""
Deployment context resolution

Works out how and where the process is running (container, local env
file) and which storage provider the environment already points at.

Environment inspection is captured once into an ``EnvironmentSnapshot``;
everything after that is a pure function of the snapshot, so tests can
hand in synthetic environments without touching ``os.environ``.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional
from urllib.parse import urlsplit

from dotenv import dotenv_values

from .providers import Provider

logger = logging.getLogger("uvicorn.error")

SESSION_SECRET = "SESSION_SECRET"
POSTGRES_PARTS = ("POSTGRES_HOST", "POSTGRES_DB", "POSTGRES_USER", "POSTGRES_PASSWORD")
MYSQL_PARTS = ("MYSQL_HOST", "MYSQL_DATABASE", "MYSQL_USER", "MYSQL_PASSWORD")
SUPABASE_KEYS = ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_KEY")


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """Point-in-time view of environment signals"""
    variables: Mapping[str, str]  # local env file overlaid by the process environment
    is_containerized: bool = False
    has_env_file: bool = False
    has_compose_file: bool = False

    @classmethod
    def capture(
        cls,
        env_file_path: Path,
        environ: Optional[Mapping[str, str]] = None,
        dockerenv_path: Path = Path("/.dockerenv"),
        compose_paths: tuple[Path, ...] = (Path("docker-compose.yml"), Path("deployment/docker-compose.yml")),
    ) -> "EnvironmentSnapshot":
        environ = dict(os.environ if environ is None else environ)
        env_file_path = Path(env_file_path)
        has_env_file = env_file_path.is_file()

        variables: dict[str, str] = {}
        if has_env_file:
            # None values come from bare "KEY" lines
            variables.update({k: v for k, v in dotenv_values(env_file_path).items() if v is not None})
        variables.update(environ)

        is_containerized = (
            dockerenv_path.exists()
            or environ.get("DOCKER_CONTAINER", "").lower() == "true"
            or environ.get("HOSTNAME", "").startswith("docker-")
        )
        return cls(
            variables=variables,
            is_containerized=is_containerized,
            has_env_file=has_env_file,
            has_compose_file=any(p.exists() for p in compose_paths),
        )


@dataclass
class EnvValidation:
    is_valid: bool
    missing: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"isValid": self.is_valid, "missing": self.missing, "errors": self.errors}


@dataclass
class DeploymentContext:
    is_containerized: bool
    has_local_env_file: bool
    has_compose_file: bool = False
    detected_provider: Optional[Provider] = None
    env_validation: Optional[EnvValidation] = None

    @property
    def has_valid_provider(self) -> bool:
        return self.detected_provider is not None and bool(self.env_validation and self.env_validation.is_valid)

    def to_dict(self) -> dict:
        return {
            "isContainerized": self.is_containerized,
            "hasLocalEnvFile": self.has_local_env_file,
            "hasComposeFile": self.has_compose_file,
            "detectedProvider": self.detected_provider.value if self.detected_provider else None,
            "envValidation": self.env_validation.to_dict() if self.env_validation else None,
        }


def _url_with_scheme(value: Optional[str], schemes: tuple[str, ...]) -> bool:
    if not value:
        return False
    parts = urlsplit(value)
    return parts.scheme in schemes and bool(parts.hostname)


def _host_matches(value: str, markers: tuple[str, ...]) -> bool:
    host = urlsplit(value).hostname or ""
    return any(m in host for m in markers)


def _all_present(env: Mapping[str, str], keys: tuple[str, ...]) -> bool:
    return all(env.get(k) for k in keys)


def _supabase(env: Mapping[str, str]) -> bool:
    return _all_present(env, SUPABASE_KEYS) and env["SUPABASE_URL"].startswith("https://")


def _neon(env: Mapping[str, str]) -> bool:
    url = env.get("DATABASE_URL")
    return _url_with_scheme(url, ("postgres", "postgresql")) and _host_matches(url, ("neon.tech", "neon."))


def _planetscale(env: Mapping[str, str]) -> bool:
    url = env.get("DATABASE_URL")
    return _url_with_scheme(url, ("mysql",)) and _host_matches(url, ("psdb.", "planetscale."))


def _postgresql(env: Mapping[str, str]) -> bool:
    return _url_with_scheme(env.get("DATABASE_URL"), ("postgres", "postgresql")) or _all_present(env, POSTGRES_PARTS)


def _mysql(env: Mapping[str, str]) -> bool:
    return _url_with_scheme(env.get("DATABASE_URL"), ("mysql",)) or _all_present(env, MYSQL_PARTS)


# Fixed priority order. A provider is detected only when its full signal set
# is present and well-formed; partial signals never produce a guess.
PROVIDER_SIGNALS: list[tuple[Provider, Callable[[Mapping[str, str]], bool]]] = [
    (Provider.SUPABASE, _supabase),
    (Provider.NEON, _neon),
    (Provider.PLANETSCALE, _planetscale),
    (Provider.POSTGRESQL, _postgresql),
    (Provider.MYSQL, _mysql),
]


def detect_provider(env: Mapping[str, str]) -> Optional[Provider]:
    for provider, has_signals in PROVIDER_SIGNALS:
        if has_signals(env):
            return provider
    return None


def validate_environment(provider: Provider, env: Mapping[str, str]) -> EnvValidation:
    """
    Check that every variable ``provider`` needs is set and well-formed.

    Derived independently of ``detect_provider`` but agrees with it: a
    detected provider never reports missing provider variables. The shared
    ``SESSION_SECRET`` is required for every provider.
    """
    missing: list[str] = []
    errors: list[str] = []

    if provider is Provider.SUPABASE:
        missing += [k for k in SUPABASE_KEYS if not env.get(k)]
        if env.get("SUPABASE_URL") and not env["SUPABASE_URL"].startswith("https://"):
            errors.append("SUPABASE_URL must start with https://")
    elif provider in (Provider.NEON, Provider.PLANETSCALE):
        detector = _neon if provider is Provider.NEON else _planetscale
        if not env.get("DATABASE_URL"):
            missing.append("DATABASE_URL")
        elif not detector(env):
            errors.append(f"DATABASE_URL is not a {provider.value} connection string")
    elif provider in (Provider.POSTGRESQL, Provider.MYSQL):
        schemes, parts = (
            (("postgres", "postgresql"), POSTGRES_PARTS)
            if provider is Provider.POSTGRESQL else (("mysql",), MYSQL_PARTS)
        )
        url = env.get("DATABASE_URL")
        if url:
            if not _url_with_scheme(url, schemes):
                errors.append(f"DATABASE_URL is not a {provider.value} connection string")
        elif not _all_present(env, parts):
            missing.append("DATABASE_URL")
    # sqlite needs no provider variables

    if not env.get(SESSION_SECRET):
        missing.append(SESSION_SECRET)

    return EnvValidation(is_valid=not missing and not errors, missing=missing, errors=errors)


def resolve_context(snapshot: EnvironmentSnapshot) -> DeploymentContext:
    detected = detect_provider(snapshot.variables)
    validation = validate_environment(detected, snapshot.variables) if detected else None
    return DeploymentContext(
        is_containerized=snapshot.is_containerized,
        has_local_env_file=snapshot.has_env_file,
        has_compose_file=snapshot.has_compose_file,
        detected_provider=detected,
        env_validation=validation,
    )


class DeploymentContextResolver:
    """
    Recomputes the deployment context from live signals on every call.

    ``snapshot_factory`` defaults to capturing the real environment; tests
    pass a lambda returning a fixed ``EnvironmentSnapshot``.
    """

    def __init__(self, env_file_path: Path, snapshot_factory: Optional[Callable[[], EnvironmentSnapshot]] = None):
        self.env_file_path = Path(env_file_path)
        self._snapshot_factory = snapshot_factory or (lambda: EnvironmentSnapshot.capture(self.env_file_path))

    def resolve(self) -> DeploymentContext:
        context = resolve_context(self._snapshot_factory())
        if context.detected_provider:
            logger.debug("[env] detected provider=%s valid=%s",
                         context.detected_provider.value, context.env_validation.is_valid)
        return context
