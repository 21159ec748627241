"""
Unit tests for services.deployment_context.
Provider detection priority, environment validation and snapshot capture.
"""
import pytest

from firstrun.services.deployment_context import (
    DeploymentContextResolver,
    EnvironmentSnapshot,
    detect_provider,
    resolve_context,
    validate_environment,
)
from firstrun.services.providers import Provider

SECRET = {"SESSION_SECRET": "s" * 64}
SUPABASE = {
    "SUPABASE_URL": "https://project.supabase.co",
    "SUPABASE_ANON_KEY": "anon",
    "SUPABASE_SERVICE_KEY": "service",
}


class TestDetectProvider:
    """Fixed priority order, complete signal sets only."""

    @pytest.mark.parametrize(
        "env, expected",
        [
            ({"DATABASE_URL": "postgresql://u:p@ep-x.us-east-2.aws.neon.tech/app"}, Provider.NEON),
            ({"DATABASE_URL": "mysql://u:p@aws.connect.psdb.cloud/app"}, Provider.PLANETSCALE),
            ({"DATABASE_URL": "postgres://u:p@db:5432/app"}, Provider.POSTGRESQL),
            ({"DATABASE_URL": "mysql://u:p@db:3306/app"}, Provider.MYSQL),
            (
                {"POSTGRES_HOST": "db", "POSTGRES_DB": "app", "POSTGRES_USER": "u", "POSTGRES_PASSWORD": "p"},
                Provider.POSTGRESQL,
            ),
            (
                {"MYSQL_HOST": "db", "MYSQL_DATABASE": "app", "MYSQL_USER": "u", "MYSQL_PASSWORD": "p"},
                Provider.MYSQL,
            ),
            (SUPABASE, Provider.SUPABASE),
        ],
    )
    def test_detects(self, env, expected):
        assert detect_provider(env) is expected

    def test_supabase_wins_over_database_url(self):
        env = {**SUPABASE, "DATABASE_URL": "postgresql://u:p@db/app"}
        assert detect_provider(env) is Provider.SUPABASE

    def test_partial_signals_detect_nothing(self):
        assert detect_provider({"SUPABASE_URL": "https://project.supabase.co"}) is None
        assert detect_provider({"POSTGRES_HOST": "db", "POSTGRES_DB": "app"}) is None

    def test_malformed_url_detects_nothing(self):
        assert detect_provider({"DATABASE_URL": "not a url"}) is None
        assert detect_provider({"DATABASE_URL": "redis://cache:6379"}) is None

    def test_insecure_supabase_url_is_not_detected(self):
        env = {**SUPABASE, "SUPABASE_URL": "http://project.supabase.co"}
        assert detect_provider(env) is None

    def test_empty_environment(self):
        assert detect_provider({}) is None


class TestValidateEnvironment:
    def test_detected_provider_never_reports_missing_provider_variables(self):
        env = {"DATABASE_URL": "postgres://u:p@db:5432/app"}
        provider = detect_provider(env)
        result = validate_environment(provider, env)
        assert result.missing == ["SESSION_SECRET"]
        assert result.is_valid is False

    def test_valid_with_session_secret(self):
        env = {**SUPABASE, **SECRET}
        assert validate_environment(Provider.SUPABASE, env).is_valid is True

    def test_supabase_missing_keys(self):
        result = validate_environment(Provider.SUPABASE, {"SUPABASE_URL": "https://x.supabase.co", **SECRET})
        assert result.missing == ["SUPABASE_ANON_KEY", "SUPABASE_SERVICE_KEY"]

    def test_wrong_scheme_is_an_error(self):
        result = validate_environment(Provider.POSTGRESQL, {"DATABASE_URL": "mysql://u:p@db/app", **SECRET})
        assert result.is_valid is False
        assert result.errors

    def test_neon_url_must_point_at_neon(self):
        result = validate_environment(Provider.NEON, {"DATABASE_URL": "postgres://u:p@db/app", **SECRET})
        assert result.errors == ["DATABASE_URL is not a neon connection string"]

    def test_sqlite_only_needs_session_secret(self):
        assert validate_environment(Provider.SQLITE, SECRET).is_valid is True


class TestResolveContext:
    def test_valid_provider(self):
        snapshot = EnvironmentSnapshot(variables={"DATABASE_URL": "postgres://u:p@db/app", **SECRET})
        context = resolve_context(snapshot)
        assert context.detected_provider is Provider.POSTGRESQL
        assert context.has_valid_provider is True

    def test_nothing_detected(self):
        context = resolve_context(EnvironmentSnapshot(variables={}, is_containerized=True))
        assert context.detected_provider is None
        assert context.env_validation is None
        assert context.has_valid_provider is False
        assert context.to_dict()["isContainerized"] is True

    def test_resolver_uses_live_snapshot_each_call(self, tmp_path):
        env: dict = {}
        resolver = DeploymentContextResolver(
            tmp_path / ".env", snapshot_factory=lambda: EnvironmentSnapshot(variables=dict(env))
        )
        assert resolver.resolve().detected_provider is None
        env.update({"DATABASE_URL": "mysql://u:p@db/app"})
        assert resolver.resolve().detected_provider is Provider.MYSQL


class TestSnapshotCapture:
    def test_process_environment_overrides_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("DATABASE_URL=postgres://file:p@db/app\nSESSION_SECRET=from-file\n")
        snapshot = EnvironmentSnapshot.capture(
            env_file,
            environ={"DATABASE_URL": "postgres://proc:p@db/app"},
            dockerenv_path=tmp_path / "missing",
            compose_paths=(),
        )
        assert snapshot.has_env_file is True
        assert snapshot.variables["DATABASE_URL"] == "postgres://proc:p@db/app"
        assert snapshot.variables["SESSION_SECRET"] == "from-file"

    @pytest.mark.parametrize(
        "environ, expected",
        [
            ({"DOCKER_CONTAINER": "true"}, True),
            ({"HOSTNAME": "docker-abc123"}, True),
            ({"HOSTNAME": "laptop"}, False),
        ],
    )
    def test_container_signals(self, tmp_path, environ, expected):
        snapshot = EnvironmentSnapshot.capture(
            tmp_path / ".env", environ=environ, dockerenv_path=tmp_path / "missing", compose_paths=()
        )
        assert snapshot.is_containerized is expected
        assert snapshot.has_env_file is False

    def test_dockerenv_file_and_compose_file(self, tmp_path):
        (tmp_path / ".dockerenv").touch()
        (tmp_path / "docker-compose.yml").touch()
        snapshot = EnvironmentSnapshot.capture(
            tmp_path / ".env",
            environ={},
            dockerenv_path=tmp_path / ".dockerenv",
            compose_paths=(tmp_path / "docker-compose.yml",),
        )
        assert snapshot.is_containerized is True
        assert snapshot.has_compose_file is True
