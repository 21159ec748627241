"""
Connection verification

Checks a candidate provider configuration before anything is committed:
structural validation first (no network I/O on an invalid config), then a
connectivity probe with bounded retries, then an independent schema check
that never turns a working connection into a failure.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Mapping, Optional, Sequence

from ..core.errors import ConfigurationValidationError
from ..storage.probes import DatabaseProbe, default_probes
from .providers import Provider, ProviderConfig

logger = logging.getLogger("uvicorn.error")

DEFAULT_REQUIRED_TABLES = ("users",)


class SchemaStatus(str, Enum):
    OK = "ok"
    MISSING_TABLES = "missing_tables"


@dataclass
class SchemaValidation:
    has_schema: bool
    missing_tables: list[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ConnectionTestResult:
    """Outcome of one connection test (or the returned attempt of a retried one)"""
    success: bool
    latency_ms: Optional[float] = None  # measured on the returned attempt only
    error: Optional[str] = None
    error_type: Optional[str] = None  # "configuration" or "connection"
    schema_status: Optional[SchemaStatus] = None
    missing_tables: Optional[list[str]] = None
    details: dict = field(default_factory=dict)
    attempts: int = 1

    @property
    def is_configuration_error(self) -> bool:
        return self.error_type == ConfigurationValidationError.stage

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "latency": self.latency_ms,
            "error": self.error,
            "errorType": self.error_type,
            "schemaStatus": self.schema_status.value if self.schema_status else None,
            "missingTables": self.missing_tables,
            "details": self.details,
            "attempts": self.attempts,
        }


class ConnectionTester:
    """
    Parameters:
    - probes: provider -> probe; defaults to the real drivers
    - required_tables: tables the schema check looks for
    - backoff_base_ms / backoff_cap_ms: retry delay is base * 2^(n-1), capped
    - attempt_timeout: seconds allowed for a single connection attempt
    - sleep: awaitable used between attempts (tests pass a recorder)
    """

    def __init__(
        self,
        probes: Optional[Mapping[Provider, DatabaseProbe]] = None,
        required_tables: Sequence[str] = DEFAULT_REQUIRED_TABLES,
        backoff_base_ms: int = 1000,
        backoff_cap_ms: int = 5000,
        attempt_timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.probes = dict(probes) if probes is not None else default_probes()
        self.required_tables = list(required_tables)
        self.backoff_base_ms = backoff_base_ms
        self.backoff_cap_ms = max(backoff_cap_ms, backoff_base_ms)
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` (1-based). Never decreases."""
        delay_ms = min(self.backoff_base_ms * (2 ** (attempt - 1)), self.backoff_cap_ms)
        return delay_ms / 1000

    async def test_connection(self, config: ProviderConfig) -> ConnectionTestResult:
        errors = config.validate()
        if errors:
            return ConnectionTestResult(
                success=False,
                error=ConfigurationValidationError(errors).message,
                error_type=ConfigurationValidationError.stage,
            )

        probe = self.probes.get(config.provider)
        if probe is None:
            return ConnectionTestResult(
                success=False,
                error=f"No connection probe available for {config.provider.value}",
                error_type=ConfigurationValidationError.stage,
            )

        started = time.perf_counter()
        try:
            version = await asyncio.wait_for(probe.ping(config), timeout=self.attempt_timeout)
        except asyncio.TimeoutError:
            return ConnectionTestResult(
                success=False,
                latency_ms=_elapsed_ms(started),
                error=f"Connection timed out after {self.attempt_timeout:g}s",
                error_type="connection",
            )
        except Exception as exc:
            return ConnectionTestResult(
                success=False,
                latency_ms=_elapsed_ms(started),
                error=str(exc) or exc.__class__.__name__,
                error_type="connection",
            )
        latency = _elapsed_ms(started)

        result = ConnectionTestResult(
            success=True,
            latency_ms=latency,
            details={"provider": config.provider.value, "version": version},
        )
        # Missing schema is auxiliary detail: tables can be created later
        schema = await self.validate_schema(config)
        if schema.error is None:
            result.schema_status = SchemaStatus.OK if schema.has_schema else SchemaStatus.MISSING_TABLES
            result.missing_tables = schema.missing_tables
        else:
            result.details["schemaError"] = schema.error
        return result

    async def test_connection_with_retry(self, config: ProviderConfig, max_attempts: int = 3) -> ConnectionTestResult:
        """
        Run ``test_connection`` up to ``max_attempts`` times.

        Returns the first success, or the last failure after all attempts.
        Configuration errors are returned at once, retrying cannot fix them.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        result = ConnectionTestResult(success=False)
        for attempt in range(1, max_attempts + 1):
            logger.info("[connection] testing %s (attempt %s/%s)", config.provider.value, attempt, max_attempts)
            result = await self.test_connection(config)
            result.attempts = attempt
            if result.success:
                logger.info("[connection] %s reachable on attempt %s (%.1f ms)",
                            config.provider.value, attempt, result.latency_ms)
                return result
            if result.is_configuration_error:
                logger.warning("[connection] invalid configuration: %s", result.error)
                return result

            logger.warning("[connection] attempt %s/%s failed: %s", attempt, max_attempts, result.error)
            if attempt < max_attempts:
                delay = self.backoff_delay(attempt)
                logger.info("[connection] retrying in %.2fs", delay)
                await self._sleep(delay)
        return result

    async def validate_schema(self, config: ProviderConfig) -> SchemaValidation:
        """Report which required tables are missing. Never raises."""
        probe = self.probes.get(config.provider)
        if probe is None:
            return SchemaValidation(False, list(self.required_tables), f"No probe for {config.provider.value}")
        try:
            existing = await asyncio.wait_for(probe.list_tables(config), timeout=self.attempt_timeout)
        except Exception as exc:
            logger.warning("[connection] schema check failed for %s: %s", config.provider.value, exc)
            return SchemaValidation(False, list(self.required_tables), str(exc) or exc.__class__.__name__)
        missing = [t for t in self.required_tables if t not in existing]
        return SchemaValidation(has_schema=not missing, missing_tables=missing)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
