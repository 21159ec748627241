# firstrun/core/errors.py
"""
Error types raised while moving a deployment from "uninitialized" to
"initialized".

Every error carries the ``stage`` at which orchestration stopped, so the
orchestrator can turn it into a structured failure result and an operator
can tell a failed connection apart from a half-finished provisioning run.
"""


class InitializationError(Exception):
    """Base class for all initialization failures."""

    stage = "initialization"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationValidationError(InitializationError):
    """The provider configuration is structurally invalid. No network I/O was attempted."""

    stage = "configuration"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Configuration validation failed: " + "; ".join(self.errors))


class DatabaseConnectionError(InitializationError):
    """Network or authentication failure after exhausting retries."""

    stage = "connection"


class EnvironmentFileError(InitializationError):
    """The local environment file could not be backed up or written."""

    stage = "env-file"


class SchemaInitializationError(InitializationError):
    """Connected, but the required schema objects could not be prepared."""

    stage = "schema"


class AdminCreationError(InitializationError):
    """Storage is reachable but the administrative account was not created."""

    stage = "admin-creation"


class PersistenceError(InitializationError):
    """
    The administrative account exists but the marker could not be written.

    The deployment is left inconsistent: rerunning provisioning will try to
    create the account again. Use reset (or remove the account) to recover.
    """

    stage = "persist"


class AlreadyInitializedError(InitializationError):
    stage = "already-initialized"


class ProvisioningInProgressError(InitializationError):
    """Another provisioning run holds the lock."""

    stage = "busy"
