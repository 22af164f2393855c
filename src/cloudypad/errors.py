"""Error taxonomy shared by the state layer, providers and lifecycle manager.

Every error carries the :class:`~cloudypad.exit_codes.ExitCode` the CLI should
terminate with. Lifecycle operations annotate errors with the instance name and
operation before re-raising so callers can decide whether to retry.
"""
from __future__ import annotations

from typing import ClassVar

from .exit_codes import ExitCode


class CloudyPadError(RuntimeError):
    """Base class for every error raised by cloudypad."""

    exit_code: ClassVar[ExitCode] = ExitCode.VALIDATION

    def __init__(self, message: str) -> None:
        """Store *message* and initialise empty operation context."""
        super().__init__(message)
        self.message = message
        self.instance: str | None = None
        self.operation: str | None = None

    def annotate(self, *, instance: str, operation: str) -> None:
        """Attach lifecycle context unless an inner operation already did."""
        if self.instance is None:
            self.instance = instance
        if self.operation is None:
            self.operation = operation

    def __str__(self) -> str:
        """Render the message prefixed by lifecycle context when known."""
        if self.instance and self.operation:
            return f"{self.operation} '{self.instance}': {self.message}"
        return self.message


class ConfigError(CloudyPadError):
    """Raised when configuration parsing or data root resolution fails."""

    exit_code = ExitCode.ENVIRONMENT


# State layer -------------------------------------------------------------
class StateError(CloudyPadError):
    """Base class for state schema, migration and storage failures."""


class SchemaValidationError(StateError):
    """Raised when a state document does not match the current schema."""

    def __init__(self, field: str, message: str) -> None:
        """Record the dotted path of the offending *field*."""
        super().__init__(f"Invalid state field '{field}': {message}")
        self.field = field
        self.reason = message


class MigrationError(StateError):
    """Raised when a legacy document lacks data required to migrate it."""

    def __init__(self, field: str, message: str) -> None:
        """Record the dotted path of the missing or invalid legacy *field*."""
        super().__init__(f"Cannot migrate state, field '{field}': {message}")
        self.field = field


class UnsupportedVersionError(StateError):
    """Raised when a document declares a schema version this release cannot read."""

    def __init__(self, version: str) -> None:
        """Record the unrecognised *version*."""
        super().__init__(f"Unknown state version '{version}'.")
        self.version = version


class UnknownProviderError(StateError):
    """Raised when a legacy document cannot be matched to exactly one provider."""


class InstanceNotFoundError(StateError):
    """Raised when no persisted state exists for an instance name."""

    exit_code = ExitCode.NOT_FOUND

    def __init__(self, name: str, detail: str | None = None) -> None:
        """Record the missing instance *name*."""
        message = f"Instance named '{name}' does not exist."
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)
        self.name = name


class StateStoreError(StateError):
    """Raised when state documents cannot be read from or written to disk."""

    exit_code = ExitCode.ENVIRONMENT


# Factory -----------------------------------------------------------------
class UnsupportedProviderError(CloudyPadError):
    """Raised when no backend is registered for a provider."""

    def __init__(self, provider: str) -> None:
        """Record the unregistered *provider* discriminant."""
        super().__init__(f"No provider backend registered for '{provider}'.")
        self.provider = provider


class NotProvisionedError(CloudyPadError):
    """Raised when an operation needs provision output that is absent."""

    def __init__(self, name: str, action: str) -> None:
        """Record the instance *name* and the *action* that could not proceed."""
        super().__init__(
            f"Can't {action} for {name}: no provision output in state. "
            "Was instance fully provisioned ?"
        )
        self.name = name


# Collaborators ------------------------------------------------------------
class CollaboratorError(CloudyPadError):
    """Base class for failures reported by external collaborators."""

    exit_code = ExitCode.PROVIDER


class ProvisioningError(CollaboratorError):
    """Raised when cloud resources cannot be created or destroyed."""


class ConfigurationError(CollaboratorError):
    """Raised when host configuration fails."""


class RunnerError(CollaboratorError):
    """Raised when starting, stopping, restarting or pairing fails."""


__all__ = [
    "CloudyPadError",
    "CollaboratorError",
    "ConfigError",
    "ConfigurationError",
    "InstanceNotFoundError",
    "MigrationError",
    "NotProvisionedError",
    "ProvisioningError",
    "RunnerError",
    "SchemaValidationError",
    "StateError",
    "StateStoreError",
    "UnknownProviderError",
    "UnsupportedProviderError",
    "UnsupportedVersionError",
]
