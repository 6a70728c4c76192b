"""Error taxonomy raised by the registry, invoker, and engine."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    CAPABILITY_NOT_FOUND = "capability_not_found"
    DUPLICATE_VERSION = "duplicate_version"
    REGISTRY_FROZEN = "registry_frozen"
    TIMEOUT = "timeout"
    INVOCATION = "invocation_error"
    UNKNOWN_CLUSTER = "unknown_cluster"
    CONDITION = "condition_error"
    CANCELLED = "cancelled"
    PLAN_INVALID = "plan_invalid"


@dataclass(frozen=True)
class ErrorProfile:
    retryable: bool
    """Retried by the leaf invoker, and only when the contract is idempotent."""
    user_visible: bool
    fatal_to_run: bool
    """Raised to the caller instead of being recorded on a node."""


ERROR_PROFILES: dict[ErrorKind, ErrorProfile] = {
    ErrorKind.VALIDATION: ErrorProfile(
        retryable=False, user_visible=True, fatal_to_run=False
    ),
    ErrorKind.CAPABILITY_NOT_FOUND: ErrorProfile(
        retryable=False, user_visible=True, fatal_to_run=False
    ),
    ErrorKind.DUPLICATE_VERSION: ErrorProfile(
        retryable=False, user_visible=True, fatal_to_run=True
    ),
    ErrorKind.REGISTRY_FROZEN: ErrorProfile(
        retryable=False, user_visible=True, fatal_to_run=True
    ),
    ErrorKind.TIMEOUT: ErrorProfile(
        retryable=True, user_visible=True, fatal_to_run=False
    ),
    ErrorKind.INVOCATION: ErrorProfile(
        retryable=True, user_visible=True, fatal_to_run=False
    ),
    ErrorKind.UNKNOWN_CLUSTER: ErrorProfile(
        retryable=False, user_visible=True, fatal_to_run=False
    ),
    ErrorKind.CONDITION: ErrorProfile(
        retryable=False, user_visible=True, fatal_to_run=False
    ),
    ErrorKind.CANCELLED: ErrorProfile(
        retryable=False, user_visible=True, fatal_to_run=False
    ),
    ErrorKind.PLAN_INVALID: ErrorProfile(
        retryable=False, user_visible=True, fatal_to_run=True
    ),
}


def error_profile_for(kind: ErrorKind) -> ErrorProfile:
    profile = ERROR_PROFILES.get(kind)
    if profile is None:
        raise RuntimeError(f"Missing error profile for {kind.value}")
    return profile


class SwarmflowError(Exception):
    """Base class for every error the engine raises or records."""

    kind: ClassVar[ErrorKind] = ErrorKind.INVOCATION

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.attempts = 1

    @property
    def transient(self) -> bool:
        return error_profile_for(self.kind).retryable

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class SchemaValidationError(SwarmflowError):
    """Input or output did not match the declared contract shape."""

    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        violations: Sequence[str] = (),
        details: str | None = None,
    ) -> None:
        self.violations = tuple(violations)
        if details is None and self.violations:
            details = "; ".join(self.violations)
        super().__init__(message, details=details)


class CapabilityNotFoundError(SwarmflowError):
    kind = ErrorKind.CAPABILITY_NOT_FOUND


class DuplicateVersionError(SwarmflowError):
    kind = ErrorKind.DUPLICATE_VERSION


class RegistryFrozenError(SwarmflowError):
    kind = ErrorKind.REGISTRY_FROZEN


class InvocationTimeoutError(SwarmflowError):
    """The agent call exceeded ``contract.timeout``."""

    kind = ErrorKind.TIMEOUT


class InvocationError(SwarmflowError):
    """The agent reported a failure or the transport raised."""

    kind = ErrorKind.INVOCATION


class UnknownClusterError(SwarmflowError):
    kind = ErrorKind.UNKNOWN_CLUSTER


class ConditionError(SwarmflowError):
    """A stop condition or gate predicate raised while being evaluated."""

    kind = ErrorKind.CONDITION


class WorkflowCancelledError(SwarmflowError):
    kind = ErrorKind.CANCELLED


class PlanError(SwarmflowError):
    """The composition tree is malformed and cannot be executed."""

    kind = ErrorKind.PLAN_INVALID


if set(ERROR_PROFILES.keys()) != set(ErrorKind):
    missing = set(ErrorKind) - set(ERROR_PROFILES.keys())
    raise RuntimeError(
        "Error profiles must cover all error kinds: "
        f"missing={sorted(kind.value for kind in missing)}"
    )


__all__ = [
    "ErrorKind",
    "ErrorProfile",
    "ERROR_PROFILES",
    "error_profile_for",
    "SwarmflowError",
    "SchemaValidationError",
    "CapabilityNotFoundError",
    "DuplicateVersionError",
    "RegistryFrozenError",
    "InvocationTimeoutError",
    "InvocationError",
    "UnknownClusterError",
    "ConditionError",
    "WorkflowCancelledError",
    "PlanError",
]
