"""Contract models describing invocable agent capabilities."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pydantic import ConfigDict, Field, field_validator

from swarmflow.config.defaults import DEFAULT_AGENT_TIMEOUT, DEFAULT_MAX_RETRIES
from swarmflow.errors import SchemaValidationError
from swarmflow.schema.base import TypedBaseModel

from .shapes import check_shape_definition, validate_shape


def _frozen(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _frozen(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_frozen(item) for item in value)
    return value


class AgentRef(TypedBaseModel):
    """Reference to an agent by name, optionally pinned to a version."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    version: int | None = Field(None, ge=1)

    @classmethod
    def parse(cls, value: AgentRef | str) -> AgentRef:
        """Accept ``"name"`` or ``"name@version"``."""
        if isinstance(value, AgentRef):
            return value
        name, sep, version = value.partition("@")
        if sep:
            return cls(name=name, version=int(version))
        return cls(name=name)

    def __str__(self) -> str:
        if self.version is None:
            return self.name
        return f"{self.name}@{self.version}"


class AgentContract(TypedBaseModel):
    """Immutable capability contract registered for one ``(name, version)``."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, description="Unique, stable agent name")
    version: int = Field(1, ge=1, description="Monotonic version per name")
    input_shape: Any = Field(None, description="Structural schema for inputs")
    output_shape: Any = Field(None, description="Structural schema for outputs")
    idempotent: bool = Field(False, description="Safe to retry automatically")
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=0)
    timeout: float = Field(DEFAULT_AGENT_TIMEOUT, gt=0, description="Seconds")
    backoff_base: float | None = Field(None, ge=0)
    backoff_cap: float | None = Field(None, ge=0)
    description: str = ""
    capabilities: tuple[str, ...] = ()
    skills: tuple[str, ...] = ()
    endpoint: str | None = None

    @field_validator("name")
    @classmethod
    def _name_has_no_version_marker(cls, value: str) -> str:
        if "@" in value:
            raise ValueError("agent name must not contain '@'")
        return value

    @field_validator("input_shape", "output_shape", mode="before")
    @classmethod
    def _freeze_shape(cls, value: Any) -> Any:
        check_shape_definition(value)
        return _frozen(value)

    @property
    def ref(self) -> AgentRef:
        return AgentRef(name=self.name, version=self.version)

    def validate_input(self, payload: Any) -> None:
        violations = validate_shape(payload, self.input_shape)
        if violations:
            raise SchemaValidationError(
                f"Input for {self.ref} does not match its contract",
                violations=violations,
            )

    def validate_output(self, output: Any) -> None:
        violations = validate_shape(output, self.output_shape)
        if violations:
            raise SchemaValidationError(
                f"Output of {self.ref} does not match its contract",
                violations=violations,
            )


__all__ = ["AgentRef", "AgentContract"]
