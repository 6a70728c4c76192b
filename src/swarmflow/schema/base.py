"""Shared Pydantic base class and the final-class decorator used by result models."""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T", bound=type[Any])


class TypedBaseModel(BaseModel):
    """Common base so every swarmflow model shares one configuration.

    Subclasses tighten this with ``frozen=True`` and ``extra="forbid"``; the
    base only allows arbitrary types so plan callables can ride along in
    contracts and events.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)


def final_class(cls: T) -> T:
    """Reject subclassing of terminal record types at runtime."""

    def __init_subclass__(subcls: type[Any], **kwargs: Any) -> None:  # noqa: N807
        raise TypeError(f"{cls.__name__} is a terminal record and cannot be extended")

    cls.__init_subclass__ = classmethod(__init_subclass__)
    return cls
