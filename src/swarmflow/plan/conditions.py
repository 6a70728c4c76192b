"""Typed predicates and classifiers over a context snapshot.

Loop stop conditions, gate conditions and key-based classifiers are plain
callables taking the context mapping. The helpers here build small frozen
objects for the common cases so declarative plans never need free-form code.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from swarmflow.context.store import lookup

_MISSING = object()


@dataclass(frozen=True)
class KeyEquals:
    key: str
    value: Any

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return lookup(context, self.key, _MISSING) == self.value


@dataclass(frozen=True)
class KeyPresent:
    key: str

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return lookup(context, self.key, _MISSING) is not _MISSING


@dataclass(frozen=True)
class KeyIn:
    key: str
    values: tuple[Any, ...]

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return lookup(context, self.key, _MISSING) in self.values


@dataclass(frozen=True)
class KeyContains:
    """Substring (or membership) test, e.g. a critic verdict containing APPROVED."""

    key: str
    needle: Any

    def __call__(self, context: Mapping[str, Any]) -> bool:
        value = lookup(context, self.key, _MISSING)
        if value is _MISSING or value is None:
            return False
        try:
            return self.needle in value
        except TypeError:
            return False


@dataclass(frozen=True)
class AllOf:
    conditions: tuple[Callable[[Mapping[str, Any]], bool], ...]

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return all(condition(context) for condition in self.conditions)


@dataclass(frozen=True)
class AnyOf:
    conditions: tuple[Callable[[Mapping[str, Any]], bool], ...]

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return any(condition(context) for condition in self.conditions)


@dataclass(frozen=True)
class Not:
    condition: Callable[[Mapping[str, Any]], bool]

    def __call__(self, context: Mapping[str, Any]) -> bool:
        return not self.condition(context)


@dataclass(frozen=True)
class KeyValue:
    """Classifier returning the value stored at ``key``."""

    key: str

    def __call__(self, context: Mapping[str, Any]) -> Any:
        return lookup(context, self.key)


def key_equals(key: str, value: Any) -> KeyEquals:
    return KeyEquals(key, value)


def key_present(key: str) -> KeyPresent:
    return KeyPresent(key)


def key_in(key: str, values: Sequence[Any]) -> KeyIn:
    return KeyIn(key, tuple(values))


def key_contains(key: str, needle: Any) -> KeyContains:
    return KeyContains(key, needle)


def all_of(*conditions: Callable[[Mapping[str, Any]], bool]) -> AllOf:
    return AllOf(tuple(conditions))


def any_of(*conditions: Callable[[Mapping[str, Any]], bool]) -> AnyOf:
    return AnyOf(tuple(conditions))


def negate(condition: Callable[[Mapping[str, Any]], bool]) -> Not:
    return Not(condition)


def key_value(key: str) -> KeyValue:
    return KeyValue(key)


__all__ = [
    "AllOf",
    "AnyOf",
    "KeyContains",
    "KeyEquals",
    "KeyIn",
    "KeyPresent",
    "KeyValue",
    "Not",
    "all_of",
    "any_of",
    "key_contains",
    "key_equals",
    "key_in",
    "key_present",
    "key_value",
    "negate",
]
