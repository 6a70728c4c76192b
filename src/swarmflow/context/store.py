"""Namespaced key/value state shared across one workflow execution."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
import copy
import json
from typing import Any

from pydantic import ConfigDict

from swarmflow.constants import NAMESPACE_SEPARATOR
from swarmflow.errors import SchemaValidationError
from swarmflow.schema.base import TypedBaseModel

_MISSING = object()


class AuditRecord(TypedBaseModel):
    """One overwrite of an existing key, kept for replay and debugging."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    sequence: int
    key: str
    previous: Any
    value: Any
    writer: str


def _ensure_json(key: str, value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError) as exc:
        raise SchemaValidationError(
            f"Context value for {key!r} is not JSON-serialisable",
            details=str(exc),
        ) from exc
    return copy.deepcopy(value)


def lookup(data: Mapping[str, Any], path: str, default: Any = _MISSING) -> Any:
    """Resolve ``path`` as an exact key first, then as a dotted walk into objects.

    Branch-qualified keys such as ``"fetch.report"`` contain the separator, so
    the longest existing key prefix wins before descending into nested values.
    """
    if path in data:
        return data[path]
    parts = path.split(NAMESPACE_SEPARATOR)
    for cut in range(len(parts) - 1, 0, -1):
        head = NAMESPACE_SEPARATOR.join(parts[:cut])
        if head not in data:
            continue
        current: Any = data[head]
        for part in parts[cut:]:
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            else:
                break
        else:
            return current
    if default is _MISSING:
        raise KeyError(path)
    return default


class ContextStore:
    """Ordered, append-biased mapping with last-write-wins per key.

    A store only changes through :meth:`commit`, which the engine calls once a
    node has completed successfully. Overwrites are recorded in
    :attr:`audit_trail`. :meth:`fork` creates an independent view for a
    parallel branch; :meth:`merge_branch` folds the branch's own writes back
    under an engine-assigned prefix.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = {}
        self._written: dict[str, Any] = {}
        self._audit: list[AuditRecord] = []
        self._sequence = 0
        for key, value in (initial or {}).items():
            self._check_key(key)
            self._data[key] = _ensure_json(key, value)

    @staticmethod
    def _check_key(key: Any) -> None:
        if not isinstance(key, str) or not key:
            raise SchemaValidationError(f"Context keys must be non-empty strings: {key!r}")

    def fork(self) -> ContextStore:
        """Independent view seeded from the current snapshot, with no writes yet."""
        branch = ContextStore()
        branch._data = copy.deepcopy(self._data)
        return branch

    def commit(
        self,
        writes: Mapping[str, Any] | Iterable[tuple[str, Any]],
        *,
        writer: str,
        prefix: str | None = None,
    ) -> None:
        """Apply the writes of one completed node atomically."""
        items = list(writes.items() if isinstance(writes, Mapping) else writes)
        prepared: list[tuple[str, Any]] = []
        seen: set[str] = set()
        for key, value in items:
            self._check_key(key)
            qualified = f"{prefix}{NAMESPACE_SEPARATOR}{key}" if prefix else key
            if qualified in seen:
                raise SchemaValidationError(
                    f"Key {qualified!r} written twice in a single commit by {writer}"
                )
            seen.add(qualified)
            prepared.append((qualified, _ensure_json(qualified, value)))
        for key, value in prepared:
            self._sequence += 1
            if key in self._data:
                self._audit.append(
                    AuditRecord(
                        sequence=self._sequence,
                        key=key,
                        previous=self._data[key],
                        value=value,
                        writer=writer,
                    )
                )
            self._data[key] = value
            self._written[key] = value

    def merge_branch(self, branch: ContextStore, *, prefix: str, writer: str) -> None:
        """Fold a completed branch's own writes into this store under ``prefix``."""
        self.commit(branch.written(), writer=writer, prefix=prefix)
        for record in branch.audit_trail:
            self._sequence += 1
            self._audit.append(
                record.model_copy(
                    update={
                        "sequence": self._sequence,
                        "key": f"{prefix}{NAMESPACE_SEPARATOR}{record.key}",
                    }
                )
            )

    def written(self) -> dict[str, Any]:
        """Keys written through this store (not the seeded ones), in write order."""
        return copy.deepcopy(self._written)

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def namespace(self, prefix: str) -> dict[str, Any]:
        """Entries written under ``prefix.``, with the prefix stripped."""
        marker = f"{prefix}{NAMESPACE_SEPARATOR}"
        return {
            key[len(marker) :]: copy.deepcopy(value)
            for key, value in self._data.items()
            if key.startswith(marker)
        }

    def get(self, key: str, default: Any = None) -> Any:
        return copy.deepcopy(lookup(self._data, key, default))

    def lookup(self, path: str) -> Any:
        return copy.deepcopy(lookup(self._data, path))

    @property
    def audit_trail(self) -> tuple[AuditRecord, ...]:
        return tuple(self._audit)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def keys(self) -> list[str]:
        return list(self._data)
