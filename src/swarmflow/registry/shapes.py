"""Structural shape checks for agent inputs and outputs.

A shape is either a Pydantic model class or a mapping from field name to a
rule. A rule is a type name (``"string"``, ``"integer"``, ``"number"``,
``"boolean"``, ``"array"``, ``"object"``, ``"null"``, ``"any"``) or a dict
with any of ``type``, ``required`` (default True), ``allowed``, ``schema``
(nested shape for objects) and ``items`` (rule for array elements). Shapes are
only used to reject malformed payloads; they never coerce values.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

_TYPE_CHECKS: dict[str, Any] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, Mapping),
    "null": lambda v: v is None,
    "any": lambda v: True,
}
_ALIASES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "list": "array",
    "dict": "object",
    "none": "null",
}


def _type_name(raw: str) -> str:
    name = _ALIASES.get(raw.lower(), raw.lower())
    if name not in _TYPE_CHECKS:
        raise ValueError(f"Unknown shape type: {raw}")
    return name


def check_shape_definition(shape: Any) -> None:
    """Raise ``ValueError`` if ``shape`` is not a usable shape description."""
    if shape is None:
        return
    if isinstance(shape, type) and issubclass(shape, BaseModel):
        return
    if not isinstance(shape, Mapping):
        raise ValueError(
            f"Shape must be a mapping or a pydantic model, got {type(shape).__name__}"
        )
    for key, rule in shape.items():
        _check_rule(rule, str(key))


def _check_rule(rule: Any, path: str) -> None:
    if isinstance(rule, str):
        _type_name(rule)
        return
    if not isinstance(rule, Mapping):
        raise ValueError(f"{path}: rule must be a type name or a mapping")
    if "type" in rule:
        _type_name(rule["type"])
    if "schema" in rule:
        check_shape_definition(rule["schema"])
    if "items" in rule:
        _check_rule(rule["items"], f"{path}[]")


def validate_shape(data: Any, shape: Any, path: str = "") -> list[str]:
    """Return every violation of ``shape`` found in ``data`` (empty when valid)."""
    if shape is None:
        return []
    if isinstance(shape, type) and issubclass(shape, BaseModel):
        try:
            shape.model_validate(data)
        except PydanticValidationError as exc:
            return [
                f"{_join(path, '.'.join(str(p) for p in err['loc']))}: {err['msg']}"
                for err in exc.errors()
            ]
        return []
    if not isinstance(data, Mapping):
        return [f"{path or 'root'}: expected object, got {type(data).__name__}"]

    violations: list[str] = []
    for key, rule in shape.items():
        key_path = _join(path, str(key))
        if isinstance(rule, str):
            rule = {"type": rule}
        required = rule.get("required", True)
        if key not in data:
            if required:
                violations.append(f"{key_path}: missing required key")
            continue
        violations.extend(_validate_value(data[key], rule, key_path))
    return violations


def _validate_value(value: Any, rule: Mapping[str, Any], path: str) -> list[str]:
    expected = rule.get("type")
    if expected is not None:
        name = _type_name(expected)
        if not _TYPE_CHECKS[name](value):
            return [f"{path}: expected {name}, got {type(value).__name__}"]
    allowed = rule.get("allowed")
    if allowed is not None and value not in allowed:
        return [f"{path}: {value!r} not in allowed values {list(allowed)!r}"]
    violations: list[str] = []
    nested = rule.get("schema")
    if nested is not None:
        violations.extend(validate_shape(value, nested, path))
    items = rule.get("items")
    if items is not None and isinstance(value, (list, tuple)):
        item_rule = {"type": items} if isinstance(items, str) else items
        for index, item in enumerate(value):
            violations.extend(_validate_value(item, item_rule, f"{path}[{index}]"))
    return violations


def _join(prefix: str, key: str) -> str:
    return f"{prefix}.{key}" if prefix else key
