"""Build plans from declarative mappings or YAML files.

Each node is a single-key mapping naming its kind::

    sequential:
      id: review
      steps:
        - leaf: {agent: writer@1, input: {topic: topic}, output_key: draft}
        - loop:
            max_iterations: 5
            until: {key_equals: {key: verdict, value: APPROVED}}
            body: {leaf: {agent: critic, output_key: verdict}}

Conditions use the names in :mod:`swarmflow.plan.conditions`. Callables
that cannot be expressed declaratively are referenced with
``{function: name}`` and looked up in the ``functions`` mapping.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import yaml

from swarmflow.errors import PlanError

from . import conditions
from .nodes import (
    AgentClassifier,
    CompositionNode,
    Coordinator,
    Gate,
    Leaf,
    Loop,
    Parallel,
    Sequential,
)

Functions = Mapping[str, Callable[..., Any]]


def load_plan(path: Path | str, functions: Functions | None = None) -> CompositionNode:
    """Read a YAML plan file and build its node tree."""
    resolved = Path(path)
    try:
        raw = yaml.safe_load(resolved.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise PlanError(f"Cannot read plan {resolved}", details=str(exc)) from exc
    return plan_from_mapping(raw, functions)


def plan_from_mapping(
    data: Mapping[str, Any], functions: Functions | None = None
) -> CompositionNode:
    return _PlanBuilder(functions or {}).node(data, "root")


class _PlanBuilder:
    def __init__(self, functions: Functions) -> None:
        self.functions = functions
        self._builders: dict[str, Callable[[Any, str], CompositionNode]] = {
            "leaf": self._leaf,
            "sequential": self._sequential,
            "parallel": self._parallel,
            "loop": self._loop,
            "coordinator": self._coordinator,
            "gate": self._gate,
        }

    def node(self, data: Any, where: str) -> CompositionNode:
        if not isinstance(data, Mapping) or len(data) != 1:
            raise PlanError(
                f"{where}: a node must be a mapping with exactly one kind key",
                details=f"expected one of {sorted(self._builders)}",
            )
        ((kind, raw),) = data.items()
        builder = self._builders.get(kind)
        if builder is None:
            raise PlanError(f"{where}: unknown node kind {kind!r}")
        try:
            return builder(raw, where)
        except (TypeError, ValueError) as exc:
            raise PlanError(f"{where}: invalid {kind} node", details=str(exc)) from exc

    @staticmethod
    def _fields(raw: Any, where: str, kind: str) -> dict[str, Any]:
        if not isinstance(raw, Mapping):
            raise PlanError(f"{where}: {kind} expects a mapping")
        return dict(raw)

    def _leaf(self, raw: Any, where: str) -> Leaf:
        if isinstance(raw, str):
            raw = {"agent": raw}
        fields = self._fields(raw, where, "leaf")
        if not isinstance(fields.get("agent"), str):
            raise PlanError(f"{where}: leaf requires an 'agent' reference")
        return Leaf(
            agent=fields.pop("agent"),
            input_mapping=fields.pop("input", None),
            output_key=fields.pop("output_key", None),
            static_input=fields.pop("static", None) or {},
            node_id=fields.pop("id", None),
            **self._reject_extra(fields, where),
        )

    def _sequential(self, raw: Any, where: str) -> Sequential:
        if isinstance(raw, list):
            raw = {"steps": raw}
        fields = self._fields(raw, where, "sequential")
        steps = fields.pop("steps", None) or []
        return Sequential(
            [self.node(step, f"{where}/{index}") for index, step in enumerate(steps)],
            node_id=fields.pop("id", None),
            **self._reject_extra(fields, where),
        )

    def _parallel(self, raw: Any, where: str) -> Parallel:
        if isinstance(raw, list):
            raw = {"branches": raw}
        fields = self._fields(raw, where, "parallel")
        branches = fields.pop("branches", None) or []
        return Parallel(
            [self.node(b, f"{where}/{index}") for index, b in enumerate(branches)],
            failure_policy=fields.pop("failure_policy", None),
            node_id=fields.pop("id", None),
            **self._reject_extra(fields, where),
        )

    def _loop(self, raw: Any, where: str) -> Loop:
        fields = self._fields(raw, where, "loop")
        if "body" not in fields or "until" not in fields:
            raise PlanError(f"{where}: loop requires 'body' and 'until'")
        return Loop(
            body=self.node(fields.pop("body"), f"{where}/body"),
            stop_condition=self.condition(fields.pop("until"), f"{where}/until"),
            max_iterations=fields.pop("max_iterations", None),
            node_id=fields.pop("id", None),
            **self._reject_extra(fields, where),
        )

    def _coordinator(self, raw: Any, where: str) -> Coordinator:
        fields = self._fields(raw, where, "coordinator")
        clusters = fields.pop("clusters", None)
        if not isinstance(clusters, Mapping):
            raise PlanError(f"{where}: coordinator requires a 'clusters' mapping")
        return Coordinator(
            classifier=self.classifier(fields.pop("classifier", None), where),
            clusters={
                key: self.node(child, f"{where}/{key}")
                for key, child in clusters.items()
            },
            node_id=fields.pop("id", None),
            **self._reject_extra(fields, where),
        )

    def _gate(self, raw: Any, where: str) -> Gate:
        fields = self._fields(raw or {}, where, "gate")
        condition = fields.pop("condition", None)
        then = fields.pop("then", None)
        return Gate(
            condition=(
                None if condition is None else self.condition(condition, where)
            ),
            timeout=fields.pop("timeout", None),
            on_timeout=fields.pop("on_timeout", None),
            then=None if then is None else self.node(then, f"{where}/then"),
            gate_id=fields.pop("gate_id", None),
            prompt=fields.pop("prompt", ""),
            node_id=fields.pop("id", None),
            **self._reject_extra(fields, where),
        )

    def condition(self, raw: Any, where: str) -> Callable[[Mapping[str, Any]], bool]:
        if not isinstance(raw, Mapping) or len(raw) != 1:
            raise PlanError(f"{where}: a condition must be a single-key mapping")
        ((name, args),) = raw.items()
        if name == "function":
            return self._function(args, where)
        if name in ("all_of", "any_of"):
            if not isinstance(args, list) or not args:
                raise PlanError(f"{where}: {name} expects a non-empty list")
            parts = [self.condition(item, f"{where}/{name}") for item in args]
            return getattr(conditions, name)(*parts)
        if name == "not":
            return conditions.negate(self.condition(args, f"{where}/not"))
        if name == "key_present":
            if isinstance(args, Mapping):
                args = args.get("key")
            if not isinstance(args, str):
                raise PlanError(f"{where}: key_present expects a key name")
            return conditions.key_present(args)
        if name in ("key_equals", "key_in", "key_contains"):
            if not isinstance(args, Mapping):
                raise PlanError(f"{where}: {name} expects a mapping")
            return getattr(conditions, name)(**args)
        raise PlanError(f"{where}: unknown condition {name!r}")

    def classifier(self, raw: Any, where: str) -> Callable[..., Any] | AgentClassifier:
        if not isinstance(raw, Mapping):
            raise PlanError(f"{where}: coordinator requires a 'classifier' mapping")
        fields = dict(raw)
        if "function" in fields:
            return self._function(fields["function"], where)
        if "key" in fields:
            return conditions.key_value(fields["key"])
        if "agent" in fields:
            return AgentClassifier(
                agent=fields.pop("agent"),
                input_mapping=fields.pop("input", None),
                cluster_field=fields.pop("cluster_field", "cluster"),
                output_key=fields.pop("output_key", None),
                **self._reject_extra(fields, where),
            )
        raise PlanError(f"{where}: classifier needs one of 'agent', 'key', 'function'")

    def _function(self, name: Any, where: str) -> Callable[..., Any]:
        function = self.functions.get(name) if isinstance(name, str) else None
        if function is None:
            raise PlanError(f"{where}: function {name!r} is not registered")
        return function

    @staticmethod
    def _reject_extra(fields: Mapping[str, Any], where: str) -> dict[str, Any]:
        if fields:
            raise PlanError(f"{where}: unexpected fields {sorted(fields)}")
        return {}


__all__ = ["load_plan", "plan_from_mapping"]
