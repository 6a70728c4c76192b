"""Structural checks run on a plan before the engine executes it."""

from __future__ import annotations

from swarmflow.constants import (
    ITERATION_SEPARATOR,
    NAMESPACE_SEPARATOR,
    PATH_SEPARATOR,
)
from swarmflow.errors import PlanError

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

_RESERVED = (PATH_SEPARATOR, NAMESPACE_SEPARATOR, ITERATION_SEPARATOR)


def validate_plan(root: CompositionNode) -> None:
    """Raise :class:`PlanError` listing every problem found in the tree."""
    problems: list[str] = []
    _visit(root, "root", (), problems)
    if problems:
        raise PlanError("Plan is invalid", details="; ".join(problems))


def _visit(
    node: CompositionNode,
    where: str,
    ancestors: tuple[int, ...],
    problems: list[str],
) -> None:
    if not isinstance(node, CompositionNode):
        problems.append(f"{where}: {type(node).__name__} is not a composition node")
        return
    if id(node) in ancestors:
        problems.append(f"{where}: node contains itself")
        return
    if node.node_id is not None:
        if not node.node_id or any(mark in node.node_id for mark in _RESERVED):
            problems.append(
                f"{where}: node_id {node.node_id!r} must be non-empty and free of "
                f"{' '.join(_RESERVED)}"
            )

    if isinstance(node, Leaf):
        if node.output_key is not None and not node.output_key:
            problems.append(f"{where}: output_key must not be empty")
    elif isinstance(node, (Sequential, Parallel)):
        children = node.children()
        if not children:
            problems.append(f"{where}: {node.kind.value} node has no children")
        ids = [getattr(child, "node_id", None) for child in children]
        labels = [str(i) if id_ is None else id_ for i, id_ in enumerate(ids)]
        duplicates = sorted({label for label in labels if labels.count(label) > 1})
        if duplicates:
            problems.append(f"{where}: duplicate child ids {duplicates}")
    elif isinstance(node, Loop):
        if not callable(node.stop_condition):
            problems.append(f"{where}: stop_condition must be callable")
        if node.max_iterations is not None and node.max_iterations < 1:
            problems.append(f"{where}: max_iterations must be at least 1")
    elif isinstance(node, Coordinator):
        if not node.clusters:
            problems.append(f"{where}: coordinator has no clusters")
        for key in node.clusters:
            if not key or any(mark in key for mark in _RESERVED):
                problems.append(
                    f"{where}: cluster id {key!r} must be non-empty and free of "
                    f"{' '.join(_RESERVED)}"
                )
        if not (isinstance(node.classifier, AgentClassifier) or callable(node.classifier)):
            problems.append(f"{where}: classifier must be callable or an AgentClassifier")
    elif isinstance(node, Gate):
        if node.timeout is not None and node.timeout <= 0:
            problems.append(f"{where}: gate timeout must be positive")
        if node.condition is not None and not callable(node.condition):
            problems.append(f"{where}: gate condition must be callable")
        if node.gate_id is not None and (
            not node.gate_id or ITERATION_SEPARATOR in node.gate_id
        ):
            problems.append(
                f"{where}: gate_id {node.gate_id!r} must be non-empty and free of "
                f"{ITERATION_SEPARATOR}"
            )

    nested = (*ancestors, id(node))
    if isinstance(node, Coordinator):
        for key, child in node.clusters.items():
            _visit(child, f"{where}/{key}", nested, problems)
    else:
        for index, child in enumerate(node.children()):
            label = child.label(str(index)) if isinstance(child, CompositionNode) else str(index)
            _visit(child, f"{where}/{label}", nested, problems)


__all__ = ["validate_plan"]
