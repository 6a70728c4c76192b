"""Global constants shared by the orchestration engine."""

from __future__ import annotations

API_VERSION = "1.0"
"""Version of the public plan/result contract."""

ROOT_PATH = "root"
"""Trace path used for a root node without an explicit ``node_id``."""

PATH_SEPARATOR = "/"
ITERATION_SEPARATOR = "#"
"""Separator between a loop path and its 1-based iteration number."""

NAMESPACE_SEPARATOR = "."
"""Separator between a parallel branch id and the keys written by that branch."""

ENV_PREFIX = "SWARMFLOW_"
