"""Shared model base for swarmflow records."""

from __future__ import annotations

from .base import TypedBaseModel, final_class

__all__ = ["TypedBaseModel", "final_class"]
