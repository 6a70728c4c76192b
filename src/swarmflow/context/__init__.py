"""Context store shared by the nodes of one workflow run."""

from __future__ import annotations

from .store import AuditRecord, ContextStore, lookup

__all__ = ["AuditRecord", "ContextStore", "lookup"]
