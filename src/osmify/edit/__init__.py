"""Local editing: element store, diff builder, changeset sessions and the
response reconciler."""

from __future__ import annotations

from .builder import DiffBuilder
from .reconciler import Reconciler
from .session import AsyncChangesetSession, ChangesetSession
from .store import ElementStore, StoreSnapshot

__all__ = [
    "AsyncChangesetSession",
    "ChangesetSession",
    "DiffBuilder",
    "ElementStore",
    "Reconciler",
    "StoreSnapshot",
]
