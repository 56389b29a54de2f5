"""Persistence layer: each store owns its file path, data format, and I/O."""

from ._base import JsonStore
from .snapshot import DEFAULT_DEBOUNCE_SECONDS, SnapshotStore

__all__ = [
    "DEFAULT_DEBOUNCE_SECONDS",
    "JsonStore",
    "SnapshotStore",
]
