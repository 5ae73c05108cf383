"""
Service layer for Dispatch Hub.

Pure derivation logic (date ranking, reallocation resolution, status and
dealer checks, stats, filtering) plus the stateful workspace that applies
optimistic edits on top of store snapshots.
"""

from .resolver import resolve_dispatch_entries
from .workspace import DispatchWorkspace

__all__ = ["resolve_dispatch_entries", "DispatchWorkspace"]
