"""
Optimistic overlay for unconfirmed edits.

Pending edits are partial field patches keyed by record identity. The
effective value of a field is the value from the newest live write that
set it, else the last confirmed snapshot value. A key's writes are evicted
once a snapshot agrees with every field they hold, or once the record is
missing from the snapshot with nothing left in flight. A failed write is
dropped, so the fields it set fall back to whatever the remaining writes
or the snapshot say.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..core.errors import error_message

SnapshotSource = Callable[[], Mapping[str, Mapping[str, Any]]]


@dataclass(frozen=True)
class WriteResult:
    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "WriteResult":
        return cls(True)

    @classmethod
    def failure(cls, error: BaseException | str | None = None) -> "WriteResult":
        if isinstance(error, BaseException) or error is None:
            return cls(False, error_message(error))
        return cls(False, str(error) or "Update failed")


@dataclass(frozen=True)
class PendingWrite:
    """Handle returned by ``apply_local``; needed to settle that write."""

    key: str
    seq: int
    patch: Dict[str, Any]

    @property
    def fields(self) -> frozenset[str]:
        return frozenset(self.patch)


class OptimisticOverlayStore:
    def __init__(self, snapshot_source: Optional[SnapshotSource] = None) -> None:
        self.logger = logging.getLogger("OverlayStore")
        self._snapshot_source = snapshot_source
        self._lock = threading.RLock()
        self._seq = itertools.count(1)
        # key -> live writes, oldest first
        self._writes: Dict[str, List[PendingWrite]] = {}
        self._errors: Dict[str, str] = {}
        self._in_flight: Dict[str, int] = {}

    # -- reads ------------------------------------------------------------

    def pending(self, key: str) -> Dict[str, Any]:
        with self._lock:
            merged: Dict[str, Any] = {}
            for write in self._writes.get(key, ()):
                merged.update(write.patch)
            return merged

    def pending_keys(self) -> List[str]:
        with self._lock:
            return [key for key, writes in self._writes.items() if writes]

    def __len__(self) -> int:
        return len(self.pending_keys())

    def effective(self, key: str, base: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        if base is None and self._snapshot_source is not None:
            base = self._snapshot_source().get(key)
        merged = dict(base or {})
        merged.update(self.pending(key))
        return merged

    def overlay(self, snapshot: Mapping[str, Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
        return {key: self.effective(key, record) for key, record in snapshot.items()}

    def error(self, key: str) -> Optional[str]:
        with self._lock:
            return self._errors.get(key)

    def errors(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._errors)

    def is_saving(self, key: str) -> bool:
        with self._lock:
            return self._in_flight.get(key, 0) > 0

    # -- mutations --------------------------------------------------------

    def apply_local(self, key: str, patch: Mapping[str, Any]) -> PendingWrite:
        """Record ``patch`` as the key's newest pending edit and mark it in flight."""
        with self._lock:
            write = PendingWrite(key=key, seq=next(self._seq), patch=dict(patch))
            self._writes.setdefault(key, []).append(write)
            self._in_flight[key] = self._in_flight.get(key, 0) + 1
            self._errors.pop(key, None)
            return write

    def reconcile(self, snapshot: Optional[Mapping[str, Mapping[str, Any]]] = None) -> List[str]:
        """Drop pending entries the snapshot has caught up with. Returns evicted keys."""
        if snapshot is None:
            if self._snapshot_source is None:
                return []
            snapshot = self._snapshot_source()
        evicted: List[str] = []
        with self._lock:
            for key in list(self._writes):
                if not self._writes[key]:
                    del self._writes[key]
                    continue
                base = snapshot.get(key)
                if base is None:
                    # Record gone upstream; forget it once nothing is in flight.
                    if not self._in_flight.get(key):
                        del self._writes[key]
                        self._errors.pop(key, None)
                        evicted.append(key)
                    continue
                if all(value == base.get(name) for name, value in self.pending(key).items()):
                    del self._writes[key]
                    evicted.append(key)
        if evicted:
            self.logger.debug("Overlay reconciled keys=%s", ",".join(evicted))
        return evicted

    def commit_or_revert(self, write: PendingWrite, result: WriteResult) -> bool:
        """Settle one write. On failure drop it and record the error."""
        with self._lock:
            remaining = self._in_flight.get(write.key, 0) - 1
            if remaining > 0:
                self._in_flight[write.key] = remaining
            else:
                self._in_flight.pop(write.key, None)
            if result.ok:
                return True
            writes = self._writes.get(write.key)
            if writes is not None:
                kept = [w for w in writes if w.seq != write.seq]
                if kept:
                    self._writes[write.key] = kept
                else:
                    del self._writes[write.key]
            self._errors[write.key] = result.error or "Update failed"
        self.logger.warning(
            "Reverted optimistic edit key=%s fields=%s: %s",
            write.key,
            ",".join(sorted(write.fields)),
            result.error,
        )
        return False
