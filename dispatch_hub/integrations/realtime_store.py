"""
Realtime store contract and the in-memory implementation.

The store holds keyed collections (``Dispatch``, ``reallocation``,
``schedule``, ``dispatchError``). Readers get full-collection snapshots,
either once or pushed on every change; writers send shallow partial
patches where ``None`` clears a field.
"""

from __future__ import annotations

import copy
import logging
import re
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..core.errors import StoreWriteError, guarded_call

SnapshotHandler = Callable[[Any], None]

_UNSAFE_KEY_CHARS = re.compile(r"[.#$\[\]/]")


def escape_key(key: str) -> str:
    """Make a record key safe to use as a store path segment."""
    return _UNSAFE_KEY_CHARS.sub("_", str(key))


class Subscription:
    """A cancellable handle for one collection's snapshot stream."""

    def __init__(self, collection: str, handler: SnapshotHandler, on_cancel: Optional[Callable[["Subscription"], None]] = None) -> None:
        self.collection = collection
        self.handler = handler
        self._on_cancel = on_cancel
        self._active = True
        self._lock = threading.Lock()
        self.logger = logging.getLogger("Subscription")

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, snapshot: Any) -> None:
        if not self._active:
            return
        guarded_call(
            "Snapshot handler",
            lambda: self.handler(snapshot),
            logger=self.logger,
            context={"collection": self.collection},
        )

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        if self._on_cancel is not None:
            self._on_cancel(self)


class RealtimeStore(ABC):
    @abstractmethod
    def fetch(self, collection: str) -> Any:
        """Return the whole collection once (``{}`` when empty)."""

    @abstractmethod
    def subscribe(self, collection: str, handler: SnapshotHandler) -> Subscription:
        """Deliver the whole collection to ``handler`` now and on every change."""

    @abstractmethod
    def patch(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        """Shallow-merge ``fields`` into one record. Raises StoreWriteError."""

    @abstractmethod
    def push(self, collection: str, value: Mapping[str, Any]) -> str:
        """Append ``value`` under a generated id and return the id."""

    def refresh(self, collection: str) -> None:
        """Ask the store to re-deliver ``collection`` as soon as possible."""

    def close(self) -> None:
        pass


class InMemoryRealtimeStore(RealtimeStore):
    """Thread-safe dict-backed store, used for local runs and tests."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self.logger = logging.getLogger("InMemoryRealtimeStore")
        self._data: Dict[str, Any] = copy.deepcopy(dict(initial or {}))
        self._subs: Dict[str, Subscription] = {}
        self._lock = threading.RLock()
        self._fail_patches: List[str] = []
        self.patch_log: List[tuple[str, str, Dict[str, Any]]] = []

    def fetch(self, collection: str) -> Any:
        with self._lock:
            return copy.deepcopy(self._data.get(collection) or {})

    def subscribe(self, collection: str, handler: SnapshotHandler) -> Subscription:
        with self._lock:
            previous = self._subs.get(collection)
        if previous is not None:
            previous.cancel()
        sub = Subscription(collection, handler, on_cancel=self._drop)
        with self._lock:
            self._subs[collection] = sub
        self.logger.info("Subscribed collection=%s", collection)
        sub.deliver(self.fetch(collection))
        return sub

    def _drop(self, sub: Subscription) -> None:
        with self._lock:
            if self._subs.get(sub.collection) is sub:
                del self._subs[sub.collection]

    def _notify(self, collection: str) -> None:
        with self._lock:
            sub = self._subs.get(collection)
        if sub is not None:
            sub.deliver(self.fetch(collection))

    def patch(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        safe_key = escape_key(key)
        with self._lock:
            if self._fail_patches:
                detail = self._fail_patches.pop(0)
                raise StoreWriteError(safe_key, detail)
            bucket = self._data.setdefault(collection, {})
            record = bucket.setdefault(safe_key, {})
            for name, value in fields.items():
                if value is None:
                    record.pop(name, None)
                else:
                    record[name] = copy.deepcopy(value)
            self.patch_log.append((collection, safe_key, dict(fields)))
        self._notify(collection)

    def push(self, collection: str, value: Mapping[str, Any]) -> str:
        entry_id = uuid.uuid4().hex
        with self._lock:
            self._data.setdefault(collection, {})[entry_id] = copy.deepcopy(dict(value))
        self._notify(collection)
        return entry_id

    def refresh(self, collection: str) -> None:
        self._notify(collection)

    # -- helpers for seeding and tests --------------------------------------

    def set(self, collection: str, value: Any) -> None:
        """Replace a whole collection, as an upstream feed would."""
        with self._lock:
            self._data[collection] = copy.deepcopy(value)
        self._notify(collection)

    def update_record(self, collection: str, key: str, fields: Mapping[str, Any], *, notify: bool = True) -> None:
        """Server-side change that bypasses failure injection and the patch log."""
        with self._lock:
            record = self._data.setdefault(collection, {}).setdefault(escape_key(key), {})
            for name, value in fields.items():
                if value is None:
                    record.pop(name, None)
                else:
                    record[name] = copy.deepcopy(value)
        if notify:
            self._notify(collection)

    def fail_next_patch(self, detail: str = "Permission denied") -> None:
        with self._lock:
            self._fail_patches.append(detail)

    def close(self) -> None:
        with self._lock:
            subs = list(self._subs.values())
        for sub in subs:
            sub.cancel()
