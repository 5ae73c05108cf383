"""
Dispatch workspace: the live, reconciled view of the dispatch pipeline.

The workspace subscribes to the dispatch, reallocation and schedule
collections, re-resolves every record when any of them changes and keeps
one optimistic overlay for edits made through it. Writes are issued on a
background pool and never block the caller; the returned future resolves
to the ``WriteResult`` once the overlay has been settled. Writes to one
record reach the store in the order they were made, while different
records are written concurrently.
"""

from __future__ import annotations

import datetime
import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple

from ..core.config import Settings
from ..core.errors import RecordNotFound, TransitionRejected, log_exception
from ..integrations.realtime_store import RealtimeStore, Subscription
from ..schemas.dispatch import (
    CurrentReallocation,
    DispatchErrorReport,
    DispatchStats,
    FlagKind,
    ResolvedDispatchEntry,
)
from .filters import FilterQuery, FilterSortPipeline
from .flag_machine import DEFAULT_ACTOR, FlagTransition, OperationalFlagMachine, iso_timestamp
from .overlay import OptimisticOverlayStore, PendingWrite, WriteResult
from .reallocation import DEFAULT_FINISHED_LABEL, ReallocationResolver
from .resolver import resolve_dispatch_entries
from .stats import DEFAULT_SNOWY_STOCK, StatsAggregator
from .timefmt import parse_iso

DISPATCH_COLLECTION = "Dispatch"
REALLOCATION_COLLECTION = "reallocation"
SCHEDULE_COLLECTION = "schedule"
DISPATCH_ERROR_COLLECTION = "dispatchError"

PICKUP_IN_PAST = "Pick-up time must be today or later"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DispatchWorkspace:
    def __init__(
        self,
        store: RealtimeStore,
        *,
        actor_id: str = DEFAULT_ACTOR,
        snowy_stock_dealer: str = DEFAULT_SNOWY_STOCK,
        finished_label: str = DEFAULT_FINISHED_LABEL,
        write_workers: int = 4,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self.logger = logging.getLogger("DispatchWorkspace")
        self.store = store
        self.clock = clock
        self.finished_label = finished_label
        self.flags = OperationalFlagMachine(actor_id=actor_id, clock=clock)
        self.stats_aggregator = StatsAggregator(snowy_stock_dealer)
        self.pipeline = FilterSortPipeline(snowy_stock_dealer)
        self.overlay = OptimisticOverlayStore(snapshot_source=self.confirmed_snapshot)
        self._write_workers = max(1, write_workers)
        self._executor = self._new_executor()
        # store key -> writes waiting to be sent, head is in progress
        self._queues: Dict[str, Deque[Tuple[PendingWrite, Future]]] = {}
        self._queue_lock = threading.Lock()
        self._lock = threading.RLock()
        self._dispatch_raw: Any = {}
        self._reallocation_raw: Any = {}
        self._schedule_raw: Any = []
        self._resolver = ReallocationResolver({}, (), finished_label=finished_label)
        self._confirmed: Dict[str, ResolvedDispatchEntry] = {}
        self._subscriptions: List[Subscription] = []
        self._started = False
        self._closed = False

    @classmethod
    def from_settings(cls, cfg: Settings, store: RealtimeStore) -> "DispatchWorkspace":
        return cls(
            store,
            actor_id=cfg.actor_id,
            snowy_stock_dealer=cfg.snowy_stock_dealer,
            finished_label=cfg.finished_production_label,
            write_workers=cfg.write_workers,
        )

    # -- lifecycle --------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._started

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self._write_workers, thread_name_prefix="dispatch-write")

    def start(self) -> None:
        if self._started:
            return
        if self._closed:
            self._executor = self._new_executor()
            self._closed = False
        self.load(
            dispatch=self.store.fetch(DISPATCH_COLLECTION),
            reallocation=self.store.fetch(REALLOCATION_COLLECTION),
            schedule=self.store.fetch(SCHEDULE_COLLECTION),
        )
        self._subscriptions = [
            self.store.subscribe(DISPATCH_COLLECTION, lambda snap: self.load(dispatch=snap)),
            self.store.subscribe(REALLOCATION_COLLECTION, lambda snap: self.load(reallocation=snap)),
            self.store.subscribe(SCHEDULE_COLLECTION, lambda snap: self.load(schedule=snap)),
        ]
        self._started = True
        self.logger.info("Dispatch workspace started records=%s", len(self._confirmed))

    def stop(self) -> None:
        self._closed = True
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions = []
        self._executor.shutdown(wait=False)
        self._started = False
        self.logger.info("Dispatch workspace stopped")

    def load(self, *, dispatch: Any = None, reallocation: Any = None, schedule: Any = None) -> None:
        """Replace one or more raw snapshots and re-resolve every record."""
        with self._lock:
            if dispatch is not None:
                self._dispatch_raw = dispatch or {}
            if reallocation is not None:
                self._reallocation_raw = reallocation or {}
            if schedule is not None:
                self._schedule_raw = schedule or []
            resolver = ReallocationResolver.from_raw(
                self._reallocation_raw,
                self._schedule_raw,
                finished_label=self.finished_label,
            )
            confirmed = resolve_dispatch_entries(self._dispatch_raw, resolver)
            self._resolver = resolver
            self._confirmed = confirmed
        self.overlay.reconcile(self.confirmed_snapshot())

    # -- views ------------------------------------------------------------

    def confirmed_snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {chassis: entry.to_wire() for chassis, entry in self._confirmed.items()}

    def confirmed(self, chassis_no: str) -> Optional[ResolvedDispatchEntry]:
        with self._lock:
            return self._confirmed.get(chassis_no)

    def get(self, chassis_no: str) -> ResolvedDispatchEntry:
        entry = self.confirmed(chassis_no)
        if entry is None:
            raise RecordNotFound(chassis_no)
        return entry.with_patch(self.overlay.pending(chassis_no))

    def entries(self) -> List[ResolvedDispatchEntry]:
        with self._lock:
            confirmed = list(self._confirmed.values())
        return [entry.with_patch(self.overlay.pending(entry.chassis_no)) for entry in confirmed]

    def stats(self) -> DispatchStats:
        return self.stats_aggregator.compute(self.entries())

    def reallocations(self) -> List[CurrentReallocation]:
        with self._lock:
            resolver = self._resolver
        return resolver.current_reallocations()

    def view(self, query: FilterQuery) -> List[ResolvedDispatchEntry]:
        return self.pipeline.apply(self.entries(), query, self.reallocations())

    def flag_queue(self, kind: FlagKind, search: str = "") -> List[ResolvedDispatchEntry]:
        """Entries with ``kind`` active, most recently flagged first."""
        term = (search or "").strip().lower()
        rows = []
        for entry in self.entries():
            if not entry.is_flag_active(kind):
                continue
            if term:
                values = (entry.chassis_no, entry.so_number, entry.vin_number, entry.customer, entry.model)
                if not any(v is not None and term in str(v).lower() for v in values):
                    continue
            rows.append(entry)

        def _flagged_at(entry: ResolvedDispatchEntry) -> float:
            ts = parse_iso(entry.flag_timestamp(kind))
            return ts.timestamp() if ts else 0.0

        return sorted(rows, key=_flagged_at, reverse=True)

    def errors(self) -> Dict[str, str]:
        return self.overlay.errors()

    def is_saving(self, chassis_no: str) -> bool:
        return self.overlay.is_saving(chassis_no)

    # -- actions ----------------------------------------------------------

    def set_flag(
        self,
        chassis_no: str,
        kind: FlagKind,
        active: bool,
        comment: Optional[str] = None,
    ) -> Future:
        entry = self.get(chassis_no)
        transition = self.flags.transition(entry, kind, active, comment)
        return self._apply_transition(entry, transition)

    def toggle_flag(self, chassis_no: str, kind: FlagKind, comment: Optional[str] = None) -> Future:
        entry = self.get(chassis_no)
        transition = self.flags.toggle(entry, kind, comment)
        return self._apply_transition(entry, transition)

    def _apply_transition(self, entry: ResolvedDispatchEntry, transition: FlagTransition) -> Future:
        self.logger.info(
            "Flag transition chassis=%s %s -> %s",
            entry.chassis_no,
            transition.from_state.value,
            transition.to_state.value,
        )
        return self._write(entry, transition.patch)

    def save_comment(self, chassis_no: str, text: Optional[str]) -> Future:
        entry = self.get(chassis_no)
        return self._write(entry, {"Comment": text or ""})

    def save_transport(self, chassis_no: str, company: Optional[str]) -> Future:
        entry = self.get(chassis_no)
        return self._write(entry, {"TransportCompany": (company or "").strip() or None})

    def save_pickup(self, chassis_no: str, when: datetime.datetime | str | None) -> Future:
        entry = self.get(chassis_no)
        iso: Optional[str] = None
        if when is not None and when != "":
            picked = parse_iso(when) if isinstance(when, str) else when
            if picked is None:
                raise TransitionRejected(chassis_no, "Pick-up time is not a valid timestamp")
            if picked.tzinfo is None:
                picked = picked.replace(tzinfo=datetime.timezone.utc)
            if picked < self.clock():
                raise TransitionRejected(chassis_no, PICKUP_IN_PAST)
            iso = iso_timestamp(picked)
        return self._write(entry, {"EstimatedPickupAt": iso})

    def _write(self, entry: ResolvedDispatchEntry, patch: Mapping[str, Any]) -> Future:
        if self._closed:
            raise RuntimeError("Dispatch workspace is stopped")
        write = self.overlay.apply_local(entry.chassis_no, patch)
        store_key = entry.dispatch_key or entry.chassis_no
        future: Future = Future()
        with self._queue_lock:
            queue = self._queues.setdefault(store_key, deque())
            queue.append((write, future))
            idle = len(queue) == 1
        if idle:
            self._executor.submit(self._drain, store_key)
        return future

    def _drain(self, store_key: str) -> None:
        """Send one record's queued writes in submission order."""
        while True:
            with self._queue_lock:
                write, future = self._queues[store_key][0]
            if future.set_running_or_notify_cancel():
                try:
                    future.set_result(self._run_write(write, store_key))
                except Exception as exc:
                    future.set_exception(exc)
            else:
                self.overlay.commit_or_revert(write, WriteResult.failure("Write cancelled"))
            with self._queue_lock:
                queue = self._queues[store_key]
                queue.popleft()
                if not queue:
                    del self._queues[store_key]
                    return

    def _run_write(self, write: PendingWrite, store_key: str) -> WriteResult:
        try:
            self.store.patch(DISPATCH_COLLECTION, store_key, write.patch)
        except Exception as exc:
            log_exception(self.logger, "Dispatch patch failed", extra={"chassis": write.key}, exc=exc)
            result = WriteResult.failure(exc)
        else:
            result = WriteResult.success()
        if self._closed:
            self.logger.debug("Discarding write result after shutdown chassis=%s", write.key)
            return result
        self.overlay.commit_or_revert(write, result)
        return result

    def report_error(self, chassis_no: str, details: str = "Dealer check mismatch") -> bool:
        report = DispatchErrorReport(
            chassis_no=chassis_no,
            error_details=details,
            timestamp=iso_timestamp(self.clock()),
        )
        try:
            self.store.push(DISPATCH_ERROR_COLLECTION, report.model_dump(by_alias=True))
        except Exception as exc:
            log_exception(self.logger, "Error report failed", extra={"chassis": chassis_no}, exc=exc)
            return False
        return True
