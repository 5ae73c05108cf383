import logging
import threading
import time

import pytest

from conftest import FIXED_NOW, GatedStore, seed_data

from dispatch_hub.core.errors import RecordNotFound, TransitionRejected
from dispatch_hub.integrations.realtime_store import InMemoryRealtimeStore
from dispatch_hub.schemas.dispatch import DealerCheck, FlagKind, FlagState
from dispatch_hub.services.filters import FilterQuery
from dispatch_hub.services.stats import DispatchCategory
from dispatch_hub.services.workspace import PICKUP_IN_PAST, DispatchWorkspace


def test_start_resolves_entries(workspace):
    entry = workspace.get("ABC123")
    assert entry.reallocated_to == "Dealer Y"
    assert entry.dealer_check is DealerCheck.OK
    assert workspace.get("JKL012").reallocated_to is None
    assert [item.chassis_number for item in workspace.reallocations()] == ["ABC123"]
    assert workspace.stats().total == 5


def test_unknown_chassis_raises(workspace):
    with pytest.raises(RecordNotFound):
        workspace.get("NOPE")
    with pytest.raises(RecordNotFound):
        workspace.save_comment("NOPE", "hi")


def test_on_hold_replaces_service_ticket(workspace, store):
    result = workspace.set_flag("DEF456", FlagKind.ON_HOLD, True).result(timeout=5)
    assert result.ok

    entry = workspace.get("DEF456")
    assert entry.flag_state() is FlagState.ON_HOLD
    assert entry.on_hold_at == "2024-04-01T09:00:00.000Z"
    assert entry.on_hold_by == "webapp"
    assert entry.service_ticket_at is None

    record = store.fetch("Dispatch")["DEF456"]
    assert record["OnHold"] is True
    assert record["ServiceTicket"] is False
    assert "ServiceTicketAt" not in record
    assert workspace.overlay.pending("DEF456") == {}
    assert workspace.stats().on_hold == 2


def test_edit_is_visible_before_store_acknowledges():
    store = GatedStore(seed_data())
    ws = DispatchWorkspace(store, clock=lambda: FIXED_NOW)
    ws.start()
    try:
        future = ws.save_transport("ABC123", "FastHaul")
        assert ws.get("ABC123").transport_company == "FastHaul"
        assert ws.is_saving("ABC123")
        assert ws.stats().booked == 2
        store.release()
        assert future.result(timeout=5).ok
        assert not ws.is_saving("ABC123")
        assert ws.overlay.pending("ABC123") == {}
        assert store.fetch("Dispatch")["ABC123"]["TransportCompany"] == "FastHaul"
    finally:
        ws.stop()


def test_failed_pickup_write_reverts_to_confirmed_value(workspace, store, caplog):
    caplog.set_level(logging.WARNING)
    store.fail_next_patch("Permission denied")

    result = workspace.save_pickup("ABC123", "2024-04-02T10:00:00Z").result(timeout=5)

    assert not result.ok
    assert workspace.get("ABC123").estimated_pickup_at == "2024-04-01T15:00:00.000Z"
    assert workspace.errors() == {"ABC123": "Permission denied"}
    assert not workspace.is_saving("ABC123")
    assert any("Dispatch patch failed" in rec.message for rec in caplog.records)


def test_pickup_in_past_is_rejected_without_write(workspace, store):
    with pytest.raises(TransitionRejected) as excinfo:
        workspace.save_pickup("ABC123", "2024-03-31T10:00:00Z")
    assert excinfo.value.reason == PICKUP_IN_PAST
    with pytest.raises(TransitionRejected):
        workspace.save_pickup("ABC123", "tomorrow-ish")
    assert store.patch_log == []
    assert workspace.overlay.pending("ABC123") == {}


def test_clearing_pickup_removes_field(workspace, store):
    assert workspace.save_pickup("ABC123", None).result(timeout=5).ok
    assert "EstimatedPickupAt" not in store.fetch("Dispatch")["ABC123"]
    assert workspace.get("ABC123").estimated_pickup_at is None


def test_temporary_leaving_needs_comment(workspace, store):
    with pytest.raises(TransitionRejected):
        workspace.set_flag("ABC123", FlagKind.TEMPORARY_LEAVING, True)
    assert store.patch_log == []

    assert workspace.set_flag("ABC123", FlagKind.TEMPORARY_LEAVING, True, comment="At the show").result(timeout=5).ok
    entry = workspace.get("ABC123")
    assert entry.temporary_leaving
    assert entry.comment == "At the show"


def test_comment_and_toggle(workspace):
    assert workspace.save_comment("GHI789", "Needs detailing").result(timeout=5).ok
    assert workspace.get("GHI789").comment == "Needs detailing"

    assert workspace.toggle_flag("MNO345", FlagKind.ON_HOLD).result(timeout=5).ok
    assert workspace.get("MNO345").flag_state() is FlagState.NORMAL


def test_upstream_reallocation_change_is_picked_up(workspace, store):
    store.update_record("reallocation", "ABC123", {"-e3": {"date": "20/03/2024", "reallocatedTo": "Dealer Q"}})
    entry = workspace.get("ABC123")
    assert entry.reallocated_to == "Dealer Q"
    assert entry.dealer_check is DealerCheck.MISMATCH

    store.set("schedule", [{"Chassis": "ABC123", "Regent Production": "Finished"}])
    entry = workspace.get("ABC123")
    assert entry.reallocated_to is None
    assert entry.dealer_check is DealerCheck.OK


def test_view_uses_overlaid_entries(workspace):
    query = FilterQuery(category=DispatchCategory.BOOKED)
    assert [row.chassis_no for row in workspace.view(query)] == ["JKL012"]
    workspace.save_transport("ABC123", "Road Co").result(timeout=5)
    assert [row.chassis_no for row in workspace.view(query)] == ["ABC123", "JKL012"]


def test_flag_queue_newest_first_and_searchable(workspace):
    workspace.set_flag("ABC123", FlagKind.SERVICE_TICKET, True).result(timeout=5)
    assert [row.chassis_no for row in workspace.flag_queue(FlagKind.SERVICE_TICKET)] == ["ABC123", "DEF456"]
    assert [row.chassis_no for row in workspace.flag_queue(FlagKind.SERVICE_TICKET, "bob")] == ["DEF456"]
    assert [row.chassis_no for row in workspace.flag_queue(FlagKind.SERVICE_TICKET, "so-1001")] == ["ABC123"]
    assert workspace.flag_queue(FlagKind.INVALID_STOCK) == []


def test_report_error_pushes_record(workspace, store):
    assert workspace.report_error("DEF456", "SAP dealer differs") is True
    reports = list(store.fetch("dispatchError").values())
    assert reports == [
        {
            "chassisNo": "DEF456",
            "errorDetails": "SAP dealer differs",
            "timestamp": "2024-04-01T09:00:00.000Z",
            "status": "reported",
        }
    ]


def test_report_error_failure_returns_false(workspace, store, monkeypatch, caplog):
    def _boom(*_args, **_kwargs):
        raise RuntimeError("store offline")

    monkeypatch.setattr(store, "push", _boom)
    caplog.set_level(logging.ERROR)
    assert workspace.report_error("DEF456") is False
    assert any("Error report failed" in rec.message for rec in caplog.records)


def test_results_after_stop_are_discarded():
    store = GatedStore(seed_data())
    ws = DispatchWorkspace(store, clock=lambda: FIXED_NOW)
    ws.start()
    store.fail_next_patch("late failure")
    future = ws.save_comment("ABC123", "late")
    ws.stop()
    store.release()
    assert not future.result(timeout=5).ok
    assert ws.errors() == {}


class SlowFirstPatchStore(InMemoryRealtimeStore):
    """The first patch stalls, so a naive pool would let later writes overtake it."""

    def __init__(self, initial=None, delay: float = 0.3) -> None:
        super().__init__(initial)
        self.delay = delay
        self._first = threading.Event()

    def patch(self, collection, key, fields) -> None:
        if not self._first.is_set():
            self._first.set()
            time.sleep(self.delay)
        super().patch(collection, key, fields)


class KeyGatedStore(InMemoryRealtimeStore):
    """Blocks patches to one key until released."""

    def __init__(self, initial=None, key: str = "ABC123") -> None:
        super().__init__(initial)
        self.key = key
        self.gate = threading.Event()

    def patch(self, collection, key, fields) -> None:
        if key == self.key:
            self.gate.wait(timeout=5)
        super().patch(collection, key, fields)


def test_writes_to_one_record_reach_store_in_order():
    store = SlowFirstPatchStore(seed_data())
    ws = DispatchWorkspace(store, clock=lambda: FIXED_NOW, write_workers=4)
    ws.start()
    try:
        first = ws.save_comment("ABC123", "first")
        second = ws.save_comment("ABC123", "second")
        assert first.result(timeout=5).ok
        assert second.result(timeout=5).ok
        assert store.fetch("Dispatch")["ABC123"]["Comment"] == "second"
        assert ws.get("ABC123").comment == "second"
        assert ws.overlay.pending("ABC123") == {}
    finally:
        ws.stop()


def test_slow_record_does_not_block_other_records():
    store = KeyGatedStore(seed_data())
    ws = DispatchWorkspace(store, clock=lambda: FIXED_NOW, write_workers=2)
    ws.start()
    try:
        blocked = ws.save_comment("ABC123", "waiting")
        assert ws.save_comment("GHI789", "sent").result(timeout=5).ok
        assert not blocked.done()
        store.gate.set()
        assert blocked.result(timeout=5).ok
        assert store.fetch("Dispatch")["ABC123"]["Comment"] == "waiting"
    finally:
        store.gate.set()
        ws.stop()


def test_workspace_can_restart_after_stop(workspace, store):
    workspace.stop()
    assert not workspace.started
    with pytest.raises(RuntimeError):
        workspace.save_comment("ABC123", "while stopped")

    workspace.start()
    assert workspace.started
    assert workspace.save_comment("ABC123", "after restart").result(timeout=5).ok
    assert store.fetch("Dispatch")["ABC123"]["Comment"] == "after restart"
