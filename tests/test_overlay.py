import logging
import random

from dispatch_hub.core.errors import StoreWriteError
from dispatch_hub.services.overlay import OptimisticOverlayStore, WriteResult


def test_pending_overrides_confirmed_until_snapshot_agrees():
    confirmed = {"C1": {"Comment": "old", "TransportCompany": None}}
    overlay = OptimisticOverlayStore(snapshot_source=lambda: confirmed)

    write = overlay.apply_local("C1", {"Comment": "new"})
    assert overlay.effective("C1")["Comment"] == "new"
    assert overlay.is_saving("C1")

    # stale snapshot keeps the pending value
    assert overlay.reconcile() == []
    assert overlay.effective("C1")["Comment"] == "new"

    assert overlay.commit_or_revert(write, WriteResult.success()) is True
    assert not overlay.is_saving("C1")

    confirmed["C1"] = {"Comment": "new", "TransportCompany": None}
    assert overlay.reconcile() == ["C1"]
    assert overlay.pending("C1") == {}
    assert len(overlay) == 0


def test_reconcile_is_idempotent_and_keeps_unknown_keys_in_flight():
    overlay = OptimisticOverlayStore()
    overlay.apply_local("C1", {"Comment": "x"})
    overlay.apply_local("C2", {"Comment": "y"})
    snapshot = {"C1": {"Comment": "x"}}
    assert overlay.reconcile(snapshot) == ["C1"]
    assert overlay.reconcile(snapshot) == []
    assert overlay.pending_keys() == ["C2"]


def test_reconcile_drops_settled_keys_missing_from_snapshot():
    overlay = OptimisticOverlayStore()
    first = overlay.apply_local("GONE", {"Comment": "x"})
    second = overlay.apply_local("GONE", {"TransportCompany": "T"})
    overlay.commit_or_revert(first, WriteResult.success())
    assert overlay.reconcile({}) == []

    overlay.commit_or_revert(second, WriteResult.failure("offline"))
    assert overlay.error("GONE") == "offline"
    assert overlay.reconcile({}) == ["GONE"]
    assert overlay.pending_keys() == []
    assert overlay.error("GONE") is None


def test_none_matches_missing_field():
    overlay = OptimisticOverlayStore()
    overlay.apply_local("C1", {"OnHoldAt": None, "OnHold": False})
    assert overlay.reconcile({"C1": {"OnHold": False}}) == ["C1"]


def test_failed_write_restores_confirmed_value_and_records_error(caplog):
    confirmed = {"C1": {"EstimatedPickupAt": "2024-04-01T15:00:00.000Z"}}
    overlay = OptimisticOverlayStore(snapshot_source=lambda: confirmed)
    caplog.set_level(logging.WARNING)

    write = overlay.apply_local("C1", {"EstimatedPickupAt": "2024-04-02T10:00:00.000Z"})
    result = WriteResult.failure(StoreWriteError("C1", "Permission denied"))
    assert overlay.commit_or_revert(write, result) is False

    assert overlay.effective("C1")["EstimatedPickupAt"] == "2024-04-01T15:00:00.000Z"
    assert overlay.error("C1") == "Permission denied"
    assert overlay.pending("C1") == {}
    assert any("Reverted optimistic edit" in rec.message for rec in caplog.records)


def test_failure_does_not_clobber_later_edit_of_same_field():
    overlay = OptimisticOverlayStore()
    first = overlay.apply_local("C1", {"Comment": "a", "TransportCompany": "T1"})
    overlay.apply_local("C1", {"Comment": "b"})
    overlay.commit_or_revert(first, WriteResult.failure("boom"))
    # Comment belongs to the second write; TransportCompany is rolled back
    assert overlay.pending("C1") == {"Comment": "b"}
    assert overlay.error("C1") == "boom"
    assert overlay.is_saving("C1")


def test_failure_restores_earlier_pending_value():
    overlay = OptimisticOverlayStore()
    first = overlay.apply_local("C1", {"Comment": "a"})
    second = overlay.apply_local("C1", {"Comment": "b"})
    overlay.commit_or_revert(first, WriteResult.success())
    overlay.commit_or_revert(second, WriteResult.failure("nope"))
    assert overlay.pending("C1") == {"Comment": "a"}


def test_new_edit_clears_previous_error():
    overlay = OptimisticOverlayStore()
    write = overlay.apply_local("C1", {"Comment": "a"})
    overlay.commit_or_revert(write, WriteResult.failure(None))
    assert overlay.error("C1") == "Update failed"
    overlay.apply_local("C1", {"Comment": "b"})
    assert overlay.error("C1") is None


def test_random_failed_writes_roll_back_symmetrically():
    rng = random.Random(99)
    fields = ["Comment", "TransportCompany", "EstimatedPickupAt"]
    for _ in range(50):
        overlay = OptimisticOverlayStore()
        base = {name: f"base-{name}" for name in fields}
        writes = []
        for i in range(rng.randint(1, 6)):
            patch = {name: f"v{i}-{name}" for name in rng.sample(fields, rng.randint(1, 3))}
            writes.append(overlay.apply_local("K", patch))
        order = writes[:]
        rng.shuffle(order)
        for write in order:
            overlay.commit_or_revert(write, WriteResult.failure("x"))
        assert overlay.effective("K", base) == base
        assert not overlay.is_saving("K")
