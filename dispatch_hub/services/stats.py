"""
Fleet categorisation and dashboard counts.

Every resolved entry is assigned a set of categories once; the counts and
the category filter both read from the same assignment, so a card's number
always equals the length of the list it filters to.
"""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Iterable

from ..schemas.dispatch import DealerCheck, DispatchStats, FlagState, ResolvedDispatchEntry
from .status_check import StatusCategory, classify_status

DEFAULT_SNOWY_STOCK = "Snowy Stock"


class DispatchCategory(str, Enum):
    ALL = "all"
    NORMAL = "normal"
    OK_STATUS = "okStatus"
    ON_HOLD = "onHold"
    TEMPORARY_LEAVING = "temporaryLeaving"
    INVALID_STOCK = "invalidStock"
    SERVICE_TICKET = "serviceTicket"
    WRONG_STATUS = "wrongStatus"
    NO_REFERENCE = "noReference"
    SNOWY = "snowy"
    BOOKED = "booked"
    WAITING_FOR_BOOKING = "waitingForBooking"
    CAN_BE_DISPATCHED = "canBeDispatched"


_STATE_CATEGORY = {
    FlagState.ON_HOLD: DispatchCategory.ON_HOLD,
    FlagState.TEMPORARY_LEAVING: DispatchCategory.TEMPORARY_LEAVING,
    FlagState.INVALID_STOCK: DispatchCategory.INVALID_STOCK,
    FlagState.SERVICE_TICKET: DispatchCategory.SERVICE_TICKET,
}


def is_snowy_stock(entry: ResolvedDispatchEntry, sentinel: str = DEFAULT_SNOWY_STOCK) -> bool:
    """Reallocated to the sentinel, or scheduled to it with clean checks and no reallocation."""
    reallocated = (entry.reallocated_to or "").strip()
    if reallocated == sentinel:
        return True
    return (
        entry.scheduled_dealer == sentinel
        and classify_status(entry.statuscheck) is StatusCategory.OK
        and entry.dealer_check is DealerCheck.OK
        and not reallocated
    )


def is_booked(entry: ResolvedDispatchEntry) -> bool:
    return bool((entry.transport_company or "").strip() or (entry.matched_po_no or "").strip())


def categorize(entry: ResolvedDispatchEntry, sentinel: str = DEFAULT_SNOWY_STOCK) -> FrozenSet[DispatchCategory]:
    cats = {DispatchCategory.ALL}
    status = classify_status(entry.statuscheck)
    if status is StatusCategory.OK:
        cats.add(DispatchCategory.OK_STATUS)
    state = entry.flag_state()
    if state is not FlagState.NORMAL:
        cats.add(_STATE_CATEGORY[state])
        return frozenset(cats)

    cats.add(DispatchCategory.NORMAL)
    if status is StatusCategory.WRONG_STATUS:
        cats.add(DispatchCategory.WRONG_STATUS)
    elif status is StatusCategory.NO_REFERENCE:
        cats.add(DispatchCategory.NO_REFERENCE)
    if is_snowy_stock(entry, sentinel):
        cats.add(DispatchCategory.SNOWY)
        return frozenset(cats)
    cats.add(DispatchCategory.BOOKED if is_booked(entry) else DispatchCategory.WAITING_FOR_BOOKING)
    if status is StatusCategory.OK:
        cats.add(DispatchCategory.CAN_BE_DISPATCHED)
    return frozenset(cats)


_COUNTED = {
    DispatchCategory.OK_STATUS: "ok_status",
    DispatchCategory.NORMAL: "normal",
    DispatchCategory.ON_HOLD: "on_hold",
    DispatchCategory.TEMPORARY_LEAVING: "temporary_leaving",
    DispatchCategory.INVALID_STOCK: "invalid_stock",
    DispatchCategory.SERVICE_TICKET: "service_ticket",
    DispatchCategory.WRONG_STATUS: "wrong_status",
    DispatchCategory.NO_REFERENCE: "no_reference",
    DispatchCategory.SNOWY: "snowy_stock",
    DispatchCategory.BOOKED: "booked",
    DispatchCategory.WAITING_FOR_BOOKING: "waiting_for_booking",
    DispatchCategory.CAN_BE_DISPATCHED: "can_be_dispatched",
}


class StatsAggregator:
    def __init__(self, snowy_stock_dealer: str = DEFAULT_SNOWY_STOCK) -> None:
        self.snowy_stock_dealer = snowy_stock_dealer

    def categorize(self, entry: ResolvedDispatchEntry) -> FrozenSet[DispatchCategory]:
        return categorize(entry, self.snowy_stock_dealer)

    def compute(self, entries: Iterable[ResolvedDispatchEntry]) -> DispatchStats:
        counts = {name: 0 for name in _COUNTED.values()}
        total = 0
        for entry in entries:
            total += 1
            for category in self.categorize(entry):
                name = _COUNTED.get(category)
                if name:
                    counts[name] += 1
        return DispatchStats(total=total, **counts)
