"""
Pydantic schemas for dispatch records, reallocation history and the
derived dashboard views.

Field aliases are the realtime store's wire names, so raw snapshots can be
validated directly and patches can be written back with the same keys.
Unknown fields are carried as opaque extras and never inspected.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FlagState(str, Enum):
    NORMAL = "normal"
    ON_HOLD = "onHold"
    TEMPORARY_LEAVING = "temporaryLeaving"
    INVALID_STOCK = "invalidStock"
    SERVICE_TICKET = "serviceTicket"


class FlagKind(str, Enum):
    """The four mutually exclusive operational flags, valued by wire name."""

    ON_HOLD = "OnHold"
    TEMPORARY_LEAVING = "TemporaryLeaving"
    INVALID_STOCK = "InvalidStock"
    SERVICE_TICKET = "ServiceTicket"

    @property
    def at_field(self) -> str:
        return f"{self.value}At"

    @property
    def by_field(self) -> str:
        return f"{self.value}By"

    @property
    def fields(self) -> tuple[str, str, str]:
        return (self.value, self.at_field, self.by_field)

    @property
    def state(self) -> FlagState:
        return _KIND_TO_STATE[self]

    @classmethod
    def parse(cls, raw: str) -> "FlagKind":
        """Accept wire names (``OnHold``), state slugs (``onHold``) or ``on_hold``."""
        norm = str(raw or "").replace("_", "").replace("-", "").strip().lower()
        for kind in cls:
            if kind.value.lower() == norm:
                return kind
        raise ValueError(f"Unknown operational flag: {raw!r}")


_KIND_TO_STATE = {
    FlagKind.ON_HOLD: FlagState.ON_HOLD,
    FlagKind.TEMPORARY_LEAVING: FlagState.TEMPORARY_LEAVING,
    FlagKind.INVALID_STOCK: FlagState.INVALID_STOCK,
    FlagKind.SERVICE_TICKET: FlagState.SERVICE_TICKET,
}

# Precedence when malformed upstream data carries more than one active flag.
FLAG_ORDER: tuple[FlagKind, ...] = (
    FlagKind.ON_HOLD,
    FlagKind.TEMPORARY_LEAVING,
    FlagKind.INVALID_STOCK,
    FlagKind.SERVICE_TICKET,
)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return None


def _as_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y"}
    if isinstance(value, (int, float)):
        return value != 0
    return False


class VehicleRecord(BaseModel):
    """One vehicle under /Dispatch, keyed by chassis number."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    chassis_no: str = Field(alias="Chassis No")
    customer: Optional[str] = Field(default=None, alias="Customer")
    model: Optional[str] = Field(default=None, alias="Model")
    sap_data: Optional[str] = Field(default=None, alias="SAP Data")
    scheduled_dealer: Optional[str] = Field(default=None, alias="Scheduled Dealer")
    statuscheck: Optional[str] = Field(default=None, alias="Statuscheck")
    matched_po_no: Optional[str] = Field(default=None, alias="Matched PO No")
    code: Optional[str] = Field(default=None, alias="Code")
    so_number: Optional[str] = Field(default=None, alias="SO Number")
    vin_number: Optional[str] = Field(default=None, alias="Vin Number")
    transport_company: Optional[str] = Field(default=None, alias="TransportCompany")
    estimated_pickup_at: Optional[str] = Field(default=None, alias="EstimatedPickupAt")
    comment: Optional[str] = Field(default=None, alias="Comment")
    gr_to_gi_days: Optional[float] = Field(default=None, alias="GR to GI Days")

    on_hold: bool = Field(default=False, alias="OnHold")
    on_hold_at: Optional[str] = Field(default=None, alias="OnHoldAt")
    on_hold_by: Optional[str] = Field(default=None, alias="OnHoldBy")
    temporary_leaving: bool = Field(default=False, alias="TemporaryLeaving")
    temporary_leaving_at: Optional[str] = Field(default=None, alias="TemporaryLeavingAt")
    temporary_leaving_by: Optional[str] = Field(default=None, alias="TemporaryLeavingBy")
    invalid_stock: bool = Field(default=False, alias="InvalidStock")
    invalid_stock_at: Optional[str] = Field(default=None, alias="InvalidStockAt")
    invalid_stock_by: Optional[str] = Field(default=None, alias="InvalidStockBy")
    service_ticket: bool = Field(default=False, alias="ServiceTicket")
    service_ticket_at: Optional[str] = Field(default=None, alias="ServiceTicketAt")
    service_ticket_by: Optional[str] = Field(default=None, alias="ServiceTicketBy")

    @field_validator(
        "customer",
        "model",
        "sap_data",
        "scheduled_dealer",
        "statuscheck",
        "matched_po_no",
        "code",
        "so_number",
        "vin_number",
        "transport_company",
        "estimated_pickup_at",
        "comment",
        "on_hold_at",
        "on_hold_by",
        "temporary_leaving_at",
        "temporary_leaving_by",
        "invalid_stock_at",
        "invalid_stock_by",
        "service_ticket_at",
        "service_ticket_by",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _as_text(value)

    @field_validator("chassis_no", mode="before")
    @classmethod
    def _coerce_chassis(cls, value: Any) -> str:
        text = _as_text(value)
        if not text:
            raise ValueError("Chassis No is required")
        return text

    @field_validator("on_hold", "temporary_leaving", "invalid_stock", "service_ticket", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        return _as_flag(value)

    @field_validator("gr_to_gi_days", mode="before")
    @classmethod
    def _coerce_days(cls, value: Any) -> Optional[float]:
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    def is_flag_active(self, kind: FlagKind) -> bool:
        return bool(getattr(self, _FLAG_ATTRS[kind][0]))

    def flag_timestamp(self, kind: FlagKind) -> Optional[str]:
        return getattr(self, _FLAG_ATTRS[kind][1])

    def flag_actor(self, kind: FlagKind) -> Optional[str]:
        return getattr(self, _FLAG_ATTRS[kind][2])

    def flag_vector(self) -> Dict[FlagKind, bool]:
        return {kind: self.is_flag_active(kind) for kind in FLAG_ORDER}

    def flag_state(self) -> FlagState:
        for kind in FLAG_ORDER:
            if self.is_flag_active(kind):
                return kind.state
        return FlagState.NORMAL

    @property
    def day_count(self) -> float:
        return self.gr_to_gi_days or 0.0

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


_FLAG_ATTRS = {
    FlagKind.ON_HOLD: ("on_hold", "on_hold_at", "on_hold_by"),
    FlagKind.TEMPORARY_LEAVING: ("temporary_leaving", "temporary_leaving_at", "temporary_leaving_by"),
    FlagKind.INVALID_STOCK: ("invalid_stock", "invalid_stock_at", "invalid_stock_by"),
    FlagKind.SERVICE_TICKET: ("service_ticket", "service_ticket_at", "service_ticket_by"),
}


class ReallocationIssue(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None


class ReallocationEntry(BaseModel):
    """One dated entry under /reallocation/<chassis>/<entry-id>."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    date: Optional[str] = None
    submit_time: Optional[str] = Field(default=None, alias="submitTime")
    customer: Optional[str] = None
    model: Optional[str] = None
    original_dealer: Optional[str] = Field(default=None, alias="originalDealer")
    reallocated_to: Optional[str] = Field(default=None, alias="reallocatedTo")
    signed_plans_received: Optional[str] = Field(default=None, alias="signedPlansReceived")
    issue: Optional[ReallocationIssue] = None

    @field_validator(
        "date",
        "submit_time",
        "customer",
        "model",
        "original_dealer",
        "reallocated_to",
        "signed_plans_received",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _as_text(value)

    @field_validator("issue", mode="before")
    @classmethod
    def _coerce_issue(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


class ScheduleEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    chassis: str = Field(alias="Chassis")
    regent_production: Optional[str] = Field(default=None, alias="Regent Production")

    @field_validator("chassis", "regent_production", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _as_text(value)


class CurrentReallocation(ReallocationEntry):
    """The winning reallocation entry for one chassis."""

    chassis_number: str = Field(alias="chassisNumber")
    entry_id: Optional[str] = Field(default=None, alias="entryId")
    regent_production: str = Field(default="N/A", alias="regentProduction")


class DealerCheck(str, Enum):
    OK = "OK"
    MISMATCH = "Mismatch"


class ResolvedDispatchEntry(VehicleRecord):
    """A vehicle record joined with its current reallocation and dealer check."""

    dispatch_key: Optional[str] = Field(default=None, alias="dispatchKey")
    reallocated_to: Optional[str] = Field(default=None, alias="reallocatedTo")
    dealer_check: DealerCheck = Field(default=DealerCheck.MISMATCH, alias="DealerCheck")

    def with_patch(self, patch: Dict[str, Any]) -> "ResolvedDispatchEntry":
        """Return a copy with wire-named fields from ``patch`` merged over this entry."""
        if not patch:
            return self
        merged = self.to_wire()
        merged.update(patch)
        return type(self).model_validate(merged)


class DispatchStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    ok_status: int = Field(default=0, alias="okStatus")
    normal: int = 0
    on_hold: int = Field(default=0, alias="onHold")
    temporary_leaving: int = Field(default=0, alias="temporaryLeaving")
    invalid_stock: int = Field(default=0, alias="invalidStock")
    service_ticket: int = Field(default=0, alias="serviceTicket")
    wrong_status: int = Field(default=0, alias="wrongStatus")
    no_reference: int = Field(default=0, alias="noReference")
    snowy_stock: int = Field(default=0, alias="snowyStock")
    booked: int = 0
    waiting_for_booking: int = Field(default=0, alias="waitingForBooking")
    can_be_dispatched: int = Field(default=0, alias="canBeDispatched")

    def flag_total(self) -> int:
        return self.on_hold + self.temporary_leaving + self.invalid_stock + self.service_ticket


class DispatchErrorReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chassis_no: str = Field(alias="chassisNo")
    error_details: str = Field(alias="errorDetails")
    timestamp: str
    status: str = "reported"
