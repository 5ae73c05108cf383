"""
Operational flag state machine.

A record is in exactly one of five states: Normal, OnHold,
TemporaryLeaving, InvalidStock or ServiceTicket. Activating a flag clears
the other three in the same patch; deactivating returns to Normal. Every
transition is expressed as one partial-field patch plus the set of fields
it wrote, so a failed write can be rolled back field-for-field.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from ..core.errors import TransitionRejected
from ..schemas.dispatch import FLAG_ORDER, FlagKind, FlagState, VehicleRecord

DEFAULT_ACTOR = "webapp"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def iso_timestamp(ts: datetime.datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=datetime.timezone.utc)
    return ts.astimezone(datetime.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class FlagTransition:
    chassis_no: str
    kind: FlagKind
    activate: bool
    from_state: FlagState
    to_state: FlagState
    patch: Dict[str, Any] = field(default_factory=dict)

    @property
    def fields(self) -> frozenset[str]:
        return frozenset(self.patch)


def _cleared(kind: FlagKind) -> Dict[str, Any]:
    return {kind.value: False, kind.at_field: None, kind.by_field: None}


class OperationalFlagMachine:
    def __init__(
        self,
        actor_id: str = DEFAULT_ACTOR,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self.logger = logging.getLogger("OperationalFlagMachine")
        self.actor_id = actor_id
        self.clock = clock

    def transition(
        self,
        record: VehicleRecord,
        kind: FlagKind,
        activate: bool,
        comment: Optional[str] = None,
    ) -> FlagTransition:
        """Build the patch for turning ``kind`` on or off.

        Raises TransitionRejected when a pre-transition gate fails; no patch
        is produced in that case.
        """
        from_state = record.flag_state()
        text = (comment or "").strip()
        if not activate:
            patch = _cleared(kind)
            # Normally a no-op; repairs upstream records with several active flags.
            for other in FLAG_ORDER:
                if other is not kind and record.is_flag_active(other):
                    patch.update(_cleared(other))
            return FlagTransition(record.chassis_no, kind, False, from_state, FlagState.NORMAL, patch)

        if kind is FlagKind.TEMPORARY_LEAVING and not text:
            self.logger.warning("Rejected temporary leaving without comment chassis=%s", record.chassis_no)
            raise TransitionRejected(record.chassis_no, "A comment is required to mark temporary leaving")

        patch: Dict[str, Any] = {}
        for other in FLAG_ORDER:
            if other is not kind:
                patch.update(_cleared(other))
        patch.update(
            {
                kind.value: True,
                kind.at_field: iso_timestamp(self.clock()),
                kind.by_field: self.actor_id,
            }
        )
        if text:
            patch["Comment"] = text
        return FlagTransition(record.chassis_no, kind, True, from_state, kind.state, patch)

    def toggle(self, record: VehicleRecord, kind: FlagKind, comment: Optional[str] = None) -> FlagTransition:
        return self.transition(record, kind, not record.is_flag_active(kind), comment)
