"""
Current-reallocation resolution per chassis.

The /reallocation collection maps chassis -> entry-id -> entry. Each
chassis collapses to its latest entry; a chassis whose schedule row says
production is "Finished" has no current reallocation at all.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from ..schemas.dispatch import CurrentReallocation, ReallocationEntry, ScheduleEntry
from .date_ranker import latest_entry_id

logger = logging.getLogger("ReallocationResolver")

DEFAULT_FINISHED_LABEL = "Finished"


def parse_reallocations(raw: Any) -> Dict[str, Dict[str, ReallocationEntry]]:
    """Validate a raw /reallocation snapshot, skipping malformed entries."""
    parsed: Dict[str, Dict[str, ReallocationEntry]] = {}
    if not isinstance(raw, Mapping):
        return parsed
    for chassis, entries in raw.items():
        if not isinstance(entries, Mapping):
            continue
        bucket: Dict[str, ReallocationEntry] = {}
        for entry_id, entry in entries.items():
            if not isinstance(entry, Mapping):
                continue
            try:
                bucket[str(entry_id)] = ReallocationEntry.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping malformed reallocation chassis=%s entry=%s: %s", chassis, entry_id, exc)
        if bucket:
            parsed[str(chassis)] = bucket
    return parsed


def parse_schedule(raw: Any) -> List[ScheduleEntry]:
    """Validate a raw /schedule snapshot (list, or dict keyed by index)."""
    rows: Iterable[Any]
    if isinstance(raw, Mapping):
        rows = raw.values()
    elif isinstance(raw, list):
        rows = raw
    else:
        return []
    schedule: List[ScheduleEntry] = []
    for row in rows:
        if not isinstance(row, Mapping) or not row.get("Chassis"):
            continue
        try:
            schedule.append(ScheduleEntry.model_validate(row))
        except ValidationError as exc:
            logger.warning("Skipping malformed schedule row chassis=%s: %s", row.get("Chassis"), exc)
    return schedule


class ReallocationResolver:
    """Lookup of chassis -> current reallocation target."""

    def __init__(
        self,
        reallocations: Mapping[str, Mapping[str, ReallocationEntry]],
        schedule: Iterable[ScheduleEntry] = (),
        *,
        finished_label: str = DEFAULT_FINISHED_LABEL,
    ) -> None:
        self.finished_label = finished_label
        self._production: Dict[str, Optional[str]] = {}
        for row in schedule:
            self._production[row.chassis] = row.regent_production
        self._current: Dict[str, Tuple[str, ReallocationEntry]] = {}
        for chassis, entries in reallocations.items():
            entry_id = latest_entry_id(entries)
            if entry_id is None:
                continue
            self._current[chassis] = (entry_id, entries[entry_id])

    @classmethod
    def from_raw(cls, reallocation_raw: Any, schedule_raw: Any = None, **kwargs: Any) -> "ReallocationResolver":
        return cls(parse_reallocations(reallocation_raw), parse_schedule(schedule_raw), **kwargs)

    def production_status(self, chassis: str) -> Optional[str]:
        return self._production.get(chassis)

    def is_excluded(self, chassis: str) -> bool:
        return self.production_status(chassis) == self.finished_label

    def current_entry(self, chassis: str) -> Optional[Tuple[str, ReallocationEntry]]:
        if self.is_excluded(chassis):
            return None
        return self._current.get(chassis)

    def target_for(self, chassis: str) -> Optional[str]:
        current = self.current_entry(chassis)
        if current is None:
            return None
        return current[1].reallocated_to or ""

    def targets(self) -> Dict[str, str]:
        return {
            chassis: entry.reallocated_to or ""
            for chassis, (_, entry) in self._current.items()
            if not self.is_excluded(chassis)
        }

    def current_reallocations(self) -> List[CurrentReallocation]:
        items: List[CurrentReallocation] = []
        for chassis, (entry_id, entry) in self._current.items():
            if self.is_excluded(chassis):
                continue
            payload = entry.model_dump(by_alias=True)
            payload.update(
                {
                    "chassisNumber": chassis,
                    "entryId": entry_id,
                    "regentProduction": self.production_status(chassis) or "N/A",
                }
            )
            items.append(CurrentReallocation.model_validate(payload))
        return items
