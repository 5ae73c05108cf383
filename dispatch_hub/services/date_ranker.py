"""
Collapse a dated history to its most recent entry.

Dates on the wire are ``DD/MM/YYYY`` strings. Anything that does not parse
resolves to ``UNPARSEABLE``, which sorts below every accepted date (the
earliest is 1900), so an unparseable entry loses against every parseable
one. When two entries resolve to the same instant the first one
encountered in iteration order wins.
"""

from __future__ import annotations

import datetime
from typing import Any, Mapping, Optional

UNPARSEABLE = datetime.datetime.min


def parse_ddmmyyyy(value: Any) -> datetime.datetime:
    if not value or not isinstance(value, str):
        return UNPARSEABLE
    parts = value.strip().split("/")
    if len(parts) != 3:
        return UNPARSEABLE
    try:
        day, month, year = (int(p) for p in parts)
    except ValueError:
        return UNPARSEABLE
    if not (1 <= day <= 31 and 1 <= month <= 12 and 1900 <= year <= datetime.MAXYEAR):
        return UNPARSEABLE
    # Day overflow rolls into the next month (31/02 -> 2 or 3 March).
    return datetime.datetime(year, month, 1) + datetime.timedelta(days=day - 1)


def _field(entry: Any, attr: str, wire: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(wire)
    return getattr(entry, attr, None)


def entry_date(entry: Any) -> datetime.datetime:
    """Resolved date of one entry: its ``date``, falling back to ``submitTime``."""
    primary = _field(entry, "date", "date")
    return parse_ddmmyyyy(primary or _field(entry, "submit_time", "submitTime"))


def latest_entry_id(entries: Mapping[str, Any]) -> Optional[str]:
    latest_id: Optional[str] = None
    latest_date = UNPARSEABLE
    for entry_id, entry in entries.items():
        current = entry_date(entry)
        if latest_id is None or current > latest_date:
            latest_id = entry_id
            latest_date = current
    return latest_id
