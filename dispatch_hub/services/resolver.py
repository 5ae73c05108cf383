"""
Join raw dispatch snapshots with reallocation history into resolved entries.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from pydantic import ValidationError

from ..schemas.dispatch import ResolvedDispatchEntry
from .dealer_check import validate_dealer_check
from .reallocation import ReallocationResolver

logger = logging.getLogger("DispatchResolver")


def resolve_entry(
    dispatch_key: str,
    raw: Mapping[str, Any],
    resolver: ReallocationResolver,
) -> ResolvedDispatchEntry:
    payload: Dict[str, Any] = dict(raw)
    chassis = str(payload.get("Chassis No") or dispatch_key)
    reallocated_to = resolver.target_for(chassis)
    payload["Chassis No"] = chassis
    payload["dispatchKey"] = dispatch_key
    payload["reallocatedTo"] = reallocated_to or None
    payload["DealerCheck"] = validate_dealer_check(
        payload.get("SAP Data"),
        payload.get("Scheduled Dealer"),
        reallocated_to,
    )
    return ResolvedDispatchEntry.model_validate(payload)


def resolve_dispatch_entries(
    dispatch_raw: Any,
    resolver: ReallocationResolver,
) -> Dict[str, ResolvedDispatchEntry]:
    """Resolve every record in a /Dispatch snapshot, keyed by chassis number.

    Malformed records are logged and skipped; they never abort the batch.
    """
    resolved: Dict[str, ResolvedDispatchEntry] = {}
    if not isinstance(dispatch_raw, Mapping):
        return resolved
    for key, raw in dispatch_raw.items():
        if not isinstance(raw, Mapping):
            logger.warning("Skipping non-object dispatch record key=%s", key)
            continue
        try:
            entry = resolve_entry(str(key), raw, resolver)
        except ValidationError as exc:
            logger.warning("Skipping malformed dispatch record key=%s: %s", key, exc)
            continue
        resolved[entry.chassis_no] = entry
    return resolved
