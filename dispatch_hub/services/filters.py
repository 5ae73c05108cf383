"""
Search, category filter and column sort for the dispatch table.

Stages run in a fixed order: day-count range, category (skipped while a
search term is active), free-text search, then a stable sort.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..schemas.dispatch import CurrentReallocation, ResolvedDispatchEntry
from .stats import DEFAULT_SNOWY_STOCK, DispatchCategory, categorize

DAY_COUNT_COLUMN = "GR to GI Days"

SEARCH_FIELDS = (
    "Chassis No",
    "Customer",
    "Model",
    "Matched PO No",
    "SAP Data",
    "Scheduled Dealer",
    "Code",
    "Statuscheck",
    "DealerCheck",
    "reallocatedTo",
    "Comment",
    "EstimatedPickupAt",
    "TransportCompany",
)


@dataclass
class FilterQuery:
    category: DispatchCategory = DispatchCategory.ALL
    search: str = ""
    sort_key: Optional[str] = None
    descending: bool = False
    min_days: Optional[float] = None
    max_days: Optional[float] = None


def _contains(value: Any, term: str) -> bool:
    if value is None:
        return False
    if hasattr(value, "value"):
        value = value.value
    return term in str(value).lower()


def collation_key(value: Any) -> str:
    """Case- and accent-insensitive sort key."""
    if value is None:
        return ""
    if hasattr(value, "value"):
        value = value.value
    text = unicodedata.normalize("NFKD", str(value))
    return "".join(ch for ch in text if not unicodedata.combining(ch)).casefold()


def _as_number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class FilterSortPipeline:
    def __init__(self, snowy_stock_dealer: str = DEFAULT_SNOWY_STOCK) -> None:
        self.snowy_stock_dealer = snowy_stock_dealer

    def apply(
        self,
        entries: Iterable[ResolvedDispatchEntry],
        query: FilterQuery,
        reallocations: Iterable[CurrentReallocation] = (),
    ) -> List[ResolvedDispatchEntry]:
        rows = list(entries)
        rows = self.filter_range(rows, query.min_days, query.max_days)
        term = (query.search or "").strip().lower()
        if term:
            rows = self.search(rows, term, reallocations)
        else:
            rows = self.filter_category(rows, query.category)
        if query.sort_key:
            rows = self.sort(rows, query.sort_key, query.descending)
        return rows

    def filter_range(
        self,
        rows: List[ResolvedDispatchEntry],
        min_days: Optional[float],
        max_days: Optional[float],
    ) -> List[ResolvedDispatchEntry]:
        if min_days is None and max_days is None:
            return rows
        low = min_days if min_days is not None else float("-inf")
        high = max_days if max_days is not None else float("inf")
        return [row for row in rows if low <= row.day_count <= high]

    def filter_category(
        self,
        rows: List[ResolvedDispatchEntry],
        category: DispatchCategory,
    ) -> List[ResolvedDispatchEntry]:
        if category is DispatchCategory.ALL:
            return rows
        return [row for row in rows if category in categorize(row, self.snowy_stock_dealer)]

    def search(
        self,
        rows: List[ResolvedDispatchEntry],
        term: str,
        reallocations: Iterable[CurrentReallocation] = (),
    ) -> List[ResolvedDispatchEntry]:
        term = term.strip().lower()
        if not term:
            return rows
        realloc_hits = {
            item.chassis_number
            for item in reallocations
            if _contains(item.customer, term)
            or _contains(item.model, term)
            or _contains(item.reallocated_to, term)
            or (item.issue is not None and _contains(item.issue.type, term))
        }
        matched: List[ResolvedDispatchEntry] = []
        for row in rows:
            wire = row.to_wire()
            if row.chassis_no in realloc_hits or any(_contains(wire.get(name), term) for name in SEARCH_FIELDS):
                matched.append(row)
        return matched

    def sort(self, rows: List[ResolvedDispatchEntry], key: str, descending: bool = False) -> List[ResolvedDispatchEntry]:
        wires: Dict[int, Dict[str, Any]] = {id(row): row.to_wire() for row in rows}
        if key == DAY_COUNT_COLUMN:
            return sorted(rows, key=lambda row: _as_number(wires[id(row)].get(key)), reverse=descending)
        return sorted(rows, key=lambda row: collation_key(wires[id(row)].get(key)), reverse=descending)
