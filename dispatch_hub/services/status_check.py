"""
Status-check classification.

``classify_status`` drives filtering and counting; ``status_label`` is for
display only and falls back to the raw text for unknown codes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class StatusCategory(str, Enum):
    OK = "ok"
    WRONG_STATUS = "wrongStatus"
    NO_REFERENCE = "noReference"
    INVALID = "invalid"


# "no referencenn" is a typo that exists in upstream data.
_NO_REFERENCE_CODES = {"no reference", "no referencenn"}

_LABELS = {
    StatusCategory.OK: "OK",
    StatusCategory.WRONG_STATUS: "Wrong Status",
    StatusCategory.NO_REFERENCE: "No Reference",
}


def _normalize(raw: Any) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def classify_status(raw: Any) -> StatusCategory:
    code = _normalize(raw).lower()
    if code in {"", "ok"}:
        return StatusCategory.OK
    if code == "invalid stock":
        return StatusCategory.WRONG_STATUS
    if code in _NO_REFERENCE_CODES:
        return StatusCategory.NO_REFERENCE
    return StatusCategory.INVALID


def status_label(raw: Any) -> str:
    category = classify_status(raw)
    if category is StatusCategory.INVALID:
        return _normalize(raw) or "-"
    return _LABELS[category]
