"""Dealer check: SAP-reported vs scheduled vs reallocated dealer."""

from __future__ import annotations

from typing import Optional

from ..schemas.dispatch import DealerCheck


def validate_dealer_check(
    sap_data: Optional[str],
    scheduled_dealer: Optional[str],
    reallocated_to: Optional[str],
) -> DealerCheck:
    if sap_data and scheduled_dealer and sap_data == scheduled_dealer:
        if not reallocated_to:
            return DealerCheck.OK
        if scheduled_dealer == reallocated_to:
            return DealerCheck.OK
    return DealerCheck.MISMATCH
