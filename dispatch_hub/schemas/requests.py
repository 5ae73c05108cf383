"""
Request bodies for the dispatch write endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FlagUpdate(BaseModel):
    flag: str
    active: bool = True
    comment: Optional[str] = None


class CommentUpdate(BaseModel):
    comment: Optional[str] = None


class PickupUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # ISO 8601; null clears the booking time
    estimated_pickup_at: Optional[str] = Field(default=None, alias="estimatedPickupAt")


class TransportUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transport_company: Optional[str] = Field(default=None, alias="transportCompany")


class ErrorReportIn(BaseModel):
    details: str = Field(default="Dealer check mismatch", min_length=1)
