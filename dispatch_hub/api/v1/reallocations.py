"""
Current reallocation per chassis, joined with production status.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from ...core.pagination import DEFAULT_PAGE_SIZE, paginate
from ...services.workspace import DispatchWorkspace
from ..deps import get_workspace


router = APIRouter(prefix="/api/v1/reallocations", tags=["reallocations"])


@router.get("")
def list_reallocations(
    response: Response,
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    workspace: DispatchWorkspace = Depends(get_workspace),
) -> dict:
    result = paginate(workspace.reallocations(), page, page_size)
    result.apply_headers(response)
    return result.body(lambda row: row.model_dump(by_alias=True))
