"""
Per-flag work queues (on hold, temporary leaving, invalid stock, service
tickets), newest activation first.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ...core.pagination import DEFAULT_PAGE_SIZE, paginate
from ...schemas.dispatch import FlagKind
from ...services.timefmt import format_elapsed
from ...services.workspace import DispatchWorkspace
from ..deps import get_workspace
from .dispatch import entry_out


router = APIRouter(prefix="/api/v1/flags", tags=["flags"])


@router.get("/{flag}")
def flag_queue(
    flag: str,
    response: Response,
    search: str = Query(""),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    workspace: DispatchWorkspace = Depends(get_workspace),
) -> dict:
    try:
        kind = FlagKind.parse(flag)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    result = paginate(workspace.flag_queue(kind, search), page, page_size)
    result.apply_headers(response)
    now = datetime.now(timezone.utc)

    def _render(entry) -> dict:
        item = entry_out(entry, workspace)
        item["flaggedAt"] = entry.flag_timestamp(kind)
        item["flaggedBy"] = entry.flag_actor(kind)
        item["elapsed"] = format_elapsed(entry.flag_timestamp(kind), now)
        return item

    return {"flag": kind.value, **result.body(_render)}
