"""
Dispatch table APIs: filtered listing, stats and optimistic edits.

Write endpoints answer as soon as the edit is applied locally (202) and
the store write runs in the background. Pass ``wait=true`` to block until
the store has acknowledged or rejected it.
"""

from __future__ import annotations

from concurrent.futures import Future, TimeoutError as FutureTimeout
from contextlib import contextmanager
from typing import Iterator, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ...core.errors import RecordNotFound, TransitionRejected
from ...core.pagination import DEFAULT_PAGE_SIZE, paginate
from ...schemas.dispatch import FlagKind, ResolvedDispatchEntry
from ...schemas.requests import CommentUpdate, ErrorReportIn, FlagUpdate, PickupUpdate, TransportUpdate
from ...services.filters import FilterQuery
from ...services.stats import DispatchCategory
from ...services.status_check import status_label
from ...services.workspace import DispatchWorkspace
from ..deps import get_workspace


router = APIRouter(prefix="/api/v1/dispatch", tags=["dispatch"])

WRITE_WAIT_TIMEOUT_SEC = 15.0


@contextmanager
def _http_errors() -> Iterator[None]:
    try:
        yield
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TransitionRejected as exc:
        raise HTTPException(status_code=422, detail=exc.reason) from exc


def entry_out(entry: ResolvedDispatchEntry, workspace: DispatchWorkspace) -> dict:
    payload = entry.model_dump(by_alias=True, mode="json")
    payload["flagState"] = entry.flag_state().value
    payload["statusLabel"] = status_label(entry.statuscheck)
    payload["saving"] = workspace.is_saving(entry.chassis_no)
    payload["error"] = workspace.overlay.error(entry.chassis_no)
    return payload


def _write_response(
    chassis: str,
    future: Future,
    workspace: DispatchWorkspace,
    response: Response,
    wait: bool,
) -> dict:
    body: dict = {"chassis": chassis}
    if wait:
        try:
            result = future.result(timeout=WRITE_WAIT_TIMEOUT_SEC)
        except FutureTimeout:
            response.status_code = 202
            body["status"] = "pending"
        else:
            response.status_code = 200 if result.ok else 502
            body["status"] = "saved" if result.ok else "reverted"
            body["error"] = result.error
    else:
        response.status_code = 202
        body["status"] = "pending"
    body["entry"] = entry_out(workspace.get(chassis), workspace)
    return body


@router.get("")
def list_dispatch(
    response: Response,
    filter: DispatchCategory = Query(DispatchCategory.ALL),
    search: str = Query(""),
    sort: Optional[str] = Query(None),
    direction: Literal["asc", "desc"] = Query("asc"),
    min_days: Optional[float] = Query(None),
    max_days: Optional[float] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    workspace: DispatchWorkspace = Depends(get_workspace),
) -> dict:
    query = FilterQuery(
        category=filter,
        search=search,
        sort_key=sort or None,
        descending=direction == "desc",
        min_days=min_days,
        max_days=max_days,
    )
    result = paginate(workspace.view(query), page, page_size)
    result.apply_headers(response)
    return result.body(lambda row: entry_out(row, workspace))


@router.get("/stats")
def dispatch_stats(workspace: DispatchWorkspace = Depends(get_workspace)) -> dict:
    return workspace.stats().model_dump(by_alias=True)


@router.get("/{chassis}")
def get_dispatch(chassis: str, workspace: DispatchWorkspace = Depends(get_workspace)) -> dict:
    with _http_errors():
        return entry_out(workspace.get(chassis), workspace)


@router.post("/{chassis}/flags")
def update_flag(
    chassis: str,
    payload: FlagUpdate,
    response: Response,
    wait: bool = Query(False),
    workspace: DispatchWorkspace = Depends(get_workspace),
) -> dict:
    try:
        kind = FlagKind.parse(payload.flag)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    with _http_errors():
        future = workspace.set_flag(chassis, kind, payload.active, payload.comment)
    return _write_response(chassis, future, workspace, response, wait)


@router.put("/{chassis}/comment")
def update_comment(
    chassis: str,
    payload: CommentUpdate,
    response: Response,
    wait: bool = Query(False),
    workspace: DispatchWorkspace = Depends(get_workspace),
) -> dict:
    with _http_errors():
        future = workspace.save_comment(chassis, payload.comment)
    return _write_response(chassis, future, workspace, response, wait)


@router.put("/{chassis}/pickup")
def update_pickup(
    chassis: str,
    payload: PickupUpdate,
    response: Response,
    wait: bool = Query(False),
    workspace: DispatchWorkspace = Depends(get_workspace),
) -> dict:
    with _http_errors():
        future = workspace.save_pickup(chassis, payload.estimated_pickup_at)
    return _write_response(chassis, future, workspace, response, wait)


@router.put("/{chassis}/transport")
def update_transport(
    chassis: str,
    payload: TransportUpdate,
    response: Response,
    wait: bool = Query(False),
    workspace: DispatchWorkspace = Depends(get_workspace),
) -> dict:
    with _http_errors():
        future = workspace.save_transport(chassis, payload.transport_company)
    return _write_response(chassis, future, workspace, response, wait)


@router.post("/{chassis}/report")
def report_dispatch_error(
    chassis: str,
    payload: ErrorReportIn,
    workspace: DispatchWorkspace = Depends(get_workspace),
) -> dict:
    with _http_errors():
        workspace.get(chassis)
    ok = workspace.report_error(chassis, payload.details)
    if not ok:
        raise HTTPException(status_code=502, detail="Failed to record dispatch error report")
    return {"chassis": chassis, "reported": True}
