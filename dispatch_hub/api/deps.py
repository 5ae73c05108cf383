"""Request-scoped dependencies shared by the v1 routers."""

from __future__ import annotations

from fastapi import HTTPException, Request

from ..services.workspace import DispatchWorkspace


def get_workspace(request: Request) -> DispatchWorkspace:
    workspace = getattr(request.app.state, "workspace", None)
    if workspace is None or not workspace.started:
        raise HTTPException(status_code=503, detail="Dispatch workspace not started")
    return workspace
