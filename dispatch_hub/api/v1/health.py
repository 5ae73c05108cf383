"""
Health endpoint for the dispatch workspace.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from ...core.config import settings


router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("")
def health(request: Request) -> dict:
    workspace = getattr(request.app.state, "workspace", None)
    notifier = getattr(request.app.state, "change_notifier", None)
    notifier_status = {"enabled": False, "connected": False}
    if notifier is not None:
        notifier_status = {"enabled": True, "connected": notifier.is_connected()}
    started = bool(workspace is not None and workspace.started)
    return {
        "status": "ok" if started else "starting",
        "timestamp_utc": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "store_backend": settings.store_backend,
        "started": started,
        "records": len(workspace.entries()) if started else 0,
        "pending_overlay": len(workspace.overlay) if started else 0,
        "errors": len(workspace.errors()) if started else 0,
        "change_notifier": notifier_status,
    }
