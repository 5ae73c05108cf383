"""
Entry point for the Dispatch Hub service.

This module creates the FastAPI application, wires the realtime store,
the dispatch workspace and the optional MQTT change notifier. Run with:

    uvicorn dispatch_hub.main:app --reload

"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from .api import api_router
from .core.config import Settings, get_app_env, settings, validate_runtime_settings
from .core.errors import log_exception
from .core.logging_config import setup_logging
from .integrations.change_notifier import ChangeNotifier
from .integrations.firebase_rest import FirebaseRestStore
from .integrations.realtime_store import InMemoryRealtimeStore, RealtimeStore
from .services.workspace import DispatchWorkspace


def build_store(cfg: Settings) -> RealtimeStore:
    backend = (cfg.store_backend or "memory").strip().lower()
    if backend == "firebase":
        return FirebaseRestStore(
            cfg.firebase_database_url or "",
            auth_token=cfg.firebase_auth_token,
            timeout_sec=cfg.store_timeout_sec,
            poll_interval_sec=cfg.store_poll_interval_sec,
        )
    return InMemoryRealtimeStore()


def create_app(workspace: DispatchWorkspace | None = None, cfg: Settings | None = None) -> FastAPI:
    cfg = cfg or settings
    setup_logging(cfg.log_level, cfg.log_file)
    app = FastAPI(title="Dispatch Hub", version="0.1.0")
    app.include_router(api_router)
    app.state.workspace = workspace
    app.state.change_notifier = None

    @app.on_event("startup")
    def _startup() -> None:
        logger = logging.getLogger("startup")
        validate_runtime_settings(cfg)
        ws = app.state.workspace
        if ws is None:
            ws = DispatchWorkspace.from_settings(cfg, build_store(cfg))
            app.state.workspace = ws
        ws.start()
        logger.info("Dispatch workspace ready env=%s backend=%s", get_app_env(), cfg.store_backend)
        if cfg.enable_change_notifier and cfg.mqtt_broker_host:
            try:
                notifier = ChangeNotifier(cfg, ws.store)
                notifier.start()
                app.state.change_notifier = notifier
            except Exception as exc:
                # Polling still picks up changes; the notifier only shortens the delay.
                log_exception(logger, "Change notifier startup failed", exc=exc)

    @app.on_event("shutdown")
    def _shutdown() -> None:
        notifier = getattr(app.state, "change_notifier", None)
        if notifier:
            notifier.stop()
        ws = getattr(app.state, "workspace", None)
        if ws:
            ws.stop()
            ws.store.close()

    return app


app = create_app()
