"""
Configuration for the dispatch workspace service.

Settings are loaded from environment variables or a `.env` file next to
the project root. Defaults are suitable for local development against the
in-memory store; point ``STORE_BACKEND`` at ``firebase`` and set
``FIREBASE_DATABASE_URL`` to work against a live realtime database.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_PATH, override=False)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Which realtime store implementation backs the workspace: memory | firebase
    store_backend: str = Field(default="memory")
    firebase_database_url: str | None = Field(default=None)
    firebase_auth_token: str | None = Field(default=None)
    store_timeout_sec: float = Field(default=10.0)
    store_poll_interval_sec: float = Field(default=5.0)

    # Optional MQTT change notifications that trigger an immediate re-fetch
    enable_change_notifier: bool = Field(default=False)
    change_topic_prefix: str = Field(default="dispatch")
    mqtt_broker_host: str = Field(default="localhost")
    mqtt_broker_port: int = Field(default=1883)
    mqtt_username: str | None = Field(default=None)
    mqtt_password: str | None = Field(default=None)

    # Business constants
    actor_id: str = Field(default="webapp")
    snowy_stock_dealer: str = Field(default="Snowy Stock")
    finished_production_label: str = Field(default="Finished")

    write_workers: int = Field(default=4)
    log_level: str = Field(default="INFO")
    log_file: str | None = Field(default=None)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()


def get_app_env() -> str:
    raw = os.getenv("DISPATCH_ENV") or os.getenv("APP_ENV") or "dev"
    env = raw.strip().lower()
    if env not in {"dev", "prod"}:
        logging.getLogger("config").warning("Unknown DISPATCH_ENV=%s; defaulting to dev", raw)
        env = "dev"
    return env


def validate_runtime_settings(cfg: Settings | None = None) -> None:
    cfg = cfg or settings
    env = get_app_env()
    logger = logging.getLogger("config")

    backend = (cfg.store_backend or "").strip().lower()
    if backend not in {"memory", "firebase"}:
        raise RuntimeError(f"STORE_BACKEND must be 'memory' or 'firebase', got {cfg.store_backend!r}.")
    if backend == "firebase" and not (cfg.firebase_database_url or "").strip():
        if env == "prod":
            raise RuntimeError("FIREBASE_DATABASE_URL must be set when STORE_BACKEND=firebase in prod.")
        logger.warning("STORE_BACKEND=firebase but FIREBASE_DATABASE_URL missing; startup will fail to fetch.")

    if env == "prod":
        if backend == "memory":
            logger.warning("STORE_BACKEND=memory in prod. Edits will not survive a restart.")
        if not cfg.firebase_auth_token and backend == "firebase":
            logger.warning("FIREBASE_AUTH_TOKEN missing in prod; requests are unauthenticated.")
    if cfg.enable_change_notifier and not cfg.mqtt_broker_host:
        logger.error("ENABLE_CHANGE_NOTIFIER set but MQTT_BROKER_HOST missing; notifier disabled.")
