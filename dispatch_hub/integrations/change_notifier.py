"""
MQTT subscriber that turns store change notifications into immediate
re-fetches.

Publishers announce a change on ``<prefix>/<collection>/changed``; the
notifier asks the store to refresh that collection's subscription instead
of waiting for the next poll.
"""

from __future__ import annotations

import logging
import threading

import paho.mqtt.client as mqtt

from ..core.config import Settings
from ..core.errors import log_exception
from .realtime_store import RealtimeStore


class ChangeNotifier:
    def __init__(self, settings: Settings, store: RealtimeStore) -> None:
        self.logger = logging.getLogger("ChangeNotifier")
        self.settings = settings
        self.store = store
        self.prefix = settings.change_topic_prefix.strip("/")
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=f"dispatch-hub-notifier-{id(self)}")
        if settings.mqtt_username:
            self.client.username_pw_set(settings.mqtt_username, settings.mqtt_password)
        self.client.on_connect = self.on_connect
        self.client.on_message = self.on_message
        self._connected = threading.Event()

    @property
    def topic(self) -> str:
        return f"{self.prefix}/+/changed"

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def collection_for(self, topic: str) -> str | None:
        parts = topic.strip("/").split("/")
        prefix_parts = self.prefix.split("/") if self.prefix else []
        if len(parts) != len(prefix_parts) + 2 or parts[-1] != "changed":
            return None
        if parts[: len(prefix_parts)] != prefix_parts:
            return None
        return parts[-2] or None

    def on_connect(self, client: mqtt.Client, userdata, flags, reason_code, properties=None) -> None:
        if not reason_code.is_failure:
            client.subscribe(self.topic, qos=1)
            self._connected.set()
            self.logger.info("Subscribed to change notifications topic=%s", self.topic)
        else:
            self.logger.warning("Change notifier MQTT connect failed: %s", reason_code)

    def on_message(self, client: mqtt.Client, userdata, msg) -> None:
        collection = self.collection_for(getattr(msg, "topic", "") or "")
        if not collection:
            self.logger.warning("Ignoring change notification on unexpected topic=%s", getattr(msg, "topic", None))
            return
        try:
            self.store.refresh(collection)
        except Exception as exc:
            self.logger.warning("Change-triggered refresh failed collection=%s: %s", collection, exc)

    def start(self) -> None:
        self.client.connect_async(self.settings.mqtt_broker_host, self.settings.mqtt_broker_port, keepalive=30)
        self.client.loop_start()

    def stop(self) -> None:
        try:
            self.client.loop_stop()
            self.client.disconnect()
        except Exception as exc:
            log_exception(self.logger, "Change notifier MQTT shutdown failed", exc=exc)
        finally:
            self._connected.clear()
