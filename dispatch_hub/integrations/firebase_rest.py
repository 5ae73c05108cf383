"""
Firebase Realtime Database client over its REST interface.

Reads are ``GET <db>/<path>.json``, partial updates are ``PATCH`` (a JSON
``null`` deletes the field) and appends are ``POST``. Subscriptions poll
the collection on a background thread and deliver a snapshot only when
its content changed; ``refresh`` wakes the poller immediately.
"""

from __future__ import annotations

import json
import logging
import threading
from hashlib import sha256
from typing import Any, Dict, Mapping, Optional

import requests

from ..core.errors import StoreWriteError, log_exception
from .realtime_store import RealtimeStore, SnapshotHandler, Subscription, escape_key


def _checksum(payload: Any) -> str:
    return sha256(json.dumps(payload, sort_keys=True, default=str).encode("utf-8")).hexdigest()


class PollingSubscription(Subscription):
    def __init__(
        self,
        store: "FirebaseRestStore",
        collection: str,
        handler: SnapshotHandler,
        interval_sec: float,
    ) -> None:
        super().__init__(collection, handler, on_cancel=store._drop)
        self.logger = logging.getLogger("FirebasePoller")
        self.store = store
        self.interval_sec = max(0.5, float(interval_sec))
        self._checksum: Optional[str] = None
        self._stop_event = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._loop, name=f"Poll-{self.collection}", daemon=True)
        self._thread.start()

    def poll_once(self) -> bool:
        """Fetch and deliver if changed. Returns True when a snapshot was delivered."""
        try:
            payload = self.store.get(self.collection)
        except requests.RequestException as exc:
            self.logger.warning("Poll failed collection=%s: %s", self.collection, exc)
            return False
        checksum = _checksum(payload)
        if checksum == self._checksum:
            return False
        self._checksum = checksum
        self.deliver(payload)
        return True

    def refresh(self) -> None:
        self._wake.set()

    def _loop(self) -> None:
        self.logger.info("Polling started collection=%s interval=%ss", self.collection, self.interval_sec)
        while not self._stop_event.is_set():
            self.poll_once()
            self._wake.wait(self.interval_sec)
            self._wake.clear()
        self.logger.info("Polling stopped collection=%s", self.collection)

    def cancel(self) -> None:
        self._stop_event.set()
        self._wake.set()
        super().cancel()


class FirebaseRestStore(RealtimeStore):
    def __init__(
        self,
        database_url: str,
        *,
        auth_token: Optional[str] = None,
        timeout_sec: float = 10.0,
        poll_interval_sec: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.logger = logging.getLogger("FirebaseRestStore")
        self.database_url = (database_url or "").rstrip("/")
        self.auth_token = auth_token
        self.timeout_sec = timeout_sec
        self.poll_interval_sec = poll_interval_sec
        self.session = session or requests.Session()
        self._subs: Dict[str, PollingSubscription] = {}
        self._lock = threading.Lock()

    def _url(self, *segments: str) -> str:
        path = "/".join(s.strip("/") for s in segments if s)
        return f"{self.database_url}/{path}.json"

    def _params(self) -> Dict[str, str]:
        return {"auth": self.auth_token} if self.auth_token else {}

    def get(self, collection: str) -> Any:
        """GET a collection. Raises requests.RequestException on failure."""
        response = self.session.get(self._url(collection), params=self._params(), timeout=self.timeout_sec)
        response.raise_for_status()
        payload = response.json()
        return payload if payload is not None else {}

    def fetch(self, collection: str) -> Any:
        try:
            return self.get(collection)
        except (requests.RequestException, ValueError) as exc:
            log_exception(self.logger, "Fetch failed", extra={"collection": collection}, exc=exc)
            return {}

    def subscribe(self, collection: str, handler: SnapshotHandler) -> Subscription:
        with self._lock:
            previous = self._subs.get(collection)
        if previous is not None:
            previous.cancel()
        sub = PollingSubscription(self, collection, handler, self.poll_interval_sec)
        with self._lock:
            self._subs[collection] = sub
        sub.start()
        return sub

    def _drop(self, sub: Subscription) -> None:
        with self._lock:
            if self._subs.get(sub.collection) is sub:
                del self._subs[sub.collection]

    def _send(self, method: str, url: str, key: str, body: Any) -> requests.Response:
        try:
            response = self.session.request(
                method,
                url,
                params=self._params(),
                data=json.dumps(body, default=str),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_sec,
            )
        except requests.RequestException as exc:
            raise StoreWriteError(key, f"Store request failed: {exc}") from exc
        if response.status_code // 100 != 2:
            detail = response.text
            try:
                err_json = response.json()
                if isinstance(err_json, dict) and err_json.get("error"):
                    detail = str(err_json["error"])
            except ValueError:
                pass
            raise StoreWriteError(key, f"Store rejected write ({response.status_code}): {detail}")
        return response

    def patch(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        safe_key = escape_key(key)
        self._send("PATCH", self._url(collection, safe_key), safe_key, dict(fields))

    def push(self, collection: str, value: Mapping[str, Any]) -> str:
        response = self._send("POST", self._url(collection), collection, dict(value))
        try:
            return str(response.json().get("name") or "")
        except (ValueError, AttributeError):
            return ""

    def refresh(self, collection: str) -> None:
        with self._lock:
            sub = self._subs.get(collection)
        if sub is not None:
            sub.refresh()

    def close(self) -> None:
        with self._lock:
            subs = list(self._subs.values())
        for sub in subs:
            sub.cancel()
        self.session.close()
