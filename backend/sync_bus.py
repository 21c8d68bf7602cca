# Cross-view sync bus - in-process pub/sub plus cross-tab broadcast over shared storage
from __future__ import annotations

import json
import logging
import time
import uuid
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Dict, List, Optional

from errors import StorageError
from storage import StorageArea, StorageEvent

logger = logging.getLogger(__name__)

PREGNANCY_STAGE_UPDATED = "pregnancy_stage_updated"
FORCE_SYNC = "force_sync"

# Well-known storage key carrying the latest {event, data, timestamp, nonce} marker
BROADCAST_KEY = "LAST_PREGNANCY_UPDATE"

Handler = Callable[[Any], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class SyncBus:
    """
    One bus per tab.

    publish() fans out to this tab's subscribers synchronously, in
    subscription order, then writes the broadcast marker so the other tabs
    attached to the same storage area receive the event asynchronously.
    Payloads must be JSON-compatible; handlers may see a logical update more
    than once and must be idempotent.
    """

    def __init__(self, storage: StorageArea, clock: Callable[[], int] = _now_ms) -> None:
        self.storage = storage
        self.clock = clock
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._listener_id: Optional[int] = storage.add_listener(self._on_storage_event)

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register a handler; call the returned function to unsubscribe"""
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def publish(self, event: str, payload: Any = None) -> None:
        logger.debug("Publishing %s", event)
        self._deliver(event, payload)

        # Nonce: identical broadcasts must still differ, unchanged values are never announced
        marker = {"event": event, "data": payload, "timestamp": self.clock(), "nonce": uuid.uuid4().hex}
        try:
            self.storage.set_item(BROADCAST_KEY, json.dumps(marker), source=self._listener_id)
        except StorageError as e:
            logger.warning("Could not broadcast %s to other tabs: %s", event, e)

    def force_sync_all(self) -> None:
        """Ask every view in every tab to re-derive its state; carries no data"""
        logger.info("Forcing synchronization of all views")
        self.publish(FORCE_SYNC, None)

    def get_last_update_timestamp(self) -> int:
        """Timestamp (ms) of the most recent broadcast marker, 0 when there is none"""
        try:
            raw = self.storage.get_item(BROADCAST_KEY)
        except StorageError as e:
            logger.warning("Could not read broadcast marker: %s", e)
            return 0
        marker = self._decode(raw)
        if not marker:
            return 0
        try:
            return int(marker.get("timestamp") or 0)
        except (TypeError, ValueError):
            return 0

    def close(self) -> None:
        """Detach from storage; subscribers stay registered but no longer hear other tabs"""
        if self._listener_id is not None:
            self.storage.remove_listener(self._listener_id)
            self._listener_id = None

    def _deliver(self, event: str, payload: Any) -> None:
        # Copy so handlers may unsubscribe while being called
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", event)

    @staticmethod
    def _decode(raw: Optional[str]) -> Optional[Dict[str, Any]]:
        if not raw:
            return None
        try:
            marker = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring undecodable broadcast marker")
            return None
        return marker if isinstance(marker, dict) else None

    def _on_storage_event(self, event: StorageEvent) -> None:
        if event.key != BROADCAST_KEY or self._listener_id is None:
            return
        marker = self._decode(event.newValue)
        if not marker or not marker.get("event"):
            return
        self._deliver(marker["event"], marker.get("data"))
