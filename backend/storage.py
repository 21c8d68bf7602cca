# Origin-wide key/value storage shared by every open tab, with change notifications
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageEvent:
    """Change notification delivered to the tabs that did not make the write"""
    key: Optional[str]  # None when the whole area was cleared
    oldValue: Optional[str]
    newValue: Optional[str]


StorageListener = Callable[[StorageEvent], None]


class StorageArea:
    """
    String key/value store shared by all tabs of one origin.

    Writes notify every attached listener except the writer's own, like the
    browser `storage` event. When an asyncio loop is running, delivery is
    scheduled with call_soon so other tabs see the change on the next loop
    iteration, never inside the writer's call.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, str] = {}
        self._listeners: Dict[int, StorageListener] = {}
        self._next_listener_id = 0

    # Persistence hooks for subclasses
    def _check_write(self, key: str, value: str) -> None:
        pass

    def _persist(self, items: Dict[str, str]) -> None:
        pass

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str, source: Optional[int] = None) -> None:
        """Store a value; raises StorageError when the area refuses the write"""
        with self._lock:
            self._check_write(key, value)
            old = self._items.get(key)
            items = dict(self._items)
            items[key] = value
            # Committed only once persisted
            self._persist(items)
            self._items = items
        if old != value:
            self._dispatch(StorageEvent(key, old, value), source)

    def remove_item(self, key: str, source: Optional[int] = None) -> None:
        with self._lock:
            if key not in self._items:
                return
            items = dict(self._items)
            old = items.pop(key)
            self._persist(items)
            self._items = items
        self._dispatch(StorageEvent(key, old, None), source)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())

    def clear(self, source: Optional[int] = None) -> None:
        with self._lock:
            self._persist({})
            self._items = {}
        self._dispatch(StorageEvent(None, None, None), source)

    def add_listener(self, listener: StorageListener) -> int:
        """Attach a tab; the returned id is passed as `source` on that tab's writes"""
        with self._lock:
            self._next_listener_id += 1
            listener_id = self._next_listener_id
            self._listeners[listener_id] = listener
        return listener_id

    def remove_listener(self, listener_id: int) -> None:
        with self._lock:
            self._listeners.pop(listener_id, None)

    def _dispatch(self, event: StorageEvent, source: Optional[int]) -> None:
        with self._lock:
            targets = [fn for lid, fn in self._listeners.items() if lid != source]
        if not targets:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        for listener in targets:
            if loop is not None:
                loop.call_soon(listener, event)
            else:
                listener(event)


class MemoryStorageArea(StorageArea):
    """In-memory storage area with an optional quota (total bytes of keys + values)"""

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        super().__init__()
        self.quota_bytes = quota_bytes

    def _check_write(self, key: str, value: str) -> None:
        if self.quota_bytes is None:
            return
        used = sum(len(k) + len(v) for k, v in self._items.items() if k != key)
        if used + len(key) + len(value) > self.quota_bytes:
            raise StorageError(f"Storage quota of {self.quota_bytes} bytes exceeded writing {key!r}")


class FileStorageArea(StorageArea):
    """Storage area persisted to a JSON file; every write replaces the file atomically"""

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path
        self._items = self._load()

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring storage file %s: expected a JSON object", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _persist(self, items: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".storage-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(f"Could not write storage file {self.path}: {e}") from e
