# Local persisted cache - last known pregnancy record and per-week development content
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from errors import StorageError
from models import (
    OLDEST,
    SERVER,
    USER_SPECIFIED,
    DevelopmentSnapshot,
    PregnancyRecord,
    parse_datetime,
    utcnow,
)
from storage import StorageArea

logger = logging.getLogger(__name__)

PREGNANCY_PREFIX = "pregnancy:"
DEVELOPMENT_PREFIX = "development:"

def pregnancy_key(scope: str) -> str:
    return f"{PREGNANCY_PREFIX}{scope}"


def development_key(week: int, language: str) -> str:
    """Language is part of the key so a language switch never serves stale content"""
    return f"{DEVELOPMENT_PREFIX}{week}:{language}"


class LocalCache:
    """
    JSON values on top of a StorageArea.

    Writes are synchronous. A storage failure is logged and the cache keeps
    working from an in-memory copy for the rest of the session; callers never
    see StorageError.
    """

    def __init__(
        self,
        storage: StorageArea,
        scope: str = "default",
        max_development_entries: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.scope = scope
        self.max_development_entries = max_development_entries
        self.clock = clock
        self._memory: Dict[str, Any] = {}
        self._degraded = False

    @property
    def degraded(self) -> bool:
        """True once storage failed and the cache fell back to memory"""
        return self._degraded

    def _degrade(self, error: StorageError) -> None:
        if not self._degraded:
            logger.warning("Local storage unavailable, keeping data in memory only: %s", error)
        self._degraded = True

    def get(self, key: str) -> Any:
        if self._degraded and key in self._memory:
            return self._memory[key]
        try:
            raw = self.storage.get_item(key)
        except StorageError as e:
            self._degrade(e)
            return self._memory.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    def set(self, key: str, value: Any) -> bool:
        """Store a JSON-compatible value. Returns False when only the memory copy was written."""
        if self._degraded:
            self._memory[key] = value
            return False
        try:
            self.storage.set_item(key, json.dumps(value))
        except StorageError as e:
            self._degrade(e)
            self._memory[key] = value
            return False
        return True

    def remove(self, key: str) -> None:
        self._memory.pop(key, None)
        try:
            self.storage.remove_item(key)
        except StorageError as e:
            self._degrade(e)

    def get_pregnancy_record(self) -> Optional[PregnancyRecord]:
        data = self.get(pregnancy_key(self.scope))
        if not data:
            return None
        try:
            return PregnancyRecord.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed cached pregnancy record: %s", e)
            return None

    def save_pregnancy_record(self, record: PregnancyRecord) -> PregnancyRecord:
        """Store a record as-is; records without provenance are stamped as server data"""
        if record.provenance is None:
            record = record.with_provenance(SERVER, self.clock())
        self.set(pregnancy_key(self.scope), record.to_dict())
        return record

    def save_user_specified_record(self, record: PregnancyRecord) -> PregnancyRecord:
        """Store a record the user chose locally; it outranks older server data"""
        record = record.with_provenance(USER_SPECIFIED, self.clock())
        self.set(pregnancy_key(self.scope), record.to_dict())
        return record

    def get_development_snapshot(self, week: int, language: str) -> Optional[DevelopmentSnapshot]:
        entry = self.get(development_key(week, language))
        if not entry:
            return None
        try:
            return DevelopmentSnapshot.from_dict(entry["data"])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed development snapshot for week %s (%s): %s", week, language, e)
            return None

    def save_development_snapshot(
        self,
        week: int,
        language: str,
        data: Union[DevelopmentSnapshot, Dict[str, Any]],
    ) -> bool:
        snapshot = data.to_dict() if isinstance(data, DevelopmentSnapshot) else dict(data)
        snapshot["week"] = week
        snapshot["language"] = language
        key = development_key(week, language)
        if self.max_development_entries:
            self._evict_for(key)
        return self.set(key, {"savedAt": self.clock().isoformat(), "data": snapshot})

    def _development_keys(self) -> List[str]:
        try:
            keys = set(self.storage.keys())
        except StorageError as e:
            self._degrade(e)
            keys = set()
        keys.update(self._memory.keys())
        return [k for k in keys if k.startswith(DEVELOPMENT_PREFIX)]

    def _evict_for(self, new_key: str) -> None:
        keys = self._development_keys()
        if new_key in keys or len(keys) < self.max_development_entries:
            return

        def saved_at(key: str) -> datetime:
            entry = self.get(key) or {}
            try:
                return parse_datetime(entry.get("savedAt")) or OLDEST
            except (AttributeError, ValueError):
                return OLDEST

        oldest = min(keys, key=saved_at)
        logger.debug("Evicting cached development snapshot %s", oldest)
        self.remove(oldest)

    def clear(self) -> None:
        """Remove the pregnancy record and every development snapshot (logout)"""
        self.remove(pregnancy_key(self.scope))
        for key in self._development_keys():
            self.remove(key)
