# SyncContext - the one object a tab builds at start-up and hands to every page
from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

import httpx

from api_client import PregnancyApiClient
from config import Settings, load_settings
from coordinator import UpdateCoordinator
from development import fallback_snapshot
from errors import NetworkError
from local_cache import LocalCache
from models import DevelopmentSnapshot, PregnancyRecord
from reconciler import ViewReconciler
from storage import FileStorageArea, MemoryStorageArea, StorageArea
from sync_bus import SyncBus

logger = logging.getLogger(__name__)


class SyncContext:
    """
    Entry points pages use: update_stage, get_displayed_week, subscribe,
    force_sync_all, get_development and create_view. Pages never touch the
    cache or the broadcast key directly.
    """

    def __init__(
        self,
        storage: StorageArea,
        api: PregnancyApiClient,
        *,
        language: str = "en",
        scope: str = "default",
        timeout: float = 25.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 2.0,
        poll_interval: Optional[float] = None,
        max_development_entries: Optional[int] = None,
    ) -> None:
        self.storage = storage
        self.api = api
        self.language = language
        self.poll_interval = poll_interval
        self.cache = LocalCache(storage, scope=scope, max_development_entries=max_development_entries)
        self.bus = SyncBus(storage)
        self.coordinator = UpdateCoordinator(
            api,
            self.cache,
            self.bus,
            language=language,
            timeout=timeout,
            retry_attempts=retry_attempts,
            retry_base_delay=retry_base_delay,
        )
        self._views: List[ViewReconciler] = []

    @classmethod
    def from_settings(
        cls,
        storage: Optional[StorageArea] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> 'SyncContext':
        """Build a context from environment settings; tabs sharing `storage` stay in sync"""
        settings = settings or load_settings()
        if storage is None:
            storage = FileStorageArea(settings.cache_file) if settings.cache_file else MemoryStorageArea()
        api = PregnancyApiClient(settings.api_base_url, timeout=settings.stage_update_timeout, transport=transport)
        return cls(
            storage,
            api,
            language=settings.default_language,
            timeout=settings.stage_update_timeout,
            retry_attempts=settings.retry_attempts,
            retry_base_delay=settings.retry_base_delay,
            poll_interval=settings.poll_interval,
        )

    async def update_stage(self, stage_type: str, stage_value: str) -> PregnancyRecord:
        return await self.coordinator.update_stage(stage_type, stage_value)

    def get_displayed_week(self) -> int:
        """Week from the cached record, 1 when nothing is known yet"""
        record = self.cache.get_pregnancy_record()
        return record.currentWeek if record else 1

    def subscribe(self, event: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        return self.bus.subscribe(event, handler)

    def force_sync_all(self) -> None:
        self.bus.force_sync_all()

    async def get_development(self, week: Optional[int] = None, language: Optional[str] = None) -> DevelopmentSnapshot:
        """
        Development content for a week (default: the displayed week).
        Served from the cache when present, fetched and cached otherwise; the
        fallback table is used, uncached, when the server is unreachable.
        """
        week = week or self.get_displayed_week()
        language = language or self.language
        cached = self.cache.get_development_snapshot(week, language)
        if cached is not None:
            return cached
        try:
            snapshot = await self.api.get_baby_development(week, language)
        except NetworkError as e:
            logger.warning("Could not fetch development data for week %s: %s", week, e)
            return fallback_snapshot(week, language)
        self.cache.save_development_snapshot(week, language, snapshot)
        return snapshot

    def create_view(self, name: str, on_change: Optional[Callable[[PregnancyRecord], None]] = None) -> ViewReconciler:
        view = ViewReconciler(name, self.api, self.cache, self.bus, on_change=on_change)
        self._views.append(view)
        return view

    async def mount_view(self, name: str, on_change: Optional[Callable[[PregnancyRecord], None]] = None) -> ViewReconciler:
        """Create and mount a view, polling at the configured interval"""
        view = self.create_view(name, on_change)
        await view.mount(poll_interval=self.poll_interval)
        return view

    async def aclose(self) -> None:
        for view in self._views:
            await view.unmount()
        self._views.clear()
        await self.coordinator.aclose()
        self.bus.close()
        await self.api.aclose()
