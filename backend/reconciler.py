# View reconciler - decides which pregnancy record a page displays and keeps it current
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from enum import Enum
from typing import Callable, List, Optional, Set

from api_client import PregnancyApiClient
from errors import NetworkError
from local_cache import LocalCache
from models import SERVER, PregnancyRecord, default_pregnancy_record
from precedence import should_replace
from sync_bus import FORCE_SYNC, PREGNANCY_STAGE_UPDATED, SyncBus

logger = logging.getLogger(__name__)


class ViewState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CACHE_HIT = "cacheHit"
    CACHE_MISS = "cacheMiss"
    AWAITING_SERVER = "awaitingServer"
    RECONCILED = "reconciled"


def _source(record: PregnancyRecord) -> str:
    return record.provenance.source if record.provenance else SERVER


def same_content(a: Optional[PregnancyRecord], b: Optional[PregnancyRecord]) -> bool:
    """Equal data and provenance source; the local timestamp is ignored"""
    if a is None or b is None:
        return False
    return _source(a) == _source(b) and replace(a, provenance=None) == replace(b, provenance=None)


class ViewReconciler:
    """
    Per-page reconciliation of cached and server pregnancy data.

    Lifecycle: mount() -> (CacheHit | CacheMiss) -> AwaitingServer ->
    Reconciled, and back to AwaitingServer on every refresh. unmount()
    removes every subscription and background task.
    """

    def __init__(
        self,
        name: str,
        api: PregnancyApiClient,
        cache: LocalCache,
        bus: SyncBus,
        on_change: Optional[Callable[[PregnancyRecord], None]] = None,
    ) -> None:
        self.name = name
        self.api = api
        self.cache = cache
        self.bus = bus
        self.on_change = on_change
        self.state = ViewState.UNINITIALIZED
        self.displayed: Optional[PregnancyRecord] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None
        self._last_marker = 0

    @property
    def mounted(self) -> bool:
        return bool(self._unsubscribers)

    def get_displayed_week(self) -> int:
        return self.displayed.currentWeek if self.displayed else 1

    async def mount(self, poll_interval: Optional[float] = None) -> None:
        if self.mounted:
            return
        cached = self.cache.get_pregnancy_record()
        if cached is not None and cached.is_user_specified:
            # Optimistic: show what the user chose before the server answers
            self._display(cached)
            self.state = ViewState.CACHE_HIT
        else:
            self.state = ViewState.CACHE_MISS

        self._unsubscribers = [
            self.bus.subscribe(PREGNANCY_STAGE_UPDATED, self.handle_stage_update),
            self.bus.subscribe(FORCE_SYNC, self.handle_force_sync),
        ]
        self._last_marker = self.bus.get_last_update_timestamp()

        await self.refresh()
        if poll_interval:
            self.start_polling(poll_interval)

    async def refresh(self) -> None:
        """Fetch the server record and reconcile it with the cache"""
        self.state = ViewState.AWAITING_SERVER
        try:
            server_record = await self.api.get_pregnancy()
        except NetworkError as e:
            logger.warning("[%s] Could not fetch pregnancy data, using cached data: %s", self.name, e)
            cached = self.cache.get_pregnancy_record()
            self._display(cached or self.displayed or default_pregnancy_record())
        else:
            self._reconcile(server_record)
        self.state = ViewState.RECONCILED

    def handle_stage_update(self, payload) -> None:
        """Sync bus handler; safe to call repeatedly with the same payload"""
        try:
            incoming = PregnancyRecord.from_dict(payload)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("[%s] Ignoring malformed stage update payload: %s", self.name, e)
            return
        self._last_marker = max(self._last_marker, self.bus.get_last_update_timestamp())
        self.state = ViewState.AWAITING_SERVER
        self._reconcile(incoming)
        self.state = ViewState.RECONCILED

    def handle_force_sync(self, _payload=None) -> None:
        """Refresh unconditionally; the signal itself carries no data"""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[%s] force sync outside an event loop ignored", self.name)
            return
        self._track(loop.create_task(self.refresh()))

    def _reconcile(self, incoming: PregnancyRecord) -> None:
        cached = self.cache.get_pregnancy_record()
        if not should_replace(cached, incoming):
            logger.debug("[%s] Keeping cached week %s over week %s", self.name, cached.currentWeek, incoming.currentWeek)
            self._display(cached)
            return
        if same_content(cached, incoming):
            self._display(cached)
            return
        if incoming.updatedAt is None and not incoming.is_user_specified:
            # Server placeholder (nothing stored yet): show it, never cache it
            self._display(incoming)
            return
        self._display(self.cache.save_pregnancy_record(incoming))

    def _display(self, record: PregnancyRecord) -> None:
        if record == self.displayed:
            return
        self.displayed = record
        if self.on_change is not None:
            try:
                self.on_change(record)
            except Exception:
                logger.exception("[%s] on_change callback failed", self.name)

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def start_polling(self, interval: float) -> None:
        """Best-effort safety net for missed sync events (e.g. a backgrounded tab)"""
        if self._poll_task is not None:
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll(interval))

    async def _poll(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.poll_once()
            except Exception:
                logger.exception("[%s] Background poll failed", self.name)

    async def poll_once(self) -> None:
        marker = self.bus.get_last_update_timestamp()
        if marker > self._last_marker:
            # A broadcast was missed; pick up whatever the cache now holds
            self._last_marker = marker
            cached = self.cache.get_pregnancy_record()
            if cached is not None:
                self._reconcile(cached)
        await self.refresh()

    async def wait_idle(self) -> None:
        """Wait for refreshes scheduled by force-sync signals"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def unmount(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        tasks = list(self._tasks)
        if self._poll_task is not None:
            tasks.append(self._poll_task)
            self._poll_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
