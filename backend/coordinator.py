# Update coordinator - applies a stage change through the server, or locally when it is unreachable
from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable, Optional, Set

from api_client import PregnancyApiClient
from errors import NetworkError
from local_cache import LocalCache
from models import DevelopmentSnapshot, PregnancyRecord
from precedence import should_replace
from retry import MaxRetriesExceeded, retry_with_backoff
from stage import StageResult, normalize
from sync_bus import PREGNANCY_STAGE_UPDATED, SyncBus

logger = logging.getLogger(__name__)


class UpdateCoordinator:
    """
    Runs stage updates so that the UI always gets a valid record back.

    Server path: the combined stage-update endpoint, bounded by `timeout`.
    Fallback path: the stage is normalized locally and cached as
    user-specified while the server call is retried in the background.
    Every result passes the same precedence check before it is cached, and
    results of superseded updates are dropped.
    """

    def __init__(
        self,
        api: PregnancyApiClient,
        cache: LocalCache,
        bus: SyncBus,
        *,
        language: str = "en",
        timeout: float = 25.0,
        retry_attempts: int = 3,
        retry_base_delay: float = 2.0,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.api = api
        self.cache = cache
        self.bus = bus
        self.language = language
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self.today = today or date.today
        self._generation = 0
        self._background: Set[asyncio.Task] = set()

    async def update_stage(self, stage_type: str, stage_value: str) -> PregnancyRecord:
        """
        Apply a stage change and return the record to display.
        Raises ValidationError for malformed input; never raises network errors.
        """
        # Validates the descriptor before anything leaves the client
        local = normalize(stage_type, stage_value, self.today())

        self._generation += 1
        generation = self._generation

        try:
            record, snapshot = await asyncio.wait_for(
                self.api.update_stage_with_development(stage_type, str(stage_value), self.language),
                timeout=self.timeout,
            )
        except (NetworkError, asyncio.TimeoutError) as e:
            if generation != self._generation:
                logger.info("Superseded stage update failed (%s); keeping the newer result", str(e) or type(e).__name__)
                cached = self.cache.get_pregnancy_record()
                return cached or PregnancyRecord(currentWeek=local.currentWeek, dueDate=local.dueDate)
            logger.warning("Stage update via server failed, applying locally: %s", str(e) or type(e).__name__)
            displayed = self._apply_locally(local)
            self._schedule_retry(stage_type, str(stage_value), generation)
            return displayed

        return self._apply_server_result(record, snapshot, generation)

    def _apply_locally(self, local: StageResult) -> PregnancyRecord:
        week = local.currentWeek
        previous = self.cache.get_pregnancy_record()
        if previous is not None:
            candidate = previous.with_week(week, self.today())
        else:
            candidate = PregnancyRecord(currentWeek=week, dueDate=local.dueDate)
        record = self.cache.save_user_specified_record(candidate)
        self.bus.publish(PREGNANCY_STAGE_UPDATED, record.to_dict())
        return record

    def _apply_server_result(
        self,
        record: PregnancyRecord,
        snapshot: Optional[DevelopmentSnapshot],
        generation: int,
    ) -> PregnancyRecord:
        cached = self.cache.get_pregnancy_record()

        if generation != self._generation:
            logger.info("Discarding server result for superseded stage update (week %s)", record.currentWeek)
            return cached or record

        if not should_replace(cached, record):
            logger.info(
                "Keeping user-specified week %s over older server week %s",
                cached.currentWeek, record.currentWeek,
            )
            self.bus.publish(PREGNANCY_STAGE_UPDATED, cached.to_dict())
            return cached

        # Record and snapshot are written in the same synchronous step
        stored = self.cache.save_pregnancy_record(record)
        if snapshot is not None:
            self.cache.save_development_snapshot(stored.currentWeek, self.language, snapshot)
        self.bus.publish(PREGNANCY_STAGE_UPDATED, stored.to_dict())
        return stored

    def _schedule_retry(self, stage_type: str, stage_value: str, generation: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._retry(stage_type, stage_value, generation))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _retry(self, stage_type: str, stage_value: str, generation: int) -> None:
        async def attempt():
            return await asyncio.wait_for(
                self.api.update_stage_with_development(stage_type, stage_value, self.language),
                timeout=self.timeout,
            )

        # The first attempt just failed; give the server a moment before retrying
        await asyncio.sleep(self.retry_base_delay)
        try:
            record, snapshot = await retry_with_backoff(
                attempt,
                retries=self.retry_attempts,
                base_delay=self.retry_base_delay,
                retry_on=(NetworkError, asyncio.TimeoutError),
            )
        except MaxRetriesExceeded as e:
            logger.warning("Background stage update gave up, keeping local week: %s", e.__cause__)
            return
        self._apply_server_result(record, snapshot, generation)

    @property
    def pending_retries(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """Wait for background retries to finish"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel background retries"""
        for task in list(self._background):
            task.cancel()
        await self.drain()
