"""
Tests for the update coordinator: server path, local fallback, precedence, retries.
"""
import asyncio
import json
from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import SwitchableTransport, make_api, run
from coordinator import UpdateCoordinator
from errors import ValidationError
from local_cache import LocalCache
from models import SERVER, USER_SPECIFIED, PregnancyRecord, pregnancy_records
from storage import MemoryStorageArea
from sync_bus import PREGNANCY_STAGE_UPDATED, SyncBus

TODAY = date(2026, 1, 1)


class Tab:
    """One tab's cache, bus and coordinator over shared storage."""

    def __init__(self, storage, transport, timeout=5.0, clock=None):
        self.cache = LocalCache(storage, clock=clock) if clock else LocalCache(storage)
        self.bus = SyncBus(storage)
        self.api = make_api(transport)
        self.coordinator = UpdateCoordinator(
            self.api,
            self.cache,
            self.bus,
            timeout=timeout,
            retry_attempts=1,
            retry_base_delay=0.0,
            today=lambda: TODAY,
        )
        self.published = []
        self.bus.subscribe(PREGNANCY_STAGE_UPDATED, self.published.append)

    async def close(self):
        await self.coordinator.aclose()
        self.bus.close()
        await self.api.aclose()


class SlowStageTransport(SwitchableTransport):
    """Holds back stage updates for one particular stage value."""

    def __init__(self, slow_value, delay):
        super().__init__()
        self.slow_value = slow_value
        self.slow_delay = delay

    async def handle_async_request(self, request):
        if request.url.path == "/stage-update-with-development":
            if json.loads(request.content)["stageValue"] == self.slow_value:
                await asyncio.sleep(self.slow_delay)
        return await super().handle_async_request(request)


class TestServerPath:
    def test_server_result_cached_and_published(self):
        async def scenario():
            tab = Tab(MemoryStorageArea(), SwitchableTransport())
            try:
                record = await tab.coordinator.update_stage("week", "20")

                assert record.currentWeek == 20
                assert record.provenance.source == SERVER
                assert tab.cache.get_pregnancy_record() == record
                assert tab.cache.get_development_snapshot(20, "en") is not None
                assert [p["currentWeek"] for p in tab.published] == [20]
                assert pregnancy_records[1].currentWeek == 20
                assert tab.coordinator.pending_retries == 0
            finally:
                await tab.close()

        run(scenario())

    def test_month_4_lands_on_week_17(self):
        async def scenario():
            tab = Tab(MemoryStorageArea(), SwitchableTransport())
            try:
                record = await tab.coordinator.update_stage("month", "4")
                assert record.currentWeek == 17
            finally:
                await tab.close()

        run(scenario())

    def test_invalid_descriptor_never_reaches_server(self):
        async def scenario():
            transport = SwitchableTransport()
            tab = Tab(MemoryStorageArea(), transport)
            try:
                with pytest.raises(ValidationError):
                    await tab.coordinator.update_stage("trimester", "5")
                assert transport.requests == []
                assert tab.cache.get_pregnancy_record() is None
                assert tab.published == []
            finally:
                await tab.close()

        run(scenario())


class TestLocalFallback:
    def test_offline_update_applied_locally(self):
        async def scenario():
            transport = SwitchableTransport(online=False)
            tab = Tab(MemoryStorageArea(), transport)
            try:
                record = await tab.coordinator.update_stage("week", "20")

                assert record.currentWeek == 20
                assert record.dueDate == TODAY + timedelta(weeks=20)
                assert record.provenance.source == USER_SPECIFIED
                assert tab.cache.get_pregnancy_record() == record
                assert [p["currentWeek"] for p in tab.published] == [20]

                await tab.coordinator.drain()
                # Retry failed too; the local choice stays
                assert tab.cache.get_pregnancy_record() == record
            finally:
                await tab.close()

        run(scenario())

    def test_offline_update_keeps_record_identity(self):
        async def scenario():
            storage = MemoryStorageArea()
            tab = Tab(storage, SwitchableTransport(online=False))
            try:
                tab.cache.save_pregnancy_record(PregnancyRecord(currentWeek=5, dueDate=TODAY, id=7, userId=1))
                record = await tab.coordinator.update_stage("trimester", "1")
                assert record.id == 7
                assert record.userId == 1
                assert record.currentWeek == 7
                assert record.dueDate == TODAY + timedelta(weeks=33)
                assert record.is_user_specified
            finally:
                await tab.close()

        run(scenario())

    def test_timeout_falls_back_locally(self):
        async def scenario():
            transport = SwitchableTransport(delay=1.0)
            tab = Tab(MemoryStorageArea(), transport, timeout=0.05)
            try:
                record = await tab.coordinator.update_stage("month", "4")
                assert record.currentWeek == 17
                assert record.is_user_specified
            finally:
                await tab.close()

        run(scenario())

    def test_background_retry_replaces_local_record(self):
        async def scenario():
            transport = SwitchableTransport(online=False)
            tab = Tab(MemoryStorageArea(), transport)
            try:
                local = await tab.coordinator.update_stage("week", "22")
                assert local.is_user_specified
                assert tab.coordinator.pending_retries == 1

                transport.online = True
                await tab.coordinator.drain()

                cached = tab.cache.get_pregnancy_record()
                assert cached.currentWeek == 22
                assert cached.provenance.source == SERVER
                assert cached.updatedAt is not None
                assert pregnancy_records[1].currentWeek == 22
                assert [p["currentWeek"] for p in tab.published] == [22, 22]
            finally:
                await tab.close()

        run(scenario())


class TestPrecedence:
    def test_newer_user_choice_survives_older_server_answer(self):
        async def scenario():
            future = datetime.now(timezone.utc) + timedelta(days=1)
            tab = Tab(MemoryStorageArea(), SwitchableTransport(), clock=lambda: future)
            try:
                chosen = tab.cache.save_user_specified_record(PregnancyRecord(currentWeek=25, dueDate=TODAY))
                record = await tab.coordinator.update_stage("week", "10")
                assert record == chosen
                assert tab.cache.get_pregnancy_record() == chosen
                assert [p["currentWeek"] for p in tab.published] == [25]
            finally:
                await tab.close()

        run(scenario())

    def test_superseded_server_result_dropped(self):
        async def scenario():
            transport = SlowStageTransport(slow_value="10", delay=0.2)
            tab = Tab(MemoryStorageArea(), transport)
            try:
                first = asyncio.ensure_future(tab.coordinator.update_stage("week", "10"))
                await asyncio.sleep(0.05)
                second = await tab.coordinator.update_stage("week", "30")
                first_result = await first

                assert second.currentWeek == 30
                # The older request answered last but must not overwrite the newer one
                assert first_result.currentWeek == 30
                assert tab.cache.get_pregnancy_record().currentWeek == 30
                assert [p["currentWeek"] for p in tab.published] == [30]
            finally:
                await tab.close()

        run(scenario())

    def test_superseded_update_that_fails_keeps_newer_result(self):
        async def scenario():
            transport = SlowStageTransport(slow_value="10", delay=0.5)
            tab = Tab(MemoryStorageArea(), transport, timeout=0.2)
            try:
                first = asyncio.ensure_future(tab.coordinator.update_stage("week", "10"))
                await asyncio.sleep(0.05)
                second = await tab.coordinator.update_stage("week", "30")
                first_result = await first
                await tab.coordinator.drain()

                assert second.currentWeek == 30
                assert first_result.currentWeek == 30
                cached = tab.cache.get_pregnancy_record()
                assert cached.currentWeek == 30
                assert cached.provenance.source == SERVER
                assert [p["currentWeek"] for p in tab.published] == [30]
                assert tab.coordinator.pending_retries == 0
            finally:
                await tab.close()

        run(scenario())
