"""Tests for the sync and integration schedulers."""

import asyncio

from homestead_sync.core.integrations import (
    AdapterRegistry,
    FetchResult,
    IntegrationAdapter,
    IntegrationOrchestrator,
)
from homestead_sync.core.scheduler import IntegrationScheduler, SyncScheduler
from homestead_sync.core.sync import InMemoryRemoteReplica
from homestead_sync.database import InMemoryRecordStore
from homestead_sync.models import IntegrationConfig, IntegrationStatus, IntegrationType


class SlowPullRemote(InMemoryRemoteReplica):
    """Remote whose pull takes a moment."""

    async def pull(self, since):
        await asyncio.sleep(0.05)
        return await super().pull(since)


class CountingAdapter(IntegrationAdapter):
    """Adapter that counts fetches."""

    id = "counter"
    name = "Counter"
    type = IntegrationType.WEATHER

    def __init__(self):
        self.calls = 0

    async def fetch(self, config):
        self.calls += 1
        return FetchResult.ok({"temp": 1})


class TestSyncScheduler:
    """Test cycle triggers."""

    def test_force_sync_runs_cycle(self, device):
        """A forced sync runs immediately and is remembered."""
        scheduler = SyncScheduler(device.engine, interval=3600)

        result = asyncio.run(scheduler.force_sync())

        assert result.trigger == "force"
        assert not result.busy
        assert scheduler.last_result is result

    def test_force_sync_while_running_is_busy(self, device):
        """Forcing during a cycle does not start another."""
        device.engine.remote = SlowPullRemote()
        scheduler = SyncScheduler(device.engine, interval=3600)

        async def scenario():
            running = asyncio.create_task(device.engine.run_sync_cycle("timer"))
            await asyncio.sleep(0.01)
            forced = await scheduler.force_sync()
            await running
            return forced

        forced = asyncio.run(scenario())

        assert forced.busy
        assert scheduler.last_result is None

    def test_timer_and_online_triggers(self, device):
        """The first cycle runs at start and reconnects trigger another."""
        scheduler = SyncScheduler(device.engine, interval=3600)

        async def scenario():
            await scheduler.start()
            await asyncio.sleep(0.02)
            first = scheduler.last_result
            scheduler.notify_online()
            await asyncio.sleep(0.02)
            second = scheduler.last_result
            await scheduler.stop()
            return first, second

        first, second = asyncio.run(scenario())

        assert first.trigger == "timer"
        assert second.trigger == "online"
        assert not scheduler.running
        assert scheduler.online is None

    def test_connectivity_watcher_detects_reconnect(self, device, remote):
        """Coming back online triggers a cycle that pushes queued changes."""
        remote.online = False
        scheduler = SyncScheduler(
            device.engine, remote=remote, interval=3600, connectivity_interval=0.01
        )

        async def scenario():
            await scheduler.start()
            await asyncio.sleep(0.03)
            await device.interceptor.put_record("tasks", {"id": "t1"})
            offline = scheduler.online
            remote.online = True
            await asyncio.sleep(0.05)
            await scheduler.stop()
            return offline

        offline = asyncio.run(scenario())

        assert offline is False
        assert scheduler.online is True
        assert scheduler.last_result.trigger == "online"
        assert remote.get_row("tasks", "t1") is not None

    def test_stop_waits_for_running_cycle(self, device):
        """Stopping lets the in-flight cycle finish."""
        device.engine.remote = SlowPullRemote()
        scheduler = SyncScheduler(device.engine, interval=3600)

        async def scenario():
            await scheduler.start()
            await asyncio.sleep(0.02)
            await scheduler.stop()

        asyncio.run(scenario())

        assert scheduler.last_result is not None
        assert scheduler.last_result.success
        assert not device.engine.is_running


class TestIntegrationScheduler:
    """Test per-integration polling."""

    def _orchestrator(self, clock):
        adapter = CountingAdapter()
        orchestrator = IntegrationOrchestrator(
            InMemoryRecordStore(), AdapterRegistry([adapter]), clock=clock
        )
        return orchestrator, adapter

    def test_interval_for(self, clock):
        """Per-integration intervals fall back to the default."""
        orchestrator, _ = self._orchestrator(clock)
        scheduler = IntegrationScheduler(orchestrator, default_interval=300)

        def config(settings):
            return IntegrationConfig(
                name="x", provider="counter", type=IntegrationType.WEATHER, settings=settings
            )

        assert scheduler.interval_for(config({})) == 300
        assert scheduler.interval_for(config({"syncIntervalSeconds": 60})) == 60
        assert scheduler.interval_for(config({"syncIntervalSeconds": "120"})) == 120
        assert scheduler.interval_for(config({"syncIntervalSeconds": 0})) == 300
        assert scheduler.interval_for(config({"syncIntervalSeconds": "soon"})) == 300

    def test_polls_enabled_integrations(self, clock):
        """Only enabled integrations get a loop, and refresh follows changes."""
        orchestrator, adapter = self._orchestrator(clock)
        active = orchestrator.create_config("On", "counter")
        orchestrator.create_config("Off", "counter", status=IntegrationStatus.INACTIVE)
        scheduler = IntegrationScheduler(orchestrator, default_interval=3600)

        async def scenario():
            await scheduler.start()
            await asyncio.sleep(0.02)
            scheduled = scheduler.scheduled_ids
            orchestrator.set_status(active.id, IntegrationStatus.INACTIVE)
            await scheduler.refresh()
            after_disable = scheduler.scheduled_ids
            await scheduler.stop()
            return scheduled, after_disable

        scheduled, after_disable = asyncio.run(scenario())

        assert scheduled == [active.id]
        assert adapter.calls == 1
        assert after_disable == []
