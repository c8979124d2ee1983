"""Background schedulers for sync cycles and integration polling."""

import asyncio
import logging
import time
from typing import Dict, Optional, Tuple

from ..models import IntegrationConfig, IntegrationStatus
from .integrations.orchestrator import IntegrationOrchestrator
from .sync.engine import SyncCycleEngine, SyncResult
from .sync.remote import RemoteReplica

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Drive the sync engine from a timer, reconnects and manual requests.

    Triggers:
    - timer: every ``interval`` seconds
    - online: ``notify_online()`` or the connectivity watcher seeing the
      remote come back
    - force: ``force_sync()``, which restarts the timer when no cycle is
      in flight
    """

    def __init__(
        self,
        engine: SyncCycleEngine,
        remote: Optional[RemoteReplica] = None,
        interval: float = 60.0,
        connectivity_interval: Optional[float] = 15.0,
    ) -> None:
        """Initialize sync scheduler.

        Args:
            engine: Engine running the cycles
            remote: Remote replica to ping for connectivity; None disables
                the watcher
            interval: Seconds between timer-triggered cycles
            connectivity_interval: Seconds between pings; None or 0 disables
                the watcher
        """
        self.engine = engine
        self.remote = remote
        self.interval = interval
        self.connectivity_interval = connectivity_interval
        self.last_result: Optional[SyncResult] = None
        self.online: Optional[bool] = None

        self._running = False
        self._wake = asyncio.Event()
        self._pending_trigger: Optional[str] = None
        self._next_run_at = 0.0
        self._timer_task: Optional[asyncio.Task] = None
        self._watch_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        """Whether the scheduler loops are active."""
        return self._running

    async def start(self) -> None:
        """Start the timer loop and, if configured, the connectivity watcher."""
        if self._running:
            logger.warning("Sync scheduler already running")
            return

        self._running = True
        self._next_run_at = time.monotonic()
        self._timer_task = asyncio.create_task(self._timer_loop())
        if self.remote is not None and self.connectivity_interval:
            self._watch_task = asyncio.create_task(
                self._watch_connectivity(self.remote)
            )
        logger.info("Sync scheduler started (every %.0fs)", self.interval)

    async def stop(self) -> None:
        """Stop the loops, letting an in-flight cycle finish first."""
        self._running = False
        self._wake.set()

        if self._watch_task is not None:
            self._watch_task.cancel()
            await asyncio.gather(self._watch_task, return_exceptions=True)
            self._watch_task = None

        if self._timer_task is not None:
            await asyncio.gather(self._timer_task, return_exceptions=True)
            self._timer_task = None
        logger.info("Sync scheduler stopped")

    def notify_online(self) -> None:
        """Request a cycle because connectivity came back."""
        logger.info("Connectivity restored, scheduling sync")
        self._request("online")

    async def force_sync(self) -> SyncResult:
        """Run a cycle now.

        When a cycle is already running the request is a no-op and a busy
        result is returned. Otherwise the timer restarts from now.
        """
        if self.engine.is_running:
            logger.info("Force sync requested while a cycle is running, ignoring")
            return SyncResult.busy_result("force")

        self._next_run_at = time.monotonic() + self.interval
        return await self._run("force")

    def _request(self, trigger: str) -> None:
        self._pending_trigger = trigger
        self._wake.set()

    async def _run(self, trigger: str) -> SyncResult:
        result = await self.engine.run_sync_cycle(trigger=trigger)
        if not result.busy:
            self.last_result = result
        return result

    async def _timer_loop(self) -> None:
        """Run cycles when the timer expires or a trigger arrives."""
        while self._running:
            timeout = max(0.0, self._next_run_at - time.monotonic())
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()

            if not self._running:
                break

            trigger = self._pending_trigger
            self._pending_trigger = None
            if trigger is None:
                if time.monotonic() < self._next_run_at:
                    continue
                trigger = "timer"

            self._next_run_at = time.monotonic() + self.interval
            try:
                await self._run(trigger)
            except Exception:
                logger.exception("Scheduled sync (%s) failed", trigger)

    async def _watch_connectivity(self, remote: RemoteReplica) -> None:
        """Ping the remote and request a cycle on an offline to online edge."""
        while self._running:
            try:
                reachable = await asyncio.wait_for(
                    remote.ping(), timeout=self.connectivity_interval
                )
            except asyncio.TimeoutError:
                reachable = False

            if reachable and self.online is False:
                self.notify_online()
            elif not reachable and self.online is not False:
                logger.info("Remote replica unreachable, working offline")
            self.online = reachable

            await asyncio.sleep(self.connectivity_interval or 0)


class IntegrationScheduler:
    """Poll each enabled integration on its own interval.

    The interval comes from ``settings.syncIntervalSeconds`` and falls back
    to ``default_interval``. ``refresh()`` reconciles the running loops with
    the stored configs; it also runs every ``refresh_interval`` seconds.
    """

    def __init__(
        self,
        orchestrator: IntegrationOrchestrator,
        default_interval: float = 300.0,
        refresh_interval: float = 60.0,
    ) -> None:
        """Initialize integration scheduler.

        Args:
            orchestrator: Orchestrator that runs the syncs
            default_interval: Seconds between syncs without a per-integration
                setting
            refresh_interval: Seconds between config reconciliations
        """
        self.orchestrator = orchestrator
        self.default_interval = default_interval
        self.refresh_interval = refresh_interval
        self._loops: Dict[str, Tuple[float, asyncio.Task]] = {}
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def scheduled_ids(self) -> list[str]:
        """Ids of integrations with a running loop."""
        return sorted(self._loops)

    def interval_for(self, config: IntegrationConfig) -> float:
        """Polling interval of one integration in seconds."""
        value = config.settings.get("syncIntervalSeconds")
        try:
            interval = float(value) if value is not None else self.default_interval
        except (TypeError, ValueError):
            logger.warning(
                "Invalid syncIntervalSeconds %r on %s, using default",
                value,
                config.name,
            )
            return self.default_interval
        return interval if interval > 0 else self.default_interval

    async def start(self) -> None:
        """Start loops for current configs and the refresh loop."""
        await self.refresh()
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())
        logger.info("Integration scheduler started")

    async def stop(self) -> None:
        """Cancel every loop."""
        tasks = [task for _, task in self._loops.values()]
        if self._refresh_task is not None:
            tasks.append(self._refresh_task)
            self._refresh_task = None
        self._loops.clear()

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Integration scheduler stopped")

    async def refresh(self) -> None:
        """Start, restart or cancel loops to match the stored configs."""
        wanted = {
            config.id: self.interval_for(config)
            for config in self.orchestrator.list_configs()
            if config.status != IntegrationStatus.INACTIVE
        }

        stale = []
        for config_id, (interval, task) in list(self._loops.items()):
            if wanted.get(config_id) != interval or task.done():
                stale.append(task)
                del self._loops[config_id]
        for task in stale:
            task.cancel()
        if stale:
            await asyncio.gather(*stale, return_exceptions=True)

        for config_id, interval in wanted.items():
            if config_id not in self._loops:
                task = asyncio.create_task(self._run_loop(config_id, interval))
                self._loops[config_id] = (interval, task)
                logger.debug("Polling integration %s every %.0fs", config_id, interval)

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh()
            except Exception:
                logger.exception("Failed to refresh integration schedule")

    async def _run_loop(self, config_id: str, interval: float) -> None:
        while True:
            try:
                await self.orchestrator.sync_integration(config_id)
            except Exception:
                logger.exception("Integration %s sync crashed", config_id)
            await asyncio.sleep(interval)
