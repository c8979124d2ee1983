"""Integration orchestrator.

Runs adapter fetches, keeps each integration's status and error counters
current, logs every step, and routes successful payloads to the
materializer of the integration's type. Integrations are independent: one
failing or hanging never affects another.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from ...database.base import RecordStore
from ...exceptions import AdapterConfigError, AdapterMissingError
from ...models import (
    IntegrationConfig,
    IntegrationStatus,
    IntegrationType,
    LogAction,
    LogStatus,
)
from ...utils.time_utils import now_ms
from ..sync.locks import RecordLocks
from .adapters import AdapterRegistry, FetchResult, IntegrationAdapter
from .log import IntegrationLogService
from .materializers import MaterializeResult, MaterializerRegistry, default_materializers

logger = logging.getLogger(__name__)

INTEGRATIONS = "integrations"


@dataclass
class IntegrationSyncResult:
    """Outcome of one integration sync."""

    integration_id: str
    status: str
    provider: Optional[str] = None
    duration_ms: int = 0
    error: Optional[str] = None
    materialized: Optional[MaterializeResult] = None

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"
    DISCARDED = "discarded"

    @property
    def success(self) -> bool:
        """Whether the fetch succeeded and its results were kept."""
        return self.status == self.SUCCESS

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of the integration sync."""
        summary: Dict[str, Any] = {
            "integration_id": self.integration_id,
            "provider": self.provider,
            "status": self.status,
            "duration_ms": self.duration_ms,
        }
        if self.error:
            summary["error"] = self.error
        if self.materialized:
            summary["materialized"] = self.materialized.get_summary()
        return summary


class IntegrationOrchestrator:
    """Run and administer integrations."""

    def __init__(
        self,
        store: RecordStore,
        registry: AdapterRegistry,
        materializers: Optional[MaterializerRegistry] = None,
        log_service: Optional[IntegrationLogService] = None,
        locks: Optional[RecordLocks] = None,
        fetch_timeout: float = 30.0,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize integration orchestrator.

        Args:
            store: Record store holding integration configs and results
            registry: Adapters by provider id
            materializers: Materializers by integration type
            log_service: Integration log writer
            locks: Shared per-record locks
            fetch_timeout: Seconds before a fetch is abandoned
            clock: Millisecond clock
        """
        self.store = store
        self.registry = registry
        self.locks = locks or RecordLocks()
        self.log_service = log_service or IntegrationLogService(store, clock)
        self.materializers = materializers or default_materializers(
            store, self.log_service, self.locks, clock
        )
        self.fetch_timeout = fetch_timeout
        self._clock = clock
        self._in_flight: Set[str] = set()

    # =========================================================================
    # Administration
    # =========================================================================

    def available_adapters(self) -> List[IntegrationAdapter]:
        """Adapters that integrations can be created for."""
        return self.registry.available()

    def list_configs(self) -> List[IntegrationConfig]:
        """Every configured integration, by name."""
        configs = [
            IntegrationConfig.from_record(record)
            for record in self.store.get_all(INTEGRATIONS)
        ]
        return sorted(configs, key=lambda c: c.name.lower())

    def get_config(self, config_id: str) -> Optional[IntegrationConfig]:
        """One integration config, or None."""
        record = self.store.get(INTEGRATIONS, config_id)
        return IntegrationConfig.from_record(record) if record else None

    def create_config(
        self,
        name: str,
        provider: str,
        settings: Optional[Dict[str, Any]] = None,
        integration_type: Optional[IntegrationType] = None,
        status: IntegrationStatus = IntegrationStatus.ACTIVE,
    ) -> IntegrationConfig:
        """Create a new integration.

        Args:
            name: Display name
            provider: Adapter id
            settings: Provider settings (API keys, endpoints, intervals)
            integration_type: Type; defaults to the adapter's type
            status: Initial status

        Returns:
            The stored config

        Raises:
            AdapterMissingError: If no type is given and the provider is unknown
        """
        if integration_type is None:
            integration_type = self.registry.require(provider).type
        now = self._clock()
        config = IntegrationConfig(
            name=name,
            provider=provider,
            type=integration_type,
            status=status,
            settings=dict(settings or {}),
            created_at=now,
            updated_at=now,
        )
        return self.save_config(config, details=f"Created {provider} integration")

    def save_config(
        self, config: IntegrationConfig, details: Optional[str] = None
    ) -> IntegrationConfig:
        """Store a config and log the change."""
        config.updated_at = max(self._clock(), config.updated_at)
        self.store.put(INTEGRATIONS, config.to_record())
        self.log_service.log(
            config.id,
            LogAction.CONFIG_CHANGE,
            LogStatus.SUCCESS,
            details or "Configuration updated",
        )
        return config

    def set_status(
        self, config_id: str, status: IntegrationStatus
    ) -> Optional[IntegrationConfig]:
        """Enable or disable an integration.

        Returns:
            The updated config, or None if it does not exist
        """
        status = IntegrationStatus(status)
        config = self.get_config(config_id)
        if config is None:
            return None
        config.status = status
        if status == IntegrationStatus.ACTIVE:
            config.error_count = 0
            config.last_error_message = None
        return self.save_config(config, details=f"Status set to {status.value}")

    def delete_config(self, config_id: str) -> bool:
        """Remove an integration; its log entries are kept.

        Returns:
            True if a config was removed
        """
        if self.get_config(config_id) is None:
            return False
        self.store.delete(INTEGRATIONS, config_id)
        self.log_service.log(
            config_id, LogAction.CONFIG_CHANGE, LogStatus.SUCCESS, "Integration removed"
        )
        return True

    def get_api_key(self, provider: str) -> Optional[str]:
        """API key of the first active integration for a provider."""
        for config in self.list_configs():
            if config.provider == provider and config.status == IntegrationStatus.ACTIVE:
                api_key = config.settings.get("apiKey")
                if api_key:
                    return str(api_key)
        return None

    def get_logs(self, config_id: str, limit: Optional[int] = None) -> List[Any]:
        """Log entries of one integration, newest first."""
        return self.log_service.get_logs(config_id, limit)

    # =========================================================================
    # Sync
    # =========================================================================

    async def sync_all(self) -> List[IntegrationSyncResult]:
        """Sync every integration that is not disabled, concurrently."""
        configs = [
            c for c in self.list_configs() if c.status != IntegrationStatus.INACTIVE
        ]
        if not configs:
            return []

        logger.info("Syncing %d integration(s)", len(configs))
        outcomes = await asyncio.gather(
            *(self.sync_integration(c.id) for c in configs), return_exceptions=True
        )

        results: List[IntegrationSyncResult] = []
        for config, outcome in zip(configs, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Integration %s crashed: %s", config.name, outcome, exc_info=outcome
                )
                results.append(
                    IntegrationSyncResult(
                        integration_id=config.id,
                        provider=config.provider,
                        status=IntegrationSyncResult.FAILURE,
                        error=str(outcome),
                    )
                )
            else:
                results.append(outcome)
        return results

    async def sync_integration(self, config_id: str) -> IntegrationSyncResult:
        """Fetch one integration and apply its results.

        Args:
            config_id: Integration to sync

        Returns:
            IntegrationSyncResult; failures are recorded, never raised
        """
        config = self.get_config(config_id)
        if config is None:
            logger.warning("Integration %s not found", config_id)
            return self._skipped(config_id, None, "not found")
        if config.status == IntegrationStatus.INACTIVE:
            logger.debug("Integration %s is inactive, skipping", config.name)
            return self._skipped(config_id, config.provider, "inactive")
        if config_id in self._in_flight:
            logger.info("Integration %s already syncing, skipping", config.name)
            return self._skipped(config_id, config.provider, "already running")

        self._in_flight.add(config_id)
        try:
            return await self._run_sync(config)
        finally:
            self._in_flight.discard(config_id)

    def _skipped(
        self, config_id: str, provider: Optional[str], reason: str
    ) -> IntegrationSyncResult:
        return IntegrationSyncResult(
            integration_id=config_id,
            provider=provider,
            status=IntegrationSyncResult.SKIPPED,
            error=reason,
        )

    async def _run_sync(self, config: IntegrationConfig) -> IntegrationSyncResult:
        try:
            adapter = self.registry.require(config.provider)
        except AdapterMissingError as e:
            return await self._handle_failure(config, str(e), 0, LogAction.ERROR)

        self.log_service.log(config.id, LogAction.SYNC, LogStatus.SUCCESS, "Starting sync...")
        started = time.monotonic()

        fetched: Optional[FetchResult] = None
        error: Optional[str] = None
        action = LogAction.SYNC
        try:
            fetched = await asyncio.wait_for(
                adapter.fetch(config), timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError:
            error = f"Timed out after {self.fetch_timeout:g}s"
            action = LogAction.ERROR
        except AdapterConfigError as e:
            error = str(e)
            action = LogAction.ERROR
        except Exception as e:
            logger.exception("Adapter %s raised during fetch", adapter.id)
            error = str(e) or e.__class__.__name__
            action = LogAction.ERROR

        duration_ms = int((time.monotonic() - started) * 1000)
        if fetched is not None and not fetched.success:
            error = fetched.error or "Unknown error"
        if error is not None or fetched is None:
            return await self._handle_failure(
                config, error or "Unknown error", duration_ms, action
            )

        return await self._handle_success(config, adapter, fetched, duration_ms)

    async def _handle_success(
        self,
        config: IntegrationConfig,
        adapter: IntegrationAdapter,
        fetched: FetchResult,
        duration_ms: int,
    ) -> IntegrationSyncResult:
        try:
            payload = adapter.transform(fetched.data)
        except Exception as e:
            logger.exception("Adapter %s failed to transform payload", adapter.id)
            return await self._handle_failure(
                config, f"Invalid payload: {e}", duration_ms, LogAction.ERROR
            )

        async with self.locks.hold(INTEGRATIONS, config.id):
            current = self.get_config(config.id)
            if current is None or current.status == IntegrationStatus.INACTIVE:
                return self._discarded(config, duration_ms)

            current.status = IntegrationStatus.ACTIVE
            current.last_sync_at = self._clock()
            current.error_count = 0
            current.last_error_message = None
            current.updated_at = max(self._clock(), current.updated_at)
            self.store.put(INTEGRATIONS, current.to_record())

        self.log_service.log(
            config.id,
            LogAction.SYNC,
            LogStatus.SUCCESS,
            f"Synced successfully in {duration_ms}ms",
            duration_ms,
        )

        materializer = self.materializers.get(current.type)
        materialized = None
        if materializer is not None:
            try:
                materialized = await materializer.materialize(current, payload)
            except Exception as e:
                logger.exception("Failed to store results of %s", config.name)
                return await self._handle_failure(
                    config,
                    f"Failed to store results: {e}",
                    duration_ms,
                    LogAction.ERROR,
                )

        return IntegrationSyncResult(
            integration_id=config.id,
            provider=config.provider,
            status=IntegrationSyncResult.SUCCESS,
            duration_ms=duration_ms,
            materialized=materialized,
        )

    async def _handle_failure(
        self,
        config: IntegrationConfig,
        message: str,
        duration_ms: int,
        action: LogAction,
    ) -> IntegrationSyncResult:
        async with self.locks.hold(INTEGRATIONS, config.id):
            current = self.get_config(config.id)
            if current is None or current.status == IntegrationStatus.INACTIVE:
                return self._discarded(config, duration_ms)

            current.status = IntegrationStatus.ERROR
            current.error_count += 1
            current.last_error_message = message
            current.updated_at = max(self._clock(), current.updated_at)
            self.store.put(INTEGRATIONS, current.to_record())

        self.log_service.log(config.id, action, LogStatus.FAILURE, message, duration_ms)
        return IntegrationSyncResult(
            integration_id=config.id,
            provider=config.provider,
            status=IntegrationSyncResult.FAILURE,
            duration_ms=duration_ms,
            error=message,
        )

    def _discarded(
        self, config: IntegrationConfig, duration_ms: int
    ) -> IntegrationSyncResult:
        logger.info(
            "Integration %s was disabled during sync, discarding results", config.name
        )
        return IntegrationSyncResult(
            integration_id=config.id,
            provider=config.provider,
            status=IntegrationSyncResult.DISCARDED,
            duration_ms=duration_ms,
        )
