"""CustodyEngine: central engine client owning all services."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from token_custody.config.settings import AppConfig
    from token_custody.datastore.client import Datastore
    from token_custody.engine.services.audit_log import AuditLogService
    from token_custody.engine.services.batch_service import BatchService
    from token_custody.engine.services.custody_flow import CustodyTransactionFlow
    from token_custody.engine.services.detail_store import DetailStore
    from token_custody.engine.services.dispatcher import RetryableDispatcher
    from token_custody.engine.services.request_store import RequestStore
    from token_custody.engine.services.stats_aggregator import StatsAggregator
    from token_custody.ledger.client import LedgerClient
    from token_custody.metrics.collector import EngineMetrics
    from token_custody.taskmanager.pool import DispatchPool
    from token_custody.taskmanager.tasks import BatchStatusMonitor
    from token_custody.utils.crypto import EnvelopeCipher

# Error messages
_ERR_NOT_INITIALIZED = "Engine not initialized. Call initialize() first."


class CustodyEngine:
    """Central engine that owns all services and infrastructure.

    Usage::

        engine = CustodyEngine(config)
        await engine.initialize()
        batch_id = await engine.batch_service.submit_batch(recipients)
        ...
        await engine.close()
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        ledger: LedgerClient | None = None,
        metrics: EngineMetrics | None = None,
    ) -> None:
        """Initialize engine with configuration.

        Args:
            config: Application configuration.
            ledger: Ledger client to use instead of the one selected by
                ``config.ledger.backend``.
            metrics: Metrics to record into; created on initialize when
                omitted and metrics are enabled.
        """
        self._config = config
        self._initialized = False
        self._ledger = ledger
        self._metrics = metrics

        # Infrastructure components
        self._datastore: Datastore | None = None
        self._cipher: EnvelopeCipher | None = None

        # Services
        self._request_store: RequestStore | None = None
        self._detail_store: DetailStore | None = None
        self._stats_aggregator: StatsAggregator | None = None
        self._audit_log: AuditLogService | None = None
        self._dispatcher: RetryableDispatcher | None = None
        self._custody_flow: CustodyTransactionFlow | None = None
        self._batch_service: BatchService | None = None

        self._dispatch_pool: DispatchPool | None = None
        self._batch_monitor: BatchStatusMonitor | None = None

    async def initialize(self) -> None:
        """Open the datastore, create tables, connect the ledger and start workers.

        Raises:
            RuntimeError: If already initialized.
            ValueError: If the encryption key or custodian key is missing.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        # Import here to avoid circular deps
        from token_custody.datastore.client import Datastore
        from token_custody.datastore.migrations import run_auto_migrate
        from token_custody.ledger.client import create_ledger_client
        from token_custody.utils.crypto import EnvelopeCipher

        self._cipher = EnvelopeCipher(self._config.encryption_key)

        if self._ledger is None:
            self._ledger = create_ledger_client(self._config.ledger)
        await self._ledger.connect()

        self._datastore = Datastore(self._config.db)
        await self._datastore.open()
        await run_auto_migrate(self._datastore.engine)

        from token_custody.engine.services.audit_log import AuditLogService
        from token_custody.engine.services.batch_service import BatchService
        from token_custody.engine.services.custody_flow import CustodyTransactionFlow
        from token_custody.engine.services.detail_store import DetailStore
        from token_custody.engine.services.dispatcher import RetryableDispatcher
        from token_custody.engine.services.request_store import RequestStore
        from token_custody.engine.services.stats_aggregator import StatsAggregator

        self._request_store = RequestStore(self)
        self._detail_store = DetailStore(self)
        self._stats_aggregator = StatsAggregator(self)
        self._audit_log = AuditLogService(self)
        self._dispatcher = RetryableDispatcher(self)
        self._custody_flow = CustodyTransactionFlow(self)
        self._batch_service = BatchService(self)

        if self._metrics is None and self._config.metrics.enabled:
            from token_custody.metrics.collector import EngineMetrics

            self._metrics = EngineMetrics()

        from token_custody.taskmanager.pool import DispatchPool

        self._dispatch_pool = DispatchPool(
            self._dispatcher.run,
            max_concurrent=self._config.dispatch.max_concurrent_batches,
        )

        if self._metrics is not None:
            from token_custody.taskmanager.tasks import BatchStatusMonitor

            self._batch_monitor = BatchStatusMonitor(self, self._metrics)
            self._batch_monitor.start()

        self._initialized = True

        if self._config.dispatch.resume_on_start:
            await self._batch_service.resume_unfinished()

    async def close(self) -> None:
        """Gracefully shut down workers and connections.

        Dispatches still running are cancelled; their batches stay
        PROCESSING and can be resumed later. Can be called multiple times.
        """
        if not self._initialized:
            return

        # Stop workers first (they depend on the services)
        if self._dispatch_pool is not None:
            await self._dispatch_pool.stop()
            self._dispatch_pool = None
        if self._batch_monitor is not None:
            await self._batch_monitor.stop()
            self._batch_monitor = None

        # Tear down services
        self._batch_service = None
        self._custody_flow = None
        self._dispatcher = None
        self._audit_log = None
        self._stats_aggregator = None
        self._detail_store = None
        self._request_store = None

        if self._ledger is not None:
            await self._ledger.close()

        if self._datastore is not None:
            await self._datastore.close()
            self._datastore = None

        self._initialized = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        """Check if the engine is initialized."""
        return self._initialized

    @property
    def config(self) -> AppConfig:
        """Get the application configuration."""
        return self._config

    @property
    def datastore(self) -> Datastore:
        """Get the datastore instance.

        Raises:
            RuntimeError: If engine not initialized.
        """
        if self._datastore is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._datastore

    @property
    def cipher(self) -> EnvelopeCipher:
        """Get the address envelope cipher."""
        if self._cipher is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._cipher

    @property
    def ledger(self) -> LedgerClient:
        """Get the ledger client."""
        if self._ledger is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._ledger

    @property
    def metrics(self) -> EngineMetrics | None:
        """Get the metrics collector (None when metrics are disabled)."""
        return self._metrics

    @property
    def request_store(self) -> RequestStore:
        """Get the batch header store."""
        if self._request_store is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._request_store

    @property
    def detail_store(self) -> DetailStore:
        """Get the batch line item store."""
        if self._detail_store is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._detail_store

    @property
    def stats_aggregator(self) -> StatsAggregator:
        """Get the batch counter aggregator."""
        if self._stats_aggregator is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._stats_aggregator

    @property
    def audit_log(self) -> AuditLogService:
        """Get the audit log service."""
        if self._audit_log is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._audit_log

    @property
    def dispatcher(self) -> RetryableDispatcher:
        """Get the batch dispatcher."""
        if self._dispatcher is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._dispatcher

    @property
    def custody_flow(self) -> CustodyTransactionFlow:
        """Get the dual-custody transfer flow."""
        if self._custody_flow is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._custody_flow

    @property
    def batch_service(self) -> BatchService:
        """Get the batch service."""
        if self._batch_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._batch_service

    @property
    def dispatch_pool(self) -> DispatchPool:
        """Get the background dispatch pool."""
        if self._dispatch_pool is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._dispatch_pool

    @property
    def batch_monitor(self) -> BatchStatusMonitor | None:
        """Get the batch status gauge monitor (None when metrics are disabled)."""
        return self._batch_monitor
