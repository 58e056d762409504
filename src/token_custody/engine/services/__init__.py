"""Engine services: stores, aggregation, dispatch and the custody flow."""

from token_custody.engine.services.audit_log import AuditLogService
from token_custody.engine.services.batch_service import BatchService, BatchStatusView
from token_custody.engine.services.custody_flow import (
    CounterpartySignature,
    CreatedContract,
    CustodyTransactionFlow,
    FinalizeResult,
)
from token_custody.engine.services.detail_store import (
    BatchStats,
    DetailQuery,
    DetailResult,
    DetailStore,
    DetailView,
    DispatchItem,
    RecipientItem,
    SentFilter,
)
from token_custody.engine.services.dispatcher import RetryableDispatcher
from token_custody.engine.services.request_store import BatchLabels, RequestStore
from token_custody.engine.services.stats_aggregator import StatsAggregator

__all__ = [
    "AuditLogService",
    "BatchLabels",
    "BatchService",
    "BatchStats",
    "BatchStatusView",
    "CounterpartySignature",
    "CreatedContract",
    "CustodyTransactionFlow",
    "DetailQuery",
    "DetailResult",
    "DetailStore",
    "DetailView",
    "DispatchItem",
    "FinalizeResult",
    "RecipientItem",
    "RequestStore",
    "RetryableDispatcher",
    "SentFilter",
    "StatsAggregator",
]
