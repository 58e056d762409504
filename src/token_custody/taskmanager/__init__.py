"""Background work: the batch dispatch pool and the batch status monitor.

Provides ``DispatchPool``, which runs batch dispatches as detached asyncio
tasks bounded by a semaphore, and ``BatchStatusMonitor``, which keeps the
batch status gauges current.
"""

from __future__ import annotations

from token_custody.taskmanager.pool import DispatchPool
from token_custody.taskmanager.tasks import BatchStatusMonitor

__all__ = ["BatchStatusMonitor", "DispatchPool"]
