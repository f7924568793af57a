"""Batch dispatch system.

Registers a batch of requests with one multiplexer, drives it until every
transfer ends, and hands each result to its entry's callback.
"""

from multifetch._internal.dispatch.client import Dispatcher, get_dispatcher, run_batch
from multifetch._internal.dispatch.models import (
    BatchOutcome,
    PendingEntry,
    RequestDescriptor,
    TransferResult,
)
from multifetch._internal.dispatch.multiplexer import (
    AsyncioMultiplexer,
    Multiplexer,
    PerformStatus,
    TransferHandle,
)

__all__ = [
    "Dispatcher",
    "get_dispatcher",
    "run_batch",
    "BatchOutcome",
    "PendingEntry",
    "RequestDescriptor",
    "TransferResult",
    "AsyncioMultiplexer",
    "Multiplexer",
    "PerformStatus",
    "TransferHandle",
]
