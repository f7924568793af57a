"""multifetch: concurrent HTTP batches over one multiplexed loop.

Public API:
    Dispatcher - Runs a batch and routes each result to its callback
    run_batch - Runs a batch with a dispatcher configured from the environment
    RequestDescriptor - Immutable request configuration
    PendingEntry - A request plus its completion callback
    TransferResult - What a callback receives
    BatchOutcome - Delivered/undelivered diagnostics for one batch

Example:
    from multifetch import PendingEntry, RequestDescriptor, run_batch

    run_batch([
        PendingEntry(
            descriptor=RequestDescriptor(url="http://127.0.0.1:9011/echo", method="POST"),
            callback=lambda result: print(result.status_code, result.text),
        ),
    ])
"""

from multifetch._internal.dispatch import (
    BatchOutcome,
    Dispatcher,
    PendingEntry,
    RequestDescriptor,
    TransferResult,
    get_dispatcher,
    run_batch,
)
from multifetch._version import __version__
from multifetch.exceptions import MultifetchConfigError, MultifetchError, MultiplexerError

__all__ = [
    "__version__",
    "Dispatcher",
    "get_dispatcher",
    "run_batch",
    "RequestDescriptor",
    "PendingEntry",
    "TransferResult",
    "BatchOutcome",
    "MultifetchError",
    "MultiplexerError",
    "MultifetchConfigError",
]
