"""Concurrent batch dispatcher."""

import os
import sys
from collections.abc import Callable, Mapping, Sequence
from functools import partial

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
from multifetch._internal.dispatch.redaction import format_headers
from multifetch.exceptions import MultifetchConfigError, MultiplexerError

DEFAULT_SELECT_TIMEOUT_MS = 1000
UNDELIVERED_ERROR = "undelivered"

MultiplexerFactory = Callable[[], Multiplexer]


class Dispatcher:
    """Runs batches of HTTP requests concurrently and routes each result to its callback.

    Each run_batch call creates its own multiplexer, drives it until every
    transfer is terminal, invokes callbacks in completion order and releases
    everything before returning. Individual request failures are delivered as
    TransferResult values; they never abort the batch.

    Use `Dispatcher.from_env()` to create a dispatcher from environment variables.
    """

    def __init__(
        self,
        *,
        default_headers: Mapping[str, str] | None = None,
        user_agent: str | None = None,
        select_timeout_ms: int = DEFAULT_SELECT_TIMEOUT_MS,
        multiplexer_factory: MultiplexerFactory | None = None,
        debug: bool = False,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            default_headers: Headers added to every request; descriptor headers win.
            user_agent: User-Agent override.
            select_timeout_ms: Upper bound of one readiness wait in milliseconds.
                The loop waits again after it elapses; it does not limit the batch.
            multiplexer_factory: Builds a fresh multiplexer per batch. Defaults
                to AsyncioMultiplexer.
            debug: Enable debug logging to stderr.

        Raises:
            MultifetchConfigError: select_timeout_ms is not positive.
        """
        if select_timeout_ms <= 0:
            raise MultifetchConfigError(
                f"select_timeout_ms must be positive, got {select_timeout_ms}"
            )
        self._default_headers = dict(default_headers or {})
        self._select_timeout_ms = select_timeout_ms
        self._debug = debug
        self._multiplexer_factory = multiplexer_factory or partial(
            AsyncioMultiplexer,
            headers=self._default_headers,
            user_agent=user_agent,
            debug=debug,
        )

    @classmethod
    def from_env(cls) -> "Dispatcher":
        """Create a dispatcher from environment variables.

        Optional environment variables:
            MULTIFETCH_DEBUG: Set to "1" to enable debug logging.
            MULTIFETCH_SELECT_TIMEOUT_MS: Upper bound of one readiness wait.
            MULTIFETCH_USER_AGENT: User-Agent override.

        Returns:
            A configured Dispatcher.

        Raises:
            ValueError: MULTIFETCH_SELECT_TIMEOUT_MS is not an integer.
            MultifetchConfigError: MULTIFETCH_SELECT_TIMEOUT_MS is not positive.
        """
        debug = os.environ.get("MULTIFETCH_DEBUG", "") == "1"
        select_timeout_ms = int(
            os.environ.get("MULTIFETCH_SELECT_TIMEOUT_MS", str(DEFAULT_SELECT_TIMEOUT_MS))
        )
        user_agent = os.environ.get("MULTIFETCH_USER_AGENT") or None

        return cls(
            user_agent=user_agent,
            select_timeout_ms=select_timeout_ms,
            debug=debug,
        )

    def _log_debug(self, message: str) -> None:
        """Log a debug message to stderr if debug mode is enabled."""
        if self._debug:
            print(f"[multifetch] {message}", file=sys.stderr)

    def run_batch(self, entries: Sequence[PendingEntry]) -> BatchOutcome:
        """Execute every entry concurrently and invoke each callback once.

        Callbacks run on the caller's thread in the order transfers complete,
        which need not match the order of ``entries``. If the multiplexer
        fails fatally, the loop stops and no further callback fires, not even
        for transfers that had already completed; every entry left without a
        callback is listed in the returned outcome. A callback that raises
        propagates after every handle and the multiplexer have been released.

        Args:
            entries: The batch. An empty batch returns immediately.

        Returns:
            BatchOutcome with the number of delivered results and any
            undelivered entries.
        """
        if not entries:
            return BatchOutcome()

        pending: dict[TransferHandle, PendingEntry] = {}
        notified: set[TransferHandle] = set()
        multiplexer = self._multiplexer_factory()
        try:
            for entry in entries:
                handle = TransferHandle(entry.descriptor)
                multiplexer.add_handle(handle)
                pending[handle] = entry
                if self._debug and entry.descriptor.headers:
                    self._log_debug(
                        f"Registered {handle!r} [{format_headers(entry.descriptor.headers)}]"
                    )
            self._log_debug(f"Registered {len(pending)} transfers")

            if self._drive(multiplexer):
                self._drain(multiplexer, pending, notified)
        finally:
            try:
                for handle in pending:
                    multiplexer.remove_handle(handle)
            finally:
                multiplexer.close()

        undelivered = tuple(entry for handle, entry in pending.items() if handle not in notified)
        if undelivered:
            self._log_debug(f"{len(undelivered)} of {len(pending)} transfers undelivered")
        return BatchOutcome(delivered=len(notified), undelivered=undelivered)

    def _drive(self, multiplexer: Multiplexer) -> bool:
        """Run the multiplexer until nothing is in flight.

        Returns:
            False if the multiplexer failed and the loop stopped early.
        """
        try:
            status = self._perform(multiplexer)
            while status.running:
                multiplexer.select(self._select_timeout_ms / 1000)
                status = self._perform(multiplexer)
        except MultiplexerError as e:
            self._log_debug(f"Multiplexer failed, stopping early: {e}")
            return False
        return True

    @staticmethod
    def _perform(multiplexer: Multiplexer) -> PerformStatus:
        status = multiplexer.perform()
        while status.call_again:
            status = multiplexer.perform()
        return status

    def _drain(
        self,
        multiplexer: Multiplexer,
        pending: Mapping[TransferHandle, PendingEntry],
        notified: set[TransferHandle],
    ) -> None:
        """Deliver every queued completion to its entry's callback."""
        while (handle := multiplexer.info_read()) is not None:
            entry = pending.get(handle)
            if entry is None or handle in notified:
                self._log_debug(f"Ignoring notification for {handle!r}")
                continue
            result = handle.result if handle.result is not None else TransferResult()
            notified.add(handle)
            if result.error is not None:
                self._log_debug(f"{handle!r} failed: {result.error}")
            else:
                self._log_debug(f"{handle!r} finished with status {result.status_code}")
            entry.callback(result)

    # =========================================================================
    # Convenience Methods
    # =========================================================================

    def fetch(self, descriptor: RequestDescriptor) -> TransferResult:
        """Execute a single request.

        Args:
            descriptor: The request to send.

        Returns:
            The transfer result; error is "undelivered" if the multiplexer failed.
        """
        return self.fetch_all([descriptor])[0]

    def fetch_all(self, descriptors: Sequence[RequestDescriptor]) -> list[TransferResult]:
        """Execute requests concurrently and return results in submission order.

        Args:
            descriptors: Requests to send.

        Returns:
            One TransferResult per descriptor, at the same index.
        """
        results: list[TransferResult] = [
            TransferResult(error=UNDELIVERED_ERROR) for _ in descriptors
        ]

        def store(index: int, result: TransferResult) -> None:
            results[index] = result

        self.run_batch([
            PendingEntry(descriptor=descriptor, callback=partial(store, index))
            for index, descriptor in enumerate(descriptors)
        ])
        return results


def get_dispatcher() -> Dispatcher:
    """Get a dispatcher configured from environment variables.

    Returns:
        A configured Dispatcher instance.
    """
    return Dispatcher.from_env()


def run_batch(entries: Sequence[PendingEntry]) -> BatchOutcome:
    """Run one batch with a dispatcher configured from environment variables."""
    return get_dispatcher().run_batch(entries)
