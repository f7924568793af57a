"""Multiplexing of concurrent HTTP transfers on one event loop."""

import asyncio
import itertools
import sys
from collections import deque
from collections.abc import Mapping
from typing import NamedTuple, Protocol

import httpx

from multifetch._internal.dispatch.models import RequestDescriptor, TransferResult
from multifetch._internal.dispatch.redaction import redact_url
from multifetch._internal.http import create_async_client
from multifetch.exceptions import MultifetchError, MultiplexerError

_handle_ids = itertools.count(1)


class TransferHandle:
    """In-flight form of a RequestDescriptor inside one multiplexer.

    Handles hash and compare by identity, so two handles built from equal
    descriptors stay distinct.
    """

    __slots__ = ("id", "descriptor", "result")

    def __init__(self, descriptor: RequestDescriptor) -> None:
        self.id = next(_handle_ids)
        self.descriptor = descriptor
        self.result: TransferResult | None = None

    def __repr__(self) -> str:
        return (
            f"<TransferHandle #{self.id} {self.descriptor.method} "
            f"{redact_url(self.descriptor.url)}>"
        )


class PerformStatus(NamedTuple):
    call_again: bool
    running: int


class Multiplexer(Protocol):
    """What the Dispatcher needs from a multiplexer."""

    @property
    def registered(self) -> int: ...

    def add_handle(self, handle: TransferHandle) -> None: ...

    def remove_handle(self, handle: TransferHandle) -> None: ...

    def perform(self) -> PerformStatus: ...

    def select(self, timeout: float | None) -> int: ...

    def info_read(self) -> TransferHandle | None: ...

    def close(self) -> None: ...


class AsyncioMultiplexer:
    """Runs transfers as tasks on a private asyncio loop with one httpx.AsyncClient.

    The loop only advances inside perform() and select(), so the caller keeps
    a plain synchronous control flow. A transfer queues its handle for
    info_read() the moment it ends, which makes notification order equal
    completion order.

    Must not be created while another event loop is running in this thread.
    """

    def __init__(
        self,
        *,
        headers: Mapping[str, str] | None = None,
        user_agent: str | None = None,
        debug: bool = False,
    ) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            raise MultifetchError(
                "AsyncioMultiplexer cannot run inside a running event loop; "
                "call run_batch via asyncio.to_thread"
            )

        self._debug = debug
        self._loop = asyncio.new_event_loop()
        self._client = create_async_client(headers=headers, user_agent=user_agent)
        self._tasks: dict[TransferHandle, asyncio.Task[None]] = {}
        self._completed: deque[TransferHandle] = deque()
        self._finished = 0
        self._closed = False

    def __enter__(self) -> "AsyncioMultiplexer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def registered(self) -> int:
        return len(self._tasks)

    def _log_debug(self, message: str) -> None:
        """Log a debug message to stderr if debug mode is enabled."""
        if self._debug:
            print(f"[multifetch:multiplexer] {message}", file=sys.stderr)

    def _ensure_open(self) -> None:
        if self._closed:
            raise MultiplexerError("multiplexer is closed")

    def add_handle(self, handle: TransferHandle) -> None:
        """Register a handle and schedule its transfer."""
        self._ensure_open()
        if handle in self._tasks:
            raise MultiplexerError(f"{handle!r} is already registered")
        self._tasks[handle] = self._loop.create_task(self._run(handle))

    def remove_handle(self, handle: TransferHandle) -> None:
        """Deregister a handle, cancelling its transfer if still running."""
        task = self._tasks.pop(handle, None)
        if task is None or self._closed:
            return
        if not task.done():
            task.cancel()
            self._loop.run_until_complete(asyncio.gather(task, return_exceptions=True))
            self._log_debug(f"Cancelled unfinished transfer {handle!r}")

    def perform(self) -> PerformStatus:
        """Advance every registered transfer by one loop iteration."""
        self._ensure_open()
        before = self._finished
        try:
            self._loop.run_until_complete(asyncio.sleep(0))
        except (OSError, RuntimeError) as e:
            raise MultiplexerError(f"perform failed: {e}") from e
        running = self._running()
        return PerformStatus(call_again=self._finished > before and running > 0, running=running)

    def select(self, timeout: float | None) -> int:
        """Block until at least one transfer ends or ``timeout`` elapses.

        Returns:
            Number of transfers that ended during the wait.

        Raises:
            MultiplexerError: The event loop failed while waiting.
        """
        self._ensure_open()
        pending = [task for task in self._tasks.values() if not task.done()]
        if not pending:
            return 0
        try:
            done, _ = self._loop.run_until_complete(
                asyncio.wait(pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
            )
        except (OSError, RuntimeError) as e:
            raise MultiplexerError(f"select failed: {e}") from e
        return len(done)

    def info_read(self) -> TransferHandle | None:
        """Pop the next completed handle, or None when the queue is empty."""
        if not self._completed:
            return None
        return self._completed.popleft()

    def close(self) -> None:
        """Cancel leftover transfers, close the HTTP client and the loop."""
        if self._closed:
            return
        try:
            for handle in list(self._tasks):
                self.remove_handle(handle)
            self._loop.run_until_complete(self._client.aclose())
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        finally:
            self._closed = True
            self._completed.clear()
            self._loop.close()

    def _running(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def _run(self, handle: TransferHandle) -> None:
        handle.result = await self._transfer(handle.descriptor)
        self._finished += 1
        self._completed.append(handle)

    async def _transfer(self, descriptor: RequestDescriptor) -> TransferResult:
        """Execute one request; every failure becomes a TransferResult."""
        try:
            response = await asyncio.wait_for(
                self._client.request(
                    descriptor.method,
                    descriptor.url,
                    headers=dict(descriptor.headers) or None,
                    content=descriptor.body,
                    data=dict(descriptor.form) if descriptor.form is not None else None,
                    json=descriptor.json_body,
                    timeout=descriptor.timeout,
                    follow_redirects=descriptor.follow_redirects,
                ),
                timeout=descriptor.timeout,
            )
        except (httpx.TimeoutException, TimeoutError):
            return TransferResult(error="timeout")
        except httpx.InvalidURL as e:
            return TransferResult(error=f"invalid url: {e}")
        except httpx.HTTPError as e:
            return TransferResult(error=f"{type(e).__name__}: {e}")
        except Exception as e:
            return TransferResult(error=f"{type(e).__name__}: {e}")

        body = b""
        if descriptor.capture_response and response.is_success:
            body = response.content
        return TransferResult(body=body, status_code=response.status_code)
