"""
Scheduling primitives for board actions.

Two orthogonal tools:
  1. AsyncQueue: single-flight FIFO; accepted actions run one at a time
  2. Debouncer: collapses a burst of calls into the last one

Debounce drops superseded intents, the queue serializes accepted ones.
Both report dropped work with AbortedError so callers can tell a
cancellation apart from a real failure.
"""
import asyncio
import functools
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

logger = logging.getLogger(__name__)

AsyncFunc = Callable[..., Awaitable[Any]]


class AbortedError(Exception):
    """Raised into callers whose work was dropped before it started."""

    def __init__(self, message: str = "Operation aborted"):
        super().__init__(message)


class WaitTimeoutError(TimeoutError):
    """Raised by wait_until when the condition never became true."""
    pass


def _transfer(waiter: asyncio.Future, task: asyncio.Future) -> None:
    """Copy the outcome of `task` onto `waiter`."""
    if waiter.done():
        return
    if task.cancelled():
        waiter.cancel()
    elif task.exception() is not None:
        waiter.set_exception(task.exception())
    else:
        waiter.set_result(task.result())


# ═══════════════════════════════════════════════════════════════
# Single-flight queue
# ═══════════════════════════════════════════════════════════════

class AsyncQueue:
    """
    Runs enqueued coroutine functions strictly one after another.

    Each item waits for the previous one to settle, whether it succeeded
    or failed. A failing item rejects only its own caller.
    """

    def __init__(self):
        self._pending: Deque[Tuple[AsyncFunc, tuple, asyncio.Future]] = deque()
        self._worker: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Future] = None

    def enqueue(self, func: AsyncFunc, *args: Any) -> asyncio.Future:
        """Queue func(*args); the returned future settles with its outcome."""
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._pending.append((func, args, waiter))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        return waiter

    async def _drain(self) -> None:
        while self._pending:
            func, args, waiter = self._pending.popleft()
            if waiter.done():
                continue
            self._in_flight = waiter
            # The item runs in its own task so a CancelledError raised by
            # it settles its waiter instead of ending the worker
            task = asyncio.ensure_future(func(*args))
            try:
                await asyncio.wait([task])
            except asyncio.CancelledError:
                task.cancel()
                if not waiter.done():
                    waiter.cancel()
                self.abort()
                raise
            finally:
                self._in_flight = None
            _transfer(waiter, task)

    @property
    def is_processing(self) -> bool:
        return self._in_flight is not None

    def __len__(self) -> int:
        return len(self._pending)

    def abort(self) -> None:
        """Reject and discard every queued item; the in-flight one is left alone."""
        dropped = 0
        while self._pending:
            _, _, waiter = self._pending.popleft()
            if not waiter.done():
                waiter.set_exception(AbortedError())
                dropped += 1
        if dropped:
            logger.debug(f"Aborted {dropped} queued action(s)")


# ═══════════════════════════════════════════════════════════════
# Debouncer
# ═══════════════════════════════════════════════════════════════

class Debouncer:
    """
    Delays a call and cancels it if another call arrives first.

    Only the last call of a burst runs. Superseded callers get AbortedError.
    Once a call has fired it is no longer cancellable.
    """

    def __init__(self, delay_ms: int):
        self.delay_ms = delay_ms
        self._timer: Optional[asyncio.TimerHandle] = None
        self._waiter: Optional[asyncio.Future] = None
        self._running: Optional[asyncio.Future] = None

    def debounce(self, func: AsyncFunc, *args: Any) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        self.abort()
        waiter = loop.create_future()
        self._waiter = waiter
        self._timer = loop.call_later(self.delay_ms / 1000, self._fire, func, args, waiter)
        return waiter

    def _fire(self, func: AsyncFunc, args: tuple, waiter: asyncio.Future) -> None:
        self._timer = None
        self._waiter = None
        task = asyncio.ensure_future(func(*args))
        task.add_done_callback(functools.partial(_transfer, waiter))
        self._running = task

    @property
    def is_pending(self) -> bool:
        return self._timer is not None

    def abort(self) -> None:
        """Cancel the scheduled call, if it has not fired yet."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._waiter is not None:
            if not self._waiter.done():
                self._waiter.set_exception(AbortedError())
            self._waiter = None


# ═══════════════════════════════════════════════════════════════
# Bounded wait
# ═══════════════════════════════════════════════════════════════

async def wait_until(
    condition: Callable[[], Awaitable[bool]],
    timeout: float = 3.0,
    interval: float = 0.1,
) -> None:
    """
    Poll `condition` until it returns True.

    Raises WaitTimeoutError once `timeout` seconds have passed.
    """
    start = time.monotonic()
    while not await condition():
        if (time.monotonic() - start) > timeout:
            raise WaitTimeoutError(f"Condition not met within {timeout}s")
        await asyncio.sleep(interval)
