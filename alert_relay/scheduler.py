"""
Adaptive batch scheduler.

Coalesces bursts of items into one downstream classification call.

State machine:
    Idle  --enqueue-->  Open   (buffer = [item], deadline = now + base_window)
    Open  --enqueue-->  Open   (append, deadline = deadline + extend_by)
    Open  --deadline--> Idle   (buffer handed to the flush worker, timer disarmed)

The extension is relative to the existing deadline, not to "now". An
optional max_window caps the deadline at first_enqueue + max_window.

A single timer-owner task (``run``) waits for whichever comes first: the
current deadline or a re-arm notification from ``enqueue``. Taking the
buffer and clearing it happen under the same lock as ``enqueue``, so an
item racing a deadline lands either in the batch being flushed or in a
freshly opened window, never in neither and never in both.

Flushes are handed to a separate worker task so the classification call
never blocks new enqueues or the timer. At most one flush runs at a time.
"""

import asyncio
import itertools
import logging
import threading
import time
from collections.abc import Awaitable, Callable

from alert_relay.models import Item

logger = logging.getLogger(__name__)

FlushCallback = Callable[[list[Item]], Awaitable[None]]


class BatchScheduler:
    """Buffer plus a single adaptive deadline timer.

    Attributes:
        base_window: Seconds from the first item to the default flush
        extend_by: Seconds added to the deadline for each further item
        max_window: Optional cap on total window length, in seconds
        lock: Lock guarding buffer and deadline (shared with the cursor)

    Example:
        >>> scheduler = BatchScheduler(30.0, 3.0, on_flush=handle_batch)
        >>> task = asyncio.create_task(scheduler.run())
        >>> scheduler.enqueue(item)
    """

    def __init__(
        self,
        base_window: float,
        extend_by: float,
        on_flush: FlushCallback,
        *,
        max_window: float | None = None,
        lock: "threading.Lock | None" = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if base_window <= 0:
            raise ValueError("base_window must be positive")
        if extend_by < 0:
            raise ValueError("extend_by must not be negative")
        if max_window is not None and max_window < base_window:
            raise ValueError("max_window must be at least base_window")

        self.base_window = base_window
        self.extend_by = extend_by
        self.max_window = max_window
        self.lock = lock or threading.Lock()
        self._on_flush = on_flush
        self._clock = clock

        self._buffer: list[Item] = []
        self._deadline: float | None = None
        self._opened_at: float | None = None

        self._batch_ids = itertools.count(1)
        self._wakeup = asyncio.Event()
        self._queue: asyncio.Queue[tuple[int, list[Item]]] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._running = False

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def enqueue(self, item: Item, now: float | None = None) -> float:
        """Add an item, opening or extending the window.

        Safe to call from any thread.

        Args:
            item: Item to buffer
            now: Current clock value (defaults to the scheduler clock)

        Returns:
            The deadline after this enqueue
        """
        with self.lock:
            if now is None:
                now = self._clock()
            if self._deadline is None:
                self._buffer = [item]
                self._opened_at = now
                self._deadline = now + self.base_window
            else:
                self._buffer.append(item)
                self._deadline += self.extend_by
                if self.max_window is not None:
                    self._deadline = min(self._deadline, self._opened_at + self.max_window)
            deadline = self._deadline
            size = len(self._buffer)

        logger.debug(
            f"Enqueued {item.source_id}/{item.sequence_id}, {size} buffered, "
            f"flush in {deadline - now:.1f}s",
            extra={"source_id": item.source_id},
        )
        self._notify()
        return deadline

    def take_due(self, now: float | None = None) -> list[Item] | None:
        """Take ownership of the buffer if its deadline has passed.

        Args:
            now: Current clock value (defaults to the scheduler clock)

        Returns:
            The batch (buffer cleared, timer disarmed), or None if no window
            is open or the deadline has not been reached
        """
        with self.lock:
            if now is None:
                now = self._clock()
            if self._deadline is None or now < self._deadline:
                return None
            batch = self._buffer
            self._buffer = []
            self._deadline = None
            self._opened_at = None
            return batch

    @property
    def deadline(self) -> float | None:
        """Current flush deadline, or None when idle."""
        with self.lock:
            return self._deadline

    @property
    def pending(self) -> int:
        """Number of buffered items in the open window."""
        with self.lock:
            return len(self._buffer)

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Timer and flush worker
    # ------------------------------------------------------------------

    def _notify(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._wakeup.set)

    async def run(self) -> None:
        """Run the timer-owner loop until cancelled.

        Starts the flush worker, then sleeps until the deadline or until
        ``enqueue`` re-arms the timer. On cancellation the timer is disarmed
        and the worker stopped; an unflushed window is dropped.
        """
        self._loop = asyncio.get_running_loop()
        self._running = True
        worker = asyncio.create_task(self._flush_worker(), name="batch-flush-worker")
        try:
            while True:
                deadline = self.deadline
                if deadline is None:
                    await self._wakeup.wait()
                    self._wakeup.clear()
                    continue

                delay = deadline - self._clock()
                if delay > 0:
                    try:
                        await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                    else:
                        self._wakeup.clear()
                        continue

                batch = self.take_due()
                if batch:
                    self._dispatch(batch)
        finally:
            self._running = False
            self._loop = None
            with self.lock:
                dropped = len(self._buffer)
                self._buffer = []
                self._deadline = None
                self._opened_at = None
            if dropped:
                logger.warning(f"Scheduler stopped with {dropped} unflushed items")
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

    def _dispatch(self, batch: list[Item]) -> None:
        batch_id = next(self._batch_ids)
        logger.info(
            f"Flushing batch of {len(batch)} items",
            extra={"batch_id": batch_id},
        )
        self._queue.put_nowait((batch_id, batch))

    async def _flush_worker(self) -> None:
        while True:
            batch_id, batch = await self._queue.get()
            try:
                await self._on_flush(batch)
            except Exception as e:
                logger.error(
                    f"Flush callback failed: {type(e).__name__}: {e}",
                    exc_info=True,
                    extra={"batch_id": batch_id},
                )
            finally:
                self._queue.task_done()

    async def wait_idle(self) -> None:
        """Wait until every dispatched batch has been processed."""
        await self._queue.join()
