"""
Pipeline coordinator.

Drives the fixed-interval poll of all configured sources and connects the
stages:

    source → CursorTracker (dedup) → BatchScheduler (coalesce)
           → Classifier → decide() → RelaySink

The poll loop and the scheduler's timer run as separate tasks sharing one
lock for cursor and buffer state. Flushes run on the scheduler's worker, so
a slow classification never delays a poll tick or the opening of a new
window. One stop event shuts everything down.
"""

import asyncio
import itertools
import logging
import threading
import time
from collections.abc import Callable, Sequence

from alert_relay.classifiers.base import Classifier
from alert_relay.cursor import CursorTracker
from alert_relay.exceptions import ClassifierError, GateError, RelayPostError, SourceFetchError
from alert_relay.gating import Gate
from alert_relay.models import ConversationEntry, Item, PipelineStats, Role
from alert_relay.relay import decide
from alert_relay.scheduler import BatchScheduler
from alert_relay.sinks import RelaySink
from alert_relay.sources import Source, SourceMessage

logger = logging.getLogger(__name__)


def format_batch(batch: Sequence[Item]) -> str:
    """Render a batch as classifier input, grouping consecutive items by source."""
    sections = []
    for source_id, group in itertools.groupby(batch, key=lambda item: item.source_id):
        lines = []
        for item in group:
            text = item.text or ("[attachment]" if item.attachments else "")
            lines.append(f"message: {text}")
        sections.append(f"Messages from {source_id}:\n" + "\n".join(lines))
    return "\n\n".join(sections)


def batch_entry(batch: Sequence[Item]) -> ConversationEntry:
    """Build the user entry for a batch, carrying every attachment in order."""
    attachments = tuple(a for item in batch for a in item.attachments)
    return ConversationEntry(role=Role.USER, text=format_batch(batch), attachments=attachments)


class Pipeline:
    """Ingestion, dedup, batching, classification and relay.

    Args:
        source_ids: Monitored source identifiers, in poll order
        source: Source collaborator
        classifier: Classifier client
        relay: Relay sink
        relay_channel: Channel receiving relay messages
        poll_interval: Seconds between poll ticks
        message_limit: ``limit`` passed to each poll
        base_window: Scheduler base window in seconds
        extend_by: Scheduler extension per item in seconds
        max_window: Optional scheduler window cap in seconds
        gate: Optional gate skipping poll ticks while active
        cursor: Cursor tracker (a new one by default)
        clock: Monotonic clock for the scheduler
    """

    def __init__(
        self,
        *,
        source_ids: Sequence[str],
        source: Source,
        classifier: Classifier,
        relay: RelaySink,
        relay_channel: str,
        poll_interval: float = 5.0,
        message_limit: int = 4,
        base_window: float = 30.0,
        extend_by: float = 3.0,
        max_window: float | None = None,
        gate: Gate | None = None,
        cursor: CursorTracker | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source_ids = list(source_ids)
        self.source = source
        self.classifier = classifier
        self.relay = relay
        self.relay_channel = relay_channel
        self.poll_interval = poll_interval
        self.message_limit = message_limit
        self.gate = gate
        self.cursor = cursor or CursorTracker(lock=threading.Lock())
        self.scheduler = BatchScheduler(
            base_window,
            extend_by,
            self.handle_batch,
            max_window=max_window,
            lock=self.cursor.lock,
            clock=clock,
        )
        self.stats = PipelineStats()
        self._initialised = False

    # ------------------------------------------------------------------
    # Poll path
    # ------------------------------------------------------------------

    async def poll_once(self) -> int:
        """Run one poll tick.

        An active gate does not hold back the first fetch, so cursors
        initialise on startup. A failed gate check skips the tick.

        Returns:
            Number of items admitted and enqueued
        """
        self.stats.polls += 1

        if self.gate is not None and await self._gate_blocks():
            self.stats.polls_gated += 1
            return 0
        self._initialised = True

        results = await asyncio.gather(*(self._fetch(source_id) for source_id in self.source_ids))

        admitted = 0
        for source_id, messages in zip(self.source_ids, results):
            if not messages:
                continue
            for message in sorted(messages, key=lambda m: m.sequence_id):
                if not self.cursor.admit(source_id, message.sequence_id, message):
                    continue
                self.scheduler.enqueue(
                    Item(
                        source_id=source_id,
                        sequence_id=message.sequence_id,
                        text=message.text,
                        attachments=message.attachments,
                    )
                )
                admitted += 1
                logger.info(
                    f"New message {message.sequence_id}",
                    extra={"source_id": source_id},
                )

        self.stats.items_admitted += admitted
        return admitted

    async def _gate_blocks(self) -> bool:
        try:
            active = await self.gate.is_active()
        except GateError as e:
            logger.warning(f"Gate check failed, skipping poll tick: {e}")
            return True
        if active and self._initialised:
            logger.info("Gate active, skipping poll tick")
            return True
        return False

    async def _fetch(self, source_id: str) -> list[SourceMessage] | None:
        try:
            return await self.source.poll(source_id, self.message_limit)
        except SourceFetchError as e:
            logger.warning(f"Error getting messages: {e}", extra={"source_id": source_id})
        except Exception as e:
            logger.error(
                f"Unexpected error polling source: {type(e).__name__}: {e}",
                exc_info=True,
                extra={"source_id": source_id},
            )
        self.stats.source_errors[source_id] = self.stats.source_errors.get(source_id, 0) + 1
        return None

    # ------------------------------------------------------------------
    # Flush path
    # ------------------------------------------------------------------

    async def handle_batch(self, batch: list[Item]) -> None:
        """Classify a flushed batch and relay the verdict.

        Classifier and relay failures are logged and counted; the batch is
        never re-queued.
        """
        self.stats.batches_flushed += 1
        entry = batch_entry(batch)

        try:
            result = await self.classifier.send(entry)
        except ClassifierError as e:
            self.stats.classifications_failed += 1
            logger.error(f"Error sending batch to classifier: {e}")
            return

        action = decide(result)
        if action is None:
            self.stats.relays_suppressed += 1
            logger.info("Status unchanged, relay suppressed")
            return

        try:
            await self.relay.post(self.relay_channel, action.body, action.silent)
        except RelayPostError as e:
            self.stats.relay_errors += 1
            logger.error(f"Error posting relay message: {e}. Message content: {action.body}")
            return
        self.stats.relays_sent += 1

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _tick_until_stopped(self, stop_event: asyncio.Event) -> bool:
        """Run one poll tick, cancelling it if ``stop_event`` is set first.

        Returns:
            False when the tick was cancelled by the stop event
        """
        tick = asyncio.create_task(self.poll_once(), name="poll-tick")
        stop_wait = asyncio.create_task(stop_event.wait())
        try:
            await asyncio.wait({tick, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_wait.cancel()
            if not tick.done():
                tick.cancel()
                try:
                    await tick
                except asyncio.CancelledError:
                    pass

        if tick.cancelled():
            logger.info("Stop requested, in-flight poll tick cancelled")
            return False
        tick.result()
        return True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until ``stop_event`` is set.

        A tick still in flight when the event is set is cancelled. The
        scheduler timer is disarmed and any in-flight flush cancelled before
        returning.
        """
        loop = asyncio.get_running_loop()
        scheduler_task = asyncio.create_task(self.scheduler.run(), name="batch-scheduler")
        logger.info(
            f"Pipeline started: {len(self.source_ids)} sources, "
            f"poll every {self.poll_interval}s, classifier {self.classifier.name}"
        )

        next_tick = loop.time()
        try:
            while not stop_event.is_set():
                if scheduler_task.done():
                    scheduler_task.result()
                    raise RuntimeError("Batch scheduler stopped unexpectedly")

                if not await self._tick_until_stopped(stop_event):
                    break

                next_tick += self.poll_interval
                delay = next_tick - loop.time()
                if delay <= 0:
                    next_tick = loop.time()
                    continue
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        finally:
            scheduler_task.cancel()
            try:
                await scheduler_task
            except asyncio.CancelledError:
                pass
            logger.info(f"Pipeline stopped: {self.stats.to_dict()}")
