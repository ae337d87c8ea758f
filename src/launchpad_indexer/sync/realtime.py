"""Realtime worker.

Signatures from the log subscription are pushed onto a bounded FIFO
queue and drained by a single consumer, so they are projected in arrival
order. Each processed signature extends this run's live range, which the
gap detector compares against historical ranges.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from launchpad_indexer.storage.repos import SyncRangeKind, SyncRangeRepository, SyncRangeStatus
from launchpad_indexer.sync.processor import ProcessResult, WorkerStats

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from launchpad_indexer.ingestor.models import LogNotification
    from launchpad_indexer.storage.database import DatabaseManager
    from launchpad_indexer.sync.processor import TransactionProcessor

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_MAX_SIZE = 10_000
DEFAULT_QUEUE_POLL_SECONDS = 1.0


class RealtimeWorker:
    """Single-consumer queue of live signatures.

    Args:
        db: Database manager.
        processor: Per-signature processor (realtime source).
        stop_event: Cooperative shutdown signal, checked before each pop.
        queue_max_size: Queue capacity; producers wait when it is full.
        queue_poll_seconds: How long a pop waits before re-checking shutdown.
    """

    def __init__(
        self,
        db: DatabaseManager,
        processor: TransactionProcessor,
        *,
        stop_event: asyncio.Event,
        queue_max_size: int = DEFAULT_QUEUE_MAX_SIZE,
        queue_poll_seconds: float = DEFAULT_QUEUE_POLL_SECONDS,
    ) -> None:
        self._db = db
        self._processor = processor
        self._stop_event = stop_event
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_max_size)
        self._queue_poll_seconds = queue_poll_seconds
        self._live_range_id: int | None = None
        self._stats = WorkerStats()

    @property
    def stats(self) -> WorkerStats:
        return self._stats

    @property
    def live_range_id(self) -> int | None:
        return self._live_range_id

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    async def enqueue(self, signature: str) -> None:
        """Append a signature, waiting while the queue is full."""
        await self._queue.put(signature)

    async def on_notification(self, notification: LogNotification) -> None:
        await self.enqueue(notification.signature)

    async def run(self) -> None:
        """Drain the queue until the stop event is set, then close the live range."""
        self._stats.started_at = datetime.now(UTC)
        logger.info("Realtime worker started")
        try:
            while not self._stop_event.is_set():
                try:
                    signature = await asyncio.wait_for(self._queue.get(), timeout=self._queue_poll_seconds)
                except TimeoutError:
                    continue
                try:
                    await self.process_signature(signature)
                except Exception as e:
                    self._stats.last_error = str(e)
                    logger.exception("Realtime processing of %s failed", signature)
                finally:
                    self._queue.task_done()
        finally:
            await self._close_live_range()
            if not self._queue.empty():
                logger.info("Realtime worker stopping with %d queued signatures", self._queue.qsize())
            logger.info("Realtime worker stopped")

    async def process_signature(self, signature: str) -> ProcessResult:
        created: list[int] = []

        async def checkpoint(session: AsyncSession) -> None:
            repo = SyncRangeRepository(session)
            if self._live_range_id is None:
                live = await repo.create(
                    signature,
                    signature,
                    status=SyncRangeStatus.PROCESSING,
                    kind=SyncRangeKind.LIVE,
                    processed_tx=signature,
                )
                created.append(live.id)
            else:
                await repo.extend_live(self._live_range_id, signature)

        result = await self._processor.process(signature, checkpoint)
        if created:
            # Only the id from the committed attempt is kept.
            self._live_range_id = created[-1]
            logger.info("Live range %d opened at %s", self._live_range_id, signature)
        self._stats.record(result)
        return result

    async def _close_live_range(self) -> None:
        if self._live_range_id is None:
            return
        async with self._db.get_async_session() as session:
            await SyncRangeRepository(session).mark_completed(self._live_range_id)
        logger.info("Live range %d closed", self._live_range_id)
