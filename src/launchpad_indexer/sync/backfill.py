"""Backfill worker.

Claims pending sync ranges one at a time and replays the program's
history inside each ``[start_tx, end_tx)`` window. Pages of signatures
are listed newest-first from a cursor starting at ``end_tx``; each page
is processed oldest-first, and every signature is checkpointed on the
range in the same transaction as its projection.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from launchpad_indexer.storage.repos import SyncRangeDTO, SyncRangeKind, SyncRangeRepository
from launchpad_indexer.sync.processor import WorkerStats

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from launchpad_indexer.ingestor.rpc import RpcPool
    from launchpad_indexer.storage.database import DatabaseManager
    from launchpad_indexer.sync.processor import Checkpoint, TransactionProcessor

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000
DEFAULT_IDLE_POLL_SECONDS = 1.0


class RangeFailure(Exception):
    """A claimed range could not be finished and is marked failed."""


class BackfillInterrupted(RangeFailure):
    """Shutdown was requested while a range was being replayed."""


@dataclass
class BackfillResult:
    range_id: int
    completed: bool
    processed: int = 0
    errors: int = 0
    pages: int = 0
    error: str | None = None


class BackfillWorker:
    """Sequential backfill loop over pending sync ranges.

    Args:
        db: Database manager.
        pool: RPC pool used for signature listing.
        processor: Per-signature processor (backfill source).
        program_id: Target program address.
        stop_event: Cooperative shutdown signal, checked before each claim
            and each page fetch.
        page_size: Signatures per listing page.
        idle_poll_seconds: Sleep when no pending range exists.
    """

    def __init__(
        self,
        db: DatabaseManager,
        pool: RpcPool,
        processor: TransactionProcessor,
        *,
        program_id: str,
        stop_event: asyncio.Event,
        page_size: int = DEFAULT_PAGE_SIZE,
        idle_poll_seconds: float = DEFAULT_IDLE_POLL_SECONDS,
    ) -> None:
        self._db = db
        self._pool = pool
        self._processor = processor
        self._program_id = program_id
        self._stop_event = stop_event
        self._page_size = page_size
        self._idle_poll_seconds = idle_poll_seconds
        self._stats = WorkerStats()

    @property
    def stats(self) -> WorkerStats:
        return self._stats

    async def schedule(self, start_tx: str, end_tx: str) -> SyncRangeDTO:
        """File a pending range ``[start_tx, end_tx)``."""
        async with self._db.get_async_session() as session:
            sync_range = await SyncRangeRepository(session).create(start_tx, end_tx, kind=SyncRangeKind.BACKFILL)
        logger.info("Scheduled backfill range %d: %s -> %s", sync_range.id, start_tx, end_tx)
        return sync_range

    async def run_once(self) -> BackfillResult | None:
        """Claim and replay one pending range; None if nothing was claimed."""
        async with self._db.get_async_session() as session:
            sync_range = await SyncRangeRepository(session).claim_next_pending()
        if sync_range is None:
            return None
        return await self.run_range(sync_range)

    async def run(self) -> None:
        """Run until the stop event is set."""
        self._stats.started_at = datetime.now(UTC)
        logger.info("Backfill worker started")
        while not self._stop_event.is_set():
            try:
                result = await self.run_once()
            except Exception as e:
                # Claim or bookkeeping failed; the next tick retries.
                self._stats.last_error = str(e)
                logger.exception("Backfill iteration failed")
                result = None
            if result is None:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._idle_poll_seconds)
        logger.info("Backfill worker stopped")

    async def run_range(self, sync_range: SyncRangeDTO) -> BackfillResult:
        """Replay a range this worker has claimed and settle its status."""
        result = BackfillResult(range_id=sync_range.id, completed=False)
        logger.info(
            "Processing sync range %d: %s -> %s",
            sync_range.id,
            sync_range.start_tx,
            sync_range.end_tx,
        )

        try:
            await self._replay(sync_range, result)
        except BackfillInterrupted as e:
            result.error = str(e)
            logger.warning("Sync range %d interrupted: %s", sync_range.id, e)
        except Exception as e:
            result.error = str(e)
            logger.exception("Sync range %d failed", sync_range.id)
        else:
            result.completed = True

        async with self._db.get_async_session() as session:
            repo = SyncRangeRepository(session)
            if result.completed:
                await repo.mark_completed(sync_range.id)
            else:
                await repo.mark_failed(sync_range.id)

        if result.completed:
            self._stats.ranges_completed += 1
            logger.info(
                "Sync range %d completed: %d processed, %d errors",
                sync_range.id,
                result.processed,
                result.errors,
            )
        else:
            self._stats.ranges_failed += 1
            self._stats.last_error = result.error
        return result

    async def _replay(self, sync_range: SyncRangeDTO, result: BackfillResult) -> None:
        start, end = sync_range.start_tx, sync_range.end_tx
        if start == end:
            return

        cursor = end
        while True:
            if self._stop_event.is_set():
                raise BackfillInterrupted(f"shutdown requested before page {result.pages + 1}")

            page = await self._pool.next().list_signatures(
                self._program_id,
                before=cursor,
                until=start,
                limit=self._page_size,
            )
            result.pages += 1
            if not page:
                logger.debug("No more signatures before %s", cursor)
                return

            logger.debug("Processing %d signatures before %s", len(page), cursor)
            for signature in reversed(page):
                if signature == start:
                    return
                outcome = await self._processor.process(signature, self._checkpoint(sync_range.id, signature))
                self._stats.record(outcome)
                if outcome.ok:
                    result.processed += 1
                else:
                    result.errors += 1

            if len(page) < self._page_size:
                return
            cursor = page[-1]

    @staticmethod
    def _checkpoint(range_id: int, signature: str) -> Checkpoint:
        async def checkpoint(session: AsyncSession) -> None:
            await SyncRangeRepository(session).checkpoint(range_id, signature)

        return checkpoint
