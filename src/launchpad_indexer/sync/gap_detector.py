"""Gap detection and recovery over the sync range ledger.

Each pass:

1. Compares the two most recently updated ranges. When neither range's
   end meets the other's start, a pending range spanning
   ``[earlier.end_tx, later.start_tx)`` is filed, ``earlier`` being the
   one created first. With a single range, an optional earliest-known
   signature serves as the lower anchor.
2. Re-files the full span of every failed backfill range and every
   processing backfill range that made no progress within the stale
   window.

Nothing is filed twice: a gap whose exact bounds already exist is skipped,
as is a range that already has a newer range with the same bounds.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from launchpad_indexer.storage.repos import SyncRangeDTO, SyncRangeKind, SyncRangeRepository

if TYPE_CHECKING:
    from launchpad_indexer.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60.0
DEFAULT_STALE_CLAIM_SECONDS = 900


@dataclass(frozen=True)
class Gap:
    start_tx: str
    end_tx: str

    @property
    def gap_id(self) -> str:
        return f"{self.start_tx}-{self.end_tx}"


@dataclass
class GapDetectionResult:
    filed: list[SyncRangeDTO] = field(default_factory=list)
    recovered: list[SyncRangeDTO] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.filed) + len(self.recovered)


def find_gap(ranges: list[SyncRangeDTO], anchor: str | None = None) -> Gap | None:
    """Return the discontinuity between the given ranges, if any.

    Args:
        ranges: Up to two ranges, in any order.
        anchor: Earliest known signature, used when only one range exists.
    """
    if not ranges:
        return None
    if len(ranges) == 1:
        only = ranges[0]
        if anchor and anchor != only.start_tx:
            return Gap(start_tx=anchor, end_tx=only.start_tx)
        return None

    earlier, later = sorted(ranges[:2], key=lambda r: r.id)
    if earlier.end_tx == later.start_tx or later.end_tx == earlier.start_tx:
        return None
    return Gap(start_tx=earlier.end_tx, end_tx=later.start_tx)


class GapDetector:
    """Periodic maintenance pass over the sync range ledger.

    Args:
        db: Database manager.
        stop_event: Cooperative shutdown signal for ``run``.
        start_signature: Earliest known signature (bootstrap anchor).
        interval_seconds: Delay between passes in ``run``.
        stale_claim_seconds: Processing backfill ranges idle this long are re-filed.
    """

    def __init__(
        self,
        db: DatabaseManager,
        *,
        stop_event: asyncio.Event,
        start_signature: str | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        stale_claim_seconds: int = DEFAULT_STALE_CLAIM_SECONDS,
    ) -> None:
        self._db = db
        self._stop_event = stop_event
        self._start_signature = start_signature
        self._interval_seconds = interval_seconds
        self._stale_claim = timedelta(seconds=stale_claim_seconds)
        self.passes = 0

    async def detect_gaps(self) -> SyncRangeDTO | None:
        """File a pending range for the gap between the latest ranges, if any."""
        async with self._db.get_async_session() as session:
            repo = SyncRangeRepository(session)
            gap = find_gap(await repo.latest_updated(limit=2), self._start_signature)
            if gap is None:
                logger.info("No gaps detected")
                return None
            if await repo.exists_with_bounds(gap.start_tx, gap.end_tx):
                logger.debug("Gap %s already filed", gap.gap_id)
                return None
            filed = await repo.create(gap.start_tx, gap.end_tx, kind=SyncRangeKind.BACKFILL)
        logger.info("Gap detected: %s (range %d)", gap.gap_id, filed.id)
        return filed

    async def recover_failed(self) -> list[SyncRangeDTO]:
        """Re-file failed and stale backfill ranges."""
        recovered: list[SyncRangeDTO] = []
        stale_before = datetime.now(UTC) - self._stale_claim
        async with self._db.get_async_session() as session:
            repo = SyncRangeRepository(session)
            for sync_range in await repo.list_recoverable(stale_before=stale_before):
                if await repo.has_newer_with_bounds(sync_range.id, sync_range.start_tx, sync_range.end_tx):
                    continue
                refiled = await repo.create(sync_range.start_tx, sync_range.end_tx, kind=SyncRangeKind.BACKFILL)
                recovered.append(refiled)
                logger.info(
                    "Re-filed %s sync range %d as %d",
                    sync_range.status.value,
                    sync_range.id,
                    refiled.id,
                )
        return recovered

    async def run_once(self) -> GapDetectionResult:
        result = GapDetectionResult()
        filed = await self.detect_gaps()
        if filed is not None:
            result.filed.append(filed)
        result.recovered.extend(await self.recover_failed())
        self.passes += 1
        return result

    async def run(self) -> None:
        """Run a pass every interval until the stop event is set."""
        logger.info("Gap detector started (interval %.0fs)", self._interval_seconds)
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Gap detection pass failed")
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_seconds)
        logger.info("Gap detector stopped")
