"""Per-signature processing shared by the backfill and realtime workers.

One signature goes through fetch, extraction and projection. Fetching
and extraction retry a bounded number of times with linearly increasing
delay, rotating through the RPC pool. Projection and the caller's
checkpoint commit in one database transaction; when either stage fails
the failure is stored as a processing error and the checkpoint is still
written so the worker moves on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from launchpad_indexer.ingestor.rpc import LedgerClientError, TransactionNotFoundError
from launchpad_indexer.projector.projector import ProjectionStats, SyncSource
from launchpad_indexer.storage.repos import ProcessingErrorDTO, ProcessingErrorRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from launchpad_indexer.ingestor.extractor import EventExtractor
    from launchpad_indexer.ingestor.models import ExtractedEvent
    from launchpad_indexer.ingestor.rpc import RpcPool
    from launchpad_indexer.projector.projector import EventProjector
    from launchpad_indexer.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0

Checkpoint = Callable[["AsyncSession"], Awaitable[None]]


class FetchExhaustedError(LedgerClientError):
    """Raised when every fetch/extract attempt for a signature failed."""

    def __init__(self, signature: str, attempts: int, last_error: Exception | None) -> None:
        self.signature = signature
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{signature}: giving up after {attempts} attempts: {last_error}")


class ProcessStatus(str, Enum):
    PROCESSED = "processed"
    FETCH_FAILED = "fetch_failed"
    PROJECT_FAILED = "project_failed"


class ErrorStage(str, Enum):
    FETCH = "fetch"
    PROJECT = "project"


@dataclass
class ProcessResult:
    signature: str
    status: ProcessStatus
    events: int = 0
    projection: ProjectionStats | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == ProcessStatus.PROCESSED


@dataclass
class WorkerStats:
    """Counters kept by each worker."""

    started_at: datetime | None = None
    signatures_processed: int = 0
    signature_errors: int = 0
    events_projected: int = 0
    ranges_completed: int = 0
    ranges_failed: int = 0
    last_signature: str | None = None
    last_error: str | None = None
    projection: ProjectionStats = field(default_factory=ProjectionStats)

    def record(self, result: ProcessResult) -> None:
        self.last_signature = result.signature
        if result.ok:
            self.signatures_processed += 1
            self.events_projected += result.events
            if result.projection is not None:
                self.projection.merge(result.projection)
        else:
            self.signature_errors += 1
            self.last_error = result.error


async def fetch_events(
    pool: RpcPool,
    extractor: EventExtractor,
    signature: str,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
) -> list[ExtractedEvent]:
    """Fetch and extract one signature with bounded linear retry.

    Each attempt uses the next endpoint of ``pool``. Nothing is persisted.

    Raises:
        FetchExhaustedError: If every attempt failed.
    """
    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        client = pool.next()
        try:
            tx = await client.fetch_transaction(signature)
            if tx is None:
                raise TransactionNotFoundError(f"Transaction {signature} not found")
            return extractor.extract(tx)
        except (LedgerClientError, KeyError, TypeError, ValueError) as e:
            last_error = e
            logger.warning(
                "Fetch of %s failed (attempt %d/%d): %s",
                signature,
                attempt,
                max_attempts,
                e,
            )
            if attempt < max_attempts:
                await asyncio.sleep(attempt * retry_delay_seconds)
    raise FetchExhaustedError(signature, max_attempts, last_error)


class TransactionProcessor:
    """Fetches, extracts and projects one signature at a time.

    Args:
        db: Database manager providing transactional sessions.
        pool: RPC pool; each attempt uses the next endpoint.
        extractor: Event extractor for the target program.
        projector: Event projector.
        source: Which worker this processor serves.
        max_attempts: Fetch/extract attempts per signature.
        retry_delay_seconds: Attempt N waits N times this before retrying.
    """

    def __init__(
        self,
        db: DatabaseManager,
        pool: RpcPool,
        extractor: EventExtractor,
        projector: EventProjector,
        *,
        source: SyncSource,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._db = db
        self._pool = pool
        self._extractor = extractor
        self._projector = projector
        self._source = source
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay_seconds

    @property
    def source(self) -> SyncSource:
        return self._source

    async def extract(self, signature: str) -> list[ExtractedEvent]:
        """Fetch and extract with bounded retry; nothing is persisted.

        Raises:
            FetchExhaustedError: If every attempt failed.
        """
        return await fetch_events(
            self._pool,
            self._extractor,
            signature,
            max_attempts=self._max_attempts,
            retry_delay_seconds=self._retry_delay,
        )

    async def process(self, signature: str, checkpoint: Checkpoint) -> ProcessResult:
        """Process one signature and run ``checkpoint`` in the same transaction."""
        try:
            events = await self.extract(signature)
        except FetchExhaustedError as e:
            await self._record_failure(signature, ErrorStage.FETCH, e.last_error or e, checkpoint)
            return ProcessResult(signature=signature, status=ProcessStatus.FETCH_FAILED, error=str(e))

        try:
            async with self._db.get_async_session() as session:
                stats = await self._projector.apply(session, events, self._source)
                await checkpoint(session)
        except Exception as e:
            logger.warning("Projection of %s failed: %s", signature, e)
            await self._record_failure(signature, ErrorStage.PROJECT, e, checkpoint)
            return ProcessResult(
                signature=signature,
                status=ProcessStatus.PROJECT_FAILED,
                events=len(events),
                error=str(e),
            )

        logger.debug("Processed %s (%d events)", signature, len(events))
        return ProcessResult(
            signature=signature,
            status=ProcessStatus.PROCESSED,
            events=len(events),
            projection=stats,
        )

    async def _record_failure(
        self,
        signature: str,
        stage: ErrorStage,
        error: Exception,
        checkpoint: Checkpoint,
    ) -> None:
        async with self._db.get_async_session() as session:
            await ProcessingErrorRepository(session).insert_many(
                [
                    ProcessingErrorDTO(
                        signature=signature,
                        source=self._source.value,
                        stage=stage.value,
                        error_type=type(error).__name__,
                        message=str(error),
                        created_at=datetime.now(UTC),
                    )
                ]
            )
            await checkpoint(session)
