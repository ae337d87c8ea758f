"""Main pipeline orchestrator for the Launchpad Indexer.

This module provides the Pipeline class that wires the RPC pool, decoder,
extractor, projector and database together and runs one worker mode until
the shared stop event is set.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from redis.asyncio import Redis

from launchpad_indexer.codec.decoder import Decoder
from launchpad_indexer.config import Settings, get_settings
from launchpad_indexer.ingestor.extractor import EventExtractor
from launchpad_indexer.ingestor.logs_websocket import LogsStreamHandler
from launchpad_indexer.ingestor.rpc import RpcPool
from launchpad_indexer.projector.projector import EventProjector, SyncSource
from launchpad_indexer.storage.database import DatabaseManager
from launchpad_indexer.sync.backfill import BackfillWorker
from launchpad_indexer.sync.gap_detector import GapDetector
from launchpad_indexer.sync.processor import TransactionProcessor, WorkerStats, fetch_events
from launchpad_indexer.sync.realtime import RealtimeWorker

if TYPE_CHECKING:
    from typing import Any

    from launchpad_indexer.ingestor.models import ExtractedEvent

logger = logging.getLogger(__name__)


class IndexerMode(str, Enum):
    """Mutually exclusive run modes."""

    BACKFILL = "backfill"
    REALTIME = "realtime"
    GAP_DETECT = "gap-detect"

    @property
    def source(self) -> SyncSource:
        match self:
            case IndexerMode.REALTIME:
                return SyncSource.REALTIME
            case IndexerMode.BACKFILL | IndexerMode.GAP_DETECT:
                return SyncSource.BACKFILL


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    stopped_at: datetime | None = None
    worker: WorkerStats | None = None
    gap_passes: int = 0
    last_error: str | None = None


def build_rpc_pool(settings: Settings, redis: Redis | None = None) -> RpcPool:
    return RpcPool.from_urls(
        settings.solana.rpc_urls,
        redis=redis,
        commitment=settings.solana.commitment,
        cache_ttl_seconds=settings.redis.transaction_ttl_seconds,
        max_requests_per_second=settings.solana.max_requests_per_second,
        timeout=settings.solana.request_timeout_seconds,
    )


def build_extractor(settings: Settings, decoder: Decoder | None = None) -> EventExtractor:
    return EventExtractor(
        decoder or Decoder.default(),
        program_id=settings.launchpad.program_id,
        platform_config=settings.launchpad.platform_config,
    )


class Pipeline:
    """Runs one indexer mode against the configured ledger and database.

    Pipeline flow:
        Ledger RPC / Log stream → Worker → Decoder → Extractor → Projector → Database

    Example:
        ```python
        from launchpad_indexer.config import get_settings
        from launchpad_indexer.pipeline import IndexerMode, Pipeline

        pipeline = Pipeline(get_settings(), mode=IndexerMode.BACKFILL)
        await pipeline.run()  # until pipeline.request_stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        mode: IndexerMode,
        stop_event: asyncio.Event | None = None,
        backfill_range: tuple[str, str] | None = None,
        run_once: bool = False,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            mode: Worker to run.
            stop_event: Shared cancellation token; created if not given.
            backfill_range: ``(start_tx, end_tx)`` to schedule before the
                backfill loop starts.
            run_once: Gap-detect mode only: run a single pass and stop.
        """
        self._settings = settings or get_settings()
        self._mode = mode
        self._stop_event = stop_event or asyncio.Event()
        self._backfill_range = backfill_range
        self._run_once = run_once

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        # Components (initialized in start())
        self._redis: Redis | None = None
        self._db_manager: DatabaseManager | None = None
        self._rpc_pool: RpcPool | None = None
        self._processor: TransactionProcessor | None = None
        self._backfill_worker: BackfillWorker | None = None
        self._realtime_worker: RealtimeWorker | None = None
        self._logs_stream: LogsStreamHandler | None = None
        self._gap_detector: GapDetector | None = None

        self._worker_task: asyncio.Task[None] | None = None
        self._stream_task: asyncio.Task[None] | None = None

    @property
    def mode(self) -> IndexerMode:
        return self._mode

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        if self._gap_detector:
            self._stats.gap_passes = self._gap_detector.passes
        return self._stats

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop_event

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    def request_stop(self) -> None:
        """Ask every worker to finish its current unit of work and exit."""
        self._stop_event.set()

    async def start(self) -> None:
        """Start the pipeline.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        logger.info("Starting pipeline in %s mode...", self._mode.value)

        try:
            await self._initialize_components()
            await self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully."""
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")
        self._stop_event.set()

        await self._stop_background_services()
        await self._cleanup()

        self._stats.stopped_at = datetime.now(UTC)
        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    async def _initialize_components(self) -> None:
        settings = self._settings

        if settings.redis.url:
            logger.debug("Initializing Redis connection...")
            self._redis = Redis.from_url(settings.redis.url)

        if not settings.database.url:
            raise ValueError(f"DATABASE_URL is required for {self._mode.value} mode")
        logger.debug("Initializing database manager...")
        self._db_manager = DatabaseManager(settings.database.url, pool_size=settings.database.pool_size)

        if self._mode == IndexerMode.GAP_DETECT:
            self._gap_detector = GapDetector(
                self._db_manager,
                stop_event=self._stop_event,
                start_signature=settings.sync.start_signature,
                interval_seconds=settings.sync.gap_detect_interval_seconds,
                stale_claim_seconds=settings.sync.stale_claim_seconds,
            )
            return

        logger.debug("Initializing RPC pool (%d endpoints)...", len(settings.solana.rpc_urls))
        self._rpc_pool = build_rpc_pool(settings, self._redis)

        logger.debug("Loading program schema...")
        extractor = build_extractor(settings)
        projector = EventProjector(settings.klines.interval_seconds)
        self._processor = TransactionProcessor(
            self._db_manager,
            self._rpc_pool,
            extractor,
            projector,
            source=self._mode.source,
            max_attempts=settings.sync.decode_max_attempts,
            retry_delay_seconds=settings.sync.decode_retry_delay_seconds,
        )

        if self._mode == IndexerMode.BACKFILL:
            self._backfill_worker = BackfillWorker(
                self._db_manager,
                self._rpc_pool,
                self._processor,
                program_id=settings.launchpad.program_id,
                stop_event=self._stop_event,
                page_size=settings.sync.page_size,
                idle_poll_seconds=settings.sync.idle_poll_seconds,
            )
            self._stats.worker = self._backfill_worker.stats
        else:
            if not settings.solana.websocket_url:
                raise ValueError("SOLANA_WEBSOCKET_URL is required for realtime mode")
            self._realtime_worker = RealtimeWorker(
                self._db_manager,
                self._processor,
                stop_event=self._stop_event,
                queue_max_size=settings.sync.queue_max_size,
                queue_poll_seconds=settings.sync.queue_poll_seconds,
            )
            self._logs_stream = LogsStreamHandler(
                host=settings.solana.websocket_url,
                program_id=settings.launchpad.program_id,
                on_notification=self._realtime_worker.on_notification,
                commitment=settings.solana.commitment,
            )
            self._stats.worker = self._realtime_worker.stats

    async def _start_background_services(self) -> None:
        if self._backfill_worker:
            if self._backfill_range:
                start_tx, end_tx = self._backfill_range
                await self._backfill_worker.schedule(start_tx, end_tx)
            logger.debug("Starting backfill worker...")
            self._worker_task = asyncio.create_task(self._backfill_worker.run())

        if self._realtime_worker and self._logs_stream:
            logger.debug("Starting log stream...")
            self._stream_task = asyncio.create_task(self._run_logs_stream())
            logger.debug("Starting realtime worker...")
            self._worker_task = asyncio.create_task(self._realtime_worker.run())

        if self._gap_detector:
            logger.debug("Starting gap detector...")
            self._worker_task = asyncio.create_task(self._run_gap_detector())

    async def _run_logs_stream(self) -> None:
        """Run the log stream in a task."""
        if not self._logs_stream:
            return

        try:
            await self._logs_stream.start()
        except asyncio.CancelledError:
            logger.debug("Log stream task cancelled")
        except Exception as e:
            logger.error("Log stream error: %s", e)
            self._stats.last_error = str(e)

    async def _run_gap_detector(self) -> None:
        if not self._gap_detector:
            return
        if self._run_once:
            await self._gap_detector.run_once()
            self._stop_event.set()
            return
        await self._gap_detector.run()

    async def _stop_background_services(self) -> None:
        if self._logs_stream:
            logger.debug("Stopping log stream...")
            await self._logs_stream.stop()

        if self._stream_task:
            self._stream_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stream_task
            self._stream_task = None

        # Workers observe the stop event and exit after their current unit.
        if self._worker_task:
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error("Worker exited with error: %s", e)
                self._stats.last_error = str(e)
            self._worker_task = None

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._rpc_pool:
            await self._rpc_pool.aclose()
            self._rpc_pool = None

        if self._db_manager:
            await self._db_manager.dispose_async()
            self._db_manager = None

        if self._redis:
            await self._redis.aclose()
            self._redis = None

        logger.debug("Resources cleaned up")

    async def run(self) -> None:
        """Start the pipeline and run until the stop event is set or the worker exits."""
        await self.start()

        try:
            waiters = [asyncio.create_task(self._stop_event.wait())]
            if self._worker_task:
                waiters.append(self._worker_task)
            done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                if task is not self._worker_task:
                    task.cancel()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()


async def debug_signature(settings: Settings, signature: str) -> list[ExtractedEvent]:
    """Fetch and extract one signature without touching the database."""
    redis = Redis.from_url(settings.redis.url) if settings.redis.url else None
    pool = build_rpc_pool(settings, redis)
    try:
        return await fetch_events(
            pool,
            build_extractor(settings),
            signature,
            max_attempts=settings.sync.decode_max_attempts,
            retry_delay_seconds=settings.sync.decode_retry_delay_seconds,
        )
    finally:
        await pool.aclose()
        if redis:
            await redis.aclose()
