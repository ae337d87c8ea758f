"""Sync orchestration - backfill, realtime tailing and gap detection."""

from launchpad_indexer.sync.backfill import (
    BackfillInterrupted,
    BackfillResult,
    BackfillWorker,
    RangeFailure,
)
from launchpad_indexer.sync.gap_detector import Gap, GapDetectionResult, GapDetector, find_gap
from launchpad_indexer.sync.processor import (
    FetchExhaustedError,
    ProcessResult,
    ProcessStatus,
    TransactionProcessor,
    WorkerStats,
    fetch_events,
)
from launchpad_indexer.sync.realtime import RealtimeWorker

__all__ = [
    "BackfillInterrupted",
    "BackfillResult",
    "BackfillWorker",
    "FetchExhaustedError",
    "Gap",
    "GapDetectionResult",
    "GapDetector",
    "ProcessResult",
    "ProcessStatus",
    "RangeFailure",
    "RealtimeWorker",
    "TransactionProcessor",
    "WorkerStats",
    "fetch_events",
    "find_gap",
]
