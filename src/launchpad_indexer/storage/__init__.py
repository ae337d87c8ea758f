"""Storage layer - database models, sessions and repositories."""

from launchpad_indexer.storage.database import DatabaseManager
from launchpad_indexer.storage.repos import (
    KlineDTO,
    KlineRepository,
    MintDTO,
    MintRepository,
    ProcessingErrorDTO,
    ProcessingErrorRepository,
    SyncRangeDTO,
    SyncRangeKind,
    SyncRangeRepository,
    SyncRangeStatus,
    TradeDTO,
    TradeRepository,
)

__all__ = [
    "DatabaseManager",
    "KlineDTO",
    "KlineRepository",
    "MintDTO",
    "MintRepository",
    "ProcessingErrorDTO",
    "ProcessingErrorRepository",
    "SyncRangeDTO",
    "SyncRangeKind",
    "SyncRangeRepository",
    "SyncRangeStatus",
    "TradeDTO",
    "TradeRepository",
]
