"""Projection of extracted events into mints, trades and klines."""

from launchpad_indexer.projector.accounts import InitializeAccountIndex, TradeAccountIndex
from launchpad_indexer.projector.projector import EventProjector, ProjectionStats, SyncSource

__all__ = [
    "EventProjector",
    "InitializeAccountIndex",
    "ProjectionStats",
    "SyncSource",
    "TradeAccountIndex",
]
