"""Ledger ingestion layer - RPC access, log subscription and event extraction."""

from launchpad_indexer.ingestor.extractor import EventExtractor
from launchpad_indexer.ingestor.models import (
    ExtractedEvent,
    InnerInstructionGroup,
    LogNotification,
    RawInstruction,
    RawTransaction,
)
from launchpad_indexer.ingestor.rpc import (
    LedgerClient,
    LedgerClientError,
    RpcPool,
    SolanaLedgerClient,
    TransactionNotFoundError,
    TransientNetworkError,
)

__all__ = [
    "EventExtractor",
    "ExtractedEvent",
    "InnerInstructionGroup",
    "LedgerClient",
    "LedgerClientError",
    "LogNotification",
    "RawInstruction",
    "RawTransaction",
    "RpcPool",
    "SolanaLedgerClient",
    "TransactionNotFoundError",
    "TransientNetworkError",
]
