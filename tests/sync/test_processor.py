"""Tests for per-signature processing."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from launchpad_indexer.ingestor.extractor import EventExtractor
from launchpad_indexer.ingestor.rpc import RpcPool
from launchpad_indexer.projector.projector import EventProjector, SyncSource
from launchpad_indexer.storage.repos import (
    KlineRepository,
    MintRepository,
    ProcessingErrorRepository,
    SyncRangeRepository,
    TradeRepository,
)
from launchpad_indexer.sync.processor import (
    FetchExhaustedError,
    ProcessResult,
    ProcessStatus,
    TransactionProcessor,
    WorkerStats,
)

PROGRAM_ID = "LanMV9sAd7wArD4vJFi2qDdfnVhFxYSUg6eADduJ3uj"
SIGNATURE = "4EEjxchJQhYtrfDBckUTt5PEXwuRsYbsMuBFHDtmGo6ECgrgDNQCcq5AernFHn5kTZwNKndjDxxABPNdZcoztqAq"
MINT = "CatBobaMint1111111111111111111111111111111"


@pytest.fixture
def make_processor(db, decoder):
    def _make(*ledgers, projector=None, max_attempts: int = 3) -> TransactionProcessor:
        return TransactionProcessor(
            db,
            RpcPool(list(ledgers)),
            EventExtractor(decoder, program_id=PROGRAM_ID),
            projector or EventProjector({"1m": 60}),
            source=SyncSource.BACKFILL,
            max_attempts=max_attempts,
            retry_delay_seconds=0,
        )

    return _make


@pytest.fixture
async def sync_range(db):
    async with db.get_async_session() as session:
        return await SyncRangeRepository(session).create("start", "end")


def range_checkpoint(range_id: int, signature: str, calls: list):
    async def checkpoint(session) -> None:
        calls.append(signature)
        await SyncRangeRepository(session).checkpoint(range_id, signature)

    return checkpoint


class TestProcess:
    """Tests for TransactionProcessor.process."""

    @pytest.mark.asyncio
    async def test_projects_and_checkpoints(self, db, chain, ledger, make_processor, sync_range) -> None:
        ledger.add(chain.launch_transaction())
        calls: list[str] = []

        result = await make_processor(ledger).process(SIGNATURE, range_checkpoint(sync_range.id, SIGNATURE, calls))

        assert result.ok
        assert result.events == 2
        assert result.projection is not None
        assert result.projection.mints_created == 1
        assert calls == [SIGNATURE]
        async with db.get_async_session() as session:
            assert await MintRepository(session).get(MINT) is not None
            assert await TradeRepository(session).count() == 1
            stored = await SyncRangeRepository(session).get(sync_range.id)
            assert stored is not None and stored.processed_tx == SIGNATURE

    @pytest.mark.asyncio
    async def test_failed_transaction_leaves_tables_unchanged(
        self, db, chain, ledger, make_processor, sync_range
    ) -> None:
        ledger.add(chain.launch_transaction(err={"InstructionError": [1, {"Custom": 6000}]}))
        calls: list[str] = []

        result = await make_processor(ledger).process(SIGNATURE, range_checkpoint(sync_range.id, SIGNATURE, calls))

        assert result.ok
        assert result.events == 0
        assert calls == [SIGNATURE]
        async with db.get_async_session() as session:
            assert await MintRepository(session).count() == 0
            assert await TradeRepository(session).count() == 0
            assert await KlineRepository(session).list_series(mint=MINT, interval="1m") == []
            assert await ProcessingErrorRepository(session).count() == 0
            stored = await SyncRangeRepository(session).get(sync_range.id)
        assert stored is not None and stored.processed_tx == SIGNATURE

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self, chain, ledger, make_processor, sync_range) -> None:
        ledger.add(chain.launch_transaction())
        ledger.failures[SIGNATURE] = 2

        result = await make_processor(ledger).process(SIGNATURE, range_checkpoint(sync_range.id, SIGNATURE, []))

        assert result.ok
        assert ledger.fetch_calls == [SIGNATURE] * 3

    @pytest.mark.asyncio
    async def test_attempts_rotate_through_pool(self, chain, ledger_factory, make_processor, sync_range) -> None:
        lagging, synced = ledger_factory(), ledger_factory()
        synced.add(chain.launch_transaction())

        result = await make_processor(lagging, synced).process(
            SIGNATURE, range_checkpoint(sync_range.id, SIGNATURE, [])
        )

        assert result.ok
        assert lagging.fetch_calls == [SIGNATURE]
        assert synced.fetch_calls == [SIGNATURE]

    @pytest.mark.asyncio
    async def test_fetch_exhausted_records_error(self, db, chain, ledger, make_processor, sync_range) -> None:
        ledger.add(chain.launch_transaction())
        ledger.failures[SIGNATURE] = 10
        calls: list[str] = []

        result = await make_processor(ledger).process(SIGNATURE, range_checkpoint(sync_range.id, SIGNATURE, calls))

        assert result.status == ProcessStatus.FETCH_FAILED
        assert len(ledger.fetch_calls) == 3
        # The worker still moves past the signature.
        assert calls == [SIGNATURE]
        async with db.get_async_session() as session:
            errors = await ProcessingErrorRepository(session).list_for_signature(SIGNATURE)
            stored = await SyncRangeRepository(session).get(sync_range.id)
        assert [(e.stage, e.source, e.error_type) for e in errors] == [("fetch", "backfill", "TransientNetworkError")]
        assert stored is not None and stored.processed_tx == SIGNATURE

    @pytest.mark.asyncio
    async def test_missing_transaction(self, db, ledger, make_processor, sync_range) -> None:
        result = await make_processor(ledger, max_attempts=2).process(
            SIGNATURE, range_checkpoint(sync_range.id, SIGNATURE, [])
        )

        assert result.status == ProcessStatus.FETCH_FAILED
        async with db.get_async_session() as session:
            errors = await ProcessingErrorRepository(session).list_for_signature(SIGNATURE)
        assert errors[0].error_type == "TransactionNotFoundError"

    @pytest.mark.asyncio
    async def test_projection_failure_rolls_back(self, db, chain, ledger, make_processor, sync_range) -> None:
        ledger.add(chain.launch_transaction())
        projector = MagicMock()
        projector.apply = AsyncMock(side_effect=RuntimeError("constraint violated"))
        calls: list[str] = []

        result = await make_processor(ledger, projector=projector).process(
            SIGNATURE, range_checkpoint(sync_range.id, SIGNATURE, calls)
        )

        assert result.status == ProcessStatus.PROJECT_FAILED
        assert result.events == 2
        assert "constraint violated" in (result.error or "")
        assert calls == [SIGNATURE]
        async with db.get_async_session() as session:
            errors = await ProcessingErrorRepository(session).list_for_signature(SIGNATURE)
            assert await MintRepository(session).count() == 0
        assert [e.stage for e in errors] == ["project"]

    @pytest.mark.asyncio
    async def test_extract_raises_when_exhausted(self, ledger, make_processor) -> None:
        with pytest.raises(FetchExhaustedError) as exc_info:
            await make_processor(ledger, max_attempts=1).extract(SIGNATURE)
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_max_attempts_validated(self, make_processor, ledger) -> None:
        with pytest.raises(ValueError):
            make_processor(ledger, max_attempts=0)


class TestWorkerStats:
    """Tests for WorkerStats."""

    def test_record(self) -> None:
        stats = WorkerStats()
        stats.record(ProcessResult(signature="a", status=ProcessStatus.PROCESSED, events=2))
        stats.record(ProcessResult(signature="b", status=ProcessStatus.FETCH_FAILED, error="timeout"))

        assert stats.signatures_processed == 1
        assert stats.events_projected == 2
        assert stats.signature_errors == 1
        assert stats.last_signature == "b"
        assert stats.last_error == "timeout"
