"""Idempotent projection of extracted events into derived tables.

PoolCreateEvent creates the mint row (first writer wins, or fills in a
placeholder left by an earlier trade). TradeEvent appends to the trade
log by signature, updates the mint's reserves and status, and advances
the mint's last-trade pointer under a monotonic slot guard whose
strictness depends on which worker produced the event.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, localcontext
from enum import Enum
from typing import TYPE_CHECKING

from launchpad_indexer.codec.events import (
    POOL_CREATE_EVENT,
    TRADE_EVENT,
    PoolCreateEvent,
    TradeEvent,
)
from launchpad_indexer.projector.accounts import (
    InitializeAccountIndex,
    TradeAccountIndex,
    account_at,
)
from launchpad_indexer.storage.repos import (
    KlineRepository,
    MintDTO,
    MintRepository,
    TradeDTO,
    TradeRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from launchpad_indexer.ingestor.models import ExtractedEvent

logger = logging.getLogger(__name__)

PRICE_QUANTUM = Decimal("1e-18")
# Numeric(38, 18) leaves 20 integer digits.
PRICE_LIMIT = Decimal(10) ** 20


class SyncSource(str, Enum):
    """Which worker produced the events being projected."""

    BACKFILL = "backfill"
    REALTIME = "realtime"

    @property
    def inclusive_guard(self) -> bool:
        """Realtime may overwrite a same-slot pointer; backfill may not."""
        match self:
            case SyncSource.BACKFILL:
                return False
            case SyncSource.REALTIME:
                return True


@dataclass
class ProjectionStats:
    mints_created: int = 0
    mints_filled: int = 0
    placeholders_created: int = 0
    trades_inserted: int = 0
    trades_duplicate: int = 0
    pointers_advanced: int = 0
    klines_updated: int = 0
    events_skipped: int = 0

    def merge(self, other: ProjectionStats) -> None:
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(self, name) + getattr(other, name))


def trade_price(trade: TradeEvent) -> Decimal | None:
    """Quote paid per base unit, in raw token units.

    Returns None for a zero base leg, or for a price too large for the
    kline price columns.
    """
    base = trade.base_amount
    if base == 0:
        return None
    with localcontext() as ctx:
        ctx.prec = 60
        price = Decimal(trade.quote_amount) / Decimal(base)
        if price >= PRICE_LIMIT:
            return None
        return price.quantize(PRICE_QUANTUM)


def bucket_start(block_time: datetime, interval_seconds: int) -> datetime:
    ts = int(block_time.timestamp())
    return datetime.fromtimestamp(ts - ts % interval_seconds, tz=UTC)


class EventProjector:
    """Folds ``ExtractedEvent``s into mints, trades and klines.

    Args:
        kline_intervals: Kline interval names mapped to their width in
            seconds. Empty disables kline aggregation.
    """

    def __init__(self, kline_intervals: Mapping[str, int] | None = None) -> None:
        self._kline_intervals = dict(kline_intervals or {})

    async def apply(
        self,
        session: AsyncSession,
        events: Iterable[ExtractedEvent],
        source: SyncSource,
    ) -> ProjectionStats:
        """Project events in order within the caller's transaction."""
        stats = ProjectionStats()
        for event in events:
            if event.event_type == POOL_CREATE_EVENT:
                await self._apply_pool_create(session, event, stats)
            elif event.event_type == TRADE_EVENT:
                await self._apply_trade(session, event, source, stats)
            else:
                stats.events_skipped += 1
                logger.info("Skipping %s event in %s", event.event_type, event.signature)
        return stats

    async def _apply_pool_create(self, session: AsyncSession, event: ExtractedEvent, stats: ProjectionStats) -> None:
        created = PoolCreateEvent.from_payload(event.payload)
        mint_address = account_at(event.accounts, InitializeAccountIndex.BASE_MINT)
        dto = MintDTO(
            mint=mint_address,
            pool_state=account_at(event.accounts, InitializeAccountIndex.POOL_STATE),
            platform_config=account_at(event.accounts, InitializeAccountIndex.PLATFORM_CONFIG),
            creator=account_at(event.accounts, InitializeAccountIndex.CREATOR),
            config=created.config,
            name=created.name,
            symbol=created.symbol,
            uri=created.uri,
            decimals=created.decimals,
            curve_type=created.curve.kind.value,
            supply=Decimal(created.curve.supply),
            total_base_sell=(
                Decimal(created.curve.total_base_sell) if created.curve.total_base_sell is not None else None
            ),
            total_quote_fund_raising=Decimal(created.curve.total_quote_fund_raising),
            migrate_type=created.curve.migrate_type,
            total_locked_amount=Decimal(created.total_locked_amount),
            cliff_period=Decimal(created.cliff_period),
            unlock_period=Decimal(created.unlock_period),
            created_signature=event.signature,
            created_slot=event.slot,
            created_block_time=event.block_datetime,
        )

        repo = MintRepository(session)
        if await repo.insert_created(dto):
            stats.mints_created += 1
            logger.info("Mint %s created (%s)", mint_address, created.symbol)
        elif await repo.fill_placeholder(dto):
            stats.mints_filled += 1
            logger.info("Mint %s placeholder filled from %s", mint_address, event.signature)
        else:
            logger.debug("Mint %s already recorded; creation in %s ignored", mint_address, event.signature)

    async def _apply_trade(
        self,
        session: AsyncSession,
        event: ExtractedEvent,
        source: SyncSource,
        stats: ProjectionStats,
    ) -> None:
        trade = TradeEvent.from_payload(event.payload)
        mint_address = account_at(event.accounts, TradeAccountIndex.BASE_TOKEN_MINT)
        platform_config = account_at(event.accounts, TradeAccountIndex.PLATFORM_CONFIG)
        pool_state = account_at(event.accounts, TradeAccountIndex.POOL_STATE)
        block_time = event.block_datetime

        trades = TradeRepository(session)
        trade_id, inserted = await trades.insert_if_absent(
            TradeDTO(
                signature=event.signature,
                mint=mint_address,
                pool_state=pool_state,
                user=account_at(event.accounts, TradeAccountIndex.PAYER),
                platform_config=platform_config,
                slot=event.slot,
                block_time=block_time,
                trade_direction=trade.trade_direction.value,
                pool_status=trade.pool_status.value,
                total_base_sell=Decimal(trade.total_base_sell),
                virtual_base=Decimal(trade.virtual_base),
                virtual_quote=Decimal(trade.virtual_quote),
                real_base_before=Decimal(trade.real_base_before),
                real_quote_before=Decimal(trade.real_quote_before),
                real_base_after=Decimal(trade.real_base_after),
                real_quote_after=Decimal(trade.real_quote_after),
                amount_in=Decimal(trade.amount_in),
                amount_out=Decimal(trade.amount_out),
                protocol_fee=Decimal(trade.protocol_fee),
                platform_fee=Decimal(trade.platform_fee),
                share_fee=Decimal(trade.share_fee),
            )
        )
        if inserted:
            stats.trades_inserted += 1
        else:
            stats.trades_duplicate += 1
            logger.debug("Trade %s already recorded", event.signature)

        mints = MintRepository(session)
        if await mints.insert_placeholder(mint=mint_address, pool_state=pool_state, platform_config=platform_config):
            stats.placeholders_created += 1
            logger.info("Mint %s not found for pool %s; placeholder created", mint_address, pool_state)

        await mints.apply_trade_state(
            mint_address,
            virtual_base=trade.virtual_base,
            virtual_quote=trade.virtual_quote,
            real_base=trade.real_base_after,
            real_quote=trade.real_quote_after,
            pool_status=trade.pool_status.value,
            signature=event.signature,
            block_time=block_time,
        )
        if await mints.advance_last_trade(
            mint_address,
            slot=event.slot,
            trade_id=trade_id,
            inclusive=source.inclusive_guard,
        ):
            stats.pointers_advanced += 1

        if inserted:
            stats.klines_updated += await self._fold_klines(session, mint_address, event, trade)

    async def _fold_klines(
        self,
        session: AsyncSession,
        mint_address: str,
        event: ExtractedEvent,
        trade: TradeEvent,
    ) -> int:
        if not self._kline_intervals:
            return 0
        block_time = event.block_datetime
        price = trade_price(trade)
        if block_time is None or price is None:
            return 0

        repo = KlineRepository(session)
        for interval, seconds in self._kline_intervals.items():
            await repo.upsert_trade(
                mint=mint_address,
                interval=interval,
                bucket_start=bucket_start(block_time, seconds),
                slot=event.slot,
                price=price,
                base_volume=Decimal(trade.base_amount),
                quote_volume=Decimal(trade.quote_amount),
            )
        return len(self._kline_intervals)


__all__ = [
    "EventProjector",
    "ProjectionStats",
    "SyncSource",
    "bucket_start",
    "trade_price",
]
