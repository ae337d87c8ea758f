"""Repository pattern implementations for data access.

This module provides data access abstractions for sync ranges, mint
projections, trades, processing errors and klines. Every repository wraps
one ``AsyncSession``; committing is the caller's responsibility.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import aliased

from launchpad_indexer.storage.models import (
    KlineModel,
    MintModel,
    ProcessingErrorModel,
    SyncRangeModel,
    TradeModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _to_decimal(value: int | Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(value)


def _dialect_insert(session: AsyncSession, model: type[Any]) -> Any:
    """Dialect-specific INSERT supporting ON CONFLICT clauses."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise RuntimeError(f"Unsupported database dialect: {dialect}")


async def _insert_ignore(session: AsyncSession, model: type[Any], values: dict[str, Any], *, key: list[str]) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING; returns True when a row was written."""
    stmt = _dialect_insert(session, model).values(**values).on_conflict_do_nothing(index_elements=key)
    result = await session.execute(stmt)
    await session.flush()
    return bool(result.rowcount)


class SyncRangeStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncRangeKind(str, Enum):
    BACKFILL = "backfill"
    LIVE = "live"


@dataclass
class SyncRangeDTO:
    """Data transfer object for sync ranges."""

    id: int
    start_tx: str
    end_tx: str
    status: SyncRangeStatus
    kind: SyncRangeKind
    processed_tx: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SyncRangeModel) -> SyncRangeDTO:
        return cls(
            id=model.id,
            start_tx=model.start_tx,
            end_tx=model.end_tx,
            status=SyncRangeStatus(model.status),
            kind=SyncRangeKind(model.kind),
            processed_tx=model.processed_tx,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


class SyncRangeRepository:
    """Durable ledger of sync ranges.

    Claims are atomic conditional updates: only one caller can move a
    given range from ``pending`` to ``processing``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, range_id: int) -> SyncRangeDTO | None:
        result = await self.session.execute(select(SyncRangeModel).where(SyncRangeModel.id == range_id))
        model = result.scalar_one_or_none()
        return SyncRangeDTO.from_model(model) if model else None

    async def create(
        self,
        start_tx: str,
        end_tx: str,
        *,
        status: SyncRangeStatus = SyncRangeStatus.PENDING,
        kind: SyncRangeKind = SyncRangeKind.BACKFILL,
        processed_tx: str | None = None,
    ) -> SyncRangeDTO:
        now = datetime.now(UTC)
        model = SyncRangeModel(
            start_tx=start_tx,
            end_tx=end_tx,
            status=status.value,
            kind=kind.value,
            processed_tx=processed_tx,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        await self.session.flush()
        return SyncRangeDTO.from_model(model)

    async def next_pending(self) -> SyncRangeDTO | None:
        """Oldest pending range by creation time."""
        result = await self.session.execute(
            select(SyncRangeModel)
            .where(SyncRangeModel.status == SyncRangeStatus.PENDING.value)
            .order_by(SyncRangeModel.created_at.asc(), SyncRangeModel.id.asc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return SyncRangeDTO.from_model(model) if model else None

    async def claim(self, range_id: int) -> bool:
        """Move a pending range to processing; False if someone else got it."""
        result = await self.session.execute(
            update(SyncRangeModel)
            .where(
                (SyncRangeModel.id == range_id)
                & (SyncRangeModel.status == SyncRangeStatus.PENDING.value)
            )
            .values(status=SyncRangeStatus.PROCESSING.value, updated_at=datetime.now(UTC))
        )
        await self.session.flush()
        return result.rowcount == 1

    async def claim_next_pending(self) -> SyncRangeDTO | None:
        candidate = await self.next_pending()
        if candidate is None:
            return None
        if not await self.claim(candidate.id):
            logger.debug("Sync range %d already claimed by another worker", candidate.id)
            return None
        candidate.status = SyncRangeStatus.PROCESSING
        return candidate

    async def checkpoint(self, range_id: int, processed_tx: str) -> None:
        await self.session.execute(
            update(SyncRangeModel)
            .where(SyncRangeModel.id == range_id)
            .values(processed_tx=processed_tx, updated_at=datetime.now(UTC))
        )
        await self.session.flush()

    async def extend_live(self, range_id: int, signature: str) -> None:
        """Advance a live range's upper bound to the newest processed signature."""
        await self.session.execute(
            update(SyncRangeModel)
            .where(SyncRangeModel.id == range_id)
            .values(end_tx=signature, processed_tx=signature, updated_at=datetime.now(UTC))
        )
        await self.session.flush()

    async def _finish(self, range_id: int, status: SyncRangeStatus) -> bool:
        result = await self.session.execute(
            update(SyncRangeModel)
            .where(
                (SyncRangeModel.id == range_id)
                & (SyncRangeModel.status == SyncRangeStatus.PROCESSING.value)
            )
            .values(status=status.value, updated_at=datetime.now(UTC))
        )
        await self.session.flush()
        return result.rowcount == 1

    async def mark_completed(self, range_id: int) -> bool:
        return await self._finish(range_id, SyncRangeStatus.COMPLETED)

    async def mark_failed(self, range_id: int) -> bool:
        return await self._finish(range_id, SyncRangeStatus.FAILED)

    async def latest_updated(self, limit: int = 2) -> list[SyncRangeDTO]:
        """Most recently updated ranges, newest first.

        Re-filed ranges (same bounds as an older range) are left out since
        they cover no new span.
        """
        older = aliased(SyncRangeModel)
        refiled = (
            select(older.id)
            .where(
                (older.start_tx == SyncRangeModel.start_tx)
                & (older.end_tx == SyncRangeModel.end_tx)
                & (older.id < SyncRangeModel.id)
            )
            .exists()
        )
        result = await self.session.execute(
            select(SyncRangeModel)
            .where(~refiled)
            .order_by(SyncRangeModel.updated_at.desc(), SyncRangeModel.id.desc())
            .limit(limit)
        )
        return [SyncRangeDTO.from_model(m) for m in result.scalars().all()]

    async def exists_with_bounds(self, start_tx: str, end_tx: str) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(SyncRangeModel)
            .where((SyncRangeModel.start_tx == start_tx) & (SyncRangeModel.end_tx == end_tx))
        )
        return int(result.scalar_one()) > 0

    async def list_all(self) -> list[SyncRangeDTO]:
        result = await self.session.execute(select(SyncRangeModel).order_by(SyncRangeModel.id.asc()))
        return [SyncRangeDTO.from_model(m) for m in result.scalars().all()]

    async def list_recoverable(self, *, stale_before: datetime) -> list[SyncRangeDTO]:
        """Failed backfill ranges, and processing ones without progress since ``stale_before``."""
        result = await self.session.execute(
            select(SyncRangeModel)
            .where(
                (SyncRangeModel.kind == SyncRangeKind.BACKFILL.value)
                & (
                    (SyncRangeModel.status == SyncRangeStatus.FAILED.value)
                    | (
                        (SyncRangeModel.status == SyncRangeStatus.PROCESSING.value)
                        & (SyncRangeModel.updated_at < stale_before)
                    )
                )
            )
            .order_by(SyncRangeModel.id.asc())
        )
        return [SyncRangeDTO.from_model(m) for m in result.scalars().all()]

    async def has_newer_with_bounds(self, range_id: int, start_tx: str, end_tx: str) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(SyncRangeModel)
            .where(
                (SyncRangeModel.id > range_id)
                & (SyncRangeModel.start_tx == start_tx)
                & (SyncRangeModel.end_tx == end_tx)
            )
        )
        return int(result.scalar_one()) > 0


@dataclass
class MintDTO:
    """Data transfer object for mint (pool) projections."""

    mint: str
    pool_state: str
    platform_config: str | None = None
    creator: str | None = None
    config: str | None = None
    name: str | None = None
    symbol: str | None = None
    uri: str | None = None
    decimals: int | None = None
    curve_type: str | None = None
    supply: Decimal | None = None
    total_base_sell: Decimal | None = None
    total_quote_fund_raising: Decimal | None = None
    migrate_type: int | None = None
    total_locked_amount: Decimal | None = None
    cliff_period: Decimal | None = None
    unlock_period: Decimal | None = None
    created_signature: str | None = None
    created_slot: int | None = None
    created_block_time: datetime | None = None
    virtual_base: Decimal = Decimal(0)
    virtual_quote: Decimal = Decimal(0)
    real_base: Decimal = Decimal(0)
    real_quote: Decimal = Decimal(0)
    pool_status: str = "Fund"
    last_trade_slot: int | None = None
    last_trade_id: int | None = None
    updated_signature: str | None = None
    updated_block_time: datetime | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.created_signature is None

    @classmethod
    def from_model(cls, model: MintModel) -> MintDTO:
        return cls(
            mint=model.mint,
            pool_state=model.pool_state,
            platform_config=model.platform_config,
            creator=model.creator,
            config=model.config,
            name=model.name,
            symbol=model.symbol,
            uri=model.uri,
            decimals=model.decimals,
            curve_type=model.curve_type,
            supply=model.supply,
            total_base_sell=model.total_base_sell,
            total_quote_fund_raising=model.total_quote_fund_raising,
            migrate_type=model.migrate_type,
            total_locked_amount=model.total_locked_amount,
            cliff_period=model.cliff_period,
            unlock_period=model.unlock_period,
            created_signature=model.created_signature,
            created_slot=model.created_slot,
            created_block_time=model.created_block_time,
            virtual_base=model.virtual_base,
            virtual_quote=model.virtual_quote,
            real_base=model.real_base,
            real_quote=model.real_quote,
            pool_status=model.pool_status,
            last_trade_slot=model.last_trade_slot,
            last_trade_id=model.last_trade_id,
            updated_signature=model.updated_signature,
            updated_block_time=model.updated_block_time,
        )


_CREATION_FIELDS = (
    "pool_state",
    "platform_config",
    "creator",
    "config",
    "name",
    "symbol",
    "uri",
    "decimals",
    "curve_type",
    "supply",
    "total_base_sell",
    "total_quote_fund_raising",
    "migrate_type",
    "total_locked_amount",
    "cliff_period",
    "unlock_period",
    "created_signature",
    "created_slot",
    "created_block_time",
)


class MintRepository:
    """Repository for mint projections."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, mint: str) -> MintDTO | None:
        result = await self.session.execute(select(MintModel).where(MintModel.mint == mint))
        model = result.scalar_one_or_none()
        return MintDTO.from_model(model) if model else None

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(MintModel))
        return int(result.scalar_one())

    async def insert_created(self, dto: MintDTO) -> bool:
        """Insert a newly created mint; no-op if the key exists."""
        now = datetime.now(UTC)
        values = {name: getattr(dto, name) for name in _CREATION_FIELDS}
        values.update(
            mint=dto.mint,
            virtual_base=Decimal(0),
            virtual_quote=Decimal(0),
            real_base=Decimal(0),
            real_quote=Decimal(0),
            pool_status=dto.pool_status,
            created_at=now,
            updated_at=now,
        )
        return await _insert_ignore(self.session, MintModel, values, key=["mint"])

    async def fill_placeholder(self, dto: MintDTO) -> bool:
        """Write creation metadata onto a placeholder row, keeping trade-derived state."""
        values = {name: getattr(dto, name) for name in _CREATION_FIELDS}
        result = await self.session.execute(
            update(MintModel)
            .where((MintModel.mint == dto.mint) & (MintModel.created_signature.is_(None)))
            .values(**values, updated_at=datetime.now(UTC))
        )
        await self.session.flush()
        return result.rowcount == 1

    async def insert_placeholder(self, *, mint: str, pool_state: str, platform_config: str | None) -> bool:
        now = datetime.now(UTC)
        return await _insert_ignore(
            self.session,
            MintModel,
            {
                "mint": mint,
                "pool_state": pool_state,
                "platform_config": platform_config,
                "virtual_base": Decimal(0),
                "virtual_quote": Decimal(0),
                "real_base": Decimal(0),
                "real_quote": Decimal(0),
                "pool_status": "Fund",
                "created_at": now,
                "updated_at": now,
            },
            key=["mint"],
        )

    async def apply_trade_state(
        self,
        mint: str,
        *,
        virtual_base: int,
        virtual_quote: int,
        real_base: int,
        real_quote: int,
        pool_status: str,
        signature: str,
        block_time: datetime | None,
    ) -> None:
        await self.session.execute(
            update(MintModel)
            .where(MintModel.mint == mint)
            .values(
                virtual_base=_to_decimal(virtual_base),
                virtual_quote=_to_decimal(virtual_quote),
                real_base=_to_decimal(real_base),
                real_quote=_to_decimal(real_quote),
                pool_status=pool_status,
                updated_signature=signature,
                updated_block_time=block_time,
                updated_at=datetime.now(UTC),
            )
        )
        await self.session.flush()

    async def advance_last_trade(self, mint: str, *, slot: int, trade_id: int, inclusive: bool) -> bool:
        """Move the last-trade pointer forward under the monotonic guard.

        ``inclusive`` accepts a slot equal to the stored one (``<=``);
        otherwise the stored slot must be strictly lower (``<``).
        """
        guard = MintModel.last_trade_slot <= slot if inclusive else MintModel.last_trade_slot < slot
        result = await self.session.execute(
            update(MintModel)
            .where((MintModel.mint == mint) & (MintModel.last_trade_slot.is_(None) | guard))
            .values(last_trade_slot=slot, last_trade_id=trade_id)
        )
        await self.session.flush()
        return result.rowcount == 1


@dataclass
class TradeDTO:
    """Data transfer object for trades."""

    signature: str
    mint: str
    pool_state: str
    slot: int
    trade_direction: str
    pool_status: str
    total_base_sell: Decimal
    virtual_base: Decimal
    virtual_quote: Decimal
    real_base_before: Decimal
    real_quote_before: Decimal
    real_base_after: Decimal
    real_quote_after: Decimal
    amount_in: Decimal
    amount_out: Decimal
    protocol_fee: Decimal
    platform_fee: Decimal
    share_fee: Decimal
    user: str | None = None
    platform_config: str | None = None
    block_time: datetime | None = None
    id: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: TradeModel) -> TradeDTO:
        return cls(
            id=model.id,
            signature=model.signature,
            mint=model.mint,
            pool_state=model.pool_state,
            user=model.user,
            platform_config=model.platform_config,
            slot=model.slot,
            block_time=model.block_time,
            trade_direction=model.trade_direction,
            pool_status=model.pool_status,
            total_base_sell=model.total_base_sell,
            virtual_base=model.virtual_base,
            virtual_quote=model.virtual_quote,
            real_base_before=model.real_base_before,
            real_quote_before=model.real_quote_before,
            real_base_after=model.real_base_after,
            real_quote_after=model.real_quote_after,
            amount_in=model.amount_in,
            amount_out=model.amount_out,
            protocol_fee=model.protocol_fee,
            platform_fee=model.platform_fee,
            share_fee=model.share_fee,
            created_at=model.created_at,
        )


class TradeRepository:
    """Repository for the append-only trade log."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_signature(self, signature: str) -> TradeDTO | None:
        result = await self.session.execute(select(TradeModel).where(TradeModel.signature == signature))
        model = result.scalar_one_or_none()
        return TradeDTO.from_model(model) if model else None

    async def insert_if_absent(self, dto: TradeDTO) -> tuple[int, bool]:
        """Insert by signature (idempotent ingestion).

        Returns:
            The stored row id and whether this call wrote it.
        """
        values = {
            "signature": dto.signature,
            "mint": dto.mint,
            "pool_state": dto.pool_state,
            "user": dto.user,
            "platform_config": dto.platform_config,
            "slot": dto.slot,
            "block_time": dto.block_time,
            "trade_direction": dto.trade_direction,
            "pool_status": dto.pool_status,
            "total_base_sell": dto.total_base_sell,
            "virtual_base": dto.virtual_base,
            "virtual_quote": dto.virtual_quote,
            "real_base_before": dto.real_base_before,
            "real_quote_before": dto.real_quote_before,
            "real_base_after": dto.real_base_after,
            "real_quote_after": dto.real_quote_after,
            "amount_in": dto.amount_in,
            "amount_out": dto.amount_out,
            "protocol_fee": dto.protocol_fee,
            "platform_fee": dto.platform_fee,
            "share_fee": dto.share_fee,
            "created_at": datetime.now(UTC),
        }
        inserted = await _insert_ignore(self.session, TradeModel, values, key=["signature"])
        result = await self.session.execute(select(TradeModel.id).where(TradeModel.signature == dto.signature))
        return int(result.scalar_one()), inserted

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(TradeModel))
        return int(result.scalar_one())

    async def list_for_mint(self, mint: str, *, limit: int = 100) -> list[TradeDTO]:
        result = await self.session.execute(
            select(TradeModel)
            .where(TradeModel.mint == mint)
            .order_by(TradeModel.slot.desc(), TradeModel.id.desc())
            .limit(limit)
        )
        return [TradeDTO.from_model(m) for m in result.scalars().all()]


@dataclass
class ProcessingErrorDTO:
    signature: str
    source: str
    stage: str
    error_type: str
    message: str
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: ProcessingErrorModel) -> ProcessingErrorDTO:
        return cls(
            signature=model.signature,
            source=model.source,
            stage=model.stage,
            error_type=model.error_type,
            message=model.message,
            created_at=model.created_at,
        )


class ProcessingErrorRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_many(self, errors: list[ProcessingErrorDTO]) -> None:
        if not errors:
            return
        rows = [
            {
                "signature": e.signature,
                "source": e.source,
                "stage": e.stage,
                "error_type": e.error_type,
                "message": e.message,
                "created_at": e.created_at or datetime.now(UTC),
            }
            for e in errors
        ]
        await self.session.execute(sa.insert(ProcessingErrorModel), rows)
        await self.session.flush()

    async def list_for_signature(self, signature: str) -> list[ProcessingErrorDTO]:
        result = await self.session.execute(
            select(ProcessingErrorModel)
            .where(ProcessingErrorModel.signature == signature)
            .order_by(ProcessingErrorModel.id.asc())
        )
        return [ProcessingErrorDTO.from_model(m) for m in result.scalars().all()]

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(ProcessingErrorModel))
        return int(result.scalar_one())


@dataclass
class KlineDTO:
    mint: str
    interval: str
    bucket_start: datetime
    first_trade_slot: int
    last_trade_slot: int
    open_price: Decimal
    high_price: Decimal
    low_price: Decimal
    close_price: Decimal
    base_volume: Decimal
    quote_volume: Decimal
    trade_count: int

    @classmethod
    def from_model(cls, model: KlineModel) -> KlineDTO:
        return cls(
            mint=model.mint,
            interval=model.interval,
            bucket_start=model.bucket_start,
            first_trade_slot=model.first_trade_slot,
            last_trade_slot=model.last_trade_slot,
            open_price=model.open_price,
            high_price=model.high_price,
            low_price=model.low_price,
            close_price=model.close_price,
            base_volume=model.base_volume,
            quote_volume=model.quote_volume,
            trade_count=model.trade_count,
        )


class KlineRepository:
    """Repository for per-mint OHLC candles."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, *, mint: str, interval: str, bucket_start: datetime) -> KlineDTO | None:
        result = await self.session.execute(
            select(KlineModel).where(
                (KlineModel.mint == mint)
                & (KlineModel.interval == interval)
                & (KlineModel.bucket_start == bucket_start)
            )
        )
        model = result.scalar_one_or_none()
        return KlineDTO.from_model(model) if model else None

    async def upsert_trade(
        self,
        *,
        mint: str,
        interval: str,
        bucket_start: datetime,
        slot: int,
        price: Decimal,
        base_volume: Decimal,
        quote_volume: Decimal,
    ) -> KlineDTO:
        """Fold one trade into its candle with a single atomic upsert.

        Open and close follow slot order; on conflict every column is
        computed from the stored row and the incoming trade in SQL.
        """
        if bucket_start.tzinfo is None:
            raise ValueError("bucket_start must be timezone-aware")
        now = datetime.now(UTC)
        stmt = _dialect_insert(self.session, KlineModel).values(
            mint=mint,
            interval=interval,
            bucket_start=bucket_start,
            first_trade_slot=slot,
            last_trade_slot=slot,
            open_price=price,
            high_price=price,
            low_price=price,
            close_price=price,
            base_volume=base_volume,
            quote_volume=quote_volume,
            trade_count=1,
            created_at=now,
            updated_at=now,
        )
        new = stmt.excluded
        opens_earlier = new.first_trade_slot < KlineModel.first_trade_slot
        closes_later = new.last_trade_slot >= KlineModel.last_trade_slot
        stmt = stmt.on_conflict_do_update(
            index_elements=["mint", "interval", "bucket_start"],
            set_={
                "first_trade_slot": sa.case((opens_earlier, new.first_trade_slot), else_=KlineModel.first_trade_slot),
                "open_price": sa.case((opens_earlier, new.open_price), else_=KlineModel.open_price),
                "last_trade_slot": sa.case((closes_later, new.last_trade_slot), else_=KlineModel.last_trade_slot),
                "close_price": sa.case((closes_later, new.close_price), else_=KlineModel.close_price),
                "high_price": sa.case(
                    (new.high_price > KlineModel.high_price, new.high_price), else_=KlineModel.high_price
                ),
                "low_price": sa.case((new.low_price < KlineModel.low_price, new.low_price), else_=KlineModel.low_price),
                "base_volume": KlineModel.base_volume + new.base_volume,
                "quote_volume": KlineModel.quote_volume + new.quote_volume,
                "trade_count": KlineModel.trade_count + 1,
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)

        result = await self.session.execute(
            select(KlineModel)
            .where(
                (KlineModel.mint == mint)
                & (KlineModel.interval == interval)
                & (KlineModel.bucket_start == bucket_start)
            )
            .execution_options(populate_existing=True)
        )
        return KlineDTO.from_model(result.scalar_one())

    async def list_series(self, *, mint: str, interval: str, limit: int = 500) -> list[KlineDTO]:
        result = await self.session.execute(
            select(KlineModel)
            .where((KlineModel.mint == mint) & (KlineModel.interval == interval))
            .order_by(KlineModel.bucket_start.asc())
            .limit(limit)
        )
        return [KlineDTO.from_model(m) for m in result.scalars().all()]
