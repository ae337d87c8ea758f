"""SQLAlchemy models for persistent storage.

This module defines the database schema for sync ranges, mint (pool)
projections, the trade log, processing errors and OHLC klines.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Base58 signatures are at most 88 characters, addresses at most 44.
SIGNATURE_LENGTH = 88
ADDRESS_LENGTH = 44


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class SyncRangeModel(Base):
    """A claimed span of program history and its processing status."""

    __tablename__ = "sync_ranges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    start_tx: Mapped[str] = mapped_column(String(SIGNATURE_LENGTH), nullable=False)
    end_tx: Mapped[str] = mapped_column(String(SIGNATURE_LENGTH), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # pending/processing/completed/failed
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="backfill")  # backfill/live
    processed_tx: Mapped[str | None] = mapped_column(String(SIGNATURE_LENGTH), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_sync_ranges_status_created", "status", "created_at"),
        Index("idx_sync_ranges_updated", "updated_at"),
    )


class MintModel(Base):
    """Pool state for one launched mint (creation metadata plus running reserves)."""

    __tablename__ = "mints"

    mint: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), primary_key=True)
    pool_state: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    platform_config: Mapped[str | None] = mapped_column(String(ADDRESS_LENGTH), nullable=True)

    # Creation metadata; NULL on placeholder rows until the PoolCreateEvent is projected.
    creator: Mapped[str | None] = mapped_column(String(ADDRESS_LENGTH), nullable=True)
    config: Mapped[str | None] = mapped_column(String(ADDRESS_LENGTH), nullable=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    symbol: Mapped[str | None] = mapped_column(String(50), nullable=True)
    uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    decimals: Mapped[int | None] = mapped_column(Integer, nullable=True)
    curve_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    supply: Mapped[Decimal | None] = mapped_column(Numeric(40, 0), nullable=True)
    total_base_sell: Mapped[Decimal | None] = mapped_column(Numeric(40, 0), nullable=True)
    total_quote_fund_raising: Mapped[Decimal | None] = mapped_column(Numeric(40, 0), nullable=True)
    migrate_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_locked_amount: Mapped[Decimal | None] = mapped_column(Numeric(40, 0), nullable=True)
    cliff_period: Mapped[Decimal | None] = mapped_column(Numeric(40, 0), nullable=True)
    unlock_period: Mapped[Decimal | None] = mapped_column(Numeric(40, 0), nullable=True)
    created_signature: Mapped[str | None] = mapped_column(String(SIGNATURE_LENGTH), nullable=True)
    created_slot: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_block_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Running state folded from trades.
    virtual_base: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False, default=Decimal(0))
    virtual_quote: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False, default=Decimal(0))
    real_base: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False, default=Decimal(0))
    real_quote: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False, default=Decimal(0))
    pool_status: Mapped[str] = mapped_column(String(10), nullable=False, default="Fund")
    last_trade_slot: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_trade_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_signature: Mapped[str | None] = mapped_column(String(SIGNATURE_LENGTH), nullable=True)
    updated_block_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_mints_pool_state", "pool_state"),
        Index("idx_mints_creator", "creator"),
    )


class TradeModel(Base):
    """Executed bonding-curve trades (append-only, one per signature)."""

    __tablename__ = "trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    signature: Mapped[str] = mapped_column(String(SIGNATURE_LENGTH), nullable=False, unique=True)
    mint: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    pool_state: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), nullable=False)
    user: Mapped[str | None] = mapped_column(String(ADDRESS_LENGTH), nullable=True)
    platform_config: Mapped[str | None] = mapped_column(String(ADDRESS_LENGTH), nullable=True)
    slot: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    trade_direction: Mapped[str] = mapped_column(String(4), nullable=False)  # Buy/Sell
    pool_status: Mapped[str] = mapped_column(String(10), nullable=False)

    total_base_sell: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    virtual_base: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    virtual_quote: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    real_base_before: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    real_quote_before: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    real_base_after: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    real_quote_after: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    amount_in: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    amount_out: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    protocol_fee: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    share_fee: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_trades_mint_slot", "mint", "slot"),
        Index("idx_trades_user", "user"),
    )


class ProcessingErrorModel(Base):
    """Per-signature processing errors (strict, non-silent failures)."""

    __tablename__ = "processing_errors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    signature: Mapped[str] = mapped_column(String(SIGNATURE_LENGTH), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)  # backfill/realtime
    stage: Mapped[str] = mapped_column(String(40), nullable=False)  # fetch/project
    error_type: Mapped[str] = mapped_column(String(80), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_processing_errors_signature", "signature"),)


class KlineModel(Base):
    """Per-mint OHLC candles derived from trades."""

    __tablename__ = "klines"

    mint: Mapped[str] = mapped_column(String(ADDRESS_LENGTH), primary_key=True)
    interval: Mapped[str] = mapped_column(String(8), primary_key=True)
    bucket_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)

    first_trade_slot: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_trade_slot: Mapped[int] = mapped_column(BigInteger, nullable=False)

    open_price: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)
    high_price: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)
    low_price: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)
    close_price: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)
    base_volume: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    quote_volume: Mapped[Decimal] = mapped_column(Numeric(40, 0), nullable=False)
    trade_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("idx_klines_mint_interval_bucket", "mint", "interval", "bucket_start"),)
