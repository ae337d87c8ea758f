"""Initial schema: sync ranges, mints, trades, processing errors, klines.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SIGNATURE = sa.String(88)
ADDRESS = sa.String(44)
U64 = sa.Numeric(40, 0)
PRICE = sa.Numeric(38, 18)


def upgrade() -> None:
    op.create_table(
        "sync_ranges",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("start_tx", SIGNATURE, nullable=False),
        sa.Column("end_tx", SIGNATURE, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("processed_tx", SIGNATURE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_sync_ranges_status_created", "sync_ranges", ["status", "created_at"])
    op.create_index("idx_sync_ranges_updated", "sync_ranges", ["updated_at"])

    op.create_table(
        "mints",
        sa.Column("mint", ADDRESS, nullable=False),
        sa.Column("pool_state", ADDRESS, nullable=False),
        sa.Column("platform_config", ADDRESS, nullable=True),
        sa.Column("creator", ADDRESS, nullable=True),
        sa.Column("config", ADDRESS, nullable=True),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("symbol", sa.String(50), nullable=True),
        sa.Column("uri", sa.Text(), nullable=True),
        sa.Column("decimals", sa.Integer(), nullable=True),
        sa.Column("curve_type", sa.String(20), nullable=True),
        sa.Column("supply", U64, nullable=True),
        sa.Column("total_base_sell", U64, nullable=True),
        sa.Column("total_quote_fund_raising", U64, nullable=True),
        sa.Column("migrate_type", sa.Integer(), nullable=True),
        sa.Column("total_locked_amount", U64, nullable=True),
        sa.Column("cliff_period", U64, nullable=True),
        sa.Column("unlock_period", U64, nullable=True),
        sa.Column("created_signature", SIGNATURE, nullable=True),
        sa.Column("created_slot", sa.BigInteger(), nullable=True),
        sa.Column("created_block_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("virtual_base", U64, nullable=False),
        sa.Column("virtual_quote", U64, nullable=False),
        sa.Column("real_base", U64, nullable=False),
        sa.Column("real_quote", U64, nullable=False),
        sa.Column("pool_status", sa.String(10), nullable=False),
        sa.Column("last_trade_slot", sa.BigInteger(), nullable=True),
        sa.Column("last_trade_id", sa.Integer(), nullable=True),
        sa.Column("updated_signature", SIGNATURE, nullable=True),
        sa.Column("updated_block_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("mint"),
    )
    op.create_index("idx_mints_pool_state", "mints", ["pool_state"])
    op.create_index("idx_mints_creator", "mints", ["creator"])

    op.create_table(
        "trades",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("signature", SIGNATURE, nullable=False),
        sa.Column("mint", ADDRESS, nullable=False),
        sa.Column("pool_state", ADDRESS, nullable=False),
        sa.Column("user", ADDRESS, nullable=True),
        sa.Column("platform_config", ADDRESS, nullable=True),
        sa.Column("slot", sa.BigInteger(), nullable=False),
        sa.Column("block_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trade_direction", sa.String(4), nullable=False),
        sa.Column("pool_status", sa.String(10), nullable=False),
        sa.Column("total_base_sell", U64, nullable=False),
        sa.Column("virtual_base", U64, nullable=False),
        sa.Column("virtual_quote", U64, nullable=False),
        sa.Column("real_base_before", U64, nullable=False),
        sa.Column("real_quote_before", U64, nullable=False),
        sa.Column("real_base_after", U64, nullable=False),
        sa.Column("real_quote_after", U64, nullable=False),
        sa.Column("amount_in", U64, nullable=False),
        sa.Column("amount_out", U64, nullable=False),
        sa.Column("protocol_fee", U64, nullable=False),
        sa.Column("platform_fee", U64, nullable=False),
        sa.Column("share_fee", U64, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("signature"),
    )
    op.create_index("idx_trades_mint_slot", "trades", ["mint", "slot"])
    op.create_index("idx_trades_user", "trades", ["user"])

    op.create_table(
        "processing_errors",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("signature", SIGNATURE, nullable=False),
        sa.Column("source", sa.String(20), nullable=False),
        sa.Column("stage", sa.String(40), nullable=False),
        sa.Column("error_type", sa.String(80), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_processing_errors_signature", "processing_errors", ["signature"])

    op.create_table(
        "klines",
        sa.Column("mint", ADDRESS, nullable=False),
        sa.Column("interval", sa.String(8), nullable=False),
        sa.Column("bucket_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("first_trade_slot", sa.BigInteger(), nullable=False),
        sa.Column("last_trade_slot", sa.BigInteger(), nullable=False),
        sa.Column("open_price", PRICE, nullable=False),
        sa.Column("high_price", PRICE, nullable=False),
        sa.Column("low_price", PRICE, nullable=False),
        sa.Column("close_price", PRICE, nullable=False),
        sa.Column("base_volume", U64, nullable=False),
        sa.Column("quote_volume", U64, nullable=False),
        sa.Column("trade_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("mint", "interval", "bucket_start"),
    )
    op.create_index("idx_klines_mint_interval_bucket", "klines", ["mint", "interval", "bucket_start"])


def downgrade() -> None:
    op.drop_index("idx_klines_mint_interval_bucket", table_name="klines")
    op.drop_table("klines")
    op.drop_index("idx_processing_errors_signature", table_name="processing_errors")
    op.drop_table("processing_errors")
    op.drop_index("idx_trades_user", table_name="trades")
    op.drop_index("idx_trades_mint_slot", table_name="trades")
    op.drop_table("trades")
    op.drop_index("idx_mints_creator", table_name="mints")
    op.drop_index("idx_mints_pool_state", table_name="mints")
    op.drop_table("mints")
    op.drop_index("idx_sync_ranges_updated", table_name="sync_ranges")
    op.drop_index("idx_sync_ranges_status_created", table_name="sync_ranges")
    op.drop_table("sync_ranges")
