"""Typed records for the launchpad events the projector consumes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from launchpad_indexer.codec.layout import EnumValue

POOL_CREATE_EVENT = "PoolCreateEvent"
TRADE_EVENT = "TradeEvent"


class PoolStatus(str, Enum):
    """Bonding-curve lifecycle of a pool."""

    FUND = "Fund"
    MIGRATE = "Migrate"
    TRADE = "Trade"


class TradeDirection(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class CurveKind(str, Enum):
    CONSTANT = "Constant"
    FIXED = "Fixed"
    LINEAR = "Linear"


@dataclass(frozen=True)
class CurveParams:
    kind: CurveKind
    supply: int
    total_quote_fund_raising: int
    migrate_type: int
    total_base_sell: int | None = None

    @classmethod
    def from_payload(cls, value: Any) -> CurveParams:
        if not isinstance(value, EnumValue):
            raise ValueError(f"curve_param must be an enum value, got {value!r}")
        kind = CurveKind(value.variant)
        data = value.fields["data"]
        return cls(
            kind=kind,
            supply=int(data["supply"]),
            total_quote_fund_raising=int(data["total_quote_fund_raising"]),
            migrate_type=int(data["migrate_type"]),
            total_base_sell=int(data["total_base_sell"]) if kind is CurveKind.CONSTANT else None,
        )


@dataclass(frozen=True)
class PoolCreateEvent:
    pool_state: str
    creator: str
    config: str
    decimals: int
    name: str
    symbol: str
    uri: str
    curve: CurveParams
    total_locked_amount: int
    cliff_period: int
    unlock_period: int

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PoolCreateEvent:
        mint = payload["base_mint_param"]
        vesting = payload["vesting_param"]
        return cls(
            pool_state=str(payload["pool_state"]),
            creator=str(payload["creator"]),
            config=str(payload["config"]),
            decimals=int(mint["decimals"]),
            name=str(mint["name"]),
            symbol=str(mint["symbol"]),
            uri=str(mint["uri"]),
            curve=CurveParams.from_payload(payload["curve_param"]),
            total_locked_amount=int(vesting["total_locked_amount"]),
            cliff_period=int(vesting["cliff_period"]),
            unlock_period=int(vesting["unlock_period"]),
        )


@dataclass(frozen=True)
class TradeEvent:
    pool_state: str
    total_base_sell: int
    virtual_base: int
    virtual_quote: int
    real_base_before: int
    real_quote_before: int
    real_base_after: int
    real_quote_after: int
    amount_in: int
    amount_out: int
    protocol_fee: int
    platform_fee: int
    share_fee: int
    trade_direction: TradeDirection
    pool_status: PoolStatus

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TradeEvent:
        return cls(
            pool_state=str(payload["pool_state"]),
            total_base_sell=int(payload["total_base_sell"]),
            virtual_base=int(payload["virtual_base"]),
            virtual_quote=int(payload["virtual_quote"]),
            real_base_before=int(payload["real_base_before"]),
            real_quote_before=int(payload["real_quote_before"]),
            real_base_after=int(payload["real_base_after"]),
            real_quote_after=int(payload["real_quote_after"]),
            amount_in=int(payload["amount_in"]),
            amount_out=int(payload["amount_out"]),
            protocol_fee=int(payload["protocol_fee"]),
            platform_fee=int(payload["platform_fee"]),
            share_fee=int(payload["share_fee"]),
            trade_direction=TradeDirection(payload["trade_direction"]),
            pool_status=PoolStatus(payload["pool_status"]),
        )

    @property
    def base_amount(self) -> int:
        """Base-token leg of the trade."""
        match self.trade_direction:
            case TradeDirection.BUY:
                return self.amount_out
            case TradeDirection.SELL:
                return self.amount_in

    @property
    def quote_amount(self) -> int:
        """Quote-token leg of the trade."""
        match self.trade_direction:
            case TradeDirection.BUY:
                return self.amount_in
            case TradeDirection.SELL:
                return self.amount_out
