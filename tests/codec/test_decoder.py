"""Tests for instruction and event decoding."""

import pytest

from launchpad_indexer.codec.decoder import EVENT_IX_TAG, Decoder
from launchpad_indexer.codec.events import (
    CurveKind,
    PoolCreateEvent,
    PoolStatus,
    TradeDirection,
    TradeEvent,
)
from launchpad_indexer.codec.idl import event_discriminator, instruction_discriminator
from launchpad_indexer.codec.layout import EnumValue

POOL_STATE = "ECnREgF2Lrn8LRFV948X18EQfJidgBJSmkv4zZYZ8Wv3"


class TestDecodeInstruction:
    """Tests for Decoder.decode_instruction."""

    def test_buy_exact_in(self, decoder: Decoder) -> None:
        data = decoder.encode_instruction(
            "buy_exact_in",
            {"amount_in": 1_000_000_000, "minimum_amount_out": 5, "share_fee_rate": 0},
        )
        assert data[:8] == instruction_discriminator("buy_exact_in")

        decoded = decoder.decode_instruction(data)
        assert decoded is not None
        assert decoded.name == "buy_exact_in"
        assert decoded.args == {"amount_in": 1_000_000_000, "minimum_amount_out": 5, "share_fee_rate": 0}

    def test_initialize(self, decoder: Decoder, chain) -> None:
        payload = chain.pool_create_payload()
        data = decoder.encode_instruction(
            "initialize",
            {
                "base_mint_param": payload["base_mint_param"],
                "curve_param": payload["curve_param"],
                "vesting_param": payload["vesting_param"],
            },
        )
        decoded = decoder.decode_instruction(data)
        assert decoded is not None
        assert decoded.args["base_mint_param"]["symbol"] == "CatBoba"
        assert decoded.args["curve_param"].variant == "Constant"

    @pytest.mark.parametrize(
        "data",
        [None, b"", b"\x01\x02\x03", bytes(8), bytes(range(40))],
    )
    def test_unknown_data_returns_none(self, decoder: Decoder, data) -> None:
        assert decoder.decode_instruction(data) is None

    def test_truncated_args_return_none(self, decoder: Decoder) -> None:
        data = decoder.encode_instruction(
            "sell_exact_in",
            {"amount_in": 1, "minimum_amount_out": 1, "share_fee_rate": 0},
        )
        assert decoder.decode_instruction(data[:-4]) is None


class TestDecodeEvent:
    """Tests for Decoder.decode_event."""

    def test_trade_event(self, decoder: Decoder, chain) -> None:
        data = decoder.encode_event("TradeEvent", chain.trade_payload(direction="Sell", pool_status="Migrate"))
        assert data[:8] == EVENT_IX_TAG
        assert data[8:16] == event_discriminator("TradeEvent")

        decoded = decoder.decode_event(data)
        assert decoded is not None
        assert decoded.name == "TradeEvent"
        assert decoded.payload["pool_state"] == POOL_STATE
        assert decoded.payload["trade_direction"] == "Sell"
        assert decoded.payload["pool_status"] == "Migrate"

    def test_tag_is_not_inspected(self, decoder: Decoder, chain) -> None:
        data = decoder.encode_event("TradeEvent", chain.trade_payload())
        decoded = decoder.decode_event(bytes(8) + data[8:])
        assert decoded is not None
        assert decoded.name == "TradeEvent"

    def test_instruction_data_is_not_an_event(self, decoder: Decoder) -> None:
        data = decoder.encode_instruction(
            "buy_exact_in",
            {"amount_in": 1, "minimum_amount_out": 1, "share_fee_rate": 0},
        )
        assert decoder.decode_event(data) is None

    def test_short_or_unknown(self, decoder: Decoder) -> None:
        assert decoder.decode_event(None) is None
        assert decoder.decode_event(EVENT_IX_TAG) is None
        assert decoder.decode_event(EVENT_IX_TAG + bytes(8)) is None

    def test_truncated_payload_returns_none(self, decoder: Decoder, chain) -> None:
        data = decoder.encode_event("PoolCreateEvent", chain.pool_create_payload())
        assert decoder.decode_event(data[:40]) is None


class TestTypedEvents:
    """Tests for typed event records."""

    def test_pool_create_from_payload(self, decoder: Decoder, chain) -> None:
        decoded = decoder.decode_event(decoder.encode_event("PoolCreateEvent", chain.pool_create_payload()))
        assert decoded is not None

        event = PoolCreateEvent.from_payload(decoded.payload)
        assert event.pool_state == POOL_STATE
        assert event.creator == "AyemPFVkNarEB1ThjYsctH4NLjFzdiXT3zWVviB9LFFN"
        assert event.config == "6s1xP3hpbAfFoNtUNF8mfHsjr2Bd97JxFJRWLbL6aHuX"
        assert event.decimals == 6
        assert event.name == "Cat wif Boba"
        assert event.uri.startswith("https://ipfs.io/ipfs/")
        assert event.curve.kind is CurveKind.CONSTANT
        assert event.curve.supply == 1_000_000_000_000_000
        assert event.curve.total_base_sell == 800_000_000_000_000
        assert event.curve.total_quote_fund_raising == 85_000_000_000
        assert event.curve.migrate_type == 1

    def test_fixed_curve_has_no_base_sell(self, chain) -> None:
        payload = chain.pool_create_payload()
        payload["curve_param"] = EnumValue(
            "Fixed", {"data": {"supply": 10, "total_quote_fund_raising": 20, "migrate_type": 0}}
        )
        event = PoolCreateEvent.from_payload(payload)
        assert event.curve.kind is CurveKind.FIXED
        assert event.curve.total_base_sell is None

    def test_trade_legs(self, chain) -> None:
        buy = TradeEvent.from_payload(chain.trade_payload(amount_in=100, amount_out=4000))
        assert buy.trade_direction is TradeDirection.BUY
        assert buy.pool_status is PoolStatus.FUND
        assert (buy.base_amount, buy.quote_amount) == (4000, 100)

        sell = TradeEvent.from_payload(chain.trade_payload(amount_in=4000, amount_out=90, direction="Sell"))
        assert (sell.base_amount, sell.quote_amount) == (4000, 90)

    def test_unknown_status_rejected(self, chain) -> None:
        with pytest.raises(ValueError):
            TradeEvent.from_payload(chain.trade_payload(pool_status="Paused"))
