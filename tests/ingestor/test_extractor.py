"""Tests for transaction event extraction."""

import pytest

from launchpad_indexer.codec.decoder import Decoder
from launchpad_indexer.ingestor.extractor import EventExtractor
from launchpad_indexer.ingestor.models import RawTransaction

PROGRAM_ID = "LanMV9sAd7wArD4vJFi2qDdfnVhFxYSUg6eADduJ3uj"
PLATFORM_CONFIG = "FfYek5vEz23cMkWsdJwG2oa6EphsvXSHrGpdALN4g6W1"
FIXTURE_SIGNATURE = "4EEjxchJQhYtrfDBckUTt5PEXwuRsYbsMuBFHDtmGo6ECgrgDNQCcq5AernFHn5kTZwNKndjDxxABPNdZcoztqAq"


@pytest.fixture
def extractor(decoder: Decoder) -> EventExtractor:
    return EventExtractor(decoder, program_id=PROGRAM_ID)


class TestTopLevelInstructions:
    """Tests for launchpad instructions invoked at the top level."""

    def test_pool_creation_with_first_buy(self, extractor: EventExtractor, chain) -> None:
        events = extractor.extract(chain.launch_transaction())

        assert [e.event_type for e in events] == ["PoolCreateEvent", "TradeEvent"]
        created, trade = events
        assert created.signature == FIXTURE_SIGNATURE
        assert created.instruction == "initialize"
        assert created.payload["pool_state"] == "ECnREgF2Lrn8LRFV948X18EQfJidgBJSmkv4zZYZ8Wv3"
        assert created.payload["creator"] == "AyemPFVkNarEB1ThjYsctH4NLjFzdiXT3zWVviB9LFFN"
        assert created.payload["config"] == "6s1xP3hpbAfFoNtUNF8mfHsjr2Bd97JxFJRWLbL6aHuX"
        assert created.payload["base_mint_param"]["decimals"] == 6
        assert created.payload["base_mint_param"]["name"] == "Cat wif Boba"
        assert created.accounts == tuple(chain.initialize_accounts())

        assert trade.instruction == "buy_exact_in"
        assert trade.slot == 330_000_000
        assert trade.accounts[9] == chain.initialize_accounts()[6]

    def test_single_trade(self, extractor: EventExtractor, chain) -> None:
        events = extractor.extract(chain.trade_transaction("sig-1", slot=10, direction="Sell"))
        assert len(events) == 1
        assert events[0].payload["trade_direction"] == "Sell"

    def test_instruction_without_event_is_dropped(self, extractor: EventExtractor, chain) -> None:
        result = chain.rpc_result(
            "sig-2",
            slot=1,
            block_time=None,
            instructions=[chain.buy_ix()],
            inner={0: [chain.parsed_ix("spl-token", "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")]},
        )
        assert extractor.extract(RawTransaction.from_rpc_json("sig-2", result)) == []

    def test_other_program_is_ignored(self, decoder: Decoder, chain) -> None:
        other = EventExtractor(decoder, program_id="11111111111111111111111111111111")
        assert other.extract(chain.launch_transaction()) == []


class TestNestedInstructions:
    """Tests for launchpad instructions composed by another program."""

    def test_event_follows_instruction(self, extractor: EventExtractor, chain) -> None:
        events = extractor.extract(chain.routed_trade_transaction("sig-3", slot=11))

        assert len(events) == 1
        assert events[0].event_type == "TradeEvent"
        assert events[0].instruction == "buy_exact_in"
        assert events[0].slot == 11

    def test_instruction_at_end_of_group(self, extractor: EventExtractor, chain) -> None:
        result = chain.rpc_result(
            "sig-4",
            slot=1,
            block_time=None,
            instructions=[chain.parsed_ix(stack_height=1)],
            inner={0: [chain.buy_ix(stack_height=2)]},
        )
        assert extractor.extract(RawTransaction.from_rpc_json("sig-4", result)) == []

    def test_top_level_events_come_first(self, extractor: EventExtractor, chain) -> None:
        # The routed buy sits in the first inner group, the direct buy's event in the second.
        result = chain.rpc_result(
            "sig-5",
            slot=12,
            block_time=1_744_000_000,
            instructions=[chain.parsed_ix(stack_height=1), chain.buy_ix(payer="DirectBuyer11111111111111111111111111111111")],
            inner={
                0: [
                    chain.buy_ix(stack_height=2, payer="RoutedBuyer11111111111111111111111111111111"),
                    chain.event_ix("TradeEvent", chain.trade_payload(amount_in=7)),
                ],
                1: [chain.event_ix("TradeEvent", chain.trade_payload(amount_in=9))],
            },
        )
        events = extractor.extract(RawTransaction.from_rpc_json("sig-5", result))

        assert [e.accounts[0] for e in events] == [
            "DirectBuyer11111111111111111111111111111111",
            "RoutedBuyer11111111111111111111111111111111",
        ]
        assert [e.payload["amount_in"] for e in events] == [9, 7]


class TestTransactionFilters:
    """Tests for transactions that yield no events."""

    def test_failed_transaction(self, extractor: EventExtractor, chain) -> None:
        tx = chain.launch_transaction(err={"InstructionError": [1, {"Custom": 6000}]})
        assert tx.success is False
        assert extractor.extract(tx) == []

    def test_no_inner_instructions(self, extractor: EventExtractor, chain) -> None:
        result = chain.rpc_result("sig-6", slot=1, block_time=None, instructions=[chain.buy_ix()])
        assert extractor.extract(RawTransaction.from_rpc_json("sig-6", result)) == []

    def test_no_instructions(self, extractor: EventExtractor, chain) -> None:
        result = chain.rpc_result("sig-7", slot=1, block_time=None, instructions=[])
        assert extractor.extract(RawTransaction.from_rpc_json("sig-7", result)) == []

    def test_platform_filter(self, decoder: Decoder, chain) -> None:
        matching = EventExtractor(decoder, program_id=PROGRAM_ID, platform_config=PLATFORM_CONFIG)
        assert len(matching.extract(chain.launch_transaction())) == 2

        other = EventExtractor(
            decoder,
            program_id=PROGRAM_ID,
            platform_config="4Bu96XjU84XjPDSpveTVf6LYGCkfW5FK7SNkREWcEfV4",
        )
        assert other.extract(chain.launch_transaction()) == []
