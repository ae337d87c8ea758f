"""Tests for ingestor data models."""

from datetime import UTC, datetime

from base58 import b58encode

from launchpad_indexer.ingestor.models import (
    ExtractedEvent,
    LogNotification,
    RawInstruction,
    RawTransaction,
)

SIGNATURE = "4EEjxchJQhYtrfDBckUTt5PEXwuRsYbsMuBFHDtmGo6ECgrgDNQCcq5AernFHn5kTZwNKndjDxxABPNdZcoztqAq"
PROGRAM_ID = "LanMV9sAd7wArD4vJFi2qDdfnVhFxYSUg6eADduJ3uj"


class TestRawInstruction:
    """Tests for RawInstruction model."""

    def test_from_dict(self) -> None:
        ix = RawInstruction.from_dict(
            {
                "programId": PROGRAM_ID,
                "accounts": ["a", "b"],
                "data": b58encode(b"\x01\x02\x03").decode(),
                "stackHeight": 2,
            }
        )
        assert ix.program_id == PROGRAM_ID
        assert ix.accounts == ("a", "b")
        assert ix.data == b"\x01\x02\x03"
        assert ix.stack_height == 2

    def test_parsed_instruction_has_no_data(self) -> None:
        ix = RawInstruction.from_dict(
            {
                "program": "system",
                "programId": "11111111111111111111111111111111",
                "parsed": {"type": "transfer", "info": {}},
                "stackHeight": None,
            }
        )
        assert ix.data is None
        assert ix.accounts == ()

    def test_invalid_base58_is_ignored(self) -> None:
        ix = RawInstruction.from_dict({"programId": PROGRAM_ID, "accounts": [], "data": "0OIl"})
        assert ix.data is None


class TestRawTransaction:
    """Tests for RawTransaction model."""

    def test_from_rpc_json(self) -> None:
        result = {
            "slot": 330_000_000,
            "blockTime": 1_744_000_000,
            "meta": {
                "err": None,
                "innerInstructions": [
                    {"index": 1, "instructions": [{"programId": PROGRAM_ID, "accounts": [], "data": "3"}]}
                ],
            },
            "transaction": {
                "signatures": [SIGNATURE],
                "message": {"instructions": [{"programId": PROGRAM_ID, "accounts": ["x"], "data": "2"}]},
            },
        }
        tx = RawTransaction.from_rpc_json(SIGNATURE, result)

        assert tx.signature == SIGNATURE
        assert tx.slot == 330_000_000
        assert tx.success is True
        assert len(tx.instructions) == 1
        assert tx.inner_instructions[0].index == 1
        assert tx.block_datetime == datetime.fromtimestamp(1_744_000_000, tz=UTC)

    def test_failed_transaction(self) -> None:
        result = {
            "slot": 1,
            "blockTime": None,
            "meta": {"err": {"InstructionError": [0, "Custom"]}, "innerInstructions": None},
            "transaction": {"signatures": [SIGNATURE], "message": {"instructions": []}},
        }
        tx = RawTransaction.from_rpc_json(SIGNATURE, result)

        assert tx.success is False
        assert tx.inner_instructions == ()
        assert tx.block_datetime is None

    def test_nested_meta(self) -> None:
        result = {
            "slot": 7,
            "transaction": {
                "meta": {"err": None, "innerInstructions": []},
                "transaction": {"signatures": [SIGNATURE], "message": {"instructions": []}},
            },
        }
        tx = RawTransaction.from_rpc_json(SIGNATURE, result)
        assert tx.success is True
        assert tx.slot == 7


class TestExtractedEvent:
    """Tests for ExtractedEvent model."""

    def test_to_dict(self) -> None:
        event = ExtractedEvent(
            signature=SIGNATURE,
            slot=5,
            block_time=1_744_000_000,
            accounts=("a", "b"),
            event_type="TradeEvent",
            payload={"amount_in": 1},
            instruction="buy_exact_in",
        )
        data = event.to_dict()
        assert data["accounts"] == ["a", "b"]
        assert data["instruction"] == "buy_exact_in"
        assert event.block_datetime is not None


class TestLogNotification:
    """Tests for LogNotification model."""

    def test_from_websocket_message(self) -> None:
        message = {
            "jsonrpc": "2.0",
            "method": "logsNotification",
            "params": {
                "result": {
                    "context": {"slot": 42},
                    "value": {"signature": SIGNATURE, "err": None, "logs": ["Program log: hi"]},
                },
                "subscription": 9,
            },
        }
        notification = LogNotification.from_websocket_message(message)

        assert notification.signature == SIGNATURE
        assert notification.slot == 42
        assert notification.failed is False
        assert notification.logs == ("Program log: hi",)
