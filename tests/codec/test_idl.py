"""Tests for IDL loading."""

import hashlib
import json

import pytest

from launchpad_indexer.codec.idl import (
    IdlError,
    event_discriminator,
    instruction_discriminator,
    load_idl,
    parse_idl,
)


class TestDiscriminators:
    """Tests for Anchor discriminators."""

    def test_instruction(self) -> None:
        expected = hashlib.sha256(b"global:buy_exact_in").digest()[:8]
        assert instruction_discriminator("buy_exact_in") == expected

    def test_event(self) -> None:
        expected = hashlib.sha256(b"event:TradeEvent").digest()[:8]
        assert event_discriminator("TradeEvent") == expected


class TestBundledIdl:
    """Tests for the bundled launchpad IDL."""

    def test_loads_instructions_and_events(self) -> None:
        schema = load_idl()
        names = {layout.name for layout in schema.instructions.values()}
        assert {"initialize", "buy_exact_in", "buy_exact_out", "sell_exact_in", "sell_exact_out"} <= names
        events = {layout.name for layout in schema.events.values()}
        assert {"PoolCreateEvent", "TradeEvent"} <= events

    def test_lookup_by_name(self) -> None:
        schema = load_idl()
        layout = schema.instruction("initialize")
        assert layout.discriminator == instruction_discriminator("initialize")
        with pytest.raises(KeyError):
            schema.event("NoSuchEvent")

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(IdlError, match="cannot load IDL"):
            load_idl(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(IdlError):
            load_idl(path)


class TestParseIdl:
    """Tests for schema construction."""

    def test_explicit_discriminator_wins(self) -> None:
        schema = parse_idl(
            {
                "instructions": [
                    {"name": "ping", "discriminator": [1, 2, 3, 4, 5, 6, 7, 8], "args": [{"name": "n", "type": "u8"}]}
                ],
            }
        )
        assert bytes([1, 2, 3, 4, 5, 6, 7, 8]) in schema.instructions

    def test_event_fields_from_types(self) -> None:
        schema = parse_idl(
            {
                "events": [{"name": "Ping"}],
                "types": [{"name": "Ping", "type": {"kind": "struct", "fields": [{"name": "n", "type": "u64"}]}}],
            }
        )
        assert schema.event("Ping").discriminator == event_discriminator("Ping")

    def test_undefined_type(self) -> None:
        with pytest.raises(IdlError, match="undefined type"):
            parse_idl({"instructions": [{"name": "x", "args": [{"name": "a", "type": {"defined": "Nope"}}]}]})

    def test_recursive_type(self) -> None:
        document = {
            "events": [{"name": "Loop"}],
            "types": [
                {"name": "Loop", "type": {"kind": "struct", "fields": [{"name": "next", "type": {"defined": "Loop"}}]}}
            ],
        }
        with pytest.raises(IdlError, match="recursive"):
            parse_idl(document)

    def test_bad_discriminator_length(self) -> None:
        with pytest.raises(IdlError):
            parse_idl(json.loads('{"instructions": [{"name": "x", "discriminator": [1], "args": []}]}'))
