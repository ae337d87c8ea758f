"""Binary decoding of launchpad instructions and events."""

from launchpad_indexer.codec.decoder import (
    EVENT_IX_TAG,
    DecodedEvent,
    DecodedInstruction,
    Decoder,
)
from launchpad_indexer.codec.events import (
    CurveKind,
    CurveParams,
    PoolCreateEvent,
    PoolStatus,
    TradeDirection,
    TradeEvent,
)
from launchpad_indexer.codec.idl import IdlError, ProgramSchema, load_idl, parse_idl
from launchpad_indexer.codec.layout import DecodeError, EnumValue

__all__ = [
    "EVENT_IX_TAG",
    "CurveKind",
    "CurveParams",
    "DecodeError",
    "DecodedEvent",
    "DecodedInstruction",
    "Decoder",
    "EnumValue",
    "IdlError",
    "PoolCreateEvent",
    "PoolStatus",
    "ProgramSchema",
    "TradeDirection",
    "TradeEvent",
    "load_idl",
    "parse_idl",
]
