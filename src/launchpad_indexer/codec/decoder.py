"""Instruction and event decoder.

Both decode functions are total: an unknown discriminator or a malformed
payload yields ``None``. Most instructions in a transaction belong to other
programs, so a miss is the common case and is not logged above debug.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from launchpad_indexer.codec.idl import DISCRIMINATOR_SIZE, ProgramSchema, load_idl
from launchpad_indexer.codec.layout import DecodeError, Reader

logger = logging.getLogger(__name__)

# Anchor's emit_cpi! prefix: sha256("anchor:event")[:8], little-endian u64 0x1d9acb512ea545e4.
EVENT_IX_TAG = bytes.fromhex("e445a52e51cb9a1d")


@dataclass(frozen=True)
class DecodedInstruction:
    name: str
    args: dict[str, Any]


@dataclass(frozen=True)
class DecodedEvent:
    name: str
    payload: dict[str, Any]


class Decoder:
    """Decodes raw instruction and event bytes against one program schema.

    Example:
        ```python
        decoder = Decoder.default()
        ix = decoder.decode_instruction(data)
        if ix is not None:
            print(ix.name, ix.args)
        ```
    """

    def __init__(self, schema: ProgramSchema) -> None:
        self._schema = schema

    @classmethod
    def default(cls) -> Decoder:
        """Decoder for the bundled launchpad IDL."""
        return cls(load_idl())

    @property
    def schema(self) -> ProgramSchema:
        return self._schema

    def decode_instruction(self, data: bytes | None) -> DecodedInstruction | None:
        """Decode instruction data, or return None if it matches no instruction."""
        if not data or len(data) < DISCRIMINATOR_SIZE:
            return None
        layout = self._schema.instructions.get(bytes(data[:DISCRIMINATOR_SIZE]))
        if layout is None:
            return None
        try:
            args = layout.args.decode(Reader(data[DISCRIMINATOR_SIZE:]))
        except DecodeError as e:
            logger.debug("Malformed %s instruction: %s", layout.name, e)
            return None
        return DecodedInstruction(name=layout.name, args=args)

    def decode_event(self, data: bytes | None) -> DecodedEvent | None:
        """Decode self-invocation event data.

        The first 8 bytes are the event-instruction tag and are skipped
        without inspection; the event discriminator follows.
        """
        if not data or len(data) < 2 * DISCRIMINATOR_SIZE:
            return None
        body = data[DISCRIMINATOR_SIZE:]
        layout = self._schema.events.get(bytes(body[:DISCRIMINATOR_SIZE]))
        if layout is None:
            return None
        try:
            payload = layout.fields.decode(Reader(body[DISCRIMINATOR_SIZE:]))
        except DecodeError as e:
            logger.debug("Malformed %s event: %s", layout.name, e)
            return None
        return DecodedEvent(name=layout.name, payload=payload)

    def encode_instruction(self, name: str, args: dict[str, Any]) -> bytes:
        """Encode instruction data (discriminator followed by Borsh args)."""
        layout = self._schema.instruction(name)
        return layout.discriminator + layout.args.encode(args)

    def encode_event(self, name: str, payload: dict[str, Any]) -> bytes:
        """Encode self-invocation event data as emitted on chain."""
        layout = self._schema.event(name)
        return EVENT_IX_TAG + layout.discriminator + layout.fields.encode(payload)
