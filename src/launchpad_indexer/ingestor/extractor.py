"""Transaction event extraction.

Walks one transaction's instruction tree and pairs each launchpad
instruction with the event it emitted through a self-invocation.

Two patterns exist on chain:

* Pass A: the launchpad instruction is top-level. Its events appear as
  self-invocations inside the inner-instruction group whose ``index``
  matches the instruction's position.
* Pass B: the launchpad instruction is itself an inner instruction (another
  program composed it). Its event is the instruction immediately following
  it in the same inner group.

Pass A results are returned before Pass B results, regardless of their
position in the transaction.
"""

from __future__ import annotations

import logging

from launchpad_indexer.codec.decoder import DecodedEvent, DecodedInstruction, Decoder
from launchpad_indexer.ingestor.models import ExtractedEvent, RawInstruction, RawTransaction

logger = logging.getLogger(__name__)


class EventExtractor:
    """Extracts ordered ``ExtractedEvent``s from a ``RawTransaction``.

    Args:
        decoder: Decoder for the target program's schema.
        program_id: Address of the target program.
        platform_config: When set, events whose account list does not
            contain this address are dropped.
    """

    def __init__(
        self,
        decoder: Decoder,
        *,
        program_id: str,
        platform_config: str | None = None,
    ) -> None:
        self._decoder = decoder
        self._program_id = program_id
        self._platform_config = platform_config

    def extract(self, tx: RawTransaction) -> list[ExtractedEvent]:
        if not tx.success or not tx.instructions or not tx.inner_instructions:
            return []

        attached: set[tuple[int, int]] = set()
        events = self._pass_top_level(tx, attached)
        events.extend(self._pass_nested(tx, attached))

        if self._platform_config:
            events = [e for e in events if self._matches_platform(e, self._platform_config)]

        logger.debug("Extracted %d events from %s", len(events), tx.signature)
        return events

    def _is_program(self, ix: RawInstruction) -> bool:
        return ix.program_id == self._program_id and ix.data is not None

    def _pass_top_level(self, tx: RawTransaction, attached: set[tuple[int, int]]) -> list[ExtractedEvent]:
        events: list[ExtractedEvent] = []
        for position, ix in enumerate(tx.instructions):
            if not self._is_program(ix):
                continue
            decoded = self._decoder.decode_instruction(ix.data)
            if decoded is None:
                continue

            emitted: DecodedEvent | None = None
            for group_pos, group in enumerate(tx.inner_instructions):
                if group.index != position:
                    continue
                for inner_pos, inner in enumerate(group.instructions):
                    if not self._is_program(inner):
                        continue
                    event = self._decoder.decode_event(inner.data)
                    if event is None:
                        continue
                    attached.add((group_pos, inner_pos))
                    emitted = event

            if emitted is not None:
                events.append(self._build(tx, ix, decoded, emitted))
        return events

    def _pass_nested(self, tx: RawTransaction, attached: set[tuple[int, int]]) -> list[ExtractedEvent]:
        events: list[ExtractedEvent] = []
        for group_pos, group in enumerate(tx.inner_instructions):
            instructions = group.instructions
            for inner_pos, ix in enumerate(instructions):
                if (group_pos, inner_pos) in attached or not self._is_program(ix):
                    continue
                decoded = self._decoder.decode_instruction(ix.data)
                if decoded is None:
                    continue
                if inner_pos + 1 >= len(instructions):
                    continue
                follower = instructions[inner_pos + 1]
                if not self._is_program(follower):
                    continue
                event = self._decoder.decode_event(follower.data)
                if event is None:
                    continue
                events.append(self._build(tx, ix, decoded, event))
        return events

    def _build(
        self,
        tx: RawTransaction,
        ix: RawInstruction,
        decoded: DecodedInstruction,
        event: DecodedEvent,
    ) -> ExtractedEvent:
        return ExtractedEvent(
            signature=tx.signature,
            slot=tx.slot,
            block_time=tx.block_time,
            accounts=ix.accounts,
            event_type=event.name,
            payload=event.payload,
            instruction=decoded.name,
        )

    @staticmethod
    def _matches_platform(event: ExtractedEvent, platform_config: str) -> bool:
        return any(platform_config in account for account in event.accounts)
