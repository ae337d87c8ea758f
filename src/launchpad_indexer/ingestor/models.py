"""Data models for the ingestor module."""

import contextlib
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from base58 import b58decode


@dataclass(frozen=True)
class RawInstruction:
    """One compiled instruction: program, ordered accounts and raw data.

    ``data`` is None for instructions the RPC node returned in parsed form
    (system and token programs), which never belong to the indexed program.
    """

    program_id: str
    accounts: tuple[str, ...] = ()
    data: bytes | None = None
    stack_height: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawInstruction":
        """Create a RawInstruction from a jsonParsed instruction object."""
        raw: bytes | None = None
        encoded = data.get("data")
        if isinstance(encoded, str):
            with contextlib.suppress(ValueError):
                raw = b58decode(encoded)
        accounts = data.get("accounts")
        return cls(
            program_id=str(data.get("programId", "")),
            accounts=tuple(str(a) for a in accounts) if isinstance(accounts, list) else (),
            data=raw,
            stack_height=data.get("stackHeight"),
        )


@dataclass(frozen=True)
class InnerInstructionGroup:
    """Instructions invoked from the top-level instruction at ``index``."""

    index: int
    instructions: tuple[RawInstruction, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InnerInstructionGroup":
        return cls(
            index=int(data["index"]),
            instructions=tuple(RawInstruction.from_dict(ix) for ix in data.get("instructions", [])),
        )


@dataclass(frozen=True)
class RawTransaction:
    """A fetched transaction reduced to what event extraction needs."""

    signature: str
    slot: int
    block_time: int | None
    success: bool
    instructions: tuple[RawInstruction, ...]
    inner_instructions: tuple[InnerInstructionGroup, ...] = ()
    error: Any = None

    @property
    def block_datetime(self) -> datetime | None:
        if self.block_time is None:
            return None
        return datetime.fromtimestamp(self.block_time, tz=UTC)

    @classmethod
    def from_rpc_json(cls, signature: str, result: dict[str, Any]) -> "RawTransaction":
        """Create a RawTransaction from a ``getTransaction`` jsonParsed result."""
        tx = result.get("transaction") or {}
        meta = result.get("meta")
        # Some client serializations nest meta beside the inner transaction.
        if meta is None and isinstance(tx, dict) and "meta" in tx:
            meta = tx.get("meta")
            tx = tx.get("transaction") or {}
        meta = meta or {}

        message = tx.get("message") or {}
        signatures = tx.get("signatures") or [signature]
        err = meta.get("err")
        return cls(
            signature=str(signatures[0]) if signatures else signature,
            slot=int(result.get("slot", 0)),
            block_time=result.get("blockTime"),
            success=err is None,
            instructions=tuple(RawInstruction.from_dict(ix) for ix in message.get("instructions", [])),
            inner_instructions=tuple(
                InnerInstructionGroup.from_dict(group) for group in (meta.get("innerInstructions") or [])
            ),
            error=err,
        )


@dataclass(frozen=True)
class ExtractedEvent:
    """One program event correlated with the instruction that emitted it."""

    signature: str
    slot: int
    block_time: int | None
    accounts: tuple[str, ...]
    event_type: str
    payload: dict[str, Any] = field(compare=False)
    instruction: str | None = None

    @property
    def block_datetime(self) -> datetime | None:
        if self.block_time is None:
            return None
        return datetime.fromtimestamp(self.block_time, tz=UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "slot": self.slot,
            "block_time": self.block_time,
            "instruction": self.instruction,
            "event_type": self.event_type,
            "accounts": list(self.accounts),
            "payload": self.payload,
        }


@dataclass(frozen=True)
class LogNotification:
    """A ``logsNotification`` for a transaction mentioning the program."""

    signature: str
    slot: int
    failed: bool = False
    logs: tuple[str, ...] = ()

    @classmethod
    def from_websocket_message(cls, data: dict[str, Any]) -> "LogNotification":
        result = data["params"]["result"]
        value = result["value"]
        return cls(
            signature=str(value["signature"]),
            slot=int(result.get("context", {}).get("slot", 0)),
            failed=value.get("err") is not None,
            logs=tuple(value.get("logs") or ()),
        )
