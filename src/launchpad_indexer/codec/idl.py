"""Anchor IDL loading.

Turns an Anchor-style IDL document into an immutable ``ProgramSchema``:
discriminator-indexed instruction and event layouts built from the IDL's
type definitions. The schema is loaded once at startup.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any

from launchpad_indexer.codec.layout import (
    PRIMITIVES,
    Array,
    Enum,
    Layout,
    Option,
    Struct,
    Tuple,
    Variant,
    Vec,
)

logger = logging.getLogger(__name__)

DEFAULT_IDL_RESOURCE = "raydium_launchpad.json"
DISCRIMINATOR_SIZE = 8


class IdlError(Exception):
    """Raised when an IDL document cannot be turned into a schema."""


def instruction_discriminator(name: str) -> bytes:
    """Anchor instruction discriminator: ``sha256("global:<name>")[:8]``."""
    return hashlib.sha256(f"global:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


def event_discriminator(name: str) -> bytes:
    """Anchor event discriminator: ``sha256("event:<Name>")[:8]``."""
    return hashlib.sha256(f"event:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


@dataclass(frozen=True)
class InstructionLayout:
    name: str
    discriminator: bytes
    args: Struct


@dataclass(frozen=True)
class EventLayout:
    name: str
    discriminator: bytes
    fields: Struct


@dataclass(frozen=True)
class ProgramSchema:
    """Immutable discriminator-indexed view of one program's IDL."""

    name: str
    version: str
    address: str | None
    instructions: Mapping[bytes, InstructionLayout]
    events: Mapping[bytes, EventLayout]

    def instruction(self, name: str) -> InstructionLayout:
        for layout in self.instructions.values():
            if layout.name == name:
                return layout
        raise KeyError(name)

    def event(self, name: str) -> EventLayout:
        for layout in self.events.values():
            if layout.name == name:
                return layout
        raise KeyError(name)


class _TypeResolver:
    def __init__(self, types: list[dict[str, Any]]) -> None:
        self._defs: dict[str, dict[str, Any]] = {}
        for entry in types:
            name = entry.get("name")
            if not isinstance(name, str) or "type" not in entry:
                raise IdlError(f"invalid type definition: {entry!r}")
            self._defs[name] = entry["type"]
        self._resolved: dict[str, Layout] = {}
        self._resolving: set[str] = set()

    def defined(self, name: str) -> Layout:
        if name in self._resolved:
            return self._resolved[name]
        if name not in self._defs:
            raise IdlError(f"undefined type: {name}")
        if name in self._resolving:
            raise IdlError(f"recursive type: {name}")
        self._resolving.add(name)
        try:
            layout = self._build_definition(name, self._defs[name])
        finally:
            self._resolving.discard(name)
        self._resolved[name] = layout
        return layout

    def _build_definition(self, name: str, spec: dict[str, Any]) -> Layout:
        kind = spec.get("kind")
        if kind == "struct":
            return self.fields(spec.get("fields", []))
        if kind == "enum":
            variants = []
            for v in spec.get("variants", []):
                fields = v.get("fields")
                variants.append(Variant(v["name"], self.fields(fields) if fields else None))
            if not variants:
                raise IdlError(f"enum {name} has no variants")
            return Enum(tuple(variants))
        raise IdlError(f"unsupported kind {kind!r} for type {name}")

    def fields(self, fields: list[Any]) -> Struct | Tuple:
        if all(isinstance(f, dict) and "name" in f and "type" in f for f in fields):
            return Struct(tuple((f["name"], self.layout(f["type"])) for f in fields))
        return Tuple(tuple(self.layout(f) for f in fields))

    def layout(self, type_spec: Any) -> Layout:
        if isinstance(type_spec, str):
            if type_spec in PRIMITIVES:
                return PRIMITIVES[type_spec]
            raise IdlError(f"unknown primitive type: {type_spec}")
        if not isinstance(type_spec, dict):
            raise IdlError(f"invalid type: {type_spec!r}")
        if "defined" in type_spec:
            defined = type_spec["defined"]
            name = defined["name"] if isinstance(defined, dict) else defined
            return self.defined(str(name))
        if "option" in type_spec:
            return Option(self.layout(type_spec["option"]))
        if "vec" in type_spec:
            return Vec(self.layout(type_spec["vec"]))
        if "array" in type_spec:
            inner, length = type_spec["array"]
            return Array(self.layout(inner), int(length))
        raise IdlError(f"unsupported type: {type_spec!r}")


def _discriminator(entry: dict[str, Any], derived: bytes) -> bytes:
    explicit = entry.get("discriminator")
    if explicit is None:
        return derived
    raw = bytes(explicit)
    if len(raw) != DISCRIMINATOR_SIZE:
        raise IdlError(f"discriminator for {entry.get('name')} must be {DISCRIMINATOR_SIZE} bytes")
    return raw


def parse_idl(document: Mapping[str, Any]) -> ProgramSchema:
    """Build a ``ProgramSchema`` from a parsed IDL document.

    Raises:
        IdlError: If the document is malformed or references unknown types.
    """
    try:
        resolver = _TypeResolver(list(document.get("types", [])))

        instructions: dict[bytes, InstructionLayout] = {}
        for ix in document.get("instructions", []):
            name = ix["name"]
            disc = _discriminator(ix, instruction_discriminator(name))
            args = resolver.fields(ix.get("args", []))
            if not isinstance(args, Struct):
                raise IdlError(f"instruction {name} args must be named")
            if disc in instructions:
                raise IdlError(f"duplicate instruction discriminator for {name}")
            instructions[disc] = InstructionLayout(name=name, discriminator=disc, args=args)

        events: dict[bytes, EventLayout] = {}
        for ev in document.get("events", []):
            name = ev["name"]
            disc = _discriminator(ev, event_discriminator(name))
            if "fields" in ev:
                fields = resolver.fields(ev["fields"])
            else:
                fields = resolver.defined(name)
            if not isinstance(fields, Struct):
                raise IdlError(f"event {name} must be a struct")
            if disc in events:
                raise IdlError(f"duplicate event discriminator for {name}")
            events[disc] = EventLayout(name=name, discriminator=disc, fields=fields)
    except (KeyError, TypeError, ValueError) as e:
        raise IdlError(f"malformed IDL: {e}") from e

    metadata = document.get("metadata", {})
    return ProgramSchema(
        name=str(metadata.get("name") or document.get("name") or "unknown"),
        version=str(metadata.get("version") or document.get("version") or "0.0.0"),
        address=document.get("address"),
        instructions=MappingProxyType(instructions),
        events=MappingProxyType(events),
    )


def load_idl(path: str | Path | None = None) -> ProgramSchema:
    """Load a schema from an IDL file, or the bundled launchpad IDL.

    Raises:
        IdlError: If the file cannot be read or parsed.
    """
    try:
        if path is None:
            text = resources.files("launchpad_indexer.codec").joinpath("idl", DEFAULT_IDL_RESOURCE).read_text("utf-8")
        else:
            text = Path(path).read_text(encoding="utf-8")
        document = json.loads(text)
    except (OSError, json.JSONDecodeError) as e:
        raise IdlError(f"cannot load IDL: {e}") from e

    schema = parse_idl(document)
    logger.info(
        "Loaded IDL %s v%s (%d instructions, %d events)",
        schema.name,
        schema.version,
        len(schema.instructions),
        len(schema.events),
    )
    return schema
