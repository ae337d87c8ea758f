"""Borsh field layouts.

Each layout reads its value from a ``Reader`` and can encode a Python value
back into bytes. Integers are little-endian and decode to plain ``int`` of
arbitrary precision; public keys decode to base58 strings.
"""

from __future__ import annotations

import struct
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from solders.pubkey import Pubkey


class DecodeError(ValueError):
    """Raised when a byte sequence does not match a layout."""


class Reader:
    """Forward-only cursor over a byte buffer."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def take(self, size: int) -> bytes:
        if size < 0 or self.remaining < size:
            raise DecodeError(f"need {size} bytes at offset {self._pos}, have {self.remaining}")
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk


class Layout:
    """Base class for all field layouts."""

    def decode(self, reader: Reader) -> Any:
        raise NotImplementedError

    def encode(self, value: Any) -> bytes:
        raise NotImplementedError


@dataclass(frozen=True)
class Integer(Layout):
    size: int
    signed: bool = False

    def decode(self, reader: Reader) -> int:
        return int.from_bytes(reader.take(self.size), "little", signed=self.signed)

    def encode(self, value: Any) -> bytes:
        try:
            return int(value).to_bytes(self.size, "little", signed=self.signed)
        except OverflowError as e:
            raise DecodeError(f"{value} does not fit in {self.size} bytes") from e


@dataclass(frozen=True)
class Float(Layout):
    size: int

    def decode(self, reader: Reader) -> float:
        fmt = "<f" if self.size == 4 else "<d"
        return float(struct.unpack(fmt, reader.take(self.size))[0])

    def encode(self, value: Any) -> bytes:
        fmt = "<f" if self.size == 4 else "<d"
        return struct.pack(fmt, float(value))


class Bool(Layout):
    def decode(self, reader: Reader) -> bool:
        raw = reader.take(1)[0]
        if raw > 1:
            raise DecodeError(f"invalid bool byte {raw}")
        return raw == 1

    def encode(self, value: Any) -> bytes:
        return b"\x01" if value else b"\x00"


class Bytes(Layout):
    def decode(self, reader: Reader) -> bytes:
        length = U32.decode(reader)
        return reader.take(length)

    def encode(self, value: Any) -> bytes:
        raw = bytes(value)
        return U32.encode(len(raw)) + raw


class String(Layout):
    def decode(self, reader: Reader) -> str:
        raw = Bytes().decode(reader)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"invalid utf-8 string: {e}") from e

    def encode(self, value: Any) -> bytes:
        return Bytes().encode(str(value).encode("utf-8"))


class PublicKey(Layout):
    def decode(self, reader: Reader) -> str:
        return str(Pubkey(reader.take(32)))

    def encode(self, value: Any) -> bytes:
        if isinstance(value, Pubkey):
            return bytes(value)
        return bytes(Pubkey.from_string(str(value)))


@dataclass(frozen=True)
class Option(Layout):
    inner: Layout

    def decode(self, reader: Reader) -> Any:
        tag = reader.take(1)[0]
        if tag == 0:
            return None
        if tag == 1:
            return self.inner.decode(reader)
        raise DecodeError(f"invalid option tag {tag}")

    def encode(self, value: Any) -> bytes:
        if value is None:
            return b"\x00"
        return b"\x01" + self.inner.encode(value)


@dataclass(frozen=True)
class Vec(Layout):
    inner: Layout

    def decode(self, reader: Reader) -> list[Any]:
        count = U32.decode(reader)
        # Every element needs at least one byte, so a larger count is garbage.
        if count > reader.remaining:
            raise DecodeError(f"vec length {count} exceeds remaining bytes")
        return [self.inner.decode(reader) for _ in range(count)]

    def encode(self, value: Any) -> bytes:
        items = list(value)
        return U32.encode(len(items)) + b"".join(self.inner.encode(v) for v in items)


@dataclass(frozen=True)
class Array(Layout):
    inner: Layout
    length: int

    def decode(self, reader: Reader) -> Any:
        if isinstance(self.inner, Integer) and self.inner.size == 1 and not self.inner.signed:
            return reader.take(self.length)
        return [self.inner.decode(reader) for _ in range(self.length)]

    def encode(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray)):
            if len(value) != self.length:
                raise DecodeError(f"expected {self.length} bytes, got {len(value)}")
            return bytes(value)
        items = list(value)
        if len(items) != self.length:
            raise DecodeError(f"expected {self.length} items, got {len(items)}")
        return b"".join(self.inner.encode(v) for v in items)


@dataclass(frozen=True)
class Struct(Layout):
    """Named fields decoded in declaration order into a dict."""

    fields: tuple[tuple[str, Layout], ...]

    def decode(self, reader: Reader) -> dict[str, Any]:
        return {name: layout.decode(reader) for name, layout in self.fields}

    def encode(self, value: Any) -> bytes:
        if not isinstance(value, Mapping):
            raise DecodeError(f"struct value must be a mapping, got {type(value).__name__}")
        try:
            return b"".join(layout.encode(value[name]) for name, layout in self.fields)
        except KeyError as e:
            raise DecodeError(f"missing struct field {e}") from e


@dataclass(frozen=True)
class Tuple(Layout):
    """Unnamed fields decoded in order into a list."""

    items: tuple[Layout, ...]

    def decode(self, reader: Reader) -> list[Any]:
        return [layout.decode(reader) for layout in self.items]

    def encode(self, value: Any) -> bytes:
        values = list(value)
        if len(values) != len(self.items):
            raise DecodeError(f"expected {len(self.items)} tuple items, got {len(values)}")
        return b"".join(layout.encode(v) for layout, v in zip(self.items, values, strict=True))


@dataclass(frozen=True)
class EnumValue:
    """A decoded data-carrying enum variant."""

    variant: str
    fields: Any = None


@dataclass(frozen=True)
class Variant:
    name: str
    layout: Struct | Tuple | None = None


@dataclass(frozen=True)
class Enum(Layout):
    """Borsh enum: u8 variant index followed by the variant's fields.

    Enums whose variants are all unit variants decode to the variant name;
    otherwise every variant decodes to an ``EnumValue``.
    """

    variants: tuple[Variant, ...]
    _index: Mapping[str, int] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_index", {v.name: i for i, v in enumerate(self.variants)})

    @property
    def is_simple(self) -> bool:
        return all(v.layout is None for v in self.variants)

    def decode(self, reader: Reader) -> Any:
        tag = reader.take(1)[0]
        if tag >= len(self.variants):
            raise DecodeError(f"enum tag {tag} out of range ({len(self.variants)} variants)")
        variant = self.variants[tag]
        if self.is_simple:
            return variant.name
        payload = variant.layout.decode(reader) if variant.layout is not None else None
        return EnumValue(variant.name, payload)

    def encode(self, value: Any) -> bytes:
        if isinstance(value, EnumValue):
            name, payload = value.variant, value.fields
        elif isinstance(value, str):
            name, payload = value, None
        elif hasattr(value, "value") and isinstance(value.value, str):
            name, payload = value.value, None
        else:
            raise DecodeError(f"cannot encode {value!r} as enum")
        if name not in self._index:
            raise DecodeError(f"unknown enum variant {name}")
        variant = self.variants[self._index[name]]
        out = bytes([self._index[name]])
        if variant.layout is not None:
            out += variant.layout.encode(payload)
        return out


U8 = Integer(1)
U16 = Integer(2)
U32 = Integer(4)
U64 = Integer(8)
U128 = Integer(16)

PRIMITIVES: dict[str, Layout] = {
    "u8": U8,
    "u16": U16,
    "u32": U32,
    "u64": U64,
    "u128": U128,
    "i8": Integer(1, signed=True),
    "i16": Integer(2, signed=True),
    "i32": Integer(4, signed=True),
    "i64": Integer(8, signed=True),
    "i128": Integer(16, signed=True),
    "f32": Float(4),
    "f64": Float(8),
    "bool": Bool(),
    "bytes": Bytes(),
    "string": String(),
    "pubkey": PublicKey(),
    "publicKey": PublicKey(),
}


def decode_all(layout: Layout, data: bytes) -> Any:
    """Decode ``data`` with ``layout``, ignoring trailing bytes."""
    return layout.decode(Reader(data))
