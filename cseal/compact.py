"""
Compact encoding contract.

An encoding is any object exposing ``encode(state, value)``,
``decode(state)`` and, optionally, ``preencode(state, value)``. Encoding
happens in two passes: ``preencode`` advances ``state.end`` by the number of
bytes a value needs, the caller allocates ``state.buffer``, then ``encode``
writes from ``state.start`` onwards. ``decode`` reads between ``state.start``
and ``state.end``.

Generated modules receive this module as their first positional argument
(conventionally bound to the name ``cenc``).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from . import buffers as b4a
from . import compact as cenc

ENCODING_METHODS = ("encode", "decode", "preencode")


@dataclass
class State:
    """Mutable cursor over a byte buffer; callers may attach extra fields."""

    start: int = 0
    end: int = 0
    buffer: bytearray | bytes | None = None


@dataclass(frozen=True)
class Codec:
    encode: Callable[[State, Any], None]
    decode: Callable[[State], Any]
    preencode: Callable[[State, Any], None] | None = None
    name: str | None = None


class Encoding:
    """
    Attribute view over a mapping of capabilities.

    Produced by ``from_`` when adapting the raw mapping returned by a
    generated factory. Iterating yields member names in insertion order.
    """

    __slots__ = ("_members",)

    def __init__(self, members: Mapping[str, Any]):
        self._members = dict(members)

    def __getattr__(self, name: str) -> Any:
        if name == "_members":
            raise AttributeError(name)
        try:
            return self._members[name]
        except KeyError:
            raise AttributeError(f"encoding has no member {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._members

    def __iter__(self) -> Iterator[str]:
        return iter(self._members)

    def __len__(self) -> int:
        return len(self._members)

    def __repr__(self) -> str:
        label = self._members.get("name")
        members = ", ".join(k for k in self._members if k not in ("name", "hash"))
        return f"<Encoding {label or '?'} [{members}]>"

    def members(self) -> dict[str, Any]:
        return dict(self._members)


def check_bounds(state: State, size: int) -> None:
    if state.start + size > state.end:
        raise ValueError("Out of bounds")


# Codec bodies reach their siblings only through ``cenc`` and ``b4a``, the
# names a generated factory binds.

# --- uint (variable length, little endian) ---------------------------------


def _uint_preencode(state, value):
    if value < 0:
        raise ValueError("uint must be non-negative")
    if value <= 0xFC:
        state.end += 1
    elif value <= 0xFFFF:
        state.end += 3
    elif value <= 0xFFFFFFFF:
        state.end += 5
    else:
        state.end += 9


def _uint_encode(state, value):
    if value <= 0xFC:
        prefix, width = b"", 1
    elif value <= 0xFFFF:
        prefix, width = b"\xfd", 2
    elif value <= 0xFFFFFFFF:
        prefix, width = b"\xfe", 4
    else:
        prefix, width = b"\xff", 8
    chunk = prefix + value.to_bytes(width, "little")
    state.buffer[state.start:state.start + len(chunk)] = chunk
    state.start += len(chunk)


def _uint_decode(state):
    cenc.check_bounds(state, 1)
    first = state.buffer[state.start]
    state.start += 1
    if first <= 0xFC:
        return first
    width = {0xFD: 2, 0xFE: 4, 0xFF: 8}[first]
    cenc.check_bounds(state, width)
    value = int.from_bytes(state.buffer[state.start:state.start + width], "little")
    state.start += width
    return value


uint = Codec(encode=_uint_encode, decode=_uint_decode, preencode=_uint_preencode, name="uint")


# --- int32 (zigzag over uint) -------------------------------------------------


def _int32_preencode(state, value):
    cenc.uint.preencode(state, ((value << 1) ^ (value >> 31)) & 0xFFFFFFFF)


def _int32_encode(state, value):
    cenc.uint.encode(state, ((value << 1) ^ (value >> 31)) & 0xFFFFFFFF)


def _int32_decode(state):
    value = cenc.uint.decode(state)
    return (value >> 1) ^ -(value & 1)


int32 = Codec(encode=_int32_encode, decode=_int32_decode, preencode=_int32_preencode, name="int32")


# --- raw (remaining bytes, no length prefix) --------------------------------


def _raw_preencode(state, value):
    state.end += len(value)


def _raw_encode(state, value):
    state.buffer[state.start:state.start + len(value)] = value
    state.start += len(value)


def _raw_decode(state):
    data = bytes(state.buffer[state.start:state.end])
    state.start = state.end
    return data


raw = Codec(encode=_raw_encode, decode=_raw_decode, preencode=_raw_preencode, name="raw")


# --- string (uint length prefix + utf-8) -------------------------------------


def _string_preencode(state, value):
    size = b4a.byte_length(value)
    cenc.uint.preencode(state, size)
    state.end += size


def _string_encode(state, value):
    data = b4a.from_(value)
    cenc.uint.encode(state, len(data))
    cenc.raw.encode(state, data)


def _string_decode(state):
    size = cenc.uint.decode(state)
    cenc.check_bounds(state, size)
    text = b4a.to_string(state.buffer, start=state.start, end=state.start + size)
    state.start += size
    return text


string = Codec(encode=_string_encode, decode=_string_decode, preencode=_string_preencode, name="string")
utf8 = string


# --- json (string of the JSON document) --------------------------------------


def _json_preencode(state, value):
    import json

    cenc.string.preencode(state, json.dumps(value))


def _json_encode(state, value):
    import json

    cenc.string.encode(state, json.dumps(value))


def _json_decode(state):
    import json

    return json.loads(cenc.string.decode(state))


json = Codec(encode=_json_encode, decode=_json_decode, preencode=_json_preencode, name="json")

_NAMED = {"uint": uint, "int32": int32, "raw": raw, "string": string, "utf8": utf8, "json": json}


def from_(encoding: Any) -> Any:
    """
    Normalize ``encoding`` into an object satisfying the encoding contract.

    Accepts a codec name, a mapping of capabilities, or any object that
    already has ``encode`` and ``decode``.
    """
    if isinstance(encoding, str):
        try:
            return _NAMED[encoding]
        except KeyError:
            raise ValueError(f"unknown encoding name: {encoding}") from None
    if isinstance(encoding, Mapping):
        return Encoding(encoding)
    if callable(getattr(encoding, "encode", None)) and callable(getattr(encoding, "decode", None)):
        return encoding
    raise TypeError(f"cannot adapt {type(encoding).__name__} to an encoding")


def encode(encoding: Any, value: Any) -> bytes:
    """Run preencode, allocate, encode; return the filled buffer."""
    state = State()
    encoding.preencode(state, value)
    state.buffer = b4a.alloc(state.end)
    encoding.encode(state, value)
    return bytes(state.buffer)


def decode(encoding: Any, data: bytes | bytearray) -> Any:
    state = State(start=0, end=len(data), buffer=data)
    return encoding.decode(state)
