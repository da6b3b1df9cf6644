"""
Byte-buffer helpers shared by the core and by every generated module.

Generated factories receive this module as their second positional
argument (conventionally bound to the name ``b4a``).
"""

from __future__ import annotations

from typing import Iterable

BytesLike = bytes | bytearray | memoryview


def from_(value: str | BytesLike | Iterable[int], encoding: str = "utf-8") -> bytes:
    """Return ``value`` as immutable bytes; strings are encoded."""
    if isinstance(value, str):
        return value.encode(encoding)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return bytes(value)


def byte_length(value: str | BytesLike, encoding: str = "utf-8") -> int:
    if isinstance(value, str):
        return len(value.encode(encoding))
    return memoryview(value).nbytes


def alloc(size: int, fill: int = 0) -> bytearray:
    if size < 0:
        raise ValueError("size must be non-negative")
    if fill:
        return bytearray([fill & 0xFF]) * size
    return bytearray(size)


def to_string(
    buffer: BytesLike,
    encoding: str = "utf-8",
    start: int = 0,
    end: int | None = None,
) -> str:
    return bytes(buffer[start:end]).decode(encoding)


def concat(buffers: Iterable[BytesLike]) -> bytes:
    return b"".join(bytes(b) for b in buffers)


def equals(a: BytesLike, b: BytesLike) -> bool:
    return bytes(a) == bytes(b)
