"""
Integrity hashing over canonical text.

A hasher is any callable ``(bytes) -> str``; the async API additionally
accepts hashers returning an awaitable. Hashers must be pure functions of
their input. The result is treated as an opaque, comparable token.
"""

from __future__ import annotations

import hashlib
import inspect
from collections.abc import Mapping
from typing import Any, Callable

from . import buffers
from .errors import HasherError
from .serializer import serialize

Hasher = Callable[[bytes], Any]

ALGORITHMS = ("sha256", "sha512", "sha3_256", "blake2b", "blake2s")
DEFAULT_ALGORITHM = "sha256"


def default_hasher(data: bytes) -> str:
    """SHA-256 of ``data`` as lowercase hex."""
    return hashlib.sha256(data).hexdigest()


def get_hasher(algorithm: str) -> Hasher:
    """Return a hex-digest hasher for a named ``hashlib`` algorithm."""
    if algorithm == DEFAULT_ALGORITHM:
        return default_hasher
    if algorithm not in ALGORITHMS:
        raise HasherError(f"unsupported hash algorithm: {algorithm} (expected one of {', '.join(ALGORITHMS)})")

    def hasher(data: bytes) -> str:
        return hashlib.new(algorithm, data).hexdigest()

    hasher.__name__ = f"{algorithm}_hasher"
    return hasher


def _invoke(hasher: Hasher, data: bytes) -> Any:
    try:
        return hasher(data)
    except Exception as exc:
        raise HasherError(f"hasher {_label(hasher)} failed: {exc}") from exc


def _label(hasher: Hasher) -> str:
    return getattr(hasher, "__name__", type(hasher).__name__)


def _check(hasher: Hasher, digest: Any) -> str:
    if not isinstance(digest, str):
        raise HasherError(f"hasher {_label(hasher)} returned {type(digest).__name__}, expected str")
    return digest


def hash_text(text: str, hasher: Hasher | None = None) -> str:
    hasher = hasher or default_hasher
    digest = _invoke(hasher, buffers.from_(text))
    if inspect.isawaitable(digest):
        if inspect.iscoroutine(digest):
            digest.close()
        raise HasherError(f"hasher {_label(hasher)} is asynchronous; use the *_async API")
    return _check(hasher, digest)


async def hash_text_async(text: str, hasher: Hasher | None = None) -> str:
    hasher = hasher or default_hasher
    digest = _invoke(hasher, buffers.from_(text))
    if inspect.isawaitable(digest):
        try:
            digest = await digest
        except Exception as exc:
            raise HasherError(f"hasher {_label(hasher)} failed: {exc}") from exc
    return _check(hasher, digest)


def generate_hash(
    definition: Any,
    dependencies: Mapping[str, Any] | None = None,
    hasher: Hasher | None = None,
) -> str:
    """Digest of the canonical text of ``definition`` plus ``dependencies``."""
    return hash_text(serialize(definition, dependencies), hasher)


async def generate_hash_async(
    definition: Any,
    dependencies: Mapping[str, Any] | None = None,
    hasher: Hasher | None = None,
) -> str:
    return await hash_text_async(serialize(definition, dependencies), hasher)
