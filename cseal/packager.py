"""
Artifact packaging: module text <-> ``data:`` URI.

``unpack`` evaluates the module text in a fresh namespace and returns its
exported factory. The text is registered in ``linecache`` under a
content-derived pseudo filename so that functions created by the module have
retrievable source, which the loader needs to re-derive the digest. The
registration lives as long as the factory and the functions it created, or
until ``release`` is called.
"""

from __future__ import annotations

import __future__
import base64
import binascii
import builtins
import hashlib
import linecache
import types
import weakref
from collections import Counter
from typing import Any, Callable

from .errors import MalformedArtifactError

MEDIA_TYPE = "text/x-python"
URI_PREFIX = f"data:{MEDIA_TYPE};base64,"
FACTORY_NAME = "factory"

_registrations: Counter[str] = Counter()
_finalizers: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()


def pack(module_text: str) -> str:
    payload = base64.b64encode(module_text.encode("utf-8")).decode("ascii")
    return URI_PREFIX + payload


def decode_artifact(artifact: str) -> str:
    """Return the module text carried by ``artifact`` without evaluating it."""
    if not isinstance(artifact, str) or not artifact.startswith("data:"):
        raise MalformedArtifactError("artifact is not a data: URI")

    header, sep, payload = artifact[len("data:"):].partition(",")
    if not sep:
        raise MalformedArtifactError("artifact has no payload")

    media_type, *params = header.split(";")
    if media_type != MEDIA_TYPE:
        raise MalformedArtifactError(f"unsupported media type: {media_type or '(empty)'}")
    if "base64" not in params:
        raise MalformedArtifactError("artifact payload must be base64 encoded")

    try:
        data = base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise MalformedArtifactError(f"invalid base64 payload: {exc}") from exc

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedArtifactError("payload is not valid UTF-8") from exc


def module_filename(module_text: str) -> str:
    digest = hashlib.sha256(module_text.encode("utf-8")).hexdigest()
    return f"<cseal-module {digest[:16]}>"


def _register(filename: str, module_text: str) -> None:
    linecache.cache[filename] = (len(module_text), None, module_text.splitlines(True), filename)
    _registrations[filename] += 1


def _unregister(filename: str) -> None:
    _registrations[filename] -= 1
    if _registrations[filename] <= 0:
        del _registrations[filename]
        linecache.cache.pop(filename, None)


def release(factory: Callable[..., Any]) -> None:
    """
    Drop the source registration made when ``factory`` was evaluated.

    Registrations are otherwise dropped once the factory and every function
    it created are garbage collected. Releasing the factory of an encoder
    still in use makes its source unavailable for re-serialization.
    """
    finalizer = _finalizers.pop(factory, None)
    if finalizer is not None:
        finalizer()


def evaluate(module_text: str) -> Callable[..., Any]:
    """Evaluate module text in a fresh namespace and return its factory."""
    filename = module_filename(module_text)

    try:
        code = compile(
            module_text,
            filename,
            "exec",
            flags=__future__.annotations.compiler_flag,
            dont_inherit=True,
        )
    except (SyntaxError, ValueError) as exc:
        raise MalformedArtifactError(f"module text does not compile: {exc}") from exc

    _register(filename, module_text)
    namespace: dict[str, Any] = {"__name__": "cseal.generated", "__builtins__": builtins}
    try:
        exec(code, namespace)
    except Exception as exc:
        _unregister(filename)
        raise MalformedArtifactError(f"module text failed to execute: {exc}") from exc

    factory = namespace.get(FACTORY_NAME)
    if not isinstance(factory, types.FunctionType):
        _unregister(filename)
        raise MalformedArtifactError(f"module does not export a function {FACTORY_NAME!r}")

    _finalizers[factory] = weakref.finalize(factory, _unregister, filename)
    return factory


def unpack(artifact: str) -> Callable[..., Any]:
    """Evaluate the artifact's module text and return its factory."""
    return evaluate(decode_artifact(artifact))
