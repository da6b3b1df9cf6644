"""
Load a sealed module artifact and verify it before use.

The loader never trusts the artifact's embedded ``hash`` field. It rebuilds
the encoder, re-serializes the encoder it actually obtained plus the
caller's dependencies, re-hashes with the caller's hasher and compares the
result with the caller's expected digest. The module text itself must then
be exactly the text sealing generates for that encoder, so nothing outside
the hashed capability sources can differ. Loading executes the artifact's
code: only load artifacts whose expected digest came from a trusted channel.
"""

from __future__ import annotations

import hmac
import inspect
import logging
from collections.abc import Mapping
from typing import Any, Callable

from . import buffers, compact
from .creator import build_module
from .errors import IntegrityError, MalformedArtifactError
from .hasher import Hasher, default_hasher, hash_text, hash_text_async
from .packager import decode_artifact, evaluate, release
from .serializer import EXTERNALS, capability_entries, dependency_entries, join_entries, sort_dependencies

logger = logging.getLogger(__name__)


def resolve_arguments(
    hasher_or_dependencies: Hasher | Mapping[str, Any] | None,
    dependencies: Mapping[str, Any] | None,
) -> tuple[Hasher, Mapping[str, Any]]:
    """
    Split the overloaded third ``load`` argument.

    A callable is the hasher (dependencies come from the fourth argument); a
    mapping is the dependency map (the hasher defaults).
    """
    if hasher_or_dependencies is None:
        return default_hasher, dependencies or {}
    if callable(hasher_or_dependencies):
        return hasher_or_dependencies, dependencies or {}
    if isinstance(hasher_or_dependencies, Mapping):
        return default_hasher, hasher_or_dependencies
    raise TypeError(
        f"expected a hasher or a dependency mapping, got {type(hasher_or_dependencies).__name__}"
    )


def _instantiate(factory: Callable[..., Any], expected_hash: str, ordered: list[tuple[str, Any]]) -> Mapping[str, Any]:
    expected_params = [*EXTERNALS, *(dep_name for dep_name, _ in ordered)]
    declared = list(inspect.signature(factory).parameters)
    if declared != expected_params:
        # The dependency keys participate in the digest, so a different key set
        # can never verify.
        logger.warning(
            "integrity check failed: module expects %s, caller supplied %s",
            declared[len(EXTERNALS):],
            expected_params[len(EXTERNALS):],
        )
        raise IntegrityError(expected_hash, None)

    try:
        raw = factory(compact, buffers, *(value for _, value in ordered))
    except Exception as exc:
        raise MalformedArtifactError(f"factory failed to build the encoder: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise MalformedArtifactError(f"factory returned {type(raw).__name__}, expected a mapping")
    return raw


def _verify(
    raw: Mapping[str, Any],
    capabilities: list[tuple[str, str]],
    ordered: list[tuple[str, Any]],
    module_text: str,
    expected_hash: str,
    computed: str,
) -> compact.Encoding:
    label = raw.get("name") or "<unnamed>"
    if not hmac.compare_digest(computed.encode("utf-8"), str(expected_hash).encode("utf-8")):
        logger.warning("integrity check failed for %s: expected %s, computed %s", label, expected_hash, computed)
        raise IntegrityError(expected_hash, computed)

    rebuilt = build_module(capabilities, [dep_name for dep_name, _ in ordered], raw.get("name"), computed)
    if rebuilt != module_text:
        logger.warning("integrity check failed for %s: module text differs from the generated one", label)
        raise IntegrityError(expected_hash, computed)

    logger.debug("verified %s: hash=%s", label, computed)
    return compact.from_(raw)


def load(
    artifact: str,
    expected_hash: str,
    hasher_or_dependencies: Hasher | Mapping[str, Any] | None = None,
    dependencies: Mapping[str, Any] | None = None,
) -> compact.Encoding:
    """
    Load ``artifact`` and return its encoder if it hashes to ``expected_hash``.

    Raises:
        IntegrityError: Recomputed digest differs from ``expected_hash``, or
            the module text differs from what sealing would generate
        MalformedArtifactError: Artifact cannot be decoded or evaluated
        HasherError: The hasher failed
    """
    hasher, deps = resolve_arguments(hasher_or_dependencies, dependencies)
    ordered = sort_dependencies(deps)
    module_text = decode_artifact(artifact)
    factory = evaluate(module_text)
    try:
        raw = _instantiate(factory, expected_hash, ordered)
        capabilities = capability_entries(raw)
        computed = hash_text(join_entries(capabilities + dependency_entries(deps)), hasher)
        return _verify(raw, capabilities, ordered, module_text, expected_hash, computed)
    except Exception:
        release(factory)
        raise


async def load_async(
    artifact: str,
    expected_hash: str,
    hasher_or_dependencies: Hasher | Mapping[str, Any] | None = None,
    dependencies: Mapping[str, Any] | None = None,
) -> compact.Encoding:
    """Like ``load`` but awaits asynchronous hashers."""
    hasher, deps = resolve_arguments(hasher_or_dependencies, dependencies)
    ordered = sort_dependencies(deps)
    module_text = decode_artifact(artifact)
    factory = evaluate(module_text)
    try:
        raw = _instantiate(factory, expected_hash, ordered)
        capabilities = capability_entries(raw)
        computed = await hash_text_async(join_entries(capabilities + dependency_entries(deps)), hasher)
        return _verify(raw, capabilities, ordered, module_text, expected_hash, computed)
    except Exception:
        release(factory)
        raise
