"""
Seal an encoder definition into a portable, hash-verified module artifact.

The generated module exports one factory::

    def factory(cenc, b4a, <dependency names in sorted order>):
        <encode / decode / preencode definitions>
        return {<capabilities>, <dependencies>, "name": ..., "hash": ...}
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterator

from .hasher import Hasher, hash_text, hash_text_async
from .packager import FACTORY_NAME, pack
from .serializer import (
    EXTERNALS,
    capability_entries,
    dependency_entries,
    indent_source,
    join_entries,
    sort_dependencies,
)

logger = logging.getLogger(__name__)

_PROLOGUE = (
    "# Sealed encoding module generated by cseal.\n"
    "# The digest below covers the capability sources; any edit breaks loading.\n"
)
_INDENT = "    "


@dataclass(frozen=True)
class SealedArtifact:
    artifact: str
    hash: str

    def __iter__(self) -> Iterator[str]:
        yield self.artifact
        yield self.hash


def resolve_name(name: str | None, definition: Any) -> str | None:
    """Explicit name, else the definition's own ``name``/``__name__``."""
    if name:
        return name
    if isinstance(definition, Mapping):
        own = definition.get("name")
    else:
        own = getattr(definition, "name", None) or getattr(definition, "__name__", None)
    return own if isinstance(own, str) and own else None


def build_module(
    capabilities: list[tuple[str, str]],
    dependency_names: list[str],
    name: str | None,
    digest: str,
) -> str:
    params = ", ".join((*EXTERNALS, *dependency_names))
    lines = [_PROLOGUE, f"def {FACTORY_NAME}({params}):"]

    for _, source in capabilities:
        lines.append(indent_source(source, _INDENT))
        lines.append("")

    lines.append(f"{_INDENT}return {{")
    for member in (*(cap for cap, _ in capabilities), *dependency_names):
        lines.append(f"{_INDENT * 2}{member!r}: {member},")
    if name:
        lines.append(f"{_INDENT * 2}'name': {name!r},")
    lines.append(f"{_INDENT * 2}'hash': {digest!r},")
    lines.append(f"{_INDENT}}}")
    return "\n".join(lines) + "\n"


def _prepare(definition: Any, dependencies: Mapping[str, Any] | None) -> tuple[list, list[str], str]:
    capabilities = capability_entries(definition)
    dependency_names = [dep_name for dep_name, _ in sort_dependencies(dependencies)]
    canonical = join_entries(capabilities + dependency_entries(dependencies))
    return capabilities, dependency_names, canonical


def _finish(capabilities: list, dependency_names: list[str], name: str | None, digest: str) -> SealedArtifact:
    module_text = build_module(capabilities, dependency_names, name, digest)
    logger.debug(
        "sealed %s: hash=%s capabilities=%s dependencies=%s",
        name or "<unnamed>",
        digest,
        [cap for cap, _ in capabilities],
        dependency_names,
    )
    return SealedArtifact(artifact=pack(module_text), hash=digest)


def create(
    name: str | None,
    definition: Any,
    dependencies: Mapping[str, Any] | None = None,
    hasher: Hasher | None = None,
) -> SealedArtifact:
    """
    Seal ``definition`` together with ``dependencies``.

    Args:
        name: Name embedded in the module; falls back to the definition's own
        definition: Object or mapping with zero or more of encode/decode/preencode
        dependencies: Capabilities injected into the module as factory parameters
        hasher: Hash function over the canonical text (default SHA-256 hex)

    Returns:
        SealedArtifact with the ``data:`` URI and its digest
    """
    capabilities, dependency_names, canonical = _prepare(definition, dependencies)
    digest = hash_text(canonical, hasher)
    return _finish(capabilities, dependency_names, resolve_name(name, definition), digest)


async def create_async(
    name: str | None,
    definition: Any,
    dependencies: Mapping[str, Any] | None = None,
    hasher: Hasher | None = None,
) -> SealedArtifact:
    """Like ``create`` but awaits asynchronous hashers."""
    capabilities, dependency_names, canonical = _prepare(definition, dependencies)
    digest = await hash_text_async(canonical, hasher)
    return _finish(capabilities, dependency_names, resolve_name(name, definition), digest)
