"""Seal, verify and inspect command implementations."""

from __future__ import annotations

import importlib
import importlib.util
import json
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from ..config import SealConfig
from ..creator import create
from ..errors import CsealError, IntegrityError, MalformedArtifactError
from ..hasher import generate_hash
from ..loader import load
from ..packager import decode_artifact


def resolve_target(target: str) -> Any:
    """
    Resolve ``module:attr`` or ``path/to/file.py:attr`` to an object.

    ``attr`` may be dotted (``codecs:Json.encode``).
    """
    location, sep, attr_path = target.rpartition(":")
    if not sep or not location or not attr_path:
        raise ValueError(f"target must look like module:attribute, got {target!r}")

    if location.endswith(".py"):
        path = Path(location).resolve()
        if not path.is_file():
            raise ValueError(f"file not found: {path}")
        module_name = f"cseal_target_{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ValueError(f"cannot import {path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)
    else:
        module = importlib.import_module(location)

    obj: Any = module
    for part in attr_path.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise ValueError(f"{location} has no attribute {attr_path!r}") from None
    return obj


def _dependencies(target: str | None) -> Mapping[str, Any]:
    if target is None:
        return {}
    deps = resolve_target(target)
    if not isinstance(deps, Mapping):
        raise ValueError(f"{target} is not a mapping of dependencies")
    return deps


def _read_artifact(path: Path) -> str:
    return path.read_text(encoding="utf-8").strip()


def run_create(
    target: str,
    config: SealConfig,
    *,
    name: str | None = None,
    deps_target: str | None = None,
    out: Path | None = None,
    output_json: bool = False,
) -> int:
    """Seal an encoder definition.

    Returns:
        Exit code (0 = sealed, 1 = target or sealing error)
    """
    err = Console(stderr=True)
    try:
        definition = resolve_target(target)
        deps = _dependencies(deps_target)
        sealed = create(name or config.default_name, definition, deps, config.hasher())
    except (ValueError, ImportError, CsealError) as e:
        err.print(f"Error: {e}", style="bold red")
        return 1

    if out is not None:
        out.write_text(sealed.artifact + "\n", encoding="utf-8")

    if output_json:
        print(json.dumps({"artifact": sealed.artifact, "hash": sealed.hash, "algorithm": config.hash_algorithm}, indent=2))
    else:
        print(sealed.hash)
        if out is None:
            print(sealed.artifact)
        else:
            err.print(f"Wrote artifact to {out}", style="dim")
    return 0


def run_hash(target: str, config: SealConfig, *, deps_target: str | None = None) -> int:
    err = Console(stderr=True)
    try:
        digest = generate_hash(resolve_target(target), _dependencies(deps_target), config.hasher())
    except (ValueError, ImportError, CsealError) as e:
        err.print(f"Error: {e}", style="bold red")
        return 1
    print(digest)
    return 0


def run_verify(
    artifact_path: Path,
    expected_hash: str,
    config: SealConfig,
    *,
    deps_target: str | None = None,
) -> int:
    """Load and verify an artifact.

    Returns:
        Exit code (0 = verified, 1 = integrity failure or bad input, 2 = malformed artifact)
    """
    console = Console()
    err = Console(stderr=True)
    try:
        deps = _dependencies(deps_target)
        encoder = load(_read_artifact(artifact_path), expected_hash, config.hasher(), deps)
    except IntegrityError as e:
        err.print(f"Integrity check failed: {e}", style="bold red")
        return 1
    except MalformedArtifactError as e:
        err.print(f"Malformed artifact: {e}", style="bold red")
        return 2
    except (ValueError, ImportError, CsealError) as e:
        err.print(f"Error: {e}", style="bold red")
        return 1

    table = Table(title=f"Verified {getattr(encoder, 'name', None) or artifact_path.name}")
    table.add_column("member", style="cyan", no_wrap=True)
    table.add_column("kind", style="magenta")
    for member in encoder:
        if member in ("name", "hash"):
            continue
        value = getattr(encoder, member)
        table.add_row(member, "callable" if callable(value) else type(value).__name__)
    console.print(table)
    console.print(f"hash: {encoder.hash}", style="green")
    return 0


def run_inspect(artifact_path: Path) -> int:
    err = Console(stderr=True)
    try:
        text = decode_artifact(_read_artifact(artifact_path))
    except MalformedArtifactError as e:
        err.print(f"Malformed artifact: {e}", style="bold red")
        return 2

    Console().print(Syntax(text, "python", line_numbers=True))
    return 0
