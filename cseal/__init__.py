"""
cseal - seal compact encoders into hash-verified, loadable module artifacts.

A producer seals an encoder definition (encode/decode/preencode plus named
dependencies) into a ``data:`` URI and a digest. A consumer loads the URI
against the digest; the loader rebuilds the encoder, re-derives the digest
from what it actually obtained and refuses to return it on mismatch.

    sealed = create("jsonEncoder", JsonCodec, {"dep": dep})
    encoder = load(sealed.artifact, sealed.hash, {"dep": dep})
"""

from .compact import Codec, Encoding, State
from .creator import SealedArtifact, build_module, create, create_async
from .errors import (
    ConfigError,
    CsealError,
    HasherError,
    IntegrityError,
    InvalidDependencyError,
    MalformedArtifactError,
    SerializationError,
)
from .hasher import default_hasher, generate_hash, generate_hash_async, get_hasher, hash_text
from .loader import load, load_async
from .packager import decode_artifact, pack, unpack
from .serializer import serialize, sort_dependencies

__version__ = "0.1.0"

__all__ = [
    # Sealing
    "create",
    "create_async",
    "load",
    "load_async",
    "SealedArtifact",
    "build_module",
    # Canonical text and hashing
    "serialize",
    "sort_dependencies",
    "hash_text",
    "generate_hash",
    "generate_hash_async",
    "default_hasher",
    "get_hasher",
    # Packaging
    "pack",
    "unpack",
    "decode_artifact",
    # Encoding contract
    "Codec",
    "Encoding",
    "State",
    # Errors
    "CsealError",
    "IntegrityError",
    "MalformedArtifactError",
    "HasherError",
    "SerializationError",
    "InvalidDependencyError",
    "ConfigError",
]
