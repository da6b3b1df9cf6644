"""
Error taxonomy for sealing and loading encoder modules.

Every failure is fatal to the call that raised it; nothing here carries
global state.
"""

from __future__ import annotations


class CsealError(Exception):
    """Base class for all cseal errors."""


class IntegrityError(CsealError):
    """Recomputed digest of a loaded module differs from the expected one."""

    def __init__(self, expected: str, computed: str | None):
        self.expected = expected
        self.computed = computed
        super().__init__("Data integrity check failed: hash mismatch.")


class MalformedArtifactError(CsealError, ValueError):
    """Artifact cannot be decoded or its module text cannot be evaluated."""


class HasherError(CsealError):
    """A hash function failed, returned a non-string, or is unknown."""


class SerializationError(CsealError, TypeError):
    """Source text of a callable cannot be recovered."""


class InvalidDependencyError(CsealError, ValueError):
    """Dependency name cannot be used as a factory parameter."""


class ConfigError(CsealError, ValueError):
    """Configuration file is malformed."""
