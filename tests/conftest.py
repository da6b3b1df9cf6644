"""Pytest configuration and fixtures."""

import pytest

from cseal import compact
from cseal.creator import SealedArtifact, create

import sample_codecs


@pytest.fixture
def json_artifact() -> SealedArtifact:
    """JSON round-trip codec sealed without dependencies."""
    return create("jsonEncoder", sample_codecs.JsonCodec)


@pytest.fixture
def fake_hasher():
    def fake_hash(data: bytes) -> str:
        return "fake-hash"

    return fake_hash


@pytest.fixture
def state() -> compact.State:
    return compact.State()
