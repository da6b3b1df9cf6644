from __future__ import annotations

import base64
import linecache

import pytest

from cseal.errors import MalformedArtifactError
from cseal.packager import URI_PREFIX, decode_artifact, module_filename, pack, release, unpack


MODULE = "def factory(cenc, b4a):\n    return {'hash': 'h'}\n"


def test_pack_produces_base64_data_uri() -> None:
    artifact = pack(MODULE)
    assert artifact.startswith("data:text/x-python;base64,")
    assert base64.b64decode(artifact[len(URI_PREFIX):]).decode("utf-8") == MODULE


def test_decode_artifact_roundtrip_with_unicode() -> None:
    text = "# café ☃\n" + MODULE
    assert decode_artifact(pack(text)) == text


def test_unpack_returns_factory() -> None:
    factory = unpack(pack(MODULE))
    assert factory(None, None) == {"hash": "h"}


def test_each_unpack_evaluates_in_a_fresh_namespace() -> None:
    text = "counter = []\ndef factory(cenc, b4a):\n    counter.append(1)\n    return {'n': len(counter)}\n"
    artifact = pack(text)
    assert unpack(artifact)(None, None) == {"n": 1}
    assert unpack(artifact)(None, None) == {"n": 1}


@pytest.mark.parametrize(
    "artifact",
    [
        "data:text/x-python;base64,invalidUri",
        "data:text/javascript;base64," + base64.b64encode(MODULE.encode()).decode(),
        "data:text/x-python," + MODULE,
        "data:text/x-python;base64",
        "https://example.invalid/module.py",
        "data:text/x-python;base64," + base64.b64encode(b"\xff\xfe").decode(),
    ],
)
def test_undecodable_artifacts(artifact: str) -> None:
    with pytest.raises(MalformedArtifactError):
        unpack(artifact)


def test_syntax_error_is_chained() -> None:
    with pytest.raises(MalformedArtifactError) as excinfo:
        unpack(pack("def factory(:\n"))
    assert isinstance(excinfo.value.__cause__, SyntaxError)


def test_missing_factory() -> None:
    with pytest.raises(MalformedArtifactError):
        unpack(pack("x = 1\n"))


def test_module_raising_at_import() -> None:
    with pytest.raises(MalformedArtifactError) as excinfo:
        unpack(pack("raise RuntimeError('no')\n"))
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_malformed_artifact_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        decode_artifact("not a uri")


@pytest.mark.parametrize("text", ["raise RuntimeError('no')\n", "x = 1\n", "factory = len\n"])
def test_failed_evaluation_drops_source_registration(text: str) -> None:
    with pytest.raises(MalformedArtifactError):
        unpack(pack(text))
    assert module_filename(text) not in linecache.cache


def test_release_drops_source_registration() -> None:
    text = "def factory(cenc, b4a):\n    return {'released': True}\n"
    factory = unpack(pack(text))
    assert module_filename(text) in linecache.cache

    release(factory)
    assert module_filename(text) not in linecache.cache
    release(factory)


def test_annotations_are_not_evaluated() -> None:
    text = (
        "def factory(cenc, b4a):\n"
        "    def encode(state: UndefinedState, value: int) -> None:\n"
        "        pass\n"
        "    return {'encode': encode}\n"
    )
    encode = unpack(pack(text))(None, None)["encode"]
    assert encode.__annotations__ == {"state": "UndefinedState", "value": "int", "return": "None"}
