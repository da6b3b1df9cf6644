from __future__ import annotations

from pathlib import Path

import pytest

from cseal.config import SealConfig, find_config, load_config
from cseal.errors import ConfigError
from cseal.hasher import default_hasher


def test_defaults_when_no_config(tmp_path: Path) -> None:
    config = load_config(start=tmp_path)
    assert config == SealConfig()
    assert config.hasher() is default_hasher


def test_cseal_toml_discovered_from_subdirectory(tmp_path: Path) -> None:
    (tmp_path / "cseal.toml").write_text('hash_algorithm = "blake2b"\ndefault_name = "enc"\n', encoding="utf-8")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert find_config(nested) == tmp_path / "cseal.toml"
    config = load_config(start=nested)
    assert config.hash_algorithm == "blake2b"
    assert config.default_name == "enc"
    assert config.hasher()(b"x") != default_hasher(b"x")


def test_pyproject_tool_table(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text('[tool.cseal]\nhash_algorithm = "sha512"\n', encoding="utf-8")
    assert load_config(start=tmp_path).hash_algorithm == "sha512"


def test_pyproject_without_table_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text('[project]\nname = "x"\n', encoding="utf-8")
    assert load_config(start=tmp_path).source != tmp_path / "pyproject.toml"


@pytest.mark.parametrize(
    "content",
    ['hash_algorithm = "md5"\n', "hash_algorithm = 3\n", "default_name = 1\n", "not toml ==\n"],
)
def test_invalid_config(tmp_path: Path, content: str) -> None:
    path = tmp_path / "cseal.toml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_explicit_missing_path(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.toml")
