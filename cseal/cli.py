"""CLI entrypoint for cseal."""

import logging
import sys
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import SealConfig, load_config
from .errors import ConfigError
from .hasher import ALGORITHMS


def _config_for(ctx: click.Context, algorithm: str | None) -> SealConfig:
    config = ctx.obj["config"]
    if algorithm and algorithm != config.hash_algorithm:
        config = replace(config, hash_algorithm=algorithm)
    return config


_algo_option = click.option(
    "--algo",
    "algorithm",
    type=click.Choice(ALGORITHMS),
    default=None,
    help="Hash algorithm (defaults to the configured one, sha256 otherwise)",
)
_deps_option = click.option(
    "--deps",
    "deps_target",
    type=str,
    default=None,
    metavar="MODULE:ATTR",
    help="Mapping of dependencies injected into the module",
)


@click.group()
@click.version_option(__version__, prog_name="cseal")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    default=None,
    help="Path to cseal.toml or pyproject.toml (defaults to auto-detected)",
)
@click.option("--verbose", is_flag=True, help="Log debug output to stderr")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """cseal - Seal compact encoders into hash-verified module artifacts.

    Create an artifact from an encoder definition, then verify and load it
    elsewhere against the digest printed at creation time.
    """
    ctx.ensure_object(dict)
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )
    try:
        ctx.obj["config"] = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument("target")
@click.option("--name", type=str, default=None, help="Name embedded in the artifact")
@_deps_option
@_algo_option
@click.option(
    "--out",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    default=None,
    help="Write the artifact to this file instead of stdout",
)
@click.option("--json", "output_json", is_flag=True, help="Output artifact and hash as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    target: str,
    name: str | None,
    deps_target: str | None,
    algorithm: str | None,
    out: Path | None,
    output_json: bool,
) -> None:
    """Seal the encoder definition at TARGET (module:attr or file.py:attr).

    Examples:

        cseal create codecs.py:JsonCodec --name jsonEncoder --out json.seal

        cseal create mypkg.codecs:point --deps mypkg.codecs:DEPS --json
    """
    from .commands.seal_cmd import run_create

    exit_code = run_create(
        target,
        _config_for(ctx, algorithm),
        name=name,
        deps_target=deps_target,
        out=out,
        output_json=output_json,
    )
    sys.exit(exit_code)


@cli.command(name="hash")
@click.argument("target")
@_deps_option
@_algo_option
@click.pass_context
def hash_cmd(ctx: click.Context, target: str, deps_target: str | None, algorithm: str | None) -> None:
    """Print the digest of the encoder definition at TARGET."""
    from .commands.seal_cmd import run_hash

    sys.exit(run_hash(target, _config_for(ctx, algorithm), deps_target=deps_target))


@cli.command()
@click.argument("artifact", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("expected_hash")
@_deps_option
@_algo_option
@click.pass_context
def verify(
    ctx: click.Context,
    artifact: Path,
    expected_hash: str,
    deps_target: str | None,
    algorithm: str | None,
) -> None:
    """Load ARTIFACT and check it against EXPECTED_HASH.

    Exit codes: 0 verified, 1 integrity failure, 2 malformed artifact.
    """
    from .commands.seal_cmd import run_verify

    sys.exit(run_verify(artifact, expected_hash, _config_for(ctx, algorithm), deps_target=deps_target))


@cli.command()
@click.argument("artifact", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def inspect(artifact: Path) -> None:
    """Show the module text carried by ARTIFACT without executing it."""
    from .commands.seal_cmd import run_inspect

    sys.exit(run_inspect(artifact))


if __name__ == "__main__":
    cli()
