"""Main CLI entry point.

Defines the Click group and shared utilities.
"""

from __future__ import annotations

from pathlib import Path

import click

from tpuport._version import __version__
from tpuport.config import Config, load_config
from tpuport.utils.io import add_file_logging, setup_python_logging


def load_cli_config(config: str, overrides: tuple[str, ...]) -> Config:
    """Load config for a subcommand and configure logging from it.

    :param str config: Path to the YAML config file.
    :param tuple[str, ...] overrides: Dot-path overrides.
    :raises click.BadParameter: If the config or an override is invalid.
    :return Config: Validated configuration.
    """
    try:
        cfg = load_config(config, overrides=list(overrides))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="CONFIG / --override") from e

    # Logging first so subsequent errors are readable
    setup_python_logging(cfg.logging.level, use_rich=cfg.logging.console_use_rich)
    if cfg.logging.log_file:
        add_file_logging(Path(cfg.logging.log_file), level=cfg.logging.level)
    return cfg


override_option = click.option(
    "--override",
    "-o",
    "overrides",
    multiple=True,
    help="Dotpath override, e.g. mapping.dtype=bfloat16 (repeatable).",
)


@click.group()
@click.version_option(version=__version__, prog_name="tpuport")
def cli() -> None:
    """tpuport: map host models onto accelerators and back."""


# Import and register subcommands
from tpuport.cli.inspect_model import inspect_model  # noqa: E402

cli.add_command(inspect_model)

from tpuport.cli.roundtrip import roundtrip  # noqa: E402

cli.add_command(roundtrip)

from tpuport.cli.shuffle import rounds, shuffle  # noqa: E402

cli.add_command(rounds)
cli.add_command(shuffle)
