"""Roundtrip subcommand."""

from __future__ import annotations

import click

from tpuport.cli.main import load_cli_config, override_option


@click.command()
@click.argument("config", type=click.Path(exists=True))
@override_option
@click.option(
    "--allow-cpu",
    is_flag=True,
    help="Shortcut for -o device.allow_cpu=true.",
)
def roundtrip(config: str, overrides: tuple[str, ...], allow_cpu: bool) -> None:
    """Map the demo model to the device and back, and check nothing changed.

    CONFIG is the path to a YAML config file.
    """
    if allow_cpu:
        overrides = (*overrides, "device.allow_cpu=true")
    cfg = load_cli_config(config, overrides)

    from tpuport.roundtrip import run_roundtrip
    from tpuport.utils.devices import validate_default_device

    try:
        # Fail fast on CPU unless explicitly allowed
        validate_default_device(allow_cpu=cfg.device.allow_cpu)
        report = run_roundtrip(cfg)
    except RuntimeError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"[tpuport] leaves:       {report.num_leaves}")
    click.echo(f"[tpuport] parameters:   {report.param_count}")
    click.echo(f"[tpuport] transferred:  {report.transfer_bytes} bytes")
    click.echo(f"[tpuport] structure:    {'ok' if report.structure_ok else 'MISMATCH'}")
    click.echo(f"[tpuport] values:       {'ok' if report.values_ok else 'MISMATCH'}")
    click.echo(
        f"[tpuport] forward:      {'ok' if report.forward_ok else 'MISMATCH'} "
        f"(max abs diff {report.forward_max_abs_diff:.3g})"
    )
    if not report.ok:
        raise click.ClickException("Round trip failed.")
