"""Inspect subcommand: what the demo model looks like from the codec's point of view."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from tpuport.cli.main import load_cli_config, override_option

if TYPE_CHECKING:
    from tpuport.codec import Pattern


def _describe(pattern: Pattern, indent: int = 0) -> list[str]:
    """Render a pattern as indented lines, one per slot."""
    pad = "  " * indent
    if pattern.kind != "node":
        return [f"{pad}{pattern.kind}"]
    assert pattern.node is not None
    lines = [f"{pad}{pattern.node.cls.__name__} ({pattern.num_leaves} leaves)"]
    for name, child in zip(pattern.node.names, pattern.children, strict=True):
        sub = _describe(child, indent + 1)
        sub[0] = f"{'  ' * (indent + 1)}{name}: {sub[0].lstrip()}"
        lines.extend(sub)
    return lines


@click.command(name="inspect")
@click.argument("config", type=click.Path(exists=True))
@override_option
@click.option(
    "--device/--host",
    "on_device",
    default=False,
    help="Inspect the device-mapped model instead of the host model.",
)
@click.option(
    "--max-tensors",
    type=click.IntRange(min=0),
    default=8,
    help="How many leaves to print statistics for.",
)
def inspect_model(
    config: str, overrides: tuple[str, ...], on_device: bool, max_tensors: int
) -> None:
    """Print the pattern, leaf count and parameter stats of the demo model.

    CONFIG is the path to a YAML config file.
    """
    cfg = load_cli_config(config, overrides)

    from tpuport.codec import flatten_with_pattern
    from tpuport.mapper import DeviceMapper
    from tpuport.model import build_model
    from tpuport.utils.tree import param_count, sample_tensor_stats

    model = build_model(cfg)
    if on_device:
        to_dev, _ = DeviceMapper.from_config(cfg.mapping)
        model = to_dev(model)

    leaves, pattern = flatten_with_pattern(model)
    for line in _describe(pattern):
        click.echo(line)
    click.echo(f"leaves: {len(leaves)}  parameters: {param_count(model)}")
    for i, stats in enumerate(sample_tensor_stats(model, max_tensors=max_tensors)):
        click.echo(
            f"[{i}] shape={stats.shape} dtype={stats.dtype} mean={stats.mean:.4g} "
            f"std={stats.std:.4g} min={stats.min:.4g} max={stats.max:.4g}"
        )
