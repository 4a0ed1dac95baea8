"""Shuffle subcommands: round counts and a quick on-device shuffle."""

from __future__ import annotations

import click

from tpuport.shuffle import DEFAULT_EXPONENT, calc_rounds


@click.command()
@click.argument("length", type=click.IntRange(min=0))
@click.option(
    "--exponent",
    type=click.IntRange(min=1),
    default=DEFAULT_EXPONENT,
    show_default=True,
    help="Closeness-to-uniform exponent.",
)
def rounds(length: int, exponent: int) -> None:
    """Print how many key-sort rounds a shuffle of LENGTH elements uses."""
    click.echo(str(calc_rounds(length, exponent=exponent)))


@click.command()
@click.argument("length", type=click.IntRange(min=0))
@click.option("--seed", type=int, default=0, show_default=True, help="PRNG seed.")
@click.option(
    "--exponent",
    type=click.IntRange(min=1),
    default=DEFAULT_EXPONENT,
    show_default=True,
    help="Closeness-to-uniform exponent.",
)
def shuffle(length: int, seed: int, exponent: int) -> None:
    """Shuffle 0..LENGTH-1 on the default device and print the result."""
    import jax
    import jax.numpy as jnp

    from tpuport.shuffle import shuffle as shuffle_array

    out = shuffle_array(jnp.arange(length), jax.random.PRNGKey(seed), exponent=exponent)
    click.echo(" ".join(str(int(v)) for v in out.tolist()))
