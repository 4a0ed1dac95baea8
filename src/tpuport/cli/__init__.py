"""CLI entrypoints for tpuport.

Invoked via ``pyproject.toml`` entrypoints::

    tpuport roundtrip <config.yaml> ...
    tpuport inspect <config.yaml>
    tpuport rounds 1000000

Keep these modules thin: argument parsing + calling into library code.
"""

from __future__ import annotations

__all__ = ["cli"]

from tpuport.cli.main import cli
