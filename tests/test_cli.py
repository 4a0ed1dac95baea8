"""CLI tests consolidated by module."""

from __future__ import annotations

import os
from pathlib import Path

os.environ.setdefault("JAX_PLATFORMS", "cpu")

import jax
import pytest
from click.testing import CliRunner

from tpuport import __version__
from tpuport.cli import cli
from tpuport.config import Config

DEMO_CONFIG = Path(__file__).resolve().parents[1] / "configs" / "demo.yaml"


def test_version_option() -> None:
    """--version prints the package version."""
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_roundtrip_small_config_passes(small_cfg: tuple[Config, Path]) -> None:
    """The round trip reports ok for every check on a tiny CPU config."""
    _, path = small_cfg
    result = CliRunner().invoke(cli, ["roundtrip", str(path)])

    assert result.exit_code == 0, result.output
    assert "[tpuport] structure:    ok" in result.output
    assert "[tpuport] values:       ok" in result.output
    assert "[tpuport] forward:      ok" in result.output


def test_roundtrip_allow_cpu_flag_overrides_config() -> None:
    """--allow-cpu lets the demo config (allow_cpu=false) run on the CPU backend."""
    result = CliRunner().invoke(
        cli, ["roundtrip", str(DEMO_CONFIG), "--allow-cpu", "-o", "logging.console_use_rich=false"]
    )
    assert result.exit_code == 0, result.output
    assert "MISMATCH" not in result.output


def test_roundtrip_refuses_cpu_without_opt_in() -> None:
    """Without an explicit opt-in a CPU-only backend is an error."""
    if jax.devices()[0].platform != "cpu":
        pytest.skip("Not running on CPU")

    result = CliRunner().invoke(
        cli, ["roundtrip", str(DEMO_CONFIG), "-o", "logging.console_use_rich=false"]
    )
    assert result.exit_code != 0
    assert "allow_cpu" in result.output


def test_roundtrip_bad_override_is_usage_error(small_cfg: tuple[Config, Path]) -> None:
    """Unknown override keys surface as click usage errors."""
    _, path = small_cfg
    result = CliRunner().invoke(cli, ["roundtrip", str(path), "-o", "model.nope=1"])
    assert result.exit_code == 2
    assert "Unknown config key" in result.output


def test_inspect_host_and_device(small_cfg: tuple[Config, Path]) -> None:
    """inspect prints the host and device patterns with leaf counts."""
    _, path = small_cfg
    runner = CliRunner()

    host = runner.invoke(cli, ["inspect", str(path), "--max-tensors", "2"])
    assert host.exit_code == 0, host.output
    lines = host.output.splitlines()
    assert lines[0].startswith("SequenceClassifier (")
    assert any("encoder: Chain" in line for line in lines)
    assert any("recurrent: Recur" in line for line in lines)
    assert sum(line.startswith("[") for line in lines) == 2

    device = runner.invoke(cli, ["inspect", str(path), "--device", "--max-tensors", "0"])
    assert device.exit_code == 0, device.output
    assert "encoder: ImmutableChain" in device.output
    assert "recurrent: LSTMCell" in device.output
    assert "active" not in device.output


def test_inspect_without_recurrence(small_cfg_factory, tmp_path: Path) -> None:
    """A disabled recurrent layer shows up as an absent slot."""
    _, path = small_cfg_factory(tmp_path, recurrent="none")
    result = CliRunner().invoke(cli, ["inspect", str(path), "--max-tensors", "0"])
    assert result.exit_code == 0, result.output
    assert "recurrent: absent" in result.output


def test_rounds_command() -> None:
    """rounds prints calc_rounds for the given length."""
    runner = CliRunner()
    assert runner.invoke(cli, ["rounds", "2"]).output.strip() == "1"
    assert runner.invoke(cli, ["rounds", "1"]).output.strip() == "0"
    assert runner.invoke(cli, ["rounds", "100", "--exponent", "30"]).output.strip() == "7"


def test_shuffle_command_prints_permutation() -> None:
    """shuffle prints a permutation of 0..LENGTH-1."""
    result = CliRunner().invoke(cli, ["shuffle", "12", "--seed", "5"])
    assert result.exit_code == 0, result.output
    values = [int(v) for v in result.output.split()]
    assert sorted(values) == list(range(12))
