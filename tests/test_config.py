"""Config tests consolidated by module."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from pathlib import Path

import jax.numpy as jnp
import pytest

from tpuport.config import (
    Config,
    MapConfig,
    ModelConfig,
    dtype_from_str,
    load_config,
    validate_config,
)

REPO_CONFIGS = Path(__file__).resolve().parents[1] / "configs"


def test_shipped_configs_load() -> None:
    """Every YAML under configs/ loads and validates."""
    paths = sorted(REPO_CONFIGS.glob("*.yaml"))
    assert paths
    for path in paths:
        cfg = load_config(path)
        assert isinstance(cfg, Config)
        assert isinstance(cfg.model.hidden_dims, tuple)


def test_small_config_round_trips_through_yaml(small_cfg: tuple[Config, Path]) -> None:
    """The helper config keeps the values it was written with."""
    cfg, _ = small_cfg
    assert cfg.model.hidden_dims == (6,)
    assert cfg.model.activation == "tanh"
    assert cfg.device.allow_cpu is True
    assert cfg.to_dict()["mapping"] == {"dtype": "float32"}


def test_overrides_cast_to_field_types(small_cfg: tuple[Config, Path]) -> None:
    """Dot-path overrides are cast like the field they replace."""
    _, path = small_cfg
    cfg = load_config(
        path,
        overrides=[
            "model.seed=4",
            "model.batchnorm=false",
            "model.hidden_dims=[5, 7]",
            "mapping.dtype=bfloat16",
            "logging.log_file=run.log",
        ],
    )
    assert cfg.model.seed == 4
    assert cfg.model.batchnorm is False
    assert cfg.model.hidden_dims == (5, 7)
    assert cfg.mapping.dtype == "bfloat16"
    assert cfg.logging.log_file == "run.log"


def test_single_hidden_dim_override(small_cfg: tuple[Config, Path]) -> None:
    """A bare integer override becomes a one-element tuple."""
    _, path = small_cfg
    assert load_config(path, overrides=["model.hidden_dims=9"]).model.hidden_dims == (9,)


@pytest.mark.parametrize(
    ("override", "match"),
    [
        ("model.seed", "Invalid override"),
        ("model.nope=1", "Unknown config key"),
        ("nope.seed=1", "Unknown config key"),
        ("model.batchnorm=maybe", "Expected boolean"),
        ("model.hidden_dims=abc", "Expected a list"),
    ],
)
def test_bad_overrides_fail(small_cfg: tuple[Config, Path], override: str, match: str) -> None:
    """Malformed or unknown overrides raise ValueError with a useful message."""
    _, path = small_cfg
    with pytest.raises(ValueError, match=match):
        load_config(path, overrides=[override])


def test_unknown_section_and_key_rejected(tmp_path: Path) -> None:
    """Typos in section or field names fail fast."""
    bad_section = tmp_path / "section.yaml"
    bad_section.write_text("train:\n  steps: 1\n")
    with pytest.raises(ValueError, match="Unknown config section"):
        load_config(bad_section)

    bad_key = tmp_path / "key.yaml"
    bad_key.write_text("model:\n  widht: 3\n")
    with pytest.raises(ValueError, match="Invalid keys in config section 'model'"):
        load_config(bad_key)


def test_non_mapping_file_rejected(tmp_path: Path) -> None:
    """A YAML list at the top level is not a config."""
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError, match="mapping at the top level"):
        load_config(path)


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    """An empty file loads the dataclass defaults."""
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == Config()


def test_validation_rejects_invalid_values() -> None:
    """Validation should fail with actionable errors."""
    cfg = Config()
    cases: list[tuple[Callable[[Config], Config], str]] = [
        (lambda c: replace(c, model=replace(c.model, in_dim=0)), "in_dim"),
        (lambda c: replace(c, model=replace(c.model, out_dim=-1)), "out_dim"),
        (lambda c: replace(c, model=replace(c.model, hidden_dims=())), "hidden_dims"),
        (lambda c: replace(c, model=replace(c.model, hidden_dims=(4, 0))), "hidden_dims"),
        (lambda c: replace(c, model=replace(c.model, activation="gelu")), "activation"),
        (lambda c: replace(c, model=replace(c.model, recurrent="gru")), "recurrent"),
        (lambda c: replace(c, model=replace(c.model, seq_len=0)), "seq_len"),
        (lambda c: replace(c, model=replace(c.model, batch_size=0)), "batch_size"),
        (lambda c: replace(c, mapping=MapConfig(dtype="float16")), "mapping.dtype"),
        (lambda c: replace(c, logging=replace(c.logging, level="TRACE")), "logging.level"),
    ]
    for mutate, match in cases:
        with pytest.raises(ValueError, match=match):
            validate_config(mutate(cfg))


def test_defaults_are_valid() -> None:
    """The default config passes validation."""
    validate_config(Config(model=ModelConfig()))


def test_dtype_from_str() -> None:
    """Supported dtype names resolve; others are rejected."""
    assert dtype_from_str("float32") == jnp.float32
    assert dtype_from_str("bfloat16") == jnp.bfloat16
    with pytest.raises(ValueError, match="Unsupported dtype"):
        dtype_from_str("float16")
