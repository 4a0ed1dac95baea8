# SPDX-License-Identifier: Apache-2.0

"""Configuration for tpuport.

Rule #1: **One config system.**
If a knob doesn't live in these dataclasses, it doesn't exist.

We use:
- YAML files for readability
- dot-path overrides for quick changes ("mapping.dtype=bfloat16")

The loader is intentionally strict: mis-typed keys or invalid values should fail
fast with error messages that tell you exactly what to fix.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import yaml

if TYPE_CHECKING:
    import jax.numpy as jnp

ActivationName = Literal["identity", "relu", "sigmoid", "tanh"]
RecurrentKind = Literal["none", "rnn", "lstm"]
DtypeName = Literal["float32", "bfloat16"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(frozen=True)
class ModelConfig:
    """Demo host model used by the CLI round trip.

    encoder: Dense(in_dim -> hidden_dims[0]) [-> BatchNorm] -> ... per hidden dim
    recurrent: optional RNN/LSTM cell over the encoded sequence
    head: Dense(last hidden -> out_dim)
    """

    in_dim: int = 8
    hidden_dims: tuple[int, ...] = (16,)
    out_dim: int = 4
    activation: ActivationName = "relu"
    batchnorm: bool = True
    recurrent: RecurrentKind = "lstm"

    # Shape of the random input sequence used for forward-pass checks.
    seq_len: int = 3
    batch_size: int = 2

    seed: int = 0


@dataclass(frozen=True)
class MapConfig:
    """Device mapping policy."""

    # Element type every mapped array/scalar is cast to.
    dtype: DtypeName = "float32"


@dataclass(frozen=True)
class DeviceConfig:
    """Device placement policy."""

    # Silent CPU fallback hides a broken accelerator install; opt in explicitly.
    allow_cpu: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    """Console and file logging."""

    level: LogLevel = "INFO"
    console_use_rich: bool = True
    log_file: str | None = None


@dataclass(frozen=True)
class Config:
    """Top-level configuration."""

    model: ModelConfig = ModelConfig()
    mapping: MapConfig = MapConfig()
    device: DeviceConfig = DeviceConfig()
    logging: LoggingConfig = LoggingConfig()

    def to_dict(self) -> dict[str, Any]:
        """Convert the entire config tree to a nested dictionary.

        :return dict[str, Any]: Nested dict representation of all config fields.
        """
        return asdict(self)


# ------------------------------ Loading ---------------------------------


def _cast_like(old: Any, raw: str) -> Any:
    """Cast a string override to the type of `old`.

    This is intentionally conservative. If we can't cast cleanly, error.

    :param Any old: Reference value whose type determines the cast.
    :param str raw: String value to cast.
    :raises ValueError: If cast fails (e.g., invalid boolean string).
    :return Any: Value cast to the type of `old`.
    """

    if isinstance(old, bool):
        if raw.lower() in {"true", "1", "yes", "y"}:
            return True
        if raw.lower() in {"false", "0", "no", "n"}:
            return False
        raise ValueError(f"Expected boolean, got {raw!r}")
    if isinstance(old, int):
        return int(raw)
    if isinstance(old, float):
        return float(raw)
    if isinstance(old, tuple):
        parsed = yaml.safe_load(raw)
        if isinstance(parsed, list):
            return tuple(parsed)
        if isinstance(parsed, int):
            return (parsed,)
        raise ValueError(f"Expected a list like [16, 32], got {raw!r}")
    if old is None:
        if raw.lower() in {"null", "none"}:
            return None
        try:
            parsed = yaml.safe_load(raw)
        except yaml.YAMLError:
            return raw
        return raw if parsed is None else parsed
    # str and Literal fields stay strings; validation catches bad values.
    return raw


def _set_by_dotted_path(obj: Any, path: str, raw_value: str) -> Any:
    """Set a dataclass field by dotted path, returning a new object.

    Example: path="model.seed", raw_value="4"

    :param Any obj: Root dataclass to modify.
    :param str path: Dot-separated path to the field.
    :param str raw_value: String value to set, cast to the field's current type.
    :raises ValueError: If the path is invalid or contains unknown keys.
    :return Any: New dataclass with the field updated.
    """

    parts = path.split(".")
    cur = obj
    parents: list[tuple[Any, str]] = []
    for p in parts[:-1]:
        if not hasattr(cur, p):
            raise ValueError(f"Unknown config key: {path!r} (missing {p!r})")
        parents.append((cur, p))
        cur = getattr(cur, p)

    leaf = parts[-1]
    if not leaf or not hasattr(cur, leaf):
        raise ValueError(f"Unknown config key: {path!r} (missing {leaf!r})")

    new = _cast_like(getattr(cur, leaf), raw_value)

    # Rebuild frozen dataclasses from the bottom up.
    cur_new = replace(cur, **{leaf: new})
    for parent, name in reversed(parents):
        cur_new = replace(parent, **{name: cur_new})
    return cur_new


def _from_nested_dict(data: dict[str, Any]) -> Config:
    """Convert a nested dict into Config dataclasses.

    :param dict[str, Any] data: Nested dictionary from YAML parsing.
    :raises ValueError: On unknown top-level or nested keys.
    :return Config: Fully constructed Config.
    """

    sections = {
        "model": ModelConfig,
        "mapping": MapConfig,
        "device": DeviceConfig,
        "logging": LoggingConfig,
    }
    unknown = sorted(set(data) - set(sections))
    if unknown:
        raise ValueError(f"Unknown config section(s): {unknown}. Expected {sorted(sections)}")

    built: dict[str, Any] = {}
    for name, cls in sections.items():
        raw = dict(data.get(name) or {})
        if name == "model" and "hidden_dims" in raw:
            raw["hidden_dims"] = tuple(raw["hidden_dims"])
        try:
            built[name] = cls(**raw)
        except TypeError as e:
            raise ValueError(f"Invalid keys in config section {name!r}: {e}") from e
    return Config(**built)


def load_config(path: str | Path, overrides: Iterable[str] | None = None) -> Config:
    """Load YAML config file + apply dot-path overrides.

    Overrides format: "mapping.dtype=bfloat16".

    :param path: Path to the YAML config file.
    :param overrides: Optional list of dot-path overrides.
    :raises ValueError: If an override is malformed or the config is invalid.
    :return Config: Validated configuration object.
    """

    path = Path(path)
    with path.open("r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")

    cfg = _from_nested_dict(data)

    if overrides:
        for o in overrides:
            if "=" not in o:
                raise ValueError(f"Invalid override {o!r}. Expected format like model.seed=123")
            k, v = o.split("=", 1)
            cfg = _set_by_dotted_path(cfg, k.strip(), v.strip())

    validate_config(cfg)
    return cfg


# ------------------------------ Validation ------------------------------


def _vfail(msg: str) -> None:
    """Raise a formatted config validation error.

    :param str msg: Validation error message.
    :raises ValueError: Always raised with formatted message.
    """
    raise ValueError(f"Config validation failed: {msg}")


def _validate_model(cfg: Config) -> None:
    m = cfg.model
    if m.in_dim <= 0:
        _vfail(f"model.in_dim must be positive, got {m.in_dim}")
    if m.out_dim <= 0:
        _vfail(f"model.out_dim must be positive, got {m.out_dim}")
    if not m.hidden_dims:
        _vfail("model.hidden_dims must list at least one layer width")
    if any(int(d) <= 0 for d in m.hidden_dims):
        _vfail(f"model.hidden_dims must all be positive, got {list(m.hidden_dims)}")
    if m.activation not in {"identity", "relu", "sigmoid", "tanh"}:
        _vfail(f"model.activation must be identity|relu|sigmoid|tanh, got {m.activation!r}")
    if m.recurrent not in {"none", "rnn", "lstm"}:
        _vfail(f"model.recurrent must be none|rnn|lstm, got {m.recurrent!r}")
    if m.seq_len <= 0:
        _vfail(f"model.seq_len must be positive, got {m.seq_len}")
    if m.batch_size <= 0:
        _vfail(f"model.batch_size must be positive, got {m.batch_size}")


def _validate_mapping(cfg: Config) -> None:
    if cfg.mapping.dtype not in {"float32", "bfloat16"}:
        _vfail(f"mapping.dtype must be float32 or bfloat16, got {cfg.mapping.dtype!r}")


def _validate_logging(cfg: Config) -> None:
    if cfg.logging.level not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
        _vfail(f"logging.level must be DEBUG|INFO|WARNING|ERROR, got {cfg.logging.level!r}")


def validate_config(cfg: Config) -> None:
    """Validate config with actionable error messages."""
    _validate_model(cfg)
    _validate_mapping(cfg)
    _validate_logging(cfg)


def dtype_from_str(name: str) -> jnp.dtype:
    """Map a dtype string to a JAX dtype.

    :param str name: Dtype name ("float32" or "bfloat16").
    :raises ValueError: If name is not a supported dtype.
    :return jnp.dtype: Corresponding JAX dtype.
    """
    import jax.numpy as jnp

    table = {
        "float32": jnp.float32,
        "bfloat16": jnp.bfloat16,
    }
    if name not in table:
        raise ValueError(f"Unsupported dtype {name!r}. Expected one of {sorted(table)}")
    return table[name]
