"""Test session configuration."""

from __future__ import annotations

import os

# Tests run on the CPU backend; device checks opt in with allow_cpu.
os.environ.setdefault("JAX_PLATFORMS", "cpu")
os.environ.setdefault("XLA_PYTHON_CLIENT_PREALLOCATE", "false")

from collections.abc import Callable  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402

from tests.helpers.config_factories import make_small_cfg  # noqa: E402
from tpuport.config import Config  # noqa: E402


@pytest.fixture
def small_cfg_factory() -> Callable[[Path], tuple[Config, Path]]:
    """Expose the shared small config factory."""
    return make_small_cfg


@pytest.fixture
def small_cfg(tmp_path: Path) -> tuple[Config, Path]:
    """Provide a CPU-sized config tuple for tests."""
    return make_small_cfg(tmp_path)
