"""Device validation utilities.

Silent CPU fallback is one of the most expensive failures when targeting an
accelerator:
- you think the mapped model runs on the TPU/GPU
- but every leaf actually landed on the CPU backend

So we fail fast unless explicitly allowed.
"""

from __future__ import annotations

from typing import Any

import jax

from tpuport.codec import flatten


def validate_default_device(*, allow_cpu: bool) -> None:
    """Fail fast if JAX is running on CPU (unless explicitly allowed)."""

    devs = jax.devices()
    if not devs:
        raise RuntimeError("JAX reports no devices. JAX installation is broken.")

    platform = devs[0].platform
    if platform == "cpu" and not allow_cpu:
        raise RuntimeError(
            "JAX is using CPU backend but device.allow_cpu=false. "
            "Install an accelerator-enabled jaxlib and make the device visible. "
            "Set device.allow_cpu=true only for debugging."
        )


def device_platform(x: jax.Array) -> str | None:
    """Best-effort: return the device platform for an array.

    :param jax.Array x: JAX array to check.
    :return str | None: Platform name (e.g., "cpu", "tpu") or None if unknown.
    """

    # JAX 0.8+: x.device is a Device property (callable in older versions).
    try:
        dev = x.device  # type: ignore[attr-defined]
        if callable(dev):
            return dev().platform  # type: ignore[call-arg]
        return dev.platform  # type: ignore[union-attr]
    except AttributeError:
        pass

    # Older JAX: x.device_buffer.device()
    try:
        return x.device_buffer.device().platform  # type: ignore[attr-defined]
    except AttributeError:
        return None


def assert_tree_on_device(node: Any, *, allow_cpu: bool) -> None:
    """Assert that every array leaf of a mapped tree lives off the CPU, unless allowed.

    :param Any node: Device model tree.
    :param bool allow_cpu: If True, don't raise on CPU placement.
    :raises RuntimeError: If a leaf is on CPU (or unknown) and allow_cpu=False.
    """

    if allow_cpu:
        return
    for leaf in flatten(node):
        if not isinstance(leaf, jax.Array):
            raise RuntimeError(
                f"Found a host leaf of type {type(leaf).__name__} in a device tree. "
                "Map the model with a tpu mapper first."
            )
        plat = device_platform(leaf)
        if plat is None:
            raise RuntimeError(
                "Could not determine array device platform; refusing to proceed with "
                "allow_cpu=false."
            )
        if plat == "cpu":
            raise RuntimeError(
                "Mapped model has leaves on CPU but device.allow_cpu=false. "
                "This usually means no accelerator-enabled jaxlib is installed."
            )
