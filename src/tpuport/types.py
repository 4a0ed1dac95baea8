"""Device-side pytrees.

Keep this file small: it defines the node types that only exist on the device
side of the mapping.

- `ImmutableChain` is what a host `Chain` becomes. Its stages live in a tuple
  field of a frozen Equinox module, so the stage count and order are part of
  the traced structure and can never change after construction.
- `DeviceBatchNorm` is what a host `BatchNorm` becomes. It has no training-mode
  flag: that is a host concern.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import equinox as eqx
import jax
import jax.numpy as jnp


def apply_all(stages: Sequence[Callable[[Any], Any]], x: Any) -> Any:
    """Feed x through each stage in order. No stages means x is returned as-is."""
    for stage in stages:
        x = stage(x)
    return x


class ImmutableChain(eqx.Module):
    """Fixed sequential composition of stages.

    Build it from the stages directly or from a single tuple:

        ImmutableChain(f, g, h)
        ImmutableChain((f, g, h))

    Calling it computes ``h(g(f(x)))``.
    """

    layers: tuple[Any, ...]

    def __init__(self, *layers: Any):
        if len(layers) == 1 and isinstance(layers[0], tuple):
            layers = layers[0]
        self.layers = tuple(layers)

    def __call__(self, x: Any) -> Any:
        return apply_all(self.layers, x)

    def __len__(self) -> int:
        return len(self.layers)

    def __getitem__(self, i: int) -> Any:
        return self.layers[i]


def _channel_shape(x: jax.Array) -> tuple[int, ...]:
    return (x.shape[0],) + (1,) * (x.ndim - 1)


class DeviceBatchNorm(eqx.Module):
    """Batch normalization over the leading (channel) axis.

    Field order matches the host `BatchNorm` minus its trailing `active` flag.
    """

    activation: Callable[[Any], Any] = eqx.field(static=True)
    beta: jax.Array
    gamma: jax.Array
    mu: jax.Array
    sigma2: jax.Array
    eps: float = eqx.field(static=True, default=1e-5)
    momentum: float = eqx.field(static=True, default=0.1)

    def __call__(self, x: jax.Array, *, inference: bool = True) -> jax.Array:
        """Normalize x.

        :param jax.Array x: Input of shape [C, ...].
        :param bool inference: If True use running statistics, else batch statistics.
        :return jax.Array: Normalized, scaled, shifted and activated output.
        """
        shape = _channel_shape(x)
        if inference:
            mean = jnp.reshape(self.mu, shape)
            var = jnp.reshape(self.sigma2, shape)
        else:
            axes = tuple(range(1, x.ndim))
            mean = jnp.mean(x, axis=axes, keepdims=True)
            var = jnp.var(x, axis=axes, keepdims=True)
        y = (x - mean) / jnp.sqrt(var + self.eps)
        y = jnp.reshape(self.gamma, shape) * y + jnp.reshape(self.beta, shape)
        return self.activation(y)
