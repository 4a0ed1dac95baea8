"""Host-side layer library.

A deliberately small, numpy-backed stand-in for a conventional deep-learning
library. Layers are plain mutable dataclasses holding numpy arrays; nothing
here is registered with JAX. The device mappers reach into them purely through
`dataclasses.fields`.

Conventions:
- features on axis 0, batch on the trailing axis (x: [features, batch])
- every layer also runs on JAX arrays, so a mapped model can be called
  directly on device
- fields marked ``metadata={"static": True}`` are configuration, not parameters
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import jax
import jax.numpy as jnp
import numpy as np

Activation = Callable[[Any], Any]


def _xp(x: Any) -> Any:
    """Array namespace for x: jax.numpy for device arrays, numpy otherwise."""
    return jnp if isinstance(x, jax.Array) else np


def _expand(v: Any, ndim: int) -> Any:
    """Reshape a per-feature vector so it broadcasts against [features, ...]."""
    if ndim <= 1 or v.ndim != 1:
        return v
    return v.reshape((-1,) + (1,) * (ndim - 1))


def identity(x: Any) -> Any:
    return x


def relu(x: Any) -> Any:
    return _xp(x).maximum(x, 0)


def sigmoid(x: Any) -> Any:
    return 1 / (1 + _xp(x).exp(-x))


def tanh(x: Any) -> Any:
    return _xp(x).tanh(x)


ACTIVATIONS: dict[str, Activation] = {
    "identity": identity,
    "relu": relu,
    "sigmoid": sigmoid,
    "tanh": tanh,
}


def _glorot(rng: np.random.Generator, out_dim: int, in_dim: int) -> np.ndarray:
    scale = np.sqrt(6.0 / (in_dim + out_dim))
    return rng.uniform(-scale, scale, size=(out_dim, in_dim)).astype(np.float32)


# ------------------------------ Tracking -----------------------------------


@dataclass(eq=False)
class Tracked:
    """An array wrapped with gradient-tracking bookkeeping.

    Only `data` matters for inference; mappers unwrap it.
    """

    data: np.ndarray
    grad: np.ndarray | None = None


def data(x: Any) -> Any:
    """Strip a `Tracked` wrapper, returning the underlying array."""
    return x.data if isinstance(x, Tracked) else x


# ------------------------------ Layers -------------------------------------


@dataclass(eq=False)
class Dense:
    """Affine layer: activation(W @ x + b)."""

    W: Any
    b: Any
    activation: Activation = identity

    @classmethod
    def init(
        cls,
        in_dim: int,
        out_dim: int,
        *,
        rng: np.random.Generator,
        activation: Activation = identity,
    ) -> Dense:
        """Glorot-uniform weights, zero bias."""
        return cls(
            W=_glorot(rng, out_dim, in_dim),
            b=np.zeros((out_dim,), dtype=np.float32),
            activation=activation,
        )

    def __call__(self, x: Any) -> Any:
        y = data(self.W) @ x
        return self.activation(y + _expand(data(self.b), y.ndim))


@dataclass(init=False, eq=False)
class Chain:
    """Sequential container. `layers` is an ordinary (mutable) list."""

    layers: list[Any]

    def __init__(self, *layers: Any):
        self.layers = list(layers)

    def __call__(self, x: Any) -> Any:
        for layer in self.layers:
            x = layer(x)
        return x

    def __len__(self) -> int:
        return len(self.layers)

    def __getitem__(self, i: int) -> Any:
        return self.layers[i]


@dataclass(eq=False)
class BatchNorm:
    """Batch normalization over the leading (channel) axis.

    `active` selects training mode: batch statistics are used and the running
    statistics `mu` / `sigma2` are updated in place. It must stay the last field.
    """

    activation: Activation
    beta: Any
    gamma: Any
    mu: Any
    sigma2: Any
    eps: float = field(default=1e-5, metadata={"static": True})
    momentum: float = field(default=0.1, metadata={"static": True})
    active: bool = field(default=False, metadata={"static": True})

    @classmethod
    def init(
        cls,
        channels: int,
        activation: Activation = identity,
        *,
        eps: float = 1e-5,
        momentum: float = 0.1,
    ) -> BatchNorm:
        """Identity-initialized batch norm with unit running variance."""
        return cls(
            activation=activation,
            beta=np.zeros((channels,), dtype=np.float32),
            gamma=np.ones((channels,), dtype=np.float32),
            mu=np.zeros((channels,), dtype=np.float32),
            sigma2=np.ones((channels,), dtype=np.float32),
            eps=eps,
            momentum=momentum,
        )

    def __call__(self, x: Any) -> Any:
        xp = _xp(x)
        if self.active:
            axes = tuple(range(1, x.ndim))
            mean = xp.mean(x, axis=axes)
            var = xp.var(x, axis=axes)
            m = self.momentum
            self.mu = (1 - m) * self.mu + m * mean
            self.sigma2 = (1 - m) * self.sigma2 + m * var
        else:
            mean, var = self.mu, self.sigma2
        y = (x - _expand(mean, x.ndim)) / xp.sqrt(_expand(var, x.ndim) + self.eps)
        y = _expand(self.gamma, x.ndim) * y + _expand(self.beta, x.ndim)
        return self.activation(y)


# ------------------------------ Recurrence ---------------------------------


class RecurrentCell:
    """Base for cells used as ``cell(state, x) -> (state, y)``."""

    def initial_state(self) -> Any:
        raise NotImplementedError


@dataclass(eq=False)
class RNNCell(RecurrentCell):
    """Elman cell: h' = activation(Wi @ x + Wh @ h + b)."""

    activation: Activation
    Wi: Any
    Wh: Any
    b: Any
    h: Any

    @classmethod
    def init(
        cls, in_dim: int, hidden_dim: int, *, rng: np.random.Generator, activation: Activation = tanh
    ) -> RNNCell:
        return cls(
            activation=activation,
            Wi=_glorot(rng, hidden_dim, in_dim),
            Wh=_glorot(rng, hidden_dim, hidden_dim),
            b=np.zeros((hidden_dim,), dtype=np.float32),
            h=np.zeros((hidden_dim,), dtype=np.float32),
        )

    def initial_state(self) -> Any:
        return self.h

    def __call__(self, state: Any, x: Any) -> tuple[Any, Any]:
        z = self.Wi @ x
        h = self.activation(z + _expand(self.Wh @ state, z.ndim) + _expand(self.b, z.ndim))
        return h, h


@dataclass(eq=False)
class LSTMCell(RecurrentCell):
    """LSTM cell. Gate rows of Wi/Wh/b are ordered input, forget, cell, output."""

    Wi: Any
    Wh: Any
    b: Any
    h: Any
    c: Any

    @classmethod
    def init(cls, in_dim: int, hidden_dim: int, *, rng: np.random.Generator) -> LSTMCell:
        b = np.zeros((4 * hidden_dim,), dtype=np.float32)
        # Forget-gate bias starts at 1.
        b[hidden_dim : 2 * hidden_dim] = 1.0
        return cls(
            Wi=_glorot(rng, 4 * hidden_dim, in_dim),
            Wh=_glorot(rng, 4 * hidden_dim, hidden_dim),
            b=b,
            h=np.zeros((hidden_dim,), dtype=np.float32),
            c=np.zeros((hidden_dim,), dtype=np.float32),
        )

    def initial_state(self) -> Any:
        return (self.h, self.c)

    def __call__(self, state: Any, x: Any) -> tuple[Any, Any]:
        h, c = state
        xp = _xp(x)
        z = self.Wi @ x
        gates = z + _expand(self.Wh @ h, z.ndim) + _expand(self.b, z.ndim)
        i, f, g, o = xp.split(gates, 4, axis=0)
        c = sigmoid(f) * _expand(c, z.ndim) + sigmoid(i) * tanh(g)
        h = sigmoid(o) * tanh(c)
        return (h, c), h


@dataclass(init=False, eq=False)
class Recur:
    """Stateful wrapper: calling it advances `state` and returns the cell output."""

    cell: Any
    init: Any
    state: Any

    def __init__(self, cell: Any, init: Any = None, state: Any = None):
        self.cell = cell
        self.init = cell.initial_state() if init is None else init
        self.state = self.init if state is None else state

    def __call__(self, x: Any) -> Any:
        self.state, y = self.cell(self.state, x)
        return y

    def reset(self) -> None:
        self.state = self.init
