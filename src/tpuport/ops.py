"""Softmax family and cross-entropy losses for device arrays.

Layout: classes on the leading axis, samples on the trailing axis, so
reductions run over axis 0 and the batch size is ``y.shape[-1]``.

The gradients of `softmax` and `logsoftmax` are supplied in closed form via
`jax.custom_vjp`; JAX never differentiates through their bodies.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp


def _softmax(xs: jax.Array) -> jax.Array:
    ys = xs - jnp.max(xs, axis=0, keepdims=True)
    zs = jnp.exp(ys)
    return zs / jnp.sum(zs, axis=0, keepdims=True)


def _logsoftmax(xs: jax.Array) -> jax.Array:
    ys = xs - jnp.max(xs, axis=0, keepdims=True)
    zs = jnp.sum(jnp.exp(ys), axis=0, keepdims=True)
    return ys - jnp.log(zs)


def softmax_grad(delta: jax.Array, xs: jax.Array) -> jax.Array:
    """Pull `delta` back through softmax at `xs`: ``s * (delta - sum(delta * s))``."""
    sf = _softmax(xs)
    return sf * (delta - jnp.sum(delta * sf, axis=0, keepdims=True))


def logsoftmax_grad(delta: jax.Array, xs: jax.Array) -> jax.Array:
    """Pull `delta` back through logsoftmax at `xs` by rescaling it into softmax space."""
    eps = jnp.finfo(xs.dtype).eps
    return softmax_grad(delta / jnp.maximum(eps, _softmax(xs)), xs)


@jax.custom_vjp
def softmax(xs: jax.Array) -> jax.Array:
    """Numerically stable softmax over the leading axis."""
    return _softmax(xs)


def _softmax_fwd(xs: jax.Array) -> tuple[jax.Array, jax.Array]:
    return _softmax(xs), xs


def _softmax_bwd(xs: jax.Array, delta: jax.Array) -> tuple[jax.Array]:
    return (softmax_grad(delta, xs),)


softmax.defvjp(_softmax_fwd, _softmax_bwd)


@jax.custom_vjp
def logsoftmax(xs: jax.Array) -> jax.Array:
    """Numerically stable log-softmax over the leading axis."""
    return _logsoftmax(xs)


def _logsoftmax_fwd(xs: jax.Array) -> tuple[jax.Array, jax.Array]:
    return _logsoftmax(xs), xs


def _logsoftmax_bwd(xs: jax.Array, delta: jax.Array) -> tuple[jax.Array]:
    return (logsoftmax_grad(delta, xs),)


logsoftmax.defvjp(_logsoftmax_fwd, _logsoftmax_bwd)


def neg_nbatch(y: jax.Array) -> jax.Array:
    """Negative batch size (trailing axis length) as a float32 constant.

    Wrapped in `stop_gradient`: the batch size is data layout, not a parameter.
    """
    return jax.lax.stop_gradient(jnp.asarray(-y.shape[-1], dtype=jnp.float32))


def crossentropy(y_hat: jax.Array, y: jax.Array) -> jax.Array:
    """Mean cross-entropy between probabilities `y_hat` and targets `y`.

    :param jax.Array y_hat: Predicted probabilities, [classes, batch].
    :param jax.Array y: Target distribution (usually one-hot), [classes, batch].
    :return jax.Array: Scalar loss.
    """
    return jnp.sum(y * jnp.log(y_hat)) / neg_nbatch(y)


def logitcrossentropy(logits: jax.Array, y: jax.Array) -> jax.Array:
    """Mean cross-entropy computed from unnormalized logits.

    :param jax.Array logits: Unnormalized scores, [classes, batch].
    :param jax.Array y: Target distribution (usually one-hot), [classes, batch].
    :return jax.Array: Scalar loss.
    """
    return jnp.sum(y * logsoftmax(logits)) / neg_nbatch(y)
