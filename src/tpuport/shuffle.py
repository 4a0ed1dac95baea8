"""Sort-based shuffling and random helpers for device arrays.

Accelerators without a native permutation primitive can still shuffle: sort
the data by freshly drawn random keys, a few times. Each round uses
independent uint32 keys; ties between keys keep their previous order (stable
sort), which is the only source of bias. The number of rounds grows with the
length so that the chance of any tie surviving every round stays small
regardless of size.

JAX keeps no ambient RNG state, so every function that draws takes a PRNG key.
"""

from __future__ import annotations

import math
from typing import Any

import jax
import jax.numpy as jnp

KEY_DTYPE = jnp.uint32
DEFAULT_EXPONENT = 3


def calc_rounds(length: int, *, exponent: int = DEFAULT_EXPONENT) -> int:
    """Number of key-sort rounds needed to shuffle `length` elements.

    ``ceil(exponent * ln(length) / ln(2**32))``; zero for length <= 1.

    :param int length: Number of elements to shuffle.
    :param int exponent: Larger values give more rounds and a closer-to-uniform result.
    :return int: Number of rounds.
    """
    if length <= 1:
        return 0
    return math.ceil(exponent * math.log(length) / math.log(2**32))


def sort(x: jax.Array, *, keys: jax.Array | None = None) -> jax.Array:
    """Stable sort of a 1-D array by `keys` (x itself when omitted); keys are dropped."""
    if keys is None:
        keys = x
    _, out = jax.lax.sort((keys, x), num_keys=1, is_stable=True)
    return out


def rand(key: jax.Array, dtype: Any, *shape: int) -> jax.Array:
    """Uniform samples.

    - unsigned integers: full range of the dtype
    - signed integers: ``[min, max)`` of the dtype
    - floats: ``[0, 1)``

    :param jax.Array key: PRNG key.
    :param dtype: Element type of the result.
    :param int shape: Result shape.
    :return jax.Array: Samples of the requested dtype and shape.
    """
    dtype = jnp.dtype(dtype)
    if jnp.issubdtype(dtype, jnp.unsignedinteger):
        return jax.random.bits(key, shape, dtype)
    if jnp.issubdtype(dtype, jnp.integer):
        info = jnp.iinfo(dtype)
        return jax.random.randint(key, shape, info.min, info.max, dtype=dtype)
    return jax.random.uniform(key, shape, dtype=dtype, minval=0.0, maxval=1.0)


def randn(key: jax.Array, dtype: Any, *shape: int) -> jax.Array:
    """Standard normal samples of a float dtype."""
    return jax.random.normal(key, shape, dtype=dtype)


def shuffle(x: jax.Array, key: jax.Array, *, exponent: int = DEFAULT_EXPONENT) -> jax.Array:
    """Shuffle a 1-D array by repeated random-key sorting.

    The round count depends only on the (static) length, so this traces to a
    fixed number of sorts under `jax.jit`.

    :param jax.Array x: 1-D array to shuffle.
    :param jax.Array key: PRNG key.
    :param int exponent: See `calc_rounds`.
    :raises ValueError: If x is not 1-D.
    :return jax.Array: A permutation of x.
    """
    if x.ndim != 1:
        raise ValueError(f"shuffle expects a 1-D array, got shape {tuple(x.shape)}")
    length = x.shape[0]
    for _ in range(calc_rounds(length, exponent=exponent)):
        key, subkey = jax.random.split(key)
        x = sort(x, keys=rand(subkey, KEY_DTYPE, length))
    return x
