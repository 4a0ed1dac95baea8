"""Sort-based shuffle and random helper tests."""

from __future__ import annotations

import math

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from tpuport import shuffle as shuffle_mod
from tpuport.shuffle import KEY_DTYPE, calc_rounds, rand, randn, shuffle, sort


def test_calc_rounds_examples() -> None:
    """Round counts follow ceil(3 * ln(L) / ln(2**32))."""
    assert calc_rounds(0) == 0
    assert calc_rounds(1) == 0
    assert calc_rounds(2) == 1
    assert calc_rounds(1000) == 1
    assert calc_rounds(2**32) == 3
    assert calc_rounds(2**32 + 1) == 4
    assert calc_rounds(10**6, exponent=10) == math.ceil(10 * math.log(10**6) / math.log(2**32))


def test_calc_rounds_is_monotonic() -> None:
    """Longer inputs never need fewer rounds."""
    lengths = [2, 3, 10, 1000, 2**16, 2**31, 2**40, 2**64]
    counts = [calc_rounds(n) for n in lengths]
    assert counts == sorted(counts)
    assert all(calc_rounds(n, exponent=4) >= calc_rounds(n) for n in lengths)


def test_shuffle_returns_permutation() -> None:
    """The multiset of values is unchanged."""
    x = jnp.arange(100)
    out = shuffle(x, jax.random.PRNGKey(0))
    assert out.shape == x.shape
    assert out.dtype == x.dtype
    np.testing.assert_array_equal(np.sort(np.asarray(out)), np.asarray(x))


def test_shuffle_actually_moves_elements() -> None:
    """Different keys give different orders for a non-trivial length."""
    x = jnp.arange(64)
    a = np.asarray(shuffle(x, jax.random.PRNGKey(0)))
    b = np.asarray(shuffle(x, jax.random.PRNGKey(1)))
    assert not np.array_equal(a, np.asarray(x))
    assert not np.array_equal(a, b)


def test_shuffle_is_deterministic_for_a_key() -> None:
    """The same key reproduces the same permutation."""
    x = jnp.arange(32, dtype=jnp.float32)
    key = jax.random.PRNGKey(7)
    np.testing.assert_array_equal(np.asarray(shuffle(x, key)), np.asarray(shuffle(x, key)))


@pytest.mark.parametrize("length", [0, 1])
def test_trivial_lengths_draw_no_keys(length: int, monkeypatch: pytest.MonkeyPatch) -> None:
    """Empty and single-element inputs come back unchanged without drawing randomness."""
    calls: list[int] = []

    def counting_rand(*args: object) -> jax.Array:
        calls.append(1)
        return rand(*args)  # type: ignore[arg-type]

    monkeypatch.setattr(shuffle_mod, "rand", counting_rand)
    x = jnp.arange(length, dtype=jnp.float32)
    out = shuffle(x, jax.random.PRNGKey(0))

    assert calls == []
    np.testing.assert_array_equal(np.asarray(out), np.asarray(x))


def test_shuffle_draws_one_key_set_per_round(monkeypatch: pytest.MonkeyPatch) -> None:
    """Each round draws one fresh uint32 key per element."""
    drawn: list[tuple[object, tuple[int, ...]]] = []

    def recording_rand(key: jax.Array, dtype: object, *shape: int) -> jax.Array:
        drawn.append((dtype, shape))
        return rand(key, dtype, *shape)

    monkeypatch.setattr(shuffle_mod, "rand", recording_rand)
    shuffle(jnp.arange(50), jax.random.PRNGKey(0), exponent=7)

    assert len(drawn) == calc_rounds(50, exponent=7)
    assert all(dtype == KEY_DTYPE and shape == (50,) for dtype, shape in drawn)


def test_shuffle_rejects_non_vector() -> None:
    """Only 1-D arrays are accepted."""
    with pytest.raises(ValueError, match="1-D"):
        shuffle(jnp.zeros((2, 3)), jax.random.PRNGKey(0))


def test_shuffle_under_jit() -> None:
    """The round count is static, so the shuffle traces under jit."""
    fn = jax.jit(shuffle)
    out = fn(jnp.arange(20), jax.random.PRNGKey(3))
    np.testing.assert_array_equal(np.sort(np.asarray(out)), np.arange(20))


def test_sort_by_keys_is_stable() -> None:
    """Equal keys keep the incoming order; the keys themselves are not returned."""
    x = jnp.asarray([10, 11, 12, 13, 14])
    keys = jnp.asarray([2, 1, 2, 1, 0], dtype=jnp.uint32)
    np.testing.assert_array_equal(np.asarray(sort(x, keys=keys)), [14, 11, 13, 10, 12])


def test_sort_without_keys_sorts_values() -> None:
    """Omitting keys sorts x by itself."""
    np.testing.assert_array_equal(np.asarray(sort(jnp.asarray([3.0, 1.0, 2.0]))), [1.0, 2.0, 3.0])


def test_rand_dtypes_and_ranges() -> None:
    """rand covers unsigned, signed and float element types."""
    key = jax.random.PRNGKey(0)

    u = rand(key, jnp.uint32, 1000)
    assert u.dtype == jnp.uint32
    assert u.shape == (1000,)

    s = rand(key, jnp.int8, 1000)
    assert s.dtype == jnp.int8
    assert int(jnp.min(s)) >= -128
    assert int(jnp.max(s)) < 127

    f = rand(key, jnp.float32, 10, 10)
    assert f.dtype == jnp.float32
    assert f.shape == (10, 10)
    assert bool(jnp.all((f >= 0.0) & (f < 1.0)))


def test_randn_shape_and_moments() -> None:
    """randn draws roughly standard-normal samples."""
    z = randn(jax.random.PRNGKey(0), jnp.float32, 10_000)
    assert z.dtype == jnp.float32
    assert abs(float(jnp.mean(z))) < 0.05
    assert abs(float(jnp.std(z)) - 1.0) < 0.05
