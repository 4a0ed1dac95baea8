"""Tree helper functions.

The small utilities every model-mapping repo ends up rewriting:
- parameter counts
- tree equality / closeness checks
- shape/dtype summaries

They walk trees with the pattern codec rather than `jax.tree_util`, so host
models (plain dataclasses, not registered pytrees) and device models are
handled the same way. Two trees are only comparable when their patterns match.

Keep it minimal: this is not a generic library.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from tpuport.codec import flatten, flatten_with_pattern


def param_count(node: Any) -> int:
    """Count total number of scalar values in a node's leaves.

    :param Any node: Host or device model tree.
    :return int: Total number of scalars.
    """

    return sum(int(np.size(x)) for x in flatten(node))


def _leaf_pairs(a: Any, b: Any) -> list[tuple[np.ndarray, np.ndarray]] | None:
    la, pa = flatten_with_pattern(a)
    lb, pb = flatten_with_pattern(b)
    if pa != pb:
        return None
    return [(np.asarray(xa), np.asarray(xb)) for xa, xb in zip(la, lb, strict=True)]


def tree_allclose(a: Any, b: Any, *, rtol: float = 1e-6, atol: float = 1e-6) -> bool:
    """Tree-wise allclose for leaves.

    Dtypes are not compared: a device round trip may legitimately change them.

    :param Any a: First tree.
    :param Any b: Second tree.
    :param float rtol: Relative tolerance.
    :param float atol: Absolute tolerance.
    :return bool: True if patterns match and all leaves are element-wise close.
    """

    pairs = _leaf_pairs(a, b)
    if pairs is None:
        return False
    for xa, xb in pairs:
        if xa.shape != xb.shape:
            return False
        if not np.allclose(xa.astype(np.float64), xb.astype(np.float64), rtol=rtol, atol=atol):
            return False
    return True


def tree_equal(a: Any, b: Any) -> bool:
    """Tree-wise exact equality for leaves.

    :param Any a: First tree.
    :param Any b: Second tree.
    :return bool: True if patterns, shapes, dtypes and values all match.
    """

    pairs = _leaf_pairs(a, b)
    if pairs is None:
        return False
    for xa, xb in pairs:
        if xa.shape != xb.shape or xa.dtype != xb.dtype:
            return False
        if not np.array_equal(xa, xb):
            return False
    return True


@dataclass(frozen=True)
class TensorStats:
    """Statistics for a single tensor (shape, dtype, mean, std, min, max)."""

    shape: tuple[int, ...]
    dtype: str
    mean: float
    std: float
    min: float
    max: float


def sample_tensor_stats(node: Any, *, max_tensors: int = 8) -> list[TensorStats]:
    """Sample a few tensors from a tree and compute simple stats.

    This catches obviously broken parameters (all-zeros, NaNs, infs) early.

    :param Any node: Model tree.
    :param int max_tensors: Maximum number of tensors to sample.
    :return list[TensorStats]: Statistics for sampled tensors.
    """

    leaves = [np.asarray(x) for x in flatten(node)]
    out: list[TensorStats] = []
    for x in leaves[:max_tensors]:
        xf = x.astype(np.float32)
        out.append(
            TensorStats(
                shape=tuple(x.shape),
                dtype=str(x.dtype),
                mean=float(np.mean(xf)),
                std=float(np.std(xf)),
                min=float(np.min(xf)),
                max=float(np.max(xf)),
            )
        )
    return out
