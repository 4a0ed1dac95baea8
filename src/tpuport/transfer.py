"""Host/device boundary transfer built on the pattern codec.

Only flat leaf sequences cross the boundary. The pattern stays on the host
side of the call and is handed back when the leaves return.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import jax
import numpy as np

from tpuport.codec import Pattern, flatten_with_pattern, unflatten

logger = logging.getLogger(__name__)


def _nbytes(leaves: Sequence[Any]) -> int:
    return sum(int(getattr(x, "nbytes", 0)) for x in leaves)


def to_device(node: Any, *, device: Any = None) -> tuple[Pattern, list[jax.Array]]:
    """Flatten a node and place every leaf on a device.

    Leaf dtypes are kept as-is; use a tpu mapper first to cast them.

    :param Any node: Composite node.
    :param device: Target `jax.Device` (default device when None).
    :return tuple[Pattern, list[jax.Array]]: (pattern, device leaves).
    """
    leaves, pattern = flatten_with_pattern(node)
    out = [jax.device_put(leaf, device) for leaf in leaves]
    logger.debug("Sent %d leaves (%d bytes) to device.", len(out), _nbytes(out))
    return pattern, out


def to_host(pattern: Pattern, leaves: Sequence[Any]) -> Any:
    """Fetch leaves back to host memory and rebuild the node.

    :param Pattern pattern: Pattern returned by `to_device`.
    :param Sequence[Any] leaves: Device leaves in traversal order.
    :raises PatternMismatch: If the number of leaves does not match the pattern.
    :return Any: Node with numpy leaves.
    """
    host = [np.asarray(x) for x in jax.device_get(list(leaves))]
    logger.debug("Received %d leaves (%d bytes) from device.", len(host), _nbytes(host))
    return unflatten(pattern, host)
