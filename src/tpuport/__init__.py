"""tpuport: move host models onto accelerators and back.

Built around four pieces:
- pattern codec: flatten any nested model into a flat list of arrays and back
- device mappers: rewrite a host model tree into its device twin and back
- ImmutableChain: a fixed sequential composition for device execution
- sort-based shuffle for devices without a permutation primitive

Plus the softmax/cross-entropy operators with closed-form gradients.
"""

from __future__ import annotations

from tpuport._version import __version__
from tpuport.codec import Pattern, PatternMismatch, flatten, flatten_with_pattern, pattern_of, unflatten
from tpuport.mapper import DeviceMapper, cpu_mapper, map_to_cpu, map_to_tpu, tpu, tpu_mapper
from tpuport.structure import UnsupportedNodeKind
from tpuport.types import DeviceBatchNorm, ImmutableChain

__all__ = [
    "DeviceBatchNorm",
    "DeviceMapper",
    "ImmutableChain",
    "Pattern",
    "PatternMismatch",
    "UnsupportedNodeKind",
    "__version__",
    "cpu_mapper",
    "flatten",
    "flatten_with_pattern",
    "map_to_cpu",
    "map_to_tpu",
    "pattern_of",
    "tpu",
    "tpu_mapper",
    "unflatten",
]
