"""End-to-end round trip: host model -> device -> boundary -> host.

This is the smoke test the CLI runs against a real backend:

1) build the demo host model from config
2) map it to the device (`tpu_mapper`) and check leaf placement
3) push its leaves across the boundary and rebuild it from pattern + leaves
4) fetch the leaves back and map the tree to the host (`cpu_mapper`)
5) compare structure and values with the original, and compare host vs
   device forward passes on the same inputs
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from tpuport.codec import pattern_of, unflatten
from tpuport.config import Config
from tpuport.mapper import DeviceMapper
from tpuport.model import build_model, sample_inputs
from tpuport.transfer import to_device, to_host
from tpuport.utils.devices import assert_tree_on_device
from tpuport.utils.tree import param_count, tree_allclose

logger = logging.getLogger(__name__)

# (values atol, forward atol) per mapped dtype.
_TOLERANCES = {
    "float32": (1e-6, 1e-4),
    "bfloat16": (1e-2, 1e-1),
}


@dataclass(frozen=True)
class RoundTripReport:
    """Outcome of `run_roundtrip`."""

    num_leaves: int
    param_count: int
    transfer_bytes: int
    structure_ok: bool
    values_ok: bool
    forward_max_abs_diff: float
    forward_ok: bool

    @property
    def ok(self) -> bool:
        return self.structure_ok and self.values_ok and self.forward_ok


def run_roundtrip(cfg: Config) -> RoundTripReport:
    """Run the round trip described in the module docstring.

    :param Config cfg: Configuration.
    :raises RuntimeError: If mapped leaves are on CPU and cfg.device.allow_cpu is False.
    :return RoundTripReport: Comparison results.
    """
    value_atol, forward_atol = _TOLERANCES[cfg.mapping.dtype]
    to_dev, to_cpu = DeviceMapper.from_config(cfg.mapping)

    host = build_model(cfg)
    device_model = to_dev(host)
    assert_tree_on_device(device_model, allow_cpu=cfg.device.allow_cpu)

    pattern, leaves = to_device(device_model)
    transfer_bytes = sum(int(x.nbytes) for x in leaves)
    logger.info("Moved %d leaves (%d bytes) across the boundary.", len(leaves), transfer_bytes)

    received = unflatten(pattern, leaves)
    back = to_cpu(to_host(pattern, leaves))

    structure_ok = pattern_of(back) == pattern_of(host)
    values_ok = structure_ok and tree_allclose(back, host, rtol=0.0, atol=value_atol)
    if not structure_ok:
        logger.warning("Round-tripped model structure differs from the original.")
    elif not values_ok:
        logger.warning("Round-tripped parameters differ from the original beyond atol=%g.", value_atol)

    xs = sample_inputs(cfg)
    y_host = np.asarray(host(xs), dtype=np.float32)
    y_dev = np.asarray(received([to_dev(x) for x in xs]), dtype=np.float32)
    diff = float(np.max(np.abs(y_host - y_dev)))
    forward_ok = bool(diff <= forward_atol)
    if not forward_ok:
        logger.warning("Host and device outputs differ by %g (atol=%g).", diff, forward_atol)

    return RoundTripReport(
        num_leaves=len(leaves),
        param_count=param_count(host),
        transfer_bytes=transfer_bytes,
        structure_ok=structure_ok,
        values_ok=values_ok,
        forward_max_abs_diff=diff,
        forward_ok=forward_ok,
    )
