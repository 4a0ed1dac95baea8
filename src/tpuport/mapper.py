"""Device mappers: rewrite a host model tree into its device twin and back.

A `DeviceMapper` is an ordered table of ``(predicate, handler)`` rules. The
first rule whose predicate accepts a value handles it; when none does, the
mapper falls back to structural recursion:
- composites are rebuilt with the same shape from mapped fields
- `None`, static fields and opaque values (functions) pass through unchanged
- anything else raises `UnsupportedNodeKind`

Handlers receive the mapper itself, so nested values are always mapped with
the same table, including any rules a caller added with `with_rule`.

Mappers are immutable. There is no global registry; build the one you need
and pass it around:

    to_dev = tpu_mapper(dtype=jnp.bfloat16)
    device_model = to_dev(host_model)
"""

from __future__ import annotations

import numbers
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import numpy as np

from tpuport.layers import BatchNorm, Chain, Recur, RecurrentCell, Tracked, data
from tpuport.structure import UnsupportedNodeKind, classify, node_def, node_fields
from tpuport.types import DeviceBatchNorm, ImmutableChain

if TYPE_CHECKING:
    from tpuport.config import MapConfig

Predicate = Callable[[Any], bool]
Handler = Callable[["DeviceMapper", Any], Any]
Rule = tuple[Predicate, Handler]

__all__ = [
    "DeviceMapper",
    "UnsupportedNodeKind",
    "cpu_mapper",
    "map_to_cpu",
    "map_to_tpu",
    "tpu",
    "tpu_mapper",
]


def _of_type(*types: type) -> Predicate:
    return lambda x: isinstance(x, types)


@dataclass(frozen=True)
class DeviceMapper:
    """Ordered first-match-wins rewrite table with structural recursion as default."""

    rules: tuple[Rule, ...] = ()
    name: str = "mapper"

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))

    def __repr__(self) -> str:
        return f"DeviceMapper(name={self.name!r}, rules={len(self.rules)})"

    def __call__(self, x: Any) -> Any:
        for predicate, handler in self.rules:
            if predicate(x):
                return handler(self, x)
        return self.default(x)

    def with_rule(
        self, predicate: Predicate | type, handler: Handler, *, first: bool = True
    ) -> DeviceMapper:
        """Return a new mapper with one more rule.

        :param predicate: Predicate, or a type to match with isinstance.
        :param Handler handler: Called as ``handler(mapper, x)``.
        :param bool first: If True the rule takes precedence over existing rules.
        :return DeviceMapper: New mapper; self is left unchanged.
        """
        if isinstance(predicate, type):
            predicate = _of_type(predicate)
        rule = (predicate, handler)
        rules = (rule, *self.rules) if first else (*self.rules, rule)
        return DeviceMapper(rules, name=self.name)

    def default(self, x: Any) -> Any:
        """Structural fallback for values no rule claimed.

        :param Any x: Value to map.
        :raises UnsupportedNodeKind: If x cannot be classified.
        :return Any: x itself for leaves/absent/static values, else a rebuilt node.
        """
        if classify(x) != "node":
            return x
        return node_def(x).build(self.map_fields(x))

    def map_fields(self, x: Any, *, exclude: Iterable[str] = ()) -> list[Any]:
        """Map every non-static field of x, in declaration order.

        :param Any x: Composite node.
        :param exclude: Field names to drop from the result.
        :return list[Any]: Mapped field values (static fields unchanged).
        """
        skip = set(exclude)
        return [
            f.value if f.static else self(f.value)
            for f in node_fields(x)
            if f.name not in skip
        ]

    def map_children(self, x: Any) -> Any:
        """Rebuild x with mapped fields, skipping the rule table for x itself."""
        return self.default(x)

    @classmethod
    def from_config(cls, cfg: MapConfig) -> tuple[DeviceMapper, DeviceMapper]:
        """Build the (to-device, to-host) mapper pair described by a MapConfig."""
        from tpuport.config import dtype_from_str

        return tpu_mapper(dtype=dtype_from_str(cfg.dtype)), cpu_mapper()


# ------------------------------ Host -> device -----------------------------


def _is_scalar(x: Any) -> bool:
    return isinstance(x, (numbers.Number, np.generic))


def tpu_mapper(*, dtype: Any = jnp.float32) -> DeviceMapper:
    """Mapper from host models to device models.

    :param dtype: Element type every array and scalar is cast to.
    :return DeviceMapper: The host-to-device mapper.
    """

    def scalar(m: DeviceMapper, x: Any) -> jax.Array:
        return jnp.asarray(x, dtype=dtype)

    def array(m: DeviceMapper, x: Any) -> jax.Array:
        return jnp.asarray(x, dtype=dtype)

    def tracked(m: DeviceMapper, x: Tracked) -> Any:
        return m(data(x))

    def chain(m: DeviceMapper, x: Chain) -> ImmutableChain:
        return ImmutableChain(tuple(m(layer) for layer in x.layers))

    def batchnorm(m: DeviceMapper, x: BatchNorm) -> DeviceBatchNorm:
        # The training-mode flag has no device meaning.
        return DeviceBatchNorm(*m.map_fields(x, exclude=("active",)))

    def recur(m: DeviceMapper, x: Recur) -> Any:
        # Recurrence is threaded explicitly on device; only the cell survives.
        return m.map_children(x.cell)

    return DeviceMapper(
        [
            (_is_scalar, scalar),
            (_of_type(np.ndarray, jax.Array), array),
            (_of_type(Tracked), tracked),
            (_of_type(Chain), chain),
            (_of_type(BatchNorm), batchnorm),
            (_of_type(Recur), recur),
        ],
        name="tpu",
    )


# ------------------------------ Device -> host -----------------------------


def cpu_mapper(*, batchnorm_active: bool = False) -> DeviceMapper:
    """Mapper from device models back to host models.

    :param bool batchnorm_active: Training-mode flag given to rebuilt BatchNorm layers.
    :return DeviceMapper: The device-to-host mapper.
    """

    def array(m: DeviceMapper, x: jax.Array) -> Any:
        out = np.asarray(jax.device_get(x))
        # 0-d arrays become numpy scalars of the same dtype.
        return out[()] if out.ndim == 0 else out

    def chain(m: DeviceMapper, x: ImmutableChain) -> Chain:
        return Chain(*(m(layer) for layer in x.layers))

    def batchnorm(m: DeviceMapper, x: DeviceBatchNorm) -> BatchNorm:
        return BatchNorm(*m.map_fields(x), active=batchnorm_active)

    def recur(m: DeviceMapper, x: Recur) -> Recur:
        return Recur(m.map_children(x.cell))

    def cell(m: DeviceMapper, x: RecurrentCell) -> Recur:
        return Recur(m.map_children(x))

    return DeviceMapper(
        [
            (_of_type(jax.Array), array),
            (_of_type(ImmutableChain), chain),
            (_of_type(DeviceBatchNorm), batchnorm),
            (_of_type(Recur), recur),
            (_of_type(RecurrentCell), cell),
        ],
        name="cpu",
    )


map_to_tpu = tpu_mapper()
map_to_cpu = cpu_mapper()
tpu = map_to_tpu
