"""Structural introspection for composite nodes.

Everything that walks a model tree (the codec, the device mappers, the tree
helpers) asks this module three questions:
- what kind of value is this? (leaf / absent / static / node)
- what are its fields, in order?
- how do I build a node of the same shape from new field values?

Composite nodes are dataclasses (Equinox modules included), namedtuples,
tuples, lists and dicts. Anything else that is not a leaf, `None`, or an opaque
value (callables, strings, types) is unsupported and raises.
"""

from __future__ import annotations

import dataclasses
import numbers
from dataclasses import dataclass
from typing import Any, Literal

import jax
import numpy as np

NodeKind = Literal["leaf", "absent", "static", "node"]
ContainerKind = Literal["dataclass", "namedtuple", "tuple", "list", "dict"]

LEAF_TYPES: tuple[type, ...] = (np.ndarray, np.generic, jax.Array, numbers.Number)


class UnsupportedNodeKind(TypeError):
    """Raised when a value has no leaf, absent, static or field-based interpretation."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(
            f"Cannot interpret value of type {type(value).__qualname__!r} as a model node: "
            "it is not an array/scalar leaf, None, a callable, or a composite with fields."
        )


def is_leaf(x: Any) -> bool:
    """Return True for array and scalar leaves."""
    return isinstance(x, LEAF_TYPES)


def is_composite(x: Any) -> bool:
    """Return True for values with an ordered field breakdown."""
    if dataclasses.is_dataclass(x):
        return not isinstance(x, type)
    return isinstance(x, (tuple, list, dict))


def is_opaque(x: Any) -> bool:
    """Return True for values carried through unchanged (functions, strings, types)."""
    return isinstance(x, (str, bytes, type)) or callable(x)


def classify(x: Any) -> NodeKind:
    """Classify a value for traversal.

    Composites are checked before opaque values: Equinox modules and host
    layers are callable, but they have fields to walk.

    :param Any x: Value to classify.
    :raises UnsupportedNodeKind: If the value fits none of the kinds.
    :return NodeKind: One of "leaf", "absent", "static", "node".
    """
    if x is None:
        return "absent"
    if is_leaf(x):
        return "leaf"
    if is_composite(x):
        return "node"
    if is_opaque(x):
        return "static"
    raise UnsupportedNodeKind(x)


@dataclass(frozen=True)
class Field:
    """One field of a composite node."""

    name: Any
    value: Any
    static: bool = False


@dataclass(frozen=True)
class NodeDef:
    """How to rebuild a composite node: container kind, class, field names, static mask."""

    kind: ContainerKind
    cls: type
    names: tuple[Any, ...]
    static: tuple[bool, ...]

    def build(self, values: list[Any]) -> Any:
        """Construct a node of this shape from field values in declaration order.

        Dataclasses are populated without running their ``__init__``, the same way
        Equinox unflattens modules, so custom constructors never get in the way.

        :param list[Any] values: Field values, one per name.
        :raises ValueError: If the number of values differs from the number of fields.
        :return Any: The rebuilt node.
        """
        if len(values) != len(self.names):
            raise ValueError(
                f"{self.cls.__qualname__} has {len(self.names)} fields, got {len(values)} values"
            )
        if self.kind == "dataclass":
            node = object.__new__(self.cls)
            for name, value in zip(self.names, values, strict=True):
                object.__setattr__(node, name, value)
            return node
        if self.kind == "namedtuple":
            return self.cls._make(values)  # type: ignore[attr-defined]
        if self.kind == "dict":
            return self.cls(zip(self.names, values, strict=True))
        return self.cls(values)


def _is_namedtuple(x: Any) -> bool:
    return isinstance(x, tuple) and hasattr(type(x), "_fields")


def node_fields(node: Any) -> tuple[Field, ...]:
    """Return the ordered fields of a composite node.

    :param Any node: Composite node.
    :raises UnsupportedNodeKind: If node is not a composite.
    :return tuple[Field, ...]: Fields in declaration order.
    """
    if dataclasses.is_dataclass(node) and not isinstance(node, type):
        return tuple(
            Field(f.name, getattr(node, f.name), bool(f.metadata.get("static", False)))
            for f in dataclasses.fields(node)
        )
    if _is_namedtuple(node):
        return tuple(Field(name, value) for name, value in zip(node._fields, node, strict=True))
    if isinstance(node, (tuple, list)):
        return tuple(Field(i, value) for i, value in enumerate(node))
    if isinstance(node, dict):
        return tuple(Field(k, v) for k, v in node.items())
    raise UnsupportedNodeKind(node)


def node_def(node: Any) -> NodeDef:
    """Describe the shape of a composite node.

    :param Any node: Composite node.
    :raises UnsupportedNodeKind: If node is not a composite.
    :return NodeDef: Rebuild recipe for nodes of the same shape.
    """
    fields = node_fields(node)
    if dataclasses.is_dataclass(node):
        kind: ContainerKind = "dataclass"
    elif _is_namedtuple(node):
        kind = "namedtuple"
    elif isinstance(node, tuple):
        kind = "tuple"
    elif isinstance(node, list):
        kind = "list"
    else:
        kind = "dict"
    return NodeDef(
        kind=kind,
        cls=type(node),
        names=tuple(f.name for f in fields),
        static=tuple(f.static for f in fields),
    )
