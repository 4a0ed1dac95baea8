"""Pattern codec: flatten composite nodes into leaf sequences and back.

The host/device boundary only moves flat sequences of arrays. The *shape* of a
model (which fields are nested nodes, which are arrays, which are empty) lives
in a `Pattern` that both ends derive from the same host model and never send.

Traversal order is fixed everywhere:
- depth-first
- fields in declaration order
- `None` contributes nothing
- static slots (static dataclass fields, functions, strings) contribute nothing
  and are carried inside the pattern instead

    leaves, pattern = flatten_with_pattern(model)
    ...send leaves...
    model2 = unflatten(pattern, leaves)
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any

import jax
import numpy as np

from tpuport.structure import NodeDef, NodeKind, classify, is_leaf, node_def, node_fields


class PatternMismatch(ValueError):
    """Raised when a leaf sequence does not fit the pattern it is unflattened into.

    Either the length is wrong, or the element at `position` is not a leaf.
    """

    def __init__(self, expected: int, got: int, *, position: int | None = None, value: Any = None):
        self.expected = expected
        self.got = got
        self.position = position
        if position is None:
            msg = f"Pattern expects {expected} leaves, got {got}"
        else:
            msg = (
                f"Pattern expects an array or scalar leaf at position {position}, "
                f"got {type(value).__qualname__}"
            )
        super().__init__(msg)


def _static_equal(a: Any, b: Any) -> bool:
    """Compare two static slot values; arrays compare by shape, dtype and contents."""
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    if isinstance(a, (np.ndarray, jax.Array)):
        return a.shape == b.shape and a.dtype == b.dtype and bool(np.array_equal(a, b))
    if isinstance(a, (tuple, list)):
        return len(a) == len(b) and all(_static_equal(x, y) for x, y in zip(a, b))
    return bool(a == b)


@dataclass(frozen=True, eq=False)
class Pattern:
    """Shape of a composite node, independent of its leaf values.

    `kind` is one of:
      - "leaf":   one slot in the leaf sequence
      - "absent": a `None` field
      - "static": a value carried as-is (stored in `value`)
      - "node":   a composite, rebuilt with `node` from `children`
    """

    kind: NodeKind
    node: NodeDef | None = None
    children: tuple[Pattern, ...] = ()
    value: Any = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Pattern):
            return NotImplemented
        return (
            self.kind == other.kind
            and self.node == other.node
            and self.children == other.children
            and _static_equal(self.value, other.value)
        )

    @property
    def num_leaves(self) -> int:
        """Number of leaf slots under this pattern."""
        if self.kind == "leaf":
            return 1
        return sum(child.num_leaves for child in self.children)


LEAF = Pattern("leaf")
ABSENT = Pattern("absent")


def pattern_of(node: Any) -> Pattern:
    """Derive the pattern of a node.

    :param Any node: Composite node, leaf, or None.
    :raises UnsupportedNodeKind: If some value in the tree cannot be classified.
    :return Pattern: Pattern describing node's shape.
    """
    kind = classify(node)
    if kind == "leaf":
        return LEAF
    if kind == "absent":
        return ABSENT
    if kind == "static":
        return Pattern("static", value=node)

    children = []
    for f in node_fields(node):
        if f.static:
            children.append(Pattern("static", value=f.value))
        else:
            children.append(pattern_of(f.value))
    return Pattern("node", node=node_def(node), children=tuple(children))


def _collect(x: Any, out: list[Any]) -> None:
    kind = classify(x)
    if kind == "leaf":
        out.append(x)
    elif kind == "node":
        for f in node_fields(x):
            if not f.static:
                _collect(f.value, out)


def flatten(node: Any) -> list[Any]:
    """Flatten a node into its ordered leaf sequence.

    :param Any node: Composite node, leaf, or None.
    :return list[Any]: Leaves in depth-first declaration order.
    """
    out: list[Any] = []
    _collect(node, out)
    return out


def flatten_with_pattern(node: Any) -> tuple[list[Any], Pattern]:
    """Flatten a node and return its pattern alongside the leaves.

    :param Any node: Composite node, leaf, or None.
    :return tuple[list[Any], Pattern]: (leaves, pattern).
    """
    return flatten(node), pattern_of(node)


def _build(pattern: Pattern, leaves: Iterator[Any]) -> Any:
    if pattern.kind == "leaf":
        return next(leaves)
    if pattern.kind == "absent":
        return None
    if pattern.kind == "static":
        return pattern.value
    assert pattern.node is not None
    return pattern.node.build([_build(child, leaves) for child in pattern.children])


def unflatten(pattern: Pattern, leaves: Sequence[Any]) -> Any:
    """Rebuild a node of the given pattern from a leaf sequence.

    The sequence must match the pattern's leaf count exactly: a short sequence
    cannot fill the pattern and a long one means the caller paired the wrong
    pattern with the data.

    :param Pattern pattern: Pattern from `pattern_of` / `flatten_with_pattern`.
    :param Sequence[Any] leaves: Leaf values in traversal order.
    :raises PatternMismatch: If len(leaves) != pattern.num_leaves,
        or if an element is not an array or scalar.
    :return Any: Node with pattern's shape and the given leaves.
    """
    leaves = list(leaves)
    expected = pattern.num_leaves
    if len(leaves) != expected:
        raise PatternMismatch(expected, len(leaves))
    for i, leaf in enumerate(leaves):
        if not is_leaf(leaf):
            raise PatternMismatch(expected, len(leaves), position=i, value=leaf)
    return _build(pattern, iter(leaves))
