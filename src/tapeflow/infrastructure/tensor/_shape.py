"""
Shape and axis helpers shared by kernels and gradients.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple, Union

from ...domain._errors import ShapeMismatchError


def normalize_axis(
    axis: Optional[Union[int, Sequence[int]]], rank: int
) -> Tuple[int, ...]:
    """
    Normalize `axis` to a sorted tuple of non-negative axes.

    Parameters
    ----------
    axis : int | Sequence[int] | None
        None means every axis. Negative axes count from the end.
    rank : int

    Raises
    ------
    ValueError
        If an axis is out of range.
    """
    if axis is None:
        return tuple(range(rank))
    axes = (axis,) if isinstance(axis, int) else tuple(axis)
    out = set()
    for a in axes:
        a = int(a)
        if not -rank <= a < rank:
            raise ValueError(f"Axis {a} is out of range for rank {rank}")
        out.add(a % rank)
    return tuple(sorted(out))


def reduced_shape(shape: Sequence[int], axes: Sequence[int]) -> Tuple[int, ...]:
    """`shape` with every axis in `axes` set to 1 (the keep-dims shape)."""
    return tuple(1 if i in axes else int(d) for i, d in enumerate(shape))


def resolve_shape(shape: Sequence[int], size: int) -> Tuple[int, ...]:
    """
    Resolve at most one ``-1`` entry of `shape` against `size` elements.

    Raises
    ------
    ShapeMismatchError
        If `shape` cannot hold exactly `size` elements.
    """
    shape = tuple(int(d) for d in shape)
    unknown = [i for i, d in enumerate(shape) if d == -1]
    if len(unknown) > 1:
        raise ValueError(f"Shape {shape} has more than one -1 dimension")
    if unknown:
        known = math.prod(d for d in shape if d != -1)
        if known == 0 or size % known != 0:
            raise ShapeMismatchError(
                "reshape", shape, (size,), detail="cannot infer the -1 dimension"
            )
        shape = tuple(size // known if d == -1 else d for d in shape)
    if math.prod(shape) != size:
        raise ShapeMismatchError(
            "reshape", shape, (size,), detail=f"cannot reshape {size} elements"
        )
    return shape
