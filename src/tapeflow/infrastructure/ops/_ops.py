"""
Differentiable tensor ops.

Each op is a thin wrapper that dispatches a named kernel through the engine
owning its first tensor argument. Python scalars and array-likes are accepted
for the second operand of binary ops and converted to a tensor of the other
operand's dtype.

Gradients for every op live in `tapeflow.infrastructure.ops._gradients`.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Union

from ...domain import _kernel_names as names
from ...domain._dtype import DTypeLike, as_dtype
from ..tensor._tensor import Tensor

TensorLike = Union[Tensor, float, int, Sequence[Any]]


def _as_tensor(value: TensorLike, like: Tensor) -> Tensor:
    if isinstance(value, Tensor):
        return value
    return like.engine.make_tensor(value, dtype=like.dtype)


def identity(x: Tensor) -> Tensor:
    return x.engine.run_kernel(names.IDENTITY, {"x": x})


def clone(x: Tensor) -> Tensor:
    """New handle sharing `x`'s data."""
    return x.engine.clone(x)


def cast(x: Tensor, dtype: DTypeLike) -> Tensor:
    return x.engine.run_kernel(names.CAST, {"x": x}, {"dtype": as_dtype(dtype)})


def reshape(x: Tensor, shape: Sequence[int]) -> Tensor:
    """Reshape `x`; one dimension may be ``-1``. Shares `x`'s data."""
    return x.engine.run_kernel(
        names.RESHAPE, {"x": x}, {"shape": tuple(int(d) for d in shape)}
    )


def broadcast_to(x: Tensor, shape: Sequence[int]) -> Tensor:
    return x.engine.run_kernel(
        names.BROADCAST_TO, {"x": x}, {"shape": tuple(int(d) for d in shape)}
    )


def sum_to_shape(x: Tensor, shape: Sequence[int]) -> Tensor:
    """Sum a broadcast tensor back down to `shape`."""
    return x.engine.run_kernel(
        names.SUM_TO_SHAPE, {"x": x}, {"shape": tuple(int(d) for d in shape)}
    )


def add(a: Tensor, b: TensorLike) -> Tensor:
    return a.engine.run_kernel(names.ADD, {"a": a, "b": _as_tensor(b, a)})


def add_n(tensors: Sequence[Tensor]) -> Tensor:
    """Elementwise sum of same-shape, same-dtype tensors."""
    tensors = list(tensors)
    if not tensors:
        raise ValueError("add_n() requires at least one tensor")
    return tensors[0].engine.run_kernel(names.ADD_N, {"tensors": tensors})


def sub(a: Tensor, b: TensorLike) -> Tensor:
    return a.engine.run_kernel(names.SUB, {"a": a, "b": _as_tensor(b, a)})


def mul(a: Tensor, b: TensorLike) -> Tensor:
    return a.engine.run_kernel(names.MULTIPLY, {"a": a, "b": _as_tensor(b, a)})


def neg(x: Tensor) -> Tensor:
    return x.engine.run_kernel(names.NEG, {"x": x})


def square(x: Tensor) -> Tensor:
    return x.engine.run_kernel(names.SQUARE, {"x": x})


def exp(x: Tensor) -> Tensor:
    return x.engine.run_kernel(names.EXP, {"x": x})


def reduce_sum(
    x: Tensor,
    axis: Optional[Union[int, Sequence[int]]] = None,
    keep_dims: bool = False,
) -> Tensor:
    """
    Sum over `axis` (all axes when None).

    Parameters
    ----------
    x : Tensor
    axis : int | Sequence[int] | None
    keep_dims : bool
        Keep reduced axes with size 1.
    """
    if axis is not None and not isinstance(axis, int):
        axis = tuple(int(a) for a in axis)
    return x.engine.run_kernel(
        names.SUM, {"x": x}, {"axis": axis, "keep_dims": bool(keep_dims)}
    )


def zeros_like(x: Tensor) -> Tensor:
    return x.engine.zeros(x.shape, x.dtype)


def ones_like(x: Tensor) -> Tensor:
    return x.engine.ones(x.shape, x.dtype)
