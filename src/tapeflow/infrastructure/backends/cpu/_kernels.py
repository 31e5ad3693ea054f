"""
CPU kernels for the built-in ops (NumPy backend).

Every kernel here is registered for backend ``"cpu"`` at import time and
follows the kernel signature ``kernel(inputs, backend, attrs)``, returning a
`TensorInfo` describing a freshly written (or, for Identity and Reshape,
shared) storage entry.

Implemented kernels
-------------------
- Identity, Reshape: share the input's entry (refcount + 1)
- Cast: converts to ``attrs["dtype"]`` into a new entry
- BroadcastTo / SumToShape: expand to, or reduce back to, ``attrs["shape"]``
- Add, Sub, Multiply: NumPy-broadcasting binary arithmetic
- AddN: elementwise sum of a list of same-shape tensors
- Neg, Square, Exp: elementwise unary
- Sum: reduction over ``attrs["axis"]`` with optional ``keep_dims``
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ....domain import _kernel_names as names
from ....domain._dtype import DType, as_dtype
from ....domain._errors import DTypeMismatchError, ShapeMismatchError
from ....domain._tensor import ITensor, TensorInfo
from ...registry._kernel_registry import register_kernel
from ...tensor._dtypes import to_numpy_dtype
from ...tensor._shape import normalize_axis, resolve_shape
from ._backend import NumpyBackend

BACKEND_NAME = "cpu"


def _check_same_dtype(op: str, a: ITensor, b: ITensor) -> None:
    if a.dtype is not b.dtype:
        raise DTypeMismatchError(
            op, a.dtype, b.dtype, detail="both operands must share a dtype"
        )


def sum_to_shape_values(values: np.ndarray, shape: Sequence[int]) -> np.ndarray:
    """
    Reduce broadcast `values` back to `shape`.

    Leading dimensions `shape` lacks are summed away, then every dimension
    where `shape` has size 1 is summed with ``keepdims``.
    """
    shape = tuple(int(d) for d in shape)
    if values.shape == shape:
        return values.copy()
    extra = values.ndim - len(shape)
    if extra < 0:
        raise ShapeMismatchError(
            names.SUM_TO_SHAPE, shape, values.shape, detail="target has higher rank"
        )
    out = values.sum(axis=tuple(range(extra))) if extra else values
    axes = tuple(
        i for i, (src, dst) in enumerate(zip(out.shape, shape)) if dst == 1 and src != 1
    )
    if axes:
        out = out.sum(axis=axes, keepdims=True)
    if out.shape != shape:
        raise ShapeMismatchError(
            names.SUM_TO_SHAPE,
            shape,
            values.shape,
            detail="shapes are not broadcast-compatible",
        )
    return out


def _binary(
    op: str, inputs, backend: NumpyBackend, fn
) -> TensorInfo:
    a, b = inputs["a"], inputs["b"]
    _check_same_dtype(op, a, b)
    out = fn(backend.values_of(a), backend.values_of(b))
    out = np.asarray(out, dtype=to_numpy_dtype(a.dtype))
    return backend.make_tensor_info(out, out.shape, a.dtype)


@register_kernel(names.IDENTITY, BACKEND_NAME)
def identity_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    x = inputs["x"]
    backend.inc_ref(x.data_id)
    return TensorInfo(x.data_id, x.shape, x.dtype)


@register_kernel(names.RESHAPE, BACKEND_NAME)
def reshape_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    x = inputs["x"]
    shape = resolve_shape(attrs["shape"], x.size)
    backend.inc_ref(x.data_id)
    return TensorInfo(x.data_id, shape, x.dtype)


@register_kernel(names.CAST, BACKEND_NAME)
def cast_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    x = inputs["x"]
    dtype = as_dtype(attrs["dtype"])
    values = backend.values_of(x)
    if dtype is DType.STRING:
        out = np.empty(values.shape, dtype=object)
        for idx, v in np.ndenumerate(values):
            out[idx] = str(v)
    elif x.dtype is DType.COMPLEX64 and dtype is not DType.COMPLEX64:
        out = np.real(values).astype(to_numpy_dtype(dtype))
    else:
        out = values.astype(to_numpy_dtype(dtype))
    return backend.make_tensor_info(out, x.shape, dtype)


@register_kernel(names.BROADCAST_TO, BACKEND_NAME)
def broadcast_to_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    x = inputs["x"]
    shape = tuple(int(d) for d in attrs["shape"])
    try:
        out = np.broadcast_to(backend.values_of(x), shape).copy()
    except ValueError:
        raise ShapeMismatchError(
            names.BROADCAST_TO, shape, x.shape, detail="shapes are not broadcastable"
        ) from None
    return backend.make_tensor_info(out, shape, x.dtype)


@register_kernel(names.SUM_TO_SHAPE, BACKEND_NAME)
def sum_to_shape_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    x = inputs["x"]
    out = sum_to_shape_values(backend.values_of(x), attrs["shape"])
    out = out.astype(to_numpy_dtype(x.dtype), copy=False)
    return backend.make_tensor_info(out, out.shape, x.dtype)


@register_kernel(names.ADD, BACKEND_NAME)
def add_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    return _binary(names.ADD, inputs, backend, np.add)


@register_kernel(names.SUB, BACKEND_NAME)
def sub_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    return _binary(names.SUB, inputs, backend, np.subtract)


@register_kernel(names.MULTIPLY, BACKEND_NAME)
def multiply_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    return _binary(names.MULTIPLY, inputs, backend, np.multiply)


@register_kernel(names.ADD_N, BACKEND_NAME)
def add_n_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    tensors = list(inputs["tensors"])
    if not tensors:
        raise ValueError("AddN requires at least one tensor")
    first = tensors[0]
    for t in tensors[1:]:
        _check_same_dtype(names.ADD_N, first, t)
        if t.shape != first.shape:
            raise ShapeMismatchError(
                names.ADD_N, first.shape, t.shape, detail="all tensors must share a shape"
            )
    out = np.zeros(first.shape, dtype=to_numpy_dtype(first.dtype))
    for t in tensors:
        out = out + backend.values_of(t)
    out = out.astype(to_numpy_dtype(first.dtype), copy=False)
    return backend.make_tensor_info(out, first.shape, first.dtype)


@register_kernel(names.NEG, BACKEND_NAME)
def neg_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    x = inputs["x"]
    return backend.make_tensor_info(-backend.values_of(x), x.shape, x.dtype)


@register_kernel(names.SQUARE, BACKEND_NAME)
def square_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    x = inputs["x"]
    values = backend.values_of(x)
    return backend.make_tensor_info(values * values, x.shape, x.dtype)


@register_kernel(names.EXP, BACKEND_NAME)
def exp_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    x = inputs["x"]
    out = np.exp(backend.values_of(x).astype(np.float32))
    return backend.make_tensor_info(out, x.shape, DType.FLOAT32)


@register_kernel(names.SUM, BACKEND_NAME)
def sum_cpu(inputs, backend: NumpyBackend, attrs) -> TensorInfo:
    x = inputs["x"]
    axes = normalize_axis(attrs.get("axis"), x.rank)
    keep_dims = bool(attrs.get("keep_dims", False))
    values = backend.values_of(x)
    out = values.sum(axis=axes, keepdims=keep_dims) if x.rank else values.copy()
    out = np.asarray(out, dtype=to_numpy_dtype(x.dtype))
    return backend.make_tensor_info(out, out.shape, x.dtype)
