"""
NumPy boundary for tensor element types.

The domain `DType` enum is NumPy-free; this module maps it to and from NumPy
dtypes and normalizes user-provided values into arrays. String tensors are
stored as NumPy object arrays of `str`.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

from ...domain._dtype import BYTES_PER_CHAR, DType, DTypeLike, as_dtype
from ...domain._errors import ShapeMismatchError

_TO_NUMPY = {
    DType.FLOAT32: np.dtype(np.float32),
    DType.INT32: np.dtype(np.int32),
    DType.BOOL: np.dtype(np.bool_),
    DType.COMPLEX64: np.dtype(np.complex64),
    DType.STRING: np.dtype(object),
}


def to_numpy_dtype(dtype: DTypeLike) -> np.dtype:
    return _TO_NUMPY[as_dtype(dtype)]


def infer_dtype(values: Any) -> DType:
    """
    Infer a `DType` from raw values.

    Python / NumPy booleans map to BOOL, integers to INT32, floats to FLOAT32,
    complex numbers to COMPLEX64 and text to STRING.
    """
    arr = values if isinstance(values, np.ndarray) else np.asarray(values)
    kind = arr.dtype.kind
    if kind == "b":
        return DType.BOOL
    if kind in "iu":
        return DType.INT32
    if kind == "f":
        return DType.FLOAT32
    if kind == "c":
        return DType.COMPLEX64
    if kind in "USO":
        return DType.STRING
    raise TypeError(f"Cannot infer a tensor dtype from values of dtype {arr.dtype}")


def to_array(
    values: Any, dtype: DTypeLike, shape: Optional[Sequence[int]] = None
) -> np.ndarray:
    """
    Convert `values` into a contiguous array of `dtype`, optionally reshaped.

    Raises
    ------
    ShapeMismatchError
        If `shape` is given and its element count differs from `values`.
    """
    dt = as_dtype(dtype)
    if dt is DType.STRING:
        src = np.array(values, dtype=object)
        arr = np.empty(src.shape, dtype=object)
        for idx, v in np.ndenumerate(src):
            arr[idx] = str(v)
    else:
        arr = np.array(values, dtype=_TO_NUMPY[dt])

    if shape is not None:
        target = tuple(int(d) for d in shape)
        expected = int(np.prod(target, dtype=np.int64))
        if arr.size != expected:
            raise ShapeMismatchError(
                "make_tensor",
                target,
                arr.shape,
                detail=f"{arr.size} values cannot fill {expected} elements",
            )
        arr = arr.reshape(target)
    return arr


def string_bytes(arr: np.ndarray) -> int:
    """Approximate byte size of a string array."""
    return sum(len(s) for s in arr.reshape(-1)) * BYTES_PER_CHAR
