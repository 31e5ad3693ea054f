"""
Tensor element types.

This module defines `DType`, the closed set of element types a tensor may
carry, together with small helpers for byte accounting. It has no dependency
on NumPy; the mapping to concrete array dtypes lives in the infrastructure
layer.
"""

from __future__ import annotations

from enum import Enum
from typing import Union


class DType(Enum):
    """
    Enumeration of supported tensor element types.

    Attributes
    ----------
    FLOAT32 : DType
        32-bit IEEE float. This is the runtime's default floating type and the
        only dtype gradients may have.
    INT32 : DType
    BOOL : DType
    COMPLEX64 : DType
        Pair of 32-bit floats.
    STRING : DType
        Variable-length text. Byte accounting for strings is approximate.
    """

    FLOAT32 = "float32"
    INT32 = "int32"
    BOOL = "bool"
    COMPLEX64 = "complex64"
    STRING = "string"

    def __str__(self) -> str:
        return self.value

    @property
    def is_floating(self) -> bool:
        return self is DType.FLOAT32


DTypeLike = Union[DType, str]

DEFAULT_FLOAT = DType.FLOAT32

_BYTES_PER_ELEMENT = {
    DType.FLOAT32: 4,
    DType.INT32: 4,
    DType.BOOL: 1,
    DType.COMPLEX64: 8,
}

# Approximation used for string tensors.
BYTES_PER_CHAR = 2


def as_dtype(dtype: DTypeLike) -> DType:
    """
    Normalize a user-facing dtype value into a `DType`.

    Raises
    ------
    ValueError
        If `dtype` names no supported element type.
    """
    if isinstance(dtype, DType):
        return dtype
    try:
        return DType(str(dtype))
    except ValueError as e:
        available = ", ".join(d.value for d in DType)
        raise ValueError(
            f"Unsupported dtype {dtype!r}. Available: {available}"
        ) from e


def bytes_per_element(dtype: DType) -> int:
    """Return the byte width of one element; strings have no fixed width."""
    if dtype is DType.STRING:
        raise ValueError("string tensors have no fixed bytes per element")
    return _BYTES_PER_ELEMENT[dtype]
