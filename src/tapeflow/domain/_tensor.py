"""
Tensor interface definitions.

This module defines the domain-level interface for tensor handles using
structural typing, plus `TensorInfo`, the plain record kernels return before
the engine wraps it into a handle.

A tensor handle is *not* its storage. It names a `data_id` whose bytes belong
to a backend; several handles may name the same data id (e.g. after a clone),
with the backend refcount deciding when the storage is released.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from ._dtype import DType

DataId = int
"""Opaque, process-unique integer handle naming a backend storage entry."""


@dataclass(frozen=True)
class TensorInfo:
    """
    Raw kernel output record.

    Attributes
    ----------
    data_id : DataId
        Handle of the storage entry holding the values.
    shape : tuple[int, ...]
    dtype : DType
    """

    data_id: DataId
    shape: tuple[int, ...]
    dtype: DType


@runtime_checkable
class ITensor(Protocol):
    """
    Domain-level tensor handle contract.

    Notes
    -----
    The protocol is intentionally small: identity, metadata, and the scope
    bookkeeping flags the engine reads and writes.
    """

    @property
    def id(self) -> int: ...

    @property
    def data_id(self) -> DataId: ...

    @property
    def shape(self) -> tuple[int, ...]: ...

    @property
    def dtype(self) -> DType: ...

    @property
    def size(self) -> int: ...

    @property
    def rank(self) -> int: ...

    @property
    def is_disposed(self) -> bool: ...

    kept: bool
    scope_id: Optional[int]

    def dispose(self) -> None: ...
