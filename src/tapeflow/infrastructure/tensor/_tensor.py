"""
Tensor handle implementation.

A `Tensor` is an immutable value handle: shape, dtype, a data id, and a
globally unique tensor id. It does not own its values. The engine's tensor
records map the data id to the backend that owns the storage, and the
backend's refcount decides when the storage is released.

Lifetime
--------
- Creation: kernel execution, explicit construction (`Engine.make_tensor`),
  or engine-level allocation (`Engine.zeros` / `Engine.ones`).
- Scoping: the engine appends every new tensor to the innermost active scope
  and disposes it when that scope ends, unless it is `kept` or returned.
- Disposal: `dispose()` drops this handle's claim. Reading a disposed tensor
  raises `DisposedTensorError`.

Notes
-----
Each handle carries a reference to its `Engine`. There is no ambient global
lookup: an op receiving a tensor dispatches through `tensor.engine`.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Optional, Sequence

import numpy as np

from ...domain._dtype import DType, DTypeLike, as_dtype
from ...domain._errors import DisposedTensorError
from ...domain._tensor import DataId

if TYPE_CHECKING:
    from ..engine._engine import Engine


class Tensor:
    """
    Immutable handle to backend-owned tensor data.

    Parameters
    ----------
    shape : Sequence[int]
    dtype : DType | str
    data_id : DataId
        Handle of the storage entry holding the values.
    tensor_id : int
        Globally unique id assigned by the engine.
    engine : Engine
        Engine that tracks this handle.

    Attributes
    ----------
    kept : bool
        True once `Engine.keep` exempted this tensor from scope disposal.
    scope_id : int | None
        Id of the scope currently tracking this tensor.
    """

    def __init__(
        self,
        shape: Sequence[int],
        dtype: DTypeLike,
        data_id: DataId,
        tensor_id: int,
        engine: "Engine",
    ) -> None:
        self._shape: tuple[int, ...] = tuple(int(d) for d in shape)
        self._dtype: DType = as_dtype(dtype)
        self._size: int = math.prod(self._shape)
        self._data_id: DataId = data_id
        self._id: int = tensor_id
        self._engine = engine
        self._is_disposed = False
        self.kept: bool = False
        self.scope_id: Optional[int] = None

    # ---- identity / metadata ----
    @property
    def id(self) -> int:
        return self._id

    @property
    def data_id(self) -> DataId:
        return self._data_id

    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def dtype(self) -> DType:
        return self._dtype

    @property
    def size(self) -> int:
        return self._size

    @property
    def rank(self) -> int:
        return len(self._shape)

    @property
    def engine(self) -> "Engine":
        return self._engine

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    def throw_if_disposed(self) -> None:
        if self._is_disposed:
            raise DisposedTensorError(self._id)

    # ---- data access ----
    def data_sync(self) -> np.ndarray:
        """
        Synchronously read this tensor's values.

        Returns
        -------
        np.ndarray
            A fresh array of this tensor's shape.

        Raises
        ------
        DisposedTensorError
            If the tensor was disposed.
        BackendNotImplementedError
            If the owning backend cannot read synchronously.
        """
        self.throw_if_disposed()
        values = self._engine.read_sync(self._data_id)
        return np.array(values, copy=True).reshape(self._shape)

    to_numpy = data_sync

    async def data(self) -> np.ndarray:
        """Asynchronously read this tensor's values."""
        self.throw_if_disposed()
        values = await self._engine.read(self._data_id)
        return np.array(values, copy=True).reshape(self._shape)

    def item(self) -> Any:
        """Return the single value of a size-1 tensor as a Python scalar."""
        if self._size != 1:
            raise ValueError(
                f"item() requires a tensor with exactly one element, got shape {self._shape}"
            )
        return self.data_sync().reshape(-1)[0].item()

    # ---- lifetime ----
    def dispose(self) -> None:
        """Drop this handle's claim on its data. Idempotent."""
        if self._is_disposed:
            return
        self._engine.dispose_tensor(self)
        self._is_disposed = True

    def clone(self) -> "Tensor":
        """Return a new handle sharing this tensor's data."""
        self.throw_if_disposed()
        return self._engine.clone(self)

    def __repr__(self) -> str:
        state = "disposed" if self._is_disposed else f"data_id={self._data_id}"
        return (
            f"{type(self).__name__}(id={self._id}, shape={self._shape}, "
            f"dtype={self._dtype}, {state})"
        )
