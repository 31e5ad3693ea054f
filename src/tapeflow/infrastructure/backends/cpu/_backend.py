"""
NumPy CPU backend.

`NumpyBackend` keeps every tensor's values as a NumPy array in a
`DataStorage`, one entry per data id, with a refcount per entry. It is the
reference backend: synchronous, always available, and the numerical ground
truth the engine tests run against.

Design notes
------------
- Entries store the values with the shape they were written with. Kernels
  that reinterpret shape (e.g. Reshape) share the entry, so kernels read
  values through `values_of`, which reshapes to the handle's shape.
- When constructed with a `DataMover`, reading an id this backend does not
  hold migrates it in from its current owner.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import numpy as np

from ....domain._backend import (
    BackendMemoryInfo,
    DataMover,
    KernelBackend,
    TimingInfo,
)
from ....domain._dtype import DType
from ....domain._tensor import DataId, ITensor, TensorInfo
from ...storage._data_storage import DataStorage, next_data_id
from ...tensor._dtypes import string_bytes, to_numpy_dtype


@dataclass
class CpuDataEntry:
    """
    Storage entry of the CPU backend.

    Attributes
    ----------
    values : np.ndarray
    dtype : DType
    shape : tuple[int, ...]
    ref_count : int
        Number of tensor handles claiming this entry.
    """

    values: np.ndarray
    dtype: DType
    shape: tuple[int, ...]
    ref_count: int = 1


class NumpyBackend(KernelBackend):
    """
    Synchronous CPU backend backed by NumPy arrays.

    Parameters
    ----------
    data_mover : DataMover | None
        Usually the engine; used to pull in data owned by other backends.
    float_precision : int
        16 or 32. Only affects `epsilon()`; storage is always float32.
    """

    def __init__(
        self, data_mover: Optional[DataMover] = None, float_precision: int = 32
    ) -> None:
        if float_precision not in (16, 32):
            raise ValueError(
                f"float_precision must be 16 or 32, got {float_precision}"
            )
        self.data: DataStorage[CpuDataEntry] = DataStorage(self, data_mover)
        self._float_precision = float_precision

    # ---- data access ----
    def write(self, values: Any, shape: Sequence[int], dtype: DType) -> DataId:
        data_id = next_data_id()
        shape = tuple(int(d) for d in shape)
        arr = np.asarray(values, dtype=to_numpy_dtype(dtype)).reshape(shape)
        self.data.set(data_id, CpuDataEntry(arr, dtype, shape))
        return data_id

    def make_tensor_info(
        self, values: Any, shape: Sequence[int], dtype: DType
    ) -> TensorInfo:
        """Write `values` and describe them as a kernel output."""
        shape = tuple(int(d) for d in shape)
        return TensorInfo(self.write(values, shape, dtype), shape, dtype)

    def values_of(self, x: ITensor) -> np.ndarray:
        """Values behind `x`, viewed with `x`'s shape."""
        return self.data.get(x.data_id).values.reshape(x.shape)

    def read_sync(self, data_id: DataId) -> np.ndarray:
        return self.data.get(data_id).values

    async def read(self, data_id: DataId) -> np.ndarray:
        return self.read_sync(data_id)

    def move(
        self,
        data_id: DataId,
        values: Any,
        shape: Sequence[int],
        dtype: DType,
        ref_count: int,
    ) -> None:
        shape = tuple(int(d) for d in shape)
        arr = np.asarray(values, dtype=to_numpy_dtype(dtype)).reshape(shape)
        self.data.set(data_id, CpuDataEntry(arr, dtype, shape, ref_count))

    # ---- lifetime ----
    def dispose_data(self, data_id: DataId, force: bool = False) -> bool:
        """
        Drop one claim on `data_id`; free the entry at zero claims or if
        `force` is set.

        Returns
        -------
        bool
            True if the entry is gone (including when it was never here).
        """
        if not self.data.has(data_id):
            return True
        entry = self.data.get(data_id)
        entry.ref_count -= 1
        if not force and entry.ref_count > 0:
            return False
        self.data.delete(data_id)
        return True

    def ref_count(self, data_id: DataId) -> int:
        if self.data.has(data_id):
            return self.data.get(data_id).ref_count
        return 0

    def inc_ref(self, data_id: DataId) -> None:
        self.data.get(data_id).ref_count += 1

    def num_data_ids(self) -> int:
        return self.data.num_data_ids()

    def memory(self) -> BackendMemoryInfo:
        num_bytes = 0
        has_strings = False
        for entry in self.data.values():
            if entry.dtype is DType.STRING:
                has_strings = True
                num_bytes += string_bytes(entry.values)
            else:
                num_bytes += int(entry.values.nbytes)
        reasons = (
            ["String storage is measured as 2 bytes per character."]
            if has_strings
            else []
        )
        return BackendMemoryInfo(
            num_bytes=num_bytes,
            num_data_ids=self.num_data_ids(),
            unreliable=has_strings,
            reasons=reasons,
        )

    # ---- profiling ----
    def time(self, fn: Callable[[], None]) -> TimingInfo:
        start = time.perf_counter()
        fn()
        return TimingInfo(kernel_ms=(time.perf_counter() - start) * 1000.0)

    def timer_available(self) -> bool:
        return True

    # ---- numerics ----
    def float_precision(self) -> int:
        return self._float_precision

    def dispose(self) -> None:
        self.data.clear()
