"""
Data-id keyed storage arena.

`DataStorage` maps integer data ids to a backend's storage entries. It is
pure bookkeeping: it never inspects shapes or dtypes.

Migration
---------
When a backend is constructed with a `DataMover` (the engine), `get` on an id
the backend does not hold asks the mover to migrate the entry in from the
backend that currently owns it. This is how a tensor created on one backend
becomes usable by kernels of another after the active backend changes.
`has` never triggers a migration.

Data ids come from `next_data_id`, a process-wide monotonic counter, so ids
never collide across backends.
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Dict, Generic, Iterator, Optional, TypeVar

from ...domain._backend import DataMover
from ...domain._errors import DataIdNotFoundError
from ...domain._tensor import DataId

if TYPE_CHECKING:
    from ...domain._backend import KernelBackend

T = TypeVar("T")

_DATA_ID_COUNTER = itertools.count(1)


def next_data_id() -> DataId:
    """Return a fresh, never-before-used data id."""
    return next(_DATA_ID_COUNTER)


class DataStorage(Generic[T]):
    """
    Arena of storage entries owned by one backend.

    Parameters
    ----------
    backend : KernelBackend
        The backend owning this arena; passed to the mover on migration.
    data_mover : DataMover | None
        Callback used by `get` to pull missing ids in from other backends.
    """

    def __init__(
        self, backend: "KernelBackend", data_mover: Optional[DataMover] = None
    ) -> None:
        self._backend = backend
        self._data_mover = data_mover
        self._data: Dict[DataId, T] = {}
        self._data_ids_count = 0

    def get(self, data_id: DataId) -> T:
        if data_id not in self._data and self._data_mover is not None:
            self._data_mover.move_data(self._backend, data_id)
        try:
            return self._data[data_id]
        except KeyError:
            raise DataIdNotFoundError(data_id) from None

    def set(self, data_id: DataId, value: T) -> None:
        if data_id not in self._data:
            self._data_ids_count += 1
        self._data[data_id] = value

    def has(self, data_id: DataId) -> bool:
        return data_id in self._data

    def delete(self, data_id: DataId) -> bool:
        if data_id not in self._data:
            return False
        del self._data[data_id]
        self._data_ids_count -= 1
        return True

    def num_data_ids(self) -> int:
        return self._data_ids_count

    def values(self) -> Iterator[T]:
        return iter(list(self._data.values()))

    def clear(self) -> None:
        self._data.clear()
        self._data_ids_count = 0
