"""
Backend capability contract.

This module defines `KernelBackend`, the base class every execution backend
derives from, and the small records backends report through it.

Every capability has a default body that raises `BackendNotImplementedError`
naming the capability and the backend class. A backend therefore only needs
to override what it supports, and any gap surfaces at the moment the missing
capability is used rather than at startup.

Design notes
------------
- Storage is addressed by integer data ids (`DataId`). A backend owns the
  values behind the ids it holds and maintains a refcount per id.
- `read` is asynchronous; `read_sync` must not suspend. An async-only backend
  leaves `read_sync` unimplemented.
- `move` adopts data migrated from another backend, preserving its refcount.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Sequence, runtime_checkable

from ._dtype import DType
from ._errors import BackendNotImplementedError
from ._tensor import DataId


@dataclass
class TimingInfo:
    """
    Timing record produced by `KernelBackend.time`.

    Attributes
    ----------
    kernel_ms : float
        Time spent in kernels, as measured by the backend.
    wall_ms : float | None
        Wall-clock time, filled in by the engine.
    extra : dict[str, Any]
        Backend-specific details.
    """

    kernel_ms: float
    wall_ms: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class BackendMemoryInfo:
    """
    Memory report produced by `KernelBackend.memory`.

    Attributes
    ----------
    num_bytes : int
        Bytes currently held by the backend.
    num_data_ids : int
        Live storage entries.
    unreliable : bool
        True when the numbers are approximations.
    reasons : list[str]
        Why the numbers are unreliable, if they are.
    extra : dict[str, Any]
        Backend-specific details.
    """

    num_bytes: int = 0
    num_data_ids: int = 0
    unreliable: bool = False
    reasons: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class DataMover(Protocol):
    """Anything able to migrate a data id into a backend (the engine)."""

    def move_data(self, backend: "KernelBackend", data_id: DataId) -> None: ...


class KernelBackend:
    """
    Base class for execution backends.

    Subclasses override the capabilities they support. Calling a capability a
    subclass does not override raises `BackendNotImplementedError`.

    Notes
    -----
    Floating-point tolerance elsewhere in the runtime is derived from
    `float_precision()` through `epsilon()`.
    """

    def _not_implemented(self, op: str) -> BackendNotImplementedError:
        return BackendNotImplementedError(op, type(self).__name__)

    # ---- data access ----
    async def read(self, data_id: DataId) -> Any:
        """Asynchronously read the values behind `data_id`."""
        raise self._not_implemented("read")

    def read_sync(self, data_id: DataId) -> Any:
        """Read the values behind `data_id` without suspending."""
        raise self._not_implemented("read_sync")

    def write(self, values: Any, shape: Sequence[int], dtype: DType) -> DataId:
        """Store `values` and return a fresh data id with refcount 1."""
        raise self._not_implemented("write")

    def move(
        self,
        data_id: DataId,
        values: Any,
        shape: Sequence[int],
        dtype: DType,
        ref_count: int,
    ) -> None:
        """Adopt `values` migrated from another backend under `data_id`."""
        raise self._not_implemented("move")

    # ---- lifetime ----
    def dispose_data(self, data_id: DataId, force: bool = False) -> bool:
        """
        Drop one claim on `data_id`.

        Returns
        -------
        bool
            True if the storage was actually released.
        """
        raise self._not_implemented("dispose_data")

    def ref_count(self, data_id: DataId) -> int:
        raise self._not_implemented("ref_count")

    def inc_ref(self, data_id: DataId) -> None:
        raise self._not_implemented("inc_ref")

    def num_data_ids(self) -> int:
        raise self._not_implemented("num_data_ids")

    def memory(self) -> BackendMemoryInfo:
        raise self._not_implemented("memory")

    # ---- profiling ----
    def time(self, fn: Callable[[], None]) -> TimingInfo:
        raise self._not_implemented("time")

    def timer_available(self) -> bool:
        return False

    # ---- numerics ----
    def float_precision(self) -> int:
        """Return 16 or 32."""
        raise self._not_implemented("float_precision")

    def epsilon(self) -> float:
        """Smallest meaningful difference at this backend's precision."""
        return 1e-7 if self.float_precision() == 32 else 1e-4

    def dispose(self) -> None:
        """Release every resource held by the backend."""
        raise self._not_implemented("dispose")
