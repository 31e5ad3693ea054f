"""
Domain layer: backend-agnostic types and contracts.

Nothing in this package imports NumPy or any concrete backend.
"""

from ._backend import BackendMemoryInfo, DataMover, KernelBackend, TimingInfo
from ._dtype import DEFAULT_FLOAT, DType, DTypeLike, as_dtype, bytes_per_element
from ._errors import (
    AsyncScopeError,
    BackendInitializationError,
    BackendNotFoundError,
    BackendNotImplementedError,
    DataIdNotFoundError,
    DisconnectedGraphError,
    DisposedTensorError,
    DTypeMismatchError,
    DuplicateVariableError,
    GradientNotFoundError,
    KernelNotFoundError,
    MemoryLeakError,
    MissingGradientError,
    ShapeMismatchError,
)
from ._kernel import GradConfig, KernelConfig
from ._tensor import DataId, ITensor, TensorInfo

__all__ = [
    "AsyncScopeError",
    "BackendInitializationError",
    "BackendMemoryInfo",
    "BackendNotFoundError",
    "BackendNotImplementedError",
    "DataId",
    "DataIdNotFoundError",
    "DataMover",
    "DEFAULT_FLOAT",
    "DisconnectedGraphError",
    "DisposedTensorError",
    "DType",
    "DTypeLike",
    "DTypeMismatchError",
    "DuplicateVariableError",
    "GradConfig",
    "GradientNotFoundError",
    "ITensor",
    "KernelBackend",
    "KernelConfig",
    "KernelNotFoundError",
    "MemoryLeakError",
    "MissingGradientError",
    "ShapeMismatchError",
    "TensorInfo",
    "TimingInfo",
    "as_dtype",
    "bytes_per_element",
]
