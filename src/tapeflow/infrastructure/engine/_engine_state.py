"""
Engine bookkeeping records.

`EngineState` is everything `Engine.reset()` throws away: the variable
registry, the active tape, the scope stack, the tensor/byte counters and the
per-data-id ownership records. The remaining dataclasses are the reports the
engine hands back to callers (`MemoryInfo`, `ProfileInfo`,
`GradientsResult`, `VariableGradsResult`).

Result types that carry tensors are `NamedTuple`s so that scope accounting,
which walks lists, tuples and dicts, sees the tensors inside them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    NamedTuple,
    Optional,
)

from ...domain._backend import BackendMemoryInfo, KernelBackend
from ...domain._dtype import DType
from ...domain._tensor import DataId
from ..autograd._tape import TapeNode

if TYPE_CHECKING:
    from ..tensor._tensor import Tensor
    from ..tensor._variable import Variable


@dataclass
class ScopeState:
    """
    One frame of the scope stack.

    Attributes
    ----------
    id : int
    name : str
    track : list[Tensor]
        Tensors created while this scope was innermost.
    """

    id: int
    name: str
    track: List["Tensor"] = field(default_factory=list)


@dataclass
class TensorRecord:
    """
    Ownership record for one data id.

    Attributes
    ----------
    backend : KernelBackend
        Backend currently holding the storage; updated by data moves.
    dtype : DType
    shape : tuple[int, ...]
    bytes : int
        Size of the storage (approximate for strings).
    """

    backend: KernelBackend
    dtype: DType
    shape: tuple[int, ...]
    bytes: int


@dataclass
class KernelInfo:
    """Per-kernel entry of a profile report."""

    name: str
    bytes_added: int
    total_bytes_snapshot: int
    tensors_added: int
    total_tensors_snapshot: int
    input_shapes: List[tuple[int, ...]]
    output_shapes: List[tuple[int, ...]]
    kernel_time_ms: float
    extra_info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProfileInfo:
    """
    Report returned by `Engine.profile`.

    Attributes
    ----------
    new_bytes : int
        Net bytes allocated by the profiled function.
    new_tensors : int
        Net live tensors created by the profiled function.
    peak_bytes : int
        Highest byte count observed after any kernel (or at the start).
    kernels : list[KernelInfo]
    kernel_names : list[str]
        Distinct kernel names, in first-executed order.
    result : Any
        Whatever the profiled function returned.
    """

    new_bytes: int = 0
    new_tensors: int = 0
    peak_bytes: int = 0
    kernels: List[KernelInfo] = field(default_factory=list)
    kernel_names: List[str] = field(default_factory=list)
    result: Any = None


@dataclass
class MemoryInfo:
    """
    Report returned by `Engine.memory`.

    `unreliable` is set (with an explanation in `reasons`) when the backend
    says so or when string tensors are alive, since their byte accounting is
    approximate.
    """

    num_tensors: int
    num_data_buffers: int
    num_bytes: int
    unreliable: bool = False
    reasons: List[str] = field(default_factory=list)
    backend: Optional[BackendMemoryInfo] = None


class GradientsResult(NamedTuple):
    value: "Tensor"
    grads: List[Optional["Tensor"]]


class VariableGradsResult(NamedTuple):
    value: "Tensor"
    grads: Dict[str, Optional["Tensor"]]


@dataclass
class EngineState:
    """
    Mutable engine bookkeeping, rebuilt from scratch by `Engine.reset()`.

    Attributes
    ----------
    registered_variables : dict[str, Variable]
    next_tape_node_id : int
    num_bytes : int
    num_tensors : int
        Live (not yet disposed) tensor handles.
    num_string_tensors : int
    num_data_buffers : int
        Live data ids across all backends.
    active_tape : list[TapeNode] | None
        Non-None while any `gradients` call is running.
    gradient_depth : int
        Nesting of `gradients` calls; the tape records while > 0.
    kernel_depth : int
        Nesting of kernel bodies; the tape is paused while > 0.
    scope_stack : list[ScopeState]
    active_scope : ScopeState | None
    next_scope_id : int
    num_data_moves_stack : list[int]
        One counter per running kernel, for leak checks.
    tensor_info : dict[DataId, TensorRecord]
    profiling : bool
    active_profile : ProfileInfo
    """

    registered_variables: Dict[str, "Variable"] = field(default_factory=dict)
    next_tape_node_id: int = 0
    num_bytes: int = 0
    num_tensors: int = 0
    num_string_tensors: int = 0
    num_data_buffers: int = 0
    active_tape: Optional[List[TapeNode]] = None
    gradient_depth: int = 0
    kernel_depth: int = 0
    scope_stack: List[ScopeState] = field(default_factory=list)
    active_scope: Optional[ScopeState] = None
    next_scope_id: int = 0
    num_data_moves_stack: List[int] = field(default_factory=list)
    tensor_info: Dict[DataId, TensorRecord] = field(default_factory=dict)
    profiling: bool = False
    active_profile: ProfileInfo = field(default_factory=ProfileInfo)

    def dispose(self) -> None:
        for variable in list(self.registered_variables.values()):
            variable.dispose()
