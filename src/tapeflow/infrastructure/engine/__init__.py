from ._engine import BackendFactory, Engine
from ._engine_state import (
    EngineState,
    GradientsResult,
    KernelInfo,
    MemoryInfo,
    ProfileInfo,
    ScopeState,
    TensorRecord,
    VariableGradsResult,
)
from ._global import get_engine, register_cpu_backend
from ._profiler import KernelProfile, Profiler, check_computation_for_errors

__all__ = [
    "BackendFactory",
    Engine.__name__,
    EngineState.__name__,
    GradientsResult.__name__,
    KernelInfo.__name__,
    KernelProfile.__name__,
    MemoryInfo.__name__,
    ProfileInfo.__name__,
    Profiler.__name__,
    ScopeState.__name__,
    TensorRecord.__name__,
    VariableGradsResult.__name__,
    check_computation_for_errors.__name__,
    get_engine.__name__,
    register_cpu_backend.__name__,
]
