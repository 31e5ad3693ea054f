"""
TapeFlow: a tensor runtime with pluggable backends, scoped memory management
and tape-based reverse-mode automatic differentiation.

Importing the package registers the NumPy CPU kernels (backend ``"cpu"``)
and the gradients of the built-in ops.
"""

from .domain import (
    DEFAULT_FLOAT,
    AsyncScopeError,
    BackendInitializationError,
    BackendMemoryInfo,
    BackendNotFoundError,
    BackendNotImplementedError,
    DataIdNotFoundError,
    DisconnectedGraphError,
    DisposedTensorError,
    DType,
    DTypeMismatchError,
    DuplicateVariableError,
    GradConfig,
    GradientNotFoundError,
    KernelBackend,
    KernelConfig,
    KernelNotFoundError,
    MemoryLeakError,
    MissingGradientError,
    ShapeMismatchError,
    TensorInfo,
    TimingInfo,
)
from .infrastructure.backends.cpu import NumpyBackend
from .infrastructure.config import ENV, Environment
from .infrastructure.engine import (
    Engine,
    GradientsResult,
    MemoryInfo,
    ProfileInfo,
    VariableGradsResult,
    get_engine,
)
from .infrastructure.ops import (
    add,
    add_n,
    broadcast_to,
    cast,
    clone,
    exp,
    identity,
    mul,
    neg,
    ones_like,
    reduce_sum,
    reshape,
    square,
    sub,
    sum_to_shape,
    zeros_like,
)
from .infrastructure.registry import (
    GradientRegistry,
    KernelRegistry,
    register_gradient,
    register_kernel,
)
from .infrastructure.tensor import Tensor, Variable
from ._api import (
    ValueAndGrad,
    backend_name,
    custom_grad,
    dispose,
    env,
    get_backend,
    grad,
    gradients,
    grads,
    keep,
    memory,
    ones,
    profile,
    ready,
    register_backend,
    remove_backend,
    run_kernel,
    scalar,
    set_backend,
    set_backend_async,
    tensor,
    tidy,
    time,
    value_and_grad,
    value_and_grads,
    variable,
    variable_grads,
    zeros,
)

__version__ = "0.1.0"
