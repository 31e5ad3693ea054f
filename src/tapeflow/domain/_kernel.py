"""
Kernel and gradient registration records.

A *kernel* is the per-backend implementation of a named operation; a
*gradient* is the backend-independent backward rule for that operation name.
This module defines the configuration records both registries store, and the
callable signatures they expect.

Save policy
-----------
A gradient declares which forward tensors its backward pass needs:

- inputs are addressed **by name** (`inputs_to_save`), or all at once with
  `save_all_inputs=True`; the two forms are mutually exclusive;
- outputs are addressed **by position** (`outputs_to_save[i]`), since
  kernel outputs have no names.

Consistency is checked when the record is constructed, i.e. at registration
time, not at first use.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from ._tensor import ITensor, TensorInfo

if TYPE_CHECKING:
    from ._backend import KernelBackend

Attrs = Mapping[str, Any]
InputMap = Mapping[str, Union[ITensor, Sequence[ITensor]]]

KernelFunc = Callable[
    [InputMap, "KernelBackend", Attrs], Union[TensorInfo, Sequence[TensorInfo]]
]
"""`kernel_func(inputs, backend, attrs) -> TensorInfo | [TensorInfo, ...]`"""

KernelSetupFunc = Callable[["KernelBackend"], None]
KernelDisposeFunc = Callable[["KernelBackend"], None]

GradFunc = Callable[
    [Union[ITensor, list], list, Attrs], Mapping[str, Callable[[], ITensor]]
]
"""
`grad_func(dy, saved, attrs) -> {input_name: thunk}`

`dy` is a single tensor for single-output kernels and a list otherwise.
Each thunk lazily computes the gradient for one input, so inputs pruned from
the backward pass never pay for their gradient.
"""


@dataclass(frozen=True)
class KernelConfig:
    """
    Registration record for one `(kernel_name, backend_name)` pair.

    Attributes
    ----------
    kernel_name : str
    backend_name : str
    kernel_func : KernelFunc
    setup_func : Optional[KernelSetupFunc]
        Invoked with the backend instance whenever that backend becomes active.
    dispose_func : Optional[KernelDisposeFunc]
        Invoked with the backend instance when the backend is removed.
    """

    kernel_name: str
    backend_name: str
    kernel_func: KernelFunc
    setup_func: Optional[KernelSetupFunc] = None
    dispose_func: Optional[KernelDisposeFunc] = None

    def __post_init__(self) -> None:
        if not isinstance(self.kernel_name, str) or not self.kernel_name:
            raise ValueError("kernel_name must be a non-empty string")
        if not isinstance(self.backend_name, str) or not self.backend_name:
            raise ValueError("backend_name must be a non-empty string")
        if not callable(self.kernel_func):
            raise TypeError(f"kernel_func for '{self.kernel_name}' must be callable")


@dataclass(frozen=True)
class GradConfig:
    """
    Registration record for the gradient of one kernel name.

    Attributes
    ----------
    kernel_name : str
    grad_func : GradFunc
    inputs_to_save : tuple[str, ...]
        Names of forward inputs to keep alive for the backward pass.
    outputs_to_save : tuple[bool, ...]
        Positional flags selecting forward outputs to keep alive.
    save_all_inputs : bool
        Keep every forward input. Mutually exclusive with `inputs_to_save`.

    Raises
    ------
    ValueError
        If both input addressing forms are used, or names repeat.
    TypeError
        If `grad_func` is not callable or flags are not booleans.
    """

    kernel_name: str
    grad_func: GradFunc
    inputs_to_save: Sequence[str] = field(default_factory=tuple)
    outputs_to_save: Sequence[bool] = field(default_factory=tuple)
    save_all_inputs: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.kernel_name, str) or not self.kernel_name:
            raise ValueError("kernel_name must be a non-empty string")
        if not callable(self.grad_func):
            raise TypeError(f"grad_func for '{self.kernel_name}' must be callable")

        names = tuple(self.inputs_to_save)
        flags = tuple(self.outputs_to_save)
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "inputs_to_save", names)
        object.__setattr__(self, "outputs_to_save", flags)

        if self.save_all_inputs and names:
            raise ValueError(
                f"Gradient for '{self.kernel_name}' sets both save_all_inputs and "
                f"inputs_to_save={list(names)}; use one addressing scheme."
            )
        if len(set(names)) != len(names):
            raise ValueError(
                f"Gradient for '{self.kernel_name}' repeats names in "
                f"inputs_to_save={list(names)}."
            )
        if any(not isinstance(n, str) or not n for n in names):
            raise ValueError(
                f"Gradient for '{self.kernel_name}': inputs_to_save entries must "
                "be non-empty strings."
            )
        if any(not isinstance(f, bool) for f in flags):
            raise TypeError(
                f"Gradient for '{self.kernel_name}': outputs_to_save entries must "
                "be booleans."
            )
