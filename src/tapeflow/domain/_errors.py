"""
Runtime exceptions for TapeFlow.

This module defines the error taxonomy used across the engine, registries,
backends and the autodiff machinery. Each error subclasses the closest
builtin exception so callers may catch either the precise TapeFlow type or the
generic Python category (e.g. `LookupError`, `ValueError`).

Errors carry the offending names, shapes or counts as attributes so tests and
callers can inspect them without parsing messages.
"""

from __future__ import annotations

from typing import Sequence


class BackendNotImplementedError(NotImplementedError):
    """
    Raised when a backend capability is invoked that the backend lacks.

    Backends derive from `KernelBackend`, whose default method bodies raise
    this error. A backend therefore fails loudly at the moment an
    unimplemented capability is used instead of silently returning garbage.

    Attributes
    ----------
    op : str
        Name of the capability that was requested (e.g. "read_sync").
    backend : str
        Name of the backend class that does not provide it.
    """

    def __init__(self, op: str, backend: str) -> None:
        super().__init__(f"'{op}' is not implemented for backend '{backend}'.")
        self.op = op
        self.backend = backend


class KernelNotFoundError(LookupError):
    """
    Raised at dispatch time when no kernel is registered for the
    `(kernel_name, backend_name)` pair.

    Attributes
    ----------
    kernel_name : str
    backend_name : str
    """

    def __init__(self, kernel_name: str, backend_name: str) -> None:
        super().__init__(
            f"Cannot find registered kernel '{kernel_name}' for backend "
            f"'{backend_name}'."
        )
        self.kernel_name = kernel_name
        self.backend_name = backend_name


class GradientNotFoundError(LookupError):
    """
    Raised when the backward pass reaches a tape node without a gradient
    function.
    """

    def __init__(self, kernel_name: str) -> None:
        super().__init__(
            f"Cannot compute gradient: gradient function not found for "
            f"'{kernel_name}'."
        )
        self.kernel_name = kernel_name


class BackendNotFoundError(LookupError):
    """Raised when a backend name has no registered factory."""

    def __init__(self, backend_name: str) -> None:
        super().__init__(f"Backend '{backend_name}' not found in registry.")
        self.backend_name = backend_name


class BackendInitializationError(RuntimeError):
    """
    Raised when no backend can be made active.

    This covers two situations: every registered backend failed to
    initialize, or the selected backend is still initializing asynchronously
    and the caller used a synchronous entry point.
    """


class DisposedTensorError(RuntimeError):
    """Raised on any read or use of a tensor whose handle was disposed."""

    def __init__(self, tensor_id: int) -> None:
        super().__init__(f"Tensor {tensor_id} is disposed.")
        self.tensor_id = tensor_id


class ShapeMismatchError(ValueError):
    """
    Raised when a shape contract is violated.

    Attributes
    ----------
    op : str
        Operation (or context) that detected the mismatch.
    expected : tuple[int, ...]
    actual : tuple[int, ...]
    """

    def __init__(
        self,
        op: str,
        expected: Sequence[int],
        actual: Sequence[int],
        detail: str = "",
    ) -> None:
        msg = f"{op}: shape mismatch, expected {tuple(expected)} but got {tuple(actual)}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg + ".")
        self.op = op
        self.expected = tuple(expected)
        self.actual = tuple(actual)


class DTypeMismatchError(TypeError):
    """
    Raised when a dtype contract is violated.

    Attributes
    ----------
    op : str
    expected : str
    actual : str
    """

    def __init__(self, op: str, expected: object, actual: object, detail: str = "") -> None:
        msg = f"{op}: dtype mismatch, expected '{expected}' but got '{actual}'"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg + ".")
        self.op = op
        self.expected = str(expected)
        self.actual = str(actual)


class MemoryLeakError(RuntimeError):
    """
    Raised in leak-checking mode when a kernel leaves backend data ids
    unaccounted for.

    Attributes
    ----------
    backend_name : str
    kernel_name : str
    num_leaked : int
        Number of data ids that are neither outputs nor data moves.
    """

    def __init__(self, backend_name: str, kernel_name: str, num_leaked: int) -> None:
        super().__init__(
            f"Backend '{backend_name}' has an internal memory leak "
            f"({num_leaked} data ids) after running '{kernel_name}'."
        )
        self.backend_name = backend_name
        self.kernel_name = kernel_name
        self.num_leaked = num_leaked


class DisconnectedGraphError(RuntimeError):
    """Raised when no recorded operation connects `xs` to `y`."""


class MissingGradientError(RuntimeError):
    """Raised when a requested input received no gradient."""

    def __init__(self, tensor_id: int) -> None:
        super().__init__(
            f"Tensor {tensor_id} received no gradient: y=f(x) does not depend on it."
        )
        self.tensor_id = tensor_id


class AsyncScopeError(TypeError):
    """Raised when a scoped function returns an awaitable."""


class DuplicateVariableError(ValueError):
    """Raised when a variable name is registered twice on one engine."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Variable with name '{name}' was already registered.")
        self.name = name


class DataIdNotFoundError(KeyError):
    """Raised when a data id resolves to no storage entry."""

    def __init__(self, data_id: int) -> None:
        super().__init__(f"Data id {data_id} is not present in storage.")
        self.data_id = data_id
