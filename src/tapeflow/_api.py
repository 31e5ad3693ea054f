"""
Functional API over the default engine.

Every function here forwards to `get_engine()`, except the gradient helpers
(`grad`, `grads`, `value_and_grad`, `value_and_grads`), which dispatch
through the engine owning their tensor arguments.
"""

from __future__ import annotations

from typing import Any, Callable, List, Mapping, NamedTuple, Optional, Sequence, Union

from typing_extensions import TypeVar

from .domain._backend import KernelBackend, TimingInfo
from .domain._dtype import DTypeLike
from .infrastructure.config._environment import Environment
from .infrastructure.engine._engine import BackendFactory
from .infrastructure.engine._engine_state import (
    GradientsResult,
    MemoryInfo,
    ProfileInfo,
    VariableGradsResult,
)
from .infrastructure.engine._global import get_engine
from .infrastructure.tensor._container import get_tensors_in_container
from .infrastructure.tensor._tensor import Tensor
from .infrastructure.tensor._variable import Variable

T = TypeVar("T")


class ValueAndGrad(NamedTuple):
    value: Tensor
    grad: Tensor


# ---- kernels ----
def run_kernel(
    kernel_name: str,
    inputs: Mapping[str, Union[Tensor, Sequence[Tensor]]],
    attrs: Optional[Mapping[str, Any]] = None,
) -> Union[Tensor, List[Tensor]]:
    return get_engine().run_kernel(kernel_name, inputs, attrs)


# ---- scopes ----
def tidy(fn: Callable[[], T], name: Optional[str] = None) -> T:
    """
    Run `fn` and dispose every tensor it allocated, except those it returns
    (and those explicitly kept).

    Parameters
    ----------
    fn : Callable[[], T]
        Must complete synchronously.
    name : str | None
        Scope name, used in debugging output.
    """
    return get_engine().tidy(fn, name)


def keep(t: Tensor) -> Tensor:
    return t.engine.keep(t)


def dispose(container: Any) -> None:
    """Dispose every tensor found in `container`."""
    for t in get_tensors_in_container(container):
        t.dispose()


# ---- gradients ----
def gradients(
    f: Callable[[], Tensor],
    xs: Sequence[Tensor],
    dy: Optional[Tensor] = None,
    allow_no_gradients: bool = False,
    zero_fill: bool = False,
) -> GradientsResult:
    xs = list(xs)
    engine = xs[0].engine if xs else get_engine()
    return engine.gradients(f, xs, dy, allow_no_gradients, zero_fill)


def variable_grads(
    f: Callable[[], Tensor], var_list: Optional[Sequence[Variable]] = None
) -> VariableGradsResult:
    return get_engine().variable_grads(f, var_list)


def _check_tensor(x: Any, what: str) -> None:
    if not isinstance(x, Tensor):
        raise TypeError(f"The {what} must be a tensor, got {type(x)!r}")


def _check_tensors(xs: Any, what: str) -> List[Tensor]:
    if not isinstance(xs, (list, tuple)):
        raise TypeError(f"The {what} must be a list of tensors")
    for x in xs:
        _check_tensor(x, what)
    return list(xs)


def grad(f: Callable[[Tensor], Tensor]) -> Callable[..., Tensor]:
    """
    Return a function computing the gradient of ``f(x)`` with respect to `x`.

    The returned function has signature ``g(x, dy=None)``. Intermediates are
    disposed; only the gradient is returned.

    Examples
    --------
    >>> g = grad(lambda x: mul(x, x))
    >>> g(scalar(3.0)).item()
    6.0
    """

    def g(x: Tensor, dy: Optional[Tensor] = None) -> Tensor:
        _check_tensor(x, "x passed to the function returned by grad(f)")
        engine = x.engine
        return engine.tidy(
            lambda: engine.gradients(lambda: f(x), [x], dy).grads[0]
        )

    return g


def grads(f: Callable[..., Tensor]) -> Callable[..., List[Tensor]]:
    """
    Like `grad`, for functions of several tensors.

    The returned function has signature ``g(args, dy=None)`` where `args` is
    a list of tensors passed positionally to `f`.
    """

    def g(args: Sequence[Tensor], dy: Optional[Tensor] = None) -> List[Tensor]:
        args = _check_tensors(args, "args passed to the function returned by grads(f)")
        engine = args[0].engine if args else get_engine()
        return engine.tidy(lambda: engine.gradients(lambda: f(*args), args, dy).grads)

    return g


def value_and_grad(f: Callable[[Tensor], Tensor]) -> Callable[..., ValueAndGrad]:
    """Like `grad`, but also return ``f(x)``."""

    def g(x: Tensor, dy: Optional[Tensor] = None) -> ValueAndGrad:
        _check_tensor(x, "x passed to the function returned by value_and_grad(f)")
        engine = x.engine

        def run() -> ValueAndGrad:
            value, gs = engine.gradients(lambda: f(x), [x], dy)
            return ValueAndGrad(value, gs[0])

        return engine.tidy(run)

    return g


def value_and_grads(f: Callable[..., Tensor]) -> Callable[..., GradientsResult]:
    """Like `grads`, but also return ``f(*args)``."""

    def g(args: Sequence[Tensor], dy: Optional[Tensor] = None) -> GradientsResult:
        args = _check_tensors(
            args, "args passed to the function returned by value_and_grads(f)"
        )
        engine = args[0].engine if args else get_engine()
        return engine.tidy(lambda: engine.gradients(lambda: f(*args), args, dy))

    return g


def custom_grad(f: Callable[..., Any]) -> Callable[..., Tensor]:
    """
    Define a function with a custom gradient.

    `f(*inputs, save)` returns ``(value, grad_func)`` where
    ``grad_func(dy, saved)`` returns one gradient per input.

    Examples
    --------
    >>> @custom_grad
    ... def times_three(x, save):
    ...     save([x])
    ...     return mul(x, 3.0), lambda dy, saved: [mul(dy, 3.0)]
    """
    return get_engine().custom_grad(f)


# ---- backends ----
def register_backend(name: str, factory: BackendFactory, priority: int = 1) -> bool:
    return get_engine().register_backend(name, factory, priority)


def set_backend(name: str) -> bool:
    return get_engine().set_backend(name)


async def set_backend_async(name: str) -> bool:
    return await get_engine().set_backend_async(name)


def remove_backend(name: str) -> None:
    get_engine().remove_backend(name)


async def ready() -> None:
    await get_engine().ready()


def get_backend() -> KernelBackend:
    return get_engine().backend


def backend_name() -> Optional[str]:
    return get_engine().backend_name


# ---- diagnostics ----
def memory() -> MemoryInfo:
    return get_engine().memory()


def profile(fn: Callable[[], Any]) -> ProfileInfo:
    return get_engine().profile(fn)


def time(fn: Callable[[], None]) -> TimingInfo:
    return get_engine().time(fn)


def env() -> Environment:
    return get_engine().env


# ---- tensor creation ----
def tensor(
    values: Any,
    shape: Optional[Sequence[int]] = None,
    dtype: Optional[DTypeLike] = None,
) -> Tensor:
    return get_engine().make_tensor(values, shape, dtype)


def scalar(value: Any, dtype: Optional[DTypeLike] = None) -> Tensor:
    if isinstance(value, (list, tuple)):
        raise ValueError("scalar() requires a single value, not a sequence")
    return get_engine().make_tensor(value, (), dtype)


def variable(
    initial_value: Any,
    trainable: bool = True,
    name: Optional[str] = None,
    dtype: Optional[DTypeLike] = None,
) -> Variable:
    """
    Create a named, mutable variable.

    `initial_value` may be a tensor (whose data the variable shares) or raw
    values.
    """
    engine = get_engine()
    if isinstance(initial_value, Tensor):
        return initial_value.engine.make_variable(initial_value, trainable, name, dtype)

    def make() -> Variable:
        return engine.make_variable(
            engine.make_tensor(initial_value, dtype=dtype), trainable, name, dtype
        )

    return engine.tidy(make)


def zeros(shape: Sequence[int], dtype: DTypeLike = "float32") -> Tensor:
    return get_engine().zeros(shape, dtype)


def ones(shape: Sequence[int], dtype: DTypeLike = "float32") -> Tensor:
    return get_engine().ones(shape, dtype)


__all__ = [
    ValueAndGrad.__name__,
    backend_name.__name__,
    custom_grad.__name__,
    dispose.__name__,
    env.__name__,
    get_backend.__name__,
    grad.__name__,
    gradients.__name__,
    grads.__name__,
    keep.__name__,
    memory.__name__,
    ones.__name__,
    profile.__name__,
    ready.__name__,
    register_backend.__name__,
    remove_backend.__name__,
    run_kernel.__name__,
    scalar.__name__,
    set_backend.__name__,
    set_backend_async.__name__,
    tensor.__name__,
    tidy.__name__,
    time.__name__,
    value_and_grad.__name__,
    value_and_grads.__name__,
    variable.__name__,
    variable_grads.__name__,
    zeros.__name__,
]
