"""
The tensor runtime engine.

`Engine` is the single coordinator tying the other components together:

- backend lifecycle: registration by priority, lazy selection of the best
  backend, synchronous and asynchronous initialization, removal;
- kernel dispatch: `run_kernel` looks up the kernel for the active backend,
  checks it for leaked data ids in test mode, wraps its outputs as tensors,
  records a tape node when gradients are being computed and feeds the
  profiler;
- tensor bookkeeping: per-data-id ownership records, live tensor / byte
  counters, refcount claims and cross-backend data moves;
- scopes: `start_scope` / `end_scope` / `tidy` dispose every tensor created
  inside a scope unless it is kept or returned;
- reverse-mode autodiff: `gradients`, `variable_grads` and `custom_grad`.

Engines are explicit objects. Tensors carry a reference to the engine that
made them, so several engines can coexist (tests build their own).
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import time as _time
import warnings
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    ClassVar,
    Dict,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import numpy as np
from typing_extensions import TypeVar

from ...domain import _kernel_names as names
from ...domain._backend import KernelBackend, TimingInfo
from ...domain._dtype import DEFAULT_FLOAT, DType, DTypeLike, as_dtype, bytes_per_element
from ...domain._errors import (
    AsyncScopeError,
    BackendInitializationError,
    BackendNotFoundError,
    DataIdNotFoundError,
    DisconnectedGraphError,
    DTypeMismatchError,
    DuplicateVariableError,
    KernelNotFoundError,
    MemoryLeakError,
    MissingGradientError,
    ShapeMismatchError,
)
from ...domain._tensor import DataId, TensorInfo
from ..autograd._tape import (
    TapeNode,
    backpropagate_gradients,
    filter_nodes_x_to_y,
    flatten_inputs,
)
from ..config._environment import ENV, Environment
from ..registry._gradient_registry import GradientRegistry
from ..registry._kernel_registry import KernelRegistry
from ..tensor._container import get_tensors_in_container
from ..tensor._dtypes import infer_dtype, string_bytes, to_array, to_numpy_dtype
from ..tensor._tensor import Tensor
from ..tensor._variable import Variable
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
from ._profiler import Profiler

T = TypeVar("T")

BackendFactory = Callable[
    ["Engine"], Union[KernelBackend, Awaitable[KernelBackend]]
]
"""`factory(engine) -> backend`, or an awaitable resolving to one."""

STRING_MEMORY_REASON = (
    "Memory usage by string tensors is approximate (2 bytes per character)"
)


@dataclass(frozen=True)
class _RegistryFactoryEntry:
    factory: BackendFactory
    priority: int


class _KernelResult(NamedTuple):
    outputs: List[Tensor]
    saved: List[Tensor]
    is_list: bool


class _PendingInit:
    """
    Shareable handle on an asynchronous backend initialization.

    The coroutine is only scheduled once somebody awaits the handle; several
    awaiters then share one task. A handle that is never awaited is closed by
    `discard`, together with the factory awaitable it wraps (`source`).
    """

    def __init__(self, coro: Awaitable[bool], source: Any = None) -> None:
        self._coro = coro
        self._source = source
        self._task: Optional[asyncio.Future] = None

    def __await__(self):
        if self._task is None:
            self._task = asyncio.ensure_future(self._coro)
        return self._task.__await__()

    def discard(self) -> None:
        if self._task is None:
            for c in (self._coro, self._source):
                if inspect.iscoroutine(c):
                    c.close()


class Engine:
    """
    Tensor runtime: backends, kernels, tensors, scopes and gradients.

    Parameters
    ----------
    env : Environment | None
        Feature flags consulted by this engine. Defaults to the process-wide
        `ENV`.

    Attributes
    ----------
    env : Environment
    registry : dict[str, KernelBackend]
        Initialized backend instances by name.
    registry_factory : dict[str, _RegistryFactoryEntry]
        Registered backend factories by name.
    backend_name : str | None
        Name of the active backend.
    state : EngineState
    """

    _tensor_ids: ClassVar[Iterator[int]] = itertools.count()
    _variable_ids: ClassVar[Iterator[int]] = itertools.count()

    def __init__(self, env: Optional[Environment] = None) -> None:
        self.env = ENV if env is None else env
        self.registry: Dict[str, KernelBackend] = {}
        self.registry_factory: Dict[str, _RegistryFactoryEntry] = {}
        self.backend_name: Optional[str] = None
        self._backend_instance: Optional[KernelBackend] = None
        self._pending_backend_init: Optional[_PendingInit] = None
        self._pending_backend_init_id = 0
        self._profiler: Optional[Profiler] = None
        self.state = EngineState()

    # ------------------------------------------------------------------
    # backend lifecycle
    # ------------------------------------------------------------------
    async def ready(self) -> None:
        """
        Wait until a backend is active.

        Awaits any pending asynchronous initialization, then, if no backend
        is active yet, initializes registered backends in priority order and
        activates the first that succeeds.

        Raises
        ------
        BackendInitializationError
            If every registered backend fails to initialize.
        """
        if self._pending_backend_init is not None:
            await self._pending_backend_init
        if self._backend_instance is not None:
            return

        for name in self._get_sorted_backends():
            success, async_init = self._initialize_backend(name)
            if async_init:
                success = await success
            if success:
                await self.set_backend_async(name)
                return

        raise BackendInitializationError(
            "Could not initialize any backends, all backend initializations failed."
        )

    @property
    def backend(self) -> KernelBackend:
        """
        The active backend, initializing the best registered one on first use.

        Raises
        ------
        BackendInitializationError
            If initialization is pending, if the best backend initializes
            asynchronously, or if no backend can be initialized.
        """
        if self._pending_backend_init is not None:
            raise BackendInitializationError(
                f"Backend '{self.backend_name}' has not yet been initialized. "
                "Make sure to await engine.ready() or "
                "await engine.set_backend_async() before calling other methods."
            )
        if self._backend_instance is None:
            name, async_init = self._initialize_backends_and_return_best()
            if async_init:
                raise BackendInitializationError(
                    f"The highest priority backend '{name}' has not yet been "
                    "initialized. Make sure to await engine.ready() or "
                    "await engine.set_backend_async() before calling other methods."
                )
            self.set_backend(name)
        return self._backend_instance

    def backend_names(self) -> List[str]:
        return list(self.registry_factory)

    def find_backend(self, backend_name: str) -> Optional[KernelBackend]:
        """
        Return the instance of `backend_name`, initializing it if needed.

        Returns None if the backend is unknown, failed to initialize or
        initializes asynchronously.
        """
        if backend_name not in self.registry:
            if backend_name not in self.registry_factory:
                return None
            success, async_init = self._initialize_backend(backend_name)
            if async_init or not success:
                return None
        return self.registry[backend_name]

    def find_backend_factory(self, backend_name: str) -> Optional[BackendFactory]:
        entry = self.registry_factory.get(backend_name)
        return None if entry is None else entry.factory

    def register_backend(
        self, backend_name: str, factory: BackendFactory, priority: int = 1
    ) -> bool:
        """
        Register a backend factory.

        Returns
        -------
        bool
            False (with a warning) if `backend_name` is already registered.
        """
        if backend_name in self.registry_factory:
            warnings.warn(
                f"{backend_name} backend was already registered. Reusing existing "
                "backend factory.",
                RuntimeWarning,
                stacklevel=2,
            )
            return False
        self.registry_factory[backend_name] = _RegistryFactoryEntry(factory, priority)
        return True

    def set_backend(self, backend_name: str) -> bool:
        """
        Activate `backend_name`, initializing it synchronously if needed.

        Returns
        -------
        bool
            False if initialization failed.

        Raises
        ------
        BackendNotFoundError
            If no factory is registered under `backend_name`.
        BackendInitializationError
            If the backend initializes asynchronously; use
            `set_backend_async` instead.
        """
        if backend_name not in self.registry_factory:
            raise BackendNotFoundError(backend_name)
        self._teardown_pending_init()
        self.backend_name = backend_name

        if backend_name not in self.registry:
            self._backend_instance = None
            success, async_init = self._initialize_backend(backend_name)
            if async_init:
                raise BackendInitializationError(
                    f"Backend '{backend_name}' initializes asynchronously; use "
                    f"'await engine.set_backend_async({backend_name!r})' or "
                    "'await engine.ready()'."
                )
            if not success:
                return False

        self._activate(backend_name)
        return True

    async def set_backend_async(self, backend_name: str) -> bool:
        """Asynchronous counterpart of `set_backend`."""
        if backend_name not in self.registry_factory:
            raise BackendNotFoundError(backend_name)
        self._teardown_pending_init()
        self.backend_name = backend_name

        if backend_name not in self.registry:
            self._backend_instance = None
            success, async_init = self._initialize_backend(backend_name)
            if async_init:
                success = await success
            if not success or self.backend_name != backend_name:
                return False

        self._activate(backend_name)
        return True

    def remove_backend(self, backend_name: str) -> None:
        """
        Dispose and unregister `backend_name`.

        Kernel dispose hooks run, the instance is disposed and the factory is
        dropped. If it was the active backend, no backend is active afterwards.
        """
        if backend_name not in self.registry_factory:
            raise BackendNotFoundError(backend_name)
        if self.backend_name == backend_name:
            self._teardown_pending_init()

        if backend_name in self.registry:
            self._dispose_registered_kernels(backend_name)
            self.registry[backend_name].dispose()
            del self.registry[backend_name]
        del self.registry_factory[backend_name]

        if self.backend_name == backend_name:
            self.backend_name = None
            self._backend_instance = None
            self._profiler = None

    def _activate(self, backend_name: str) -> None:
        self._backend_instance = self.registry[backend_name]
        self._setup_registered_kernels()
        self._profiler = Profiler(self._backend_instance, self.env)

    def _setup_registered_kernels(self) -> None:
        for config in KernelRegistry.kernels_for_backend(self.backend_name):
            if config.setup_func is not None:
                config.setup_func(self._backend_instance)

    def _dispose_registered_kernels(self, backend_name: str) -> None:
        for config in KernelRegistry.kernels_for_backend(backend_name):
            if config.dispose_func is not None:
                config.dispose_func(self.registry[backend_name])

    def _teardown_pending_init(self) -> None:
        if self._pending_backend_init is not None:
            self._pending_backend_init_id += 1
            self._pending_backend_init.discard()
            self._pending_backend_init = None

    def _initialize_backend(
        self, backend_name: str
    ) -> Tuple[Union[bool, _PendingInit], bool]:
        """
        Construct `backend_name` from its factory.

        Returns
        -------
        (success, async_init)
            `success` is a bool, or an awaitable resolving to one when
            `async_init` is True. Factory failures are reported as warnings
            and yield False.
        """
        if backend_name in self.registry:
            return True, False
        entry = self.registry_factory.get(backend_name)
        if entry is None:
            raise BackendNotFoundError(backend_name)

        try:
            backend = entry.factory(self)
        except Exception as exc:
            warnings.warn(
                f"Initialization of backend '{backend_name}' failed: {exc!r}",
                RuntimeWarning,
                stacklevel=2,
            )
            return False, False

        if not inspect.isawaitable(backend):
            self.registry[backend_name] = backend
            return True, False

        self._pending_backend_init_id += 1
        promise_id = self._pending_backend_init_id

        async def finish() -> bool:
            try:
                instance = await backend
            except Exception as exc:
                if promise_id < self._pending_backend_init_id:
                    return False
                self._pending_backend_init = None
                warnings.warn(
                    f"Initialization of backend '{backend_name}' failed: {exc!r}",
                    RuntimeWarning,
                    stacklevel=2,
                )
                return False
            # superseded by a later initialization
            if promise_id < self._pending_backend_init_id:
                return False
            self.registry[backend_name] = instance
            self._pending_backend_init = None
            return True

        pending = _PendingInit(finish(), backend)
        self._pending_backend_init = pending
        return pending, True

    def _get_sorted_backends(self) -> List[str]:
        return sorted(
            self.registry_factory,
            key=lambda name: self.registry_factory[name].priority,
            reverse=True,
        )

    def _initialize_backends_and_return_best(self) -> Tuple[str, bool]:
        for name in self._get_sorted_backends():
            success, async_init = self._initialize_backend(name)
            if async_init or success:
                return name, async_init
        raise BackendInitializationError(
            "Could not initialize any backends, all backend initializations failed."
        )

    # ------------------------------------------------------------------
    # data movement
    # ------------------------------------------------------------------
    def move_data(self, backend: KernelBackend, data_id: DataId) -> None:
        """
        Migrate `data_id` from its current owner into `backend`.

        The values are read from the owner, the owner's storage is force
        released, the record is re-pointed and `backend` adopts the values
        with the original refcount.

        Raises
        ------
        DataIdNotFoundError
            If `data_id` is unknown, or its recorded owner is `backend`
            itself (e.g. the owner was removed or reset).
        """
        record = self.state.tensor_info.get(data_id)
        if record is None:
            raise DataIdNotFoundError(data_id)
        src_backend = record.backend
        # the recorded owner already lost the entry
        if src_backend is backend:
            raise DataIdNotFoundError(data_id)
        values = self.read_sync(data_id)
        ref_count = src_backend.ref_count(data_id)
        src_backend.dispose_data(data_id, force=True)
        record.backend = backend
        backend.move(data_id, values, record.shape, record.dtype, ref_count)
        if self._should_check_for_mem_leaks() and self.state.num_data_moves_stack:
            self.state.num_data_moves_stack[-1] += 1

    def read_sync(self, data_id: DataId) -> Any:
        record = self.state.tensor_info.get(data_id)
        if record is None:
            raise DataIdNotFoundError(data_id)
        return record.backend.read_sync(data_id)

    async def read(self, data_id: DataId) -> Any:
        record = self.state.tensor_info.get(data_id)
        if record is None:
            raise DataIdNotFoundError(data_id)
        return await record.backend.read(data_id)

    # ------------------------------------------------------------------
    # kernel dispatch
    # ------------------------------------------------------------------
    def run_kernel(
        self,
        kernel_name: str,
        inputs: Mapping[str, Union[Tensor, Sequence[Tensor]]],
        attrs: Optional[Mapping[str, Any]] = None,
    ) -> Union[Tensor, List[Tensor]]:
        """
        Execute the kernel `kernel_name` on the active backend.

        Parameters
        ----------
        kernel_name : str
        inputs : Mapping[str, Tensor | Sequence[Tensor]]
            Named inputs. Sequence values are passed to the kernel as is and
            flattened to ``"<name>:<index>"`` on the tape.
        attrs : Mapping[str, Any] | None
            Non-tensor parameters.

        Returns
        -------
        Tensor | list[Tensor]
            A list if and only if the kernel returned a sequence.

        Raises
        ------
        KernelNotFoundError
            If the active backend has no such kernel.
        MemoryLeakError
            In test mode, if the kernel left unaccounted data ids behind.
        """
        attrs = dict(attrs or {})
        backend = self.backend
        config = KernelRegistry.get(kernel_name, self.backend_name)
        if config is None:
            raise KernelNotFoundError(kernel_name, self.backend_name)

        def forward(is_tape_on: bool) -> _KernelResult:
            num_data_ids_before = backend.num_data_ids()
            out = config.kernel_func(inputs, backend, attrs)
            is_list = isinstance(out, (list, tuple))
            out_infos = list(out) if is_list else [out]
            if self._should_check_for_mem_leaks():
                self._check_kernel_for_mem_leak(
                    kernel_name, num_data_ids_before, out_infos
                )
            outputs = [
                info
                if isinstance(info, Tensor)
                else self.make_tensor_from_tensor_info(info)
                for info in out_infos
            ]
            saved: List[Tensor] = []
            if is_tape_on:
                saved = self._save_tensors_for_backward_mode(
                    self._get_tensors_for_gradient(kernel_name, inputs, outputs)
                )
            return _KernelResult(outputs, saved, is_list)

        return self._run_kernel_func(kernel_name, inputs, attrs, forward)

    def _run_kernel_func(
        self,
        kernel_or_scope_name: str,
        inputs: Mapping[str, Any],
        attrs: Dict[str, Any],
        forward: Callable[[bool], _KernelResult],
        backwards_func: Optional[Callable[..., Mapping[str, Callable[[], Tensor]]]] = None,
    ) -> Union[Tensor, List[Tensor]]:
        # ensures a backend (and its profiler) exists
        self.backend
        is_tape_on = self.is_tape_on()
        starting_bytes = self.state.num_bytes
        starting_num_tensors = self.state.num_tensors
        check_leaks = self._should_check_for_mem_leaks()
        if check_leaks:
            self.state.num_data_moves_stack.append(0)

        kernel_profile = None
        try:
            self.state.kernel_depth += 1
            try:
                if not self.env.get_bool("DEBUG") and not self.state.profiling:
                    result = forward(is_tape_on)
                else:
                    held: List[_KernelResult] = []

                    def run() -> List[Tensor]:
                        held.append(forward(is_tape_on))
                        return held[0].outputs

                    kernel_profile = self._profiler.profile_kernel(
                        kernel_or_scope_name, flatten_inputs(inputs), run
                    )
                    if self.env.get_bool("DEBUG"):
                        self._profiler.log_kernel_profile(kernel_profile)
                    result = held[0]
            finally:
                self.state.kernel_depth -= 1
        finally:
            if check_leaks:
                self.state.num_data_moves_stack.pop()

        if is_tape_on:
            self._add_tape_node(
                kernel_or_scope_name,
                inputs,
                result.outputs,
                backwards_func,
                result.saved,
                attrs,
            )

        if self.state.profiling:
            self.state.active_profile.kernels.append(
                KernelInfo(
                    name=kernel_or_scope_name,
                    bytes_added=self.state.num_bytes - starting_bytes,
                    total_bytes_snapshot=self.state.num_bytes,
                    tensors_added=self.state.num_tensors - starting_num_tensors,
                    total_tensors_snapshot=self.state.num_tensors,
                    input_shapes=[t.shape for t in flatten_inputs(inputs).values()],
                    output_shapes=[t.shape for t in result.outputs],
                    kernel_time_ms=kernel_profile.time_ms,
                    extra_info=kernel_profile.extra_info,
                )
            )

        return list(result.outputs) if result.is_list else result.outputs[0]

    def _check_kernel_for_mem_leak(
        self, kernel_name: str, num_data_ids_before: int, out_infos: Sequence[Any]
    ) -> None:
        num_data_ids_after = self.backend.num_data_ids()
        num_moves = self.state.num_data_moves_stack[-1]
        num_leaked = (
            num_data_ids_after - num_data_ids_before - len(out_infos) - num_moves
        )
        if num_leaked > 0:
            raise MemoryLeakError(self.backend_name, kernel_name, num_leaked)

    def _should_check_for_mem_leaks(self) -> bool:
        return self.env.get_bool("IS_TEST") and not self.env.get_bool("PROD")

    def _get_tensors_for_gradient(
        self,
        kernel_name: str,
        inputs: Mapping[str, Any],
        outputs: Sequence[Tensor],
    ) -> List[Tensor]:
        config = GradientRegistry.get(kernel_name)
        if config is None:
            return []

        if config.save_all_inputs:
            input_tensors = list(flatten_inputs(inputs).values())
        else:
            input_tensors = []
            for name in config.inputs_to_save:
                if name not in inputs:
                    raise LookupError(
                        f"Gradient for '{kernel_name}' saves input '{name}', but "
                        f"the kernel was called with inputs {sorted(inputs)}."
                    )
                value = inputs[name]
                if isinstance(value, Tensor):
                    input_tensors.append(value)
                else:
                    input_tensors.extend(value)

        if len(config.outputs_to_save) > len(outputs):
            raise LookupError(
                f"Gradient for '{kernel_name}' saves {len(config.outputs_to_save)} "
                f"outputs, but the kernel produced {len(outputs)}."
            )
        output_tensors = [
            out for out, save in zip(outputs, config.outputs_to_save) if save
        ]
        return input_tensors + output_tensors

    def _save_tensors_for_backward_mode(
        self, tensors: Sequence[Tensor]
    ) -> List[Tensor]:
        return [self.keep(self.clone(t)) for t in tensors]

    # ------------------------------------------------------------------
    # tape
    # ------------------------------------------------------------------
    def is_tape_on(self) -> bool:
        return self.state.gradient_depth > 0 and self.state.kernel_depth == 0

    def _add_tape_node(
        self,
        kernel_name: str,
        inputs: Mapping[str, Any],
        outputs: List[Tensor],
        gradients_func: Optional[Callable[..., Mapping[str, Callable[[], Tensor]]]],
        saved: List[Tensor],
        attrs: Dict[str, Any],
    ) -> None:
        node = TapeNode(
            id=self.state.next_tape_node_id,
            kernel_name=kernel_name,
            inputs=flatten_inputs(inputs),
            outputs=outputs,
            saved=saved,
            attrs=attrs,
        )
        self.state.next_tape_node_id += 1

        if gradients_func is None:
            grad_config = GradientRegistry.get(kernel_name)
            if grad_config is not None:
                gradients_func = grad_config.grad_func

        if gradients_func is not None:

            def gradient(dys: List[Optional[Tensor]]):
                filled = [
                    dy if dy is not None else self.zeros(out.shape, out.dtype)
                    for dy, out in zip(dys, outputs)
                ]
                return gradients_func(
                    filled[0] if len(outputs) == 1 else filled, saved, attrs
                )

            node.gradient = gradient

        self.state.active_tape.append(node)

    def _start_tape(self) -> None:
        if self.state.gradient_depth == 0:
            self.state.active_tape = []
        self.state.gradient_depth += 1

    def _end_tape(self) -> None:
        self.state.gradient_depth -= 1

    # ------------------------------------------------------------------
    # tensor bookkeeping
    # ------------------------------------------------------------------
    @staticmethod
    def _next_tensor_id() -> int:
        return next(Engine._tensor_ids)

    @staticmethod
    def _next_variable_id() -> int:
        return next(Engine._variable_ids)

    def make_tensor(
        self,
        values: Any,
        shape: Optional[Sequence[int]] = None,
        dtype: Optional[DTypeLike] = None,
        backend: Optional[KernelBackend] = None,
    ) -> Tensor:
        """
        Write `values` to a backend and return a tracked tensor over them.

        Parameters
        ----------
        values : array-like
        shape : Sequence[int] | None
            Target shape; defaults to the shape of `values`.
        dtype : DType | str | None
            Defaults to the dtype inferred from `values`.
        backend : KernelBackend | None
            Defaults to the active backend.
        """
        if values is None:
            raise ValueError("Values passed to make_tensor() must not be None.")
        dt = infer_dtype(values) if dtype is None else as_dtype(dtype)
        arr = to_array(values, dt, shape)
        backend = self.backend if backend is None else backend

        data_id = backend.write(arr, arr.shape, dt)
        t = Tensor(arr.shape, dt, data_id, self._next_tensor_id(), self)
        self.track_tensor(t, backend)

        if dt is DType.STRING:
            record = self.state.tensor_info[data_id]
            new_bytes = string_bytes(arr)
            self.state.num_bytes += new_bytes - record.bytes
            record.bytes = new_bytes
        return t

    def make_tensor_from_data_id(
        self,
        data_id: DataId,
        shape: Sequence[int],
        dtype: DTypeLike = DEFAULT_FLOAT,
        backend: Optional[KernelBackend] = None,
    ) -> Tensor:
        t = Tensor(shape, dtype, data_id, self._next_tensor_id(), self)
        self.track_tensor(t, backend)
        return t

    def make_tensor_from_tensor_info(
        self, info: TensorInfo, backend: Optional[KernelBackend] = None
    ) -> Tensor:
        return self.make_tensor_from_data_id(
            info.data_id, info.shape, info.dtype, backend
        )

    def make_variable(
        self,
        initial_value: Tensor,
        trainable: bool = True,
        name: Optional[str] = None,
        dtype: Optional[DTypeLike] = None,
    ) -> Variable:
        """
        Create and register a variable sharing `initial_value`'s data.

        Raises
        ------
        DuplicateVariableError
            If a variable named `name` is already registered.
        """
        name = str(self._next_variable_id()) if name is None else name
        if name in self.state.registered_variables:
            raise DuplicateVariableError(name)
        if dtype is not None and as_dtype(dtype) is not initial_value.dtype:
            initial_value = self.run_kernel(
                names.CAST, {"x": initial_value}, {"dtype": as_dtype(dtype)}
            )
        v = Variable(initial_value, trainable, name, self._next_tensor_id())
        self.state.registered_variables[name] = v
        self.inc_ref(v)
        return v

    def zeros(self, shape: Sequence[int], dtype: DTypeLike = DEFAULT_FLOAT) -> Tensor:
        shape = tuple(int(d) for d in shape)
        return self.make_tensor(np.zeros(shape, dtype=to_numpy_dtype(dtype)), shape, dtype)

    def ones(self, shape: Sequence[int], dtype: DTypeLike = DEFAULT_FLOAT) -> Tensor:
        shape = tuple(int(d) for d in shape)
        return self.make_tensor(np.ones(shape, dtype=to_numpy_dtype(dtype)), shape, dtype)

    def clone(self, x: Tensor) -> Tensor:
        """New handle sharing `x`'s data, differentiable as identity."""
        return self.run_kernel(names.IDENTITY, {"x": x})

    def track_tensor(self, t: Tensor, backend: Optional[KernelBackend] = None) -> None:
        """
        Account for a new handle on `t.data_id`.

        Creates the ownership record on first sight of the data id, bumps
        the tensor and byte counters, and tracks `t` in the active scope
        unless it is a `Variable`.
        """
        self.state.num_tensors += 1
        if t.dtype is DType.STRING:
            self.state.num_string_tensors += 1
            num_bytes = 0
        else:
            num_bytes = t.size * bytes_per_element(t.dtype)

        record = self.state.tensor_info.get(t.data_id)
        if record is None:
            self.state.num_data_buffers += 1
            record = TensorRecord(
                backend=self.backend if backend is None else backend,
                dtype=t.dtype,
                shape=t.shape,
                bytes=num_bytes,
            )
            self.state.tensor_info[t.data_id] = record
        elif t.dtype is DType.STRING:
            num_bytes = record.bytes
        self.state.num_bytes += num_bytes

        if not isinstance(t, Variable):
            self.track(t)

    def inc_ref(self, t: Tensor, backend: Optional[KernelBackend] = None) -> None:
        """Account for `t` as an additional claim on existing data."""
        self.track_tensor(t, backend)
        self.state.tensor_info[t.data_id].backend.inc_ref(t.data_id)

    def dispose_tensor(self, t: Tensor) -> None:
        record = self.state.tensor_info.get(t.data_id)
        if record is None:
            return

        self.state.num_tensors -= 1
        if t.dtype is DType.STRING:
            self.state.num_string_tensors -= 1
            self.state.num_bytes -= record.bytes
        else:
            self.state.num_bytes -= t.size * bytes_per_element(t.dtype)

        if record.backend.dispose_data(t.data_id):
            self._remove_data_id(t.data_id, record.backend)

    def _remove_data_id(self, data_id: DataId, backend: KernelBackend) -> None:
        record = self.state.tensor_info.get(data_id)
        if record is not None and record.backend is backend:
            del self.state.tensor_info[data_id]
            self.state.num_data_buffers -= 1

    def dispose_variable(self, v: Variable) -> None:
        self.dispose_tensor(v)
        if self.state.registered_variables.get(v.name) is v:
            del self.state.registered_variables[v.name]

    def dispose_variables(self) -> None:
        self.state.dispose()

    @property
    def registered_variables(self) -> Dict[str, Variable]:
        return self.state.registered_variables

    # ------------------------------------------------------------------
    # scopes
    # ------------------------------------------------------------------
    def track(self, t: Tensor) -> Tensor:
        scope = self.state.active_scope
        if scope is not None:
            t.scope_id = scope.id
            scope.track.append(t)
        return t

    def keep(self, t: Tensor) -> Tensor:
        """Exempt `t` from disposal by any enclosing scope."""
        t.kept = True
        return t

    def start_scope(self, name: Optional[str] = None) -> None:
        scope = ScopeState(
            id=self.state.next_scope_id, name=name or "unnamed scope"
        )
        self.state.next_scope_id += 1
        self.state.scope_stack.append(scope)
        self.state.active_scope = scope

    def end_scope(self, result: Any = None) -> None:
        """
        Close the innermost scope.

        Every tensor it tracked is disposed unless kept or contained in
        `result`; tensors in `result` that the closed scope owned move to
        the parent scope (or become unscoped at the top level).
        """
        if not self.state.scope_stack:
            raise RuntimeError("end_scope() called without a matching start_scope().")
        tensors_to_track_in_parent = get_tensors_in_container(result)
        keep_ids = {t.id for t in tensors_to_track_in_parent}

        for t in self.state.active_scope.track:
            if not t.kept and t.id not in keep_ids:
                t.dispose()

        old_scope = self.state.scope_stack.pop()
        self.state.active_scope = (
            self.state.scope_stack[-1] if self.state.scope_stack else None
        )

        for t in tensors_to_track_in_parent:
            if not t.kept and t.scope_id == old_scope.id:
                if self.state.active_scope is None:
                    t.scope_id = None
                else:
                    self.track(t)

    def tidy(self, fn: Callable[[], T], name: Optional[str] = None) -> T:
        """
        Run `fn` in a fresh scope and dispose everything it allocated except
        what it returns.

        Raises
        ------
        AsyncScopeError
            If `fn` returns an awaitable.
        """
        if not callable(fn):
            raise TypeError("tidy() expects a callable.")
        result = None

        def run() -> T:
            nonlocal result
            out = fn()
            if inspect.isawaitable(out):
                if inspect.iscoroutine(out):
                    out.close()
                raise AsyncScopeError(
                    "Cannot return an awaitable inside of tidy(); scopes must "
                    "complete synchronously."
                )
            result = out
            return out

        return self._scoped_run(
            lambda: self.start_scope(name), lambda: self.end_scope(result), run
        )

    @staticmethod
    def _scoped_run(
        start: Callable[[], None], end: Callable[[], None], f: Callable[[], T]
    ) -> T:
        start()
        try:
            return f()
        finally:
            end()

    def dispose(self, container: Any) -> None:
        """Dispose every tensor in a (nested) list / tuple / dict / tensor."""
        for t in get_tensors_in_container(container):
            t.dispose()

    # ------------------------------------------------------------------
    # gradients
    # ------------------------------------------------------------------
    def gradients(
        self,
        f: Callable[[], Tensor],
        xs: Sequence[Tensor],
        dy: Optional[Tensor] = None,
        allow_no_gradients: bool = False,
        zero_fill: bool = False,
    ) -> GradientsResult:
        """
        Compute ``dy/dx`` for every `x` in `xs`, where ``y = f()``.

        Parameters
        ----------
        f : Callable[[], Tensor]
            Computes `y` from tensors including `xs`.
        xs : Sequence[Tensor]
        dy : Tensor | None
            Seed gradient for `y`; defaults to ones of `y`'s shape.
        allow_no_gradients : bool
            Return None for unreachable `xs` instead of raising.
        zero_fill : bool
            Return zeros for unreachable `xs` instead of raising.

        Returns
        -------
        GradientsResult
            ``(value, grads)`` with one slot per `x`.

        Raises
        ------
        ValueError
            If `xs` is empty.
        DTypeMismatchError
            If `dy` is not float32.
        ShapeMismatchError
            If `dy`'s shape differs from `y`'s.
        TypeError
            If `f` does not return a tensor.
        DisconnectedGraphError
            If no recorded kernel connects `xs` to `y`.
        MissingGradientError
            If some `x` receives no gradient.
        """
        xs = list(xs)
        if not xs:
            raise ValueError("gradients() received an empty list of xs.")
        if dy is not None and dy.dtype is not DEFAULT_FLOAT:
            raise DTypeMismatchError("gradients() dy", DEFAULT_FLOAT, dy.dtype)

        try:
            y = self._scoped_run(
                self._start_tape,
                self._end_tape,
                lambda: self.tidy(f, name="forward"),
            )
            if not isinstance(y, Tensor):
                raise TypeError("The result y returned by f() must be a tensor.")
            if dy is not None and dy.shape != y.shape:
                raise ShapeMismatchError(
                    "gradients() dy", y.shape, dy.shape, detail="dy must match y"
                )

            filtered_tape = filter_nodes_x_to_y(self.state.active_tape, xs, y)
            if not filtered_tape and not allow_no_gradients:
                raise DisconnectedGraphError(
                    "Cannot compute gradient of y=f(x) with respect to x. Make "
                    "sure that the f you passed encloses all operations that "
                    "lead from x to y."
                )

            def backward() -> GradientsResult:
                accumulated: Dict[int, Tensor] = {
                    y.id: self.ones(y.shape) if dy is None else dy
                }
                backpropagate_gradients(
                    accumulated,
                    filtered_tape,
                    lambda thunk: self.tidy(thunk),
                    self._add,
                )
                grads: List[Optional[Tensor]] = []
                for x in xs:
                    g = accumulated.get(x.id)
                    if g is None:
                        if zero_fill:
                            g = self.zeros(x.shape)
                        elif not allow_no_gradients:
                            raise MissingGradientError(x.id)
                    grads.append(g)
                return GradientsResult(y, grads)

            return self.tidy(backward, name="backward")
        finally:
            if self.state.gradient_depth == 0 and self.state.active_tape is not None:
                for node in self.state.active_tape:
                    for t in node.saved:
                        t.dispose()
                self.state.active_tape = None

    def _add(self, a: Tensor, b: Tensor) -> Tensor:
        return self.run_kernel(names.ADD, {"a": a, "b": b})

    def variable_grads(
        self,
        f: Callable[[], Tensor],
        var_list: Optional[Sequence[Variable]] = None,
    ) -> VariableGradsResult:
        """
        Gradients of the scalar `f()` with respect to trainable variables.

        Parameters
        ----------
        f : Callable[[], Tensor]
            Must return a scalar loss.
        var_list : Sequence[Variable] | None
            Defaults to every registered variable. Non-trainable variables
            listed explicitly map to None in the result.

        Returns
        -------
        VariableGradsResult
            ``(value, {variable_name: grad})``; disconnected variables are
            omitted.
        """
        if not callable(f):
            raise TypeError("The f passed in variable_grads(f) must be a function.")
        specified = var_list is not None
        if specified and not all(isinstance(v, Variable) for v in var_list):
            raise TypeError("The var_list passed in variable_grads(f, var_list) must be a list of variables.")

        candidates = list(var_list) if specified else list(self.registered_variables.values())
        specified_non_trainable = [v for v in candidates if not v.trainable] if specified else []
        trainable = [v for v in candidates if v.trainable]
        if not trainable:
            raise ValueError(
                "variable_grads() expects at least one of the input variables to "
                f"be trainable, but none of the {len(candidates)} variables is trainable."
            )

        value, grads = self.gradients(f, trainable, None, allow_no_gradients=True)

        if all(g is None for g in grads):
            raise DisconnectedGraphError(
                "Cannot find a connection between any variable and the result "
                "of the loss function y=f(x). Please make sure the operations "
                "that use variables are inside the function f passed to "
                "variable_grads()."
            )
        if value.rank != 0:
            raise ShapeMismatchError(
                "variable_grads() loss",
                (),
                value.shape,
                detail="the f passed in variable_grads(f) must return a scalar",
            )

        named: Dict[str, Optional[Tensor]] = {
            v.name: g for v, g in zip(trainable, grads) if g is not None
        }
        for v in specified_non_trainable:
            named[v.name] = None
        return VariableGradsResult(value, named)

    def custom_grad(
        self, f: Callable[..., Tuple[Tensor, Callable[..., Any]]]
    ) -> Callable[..., Tensor]:
        """
        Wrap `f` so its forward pass is recorded as a single tape node.

        `f(*inputs, save)` must return ``(value, grad_func)``. `save(tensors)`
        keeps tensors for the backward pass; `grad_func(dy, saved)` returns one
        gradient per input (a tensor or a sequence of tensors).
        """
        name = getattr(f, "__name__", "custom_grad")

        def wrapped(*inputs: Tensor) -> Tensor:
            if not all(isinstance(t, Tensor) for t in inputs):
                raise TypeError(
                    "The args passed in custom_grad(f)(x1, x2, ...) must all be tensors."
                )
            input_map = {str(i): t for i, t in enumerate(inputs)}
            grad_holder: Dict[str, Callable[..., Any]] = {}

            def forward(is_tape_on: bool) -> _KernelResult:
                saved: List[Tensor] = []

                def save(tensors: Sequence[Tensor]) -> None:
                    if is_tape_on:
                        saved[:] = self._save_tensors_for_backward_mode(tensors)

                out = f(*inputs, save)
                if not isinstance(out, (list, tuple)) or len(out) != 2:
                    raise TypeError(
                        "The function f passed in custom_grad(f) must return a "
                        "(value, grad_func) pair."
                    )
                value, grad_func = out
                if not isinstance(value, Tensor):
                    raise TypeError(
                        "The value returned by the f passed in custom_grad(f) "
                        "must be a tensor."
                    )
                if not callable(grad_func):
                    raise TypeError(
                        "The grad_func returned by the f passed in "
                        "custom_grad(f) must be a function."
                    )
                grad_holder["grad_func"] = grad_func
                return _KernelResult([value], saved, False)

            def backwards(dy: Tensor, saved: List[Tensor], attrs: Any):
                grad_res = grad_holder["grad_func"](dy, saved)
                grads = list(grad_res) if isinstance(grad_res, (list, tuple)) else [grad_res]
                if len(grads) != len(inputs):
                    raise ValueError(
                        "The grad_func of the f passed in custom_grad(f) must "
                        f"return {len(inputs)} gradients, got {len(grads)}."
                    )
                if not all(isinstance(g, Tensor) for g in grads):
                    raise TypeError(
                        "The grad_func of the f passed in custom_grad(f) must "
                        "return tensors."
                    )
                return {
                    str(i): (lambda g=g: self.clone(g)) for i, g in enumerate(grads)
                }

            return self._run_kernel_func(name, input_map, {}, forward, backwards)

        return wrapped

    # ------------------------------------------------------------------
    # diagnostics
    # ------------------------------------------------------------------
    def memory(self) -> MemoryInfo:
        backend_info = self.backend.memory()
        reasons = list(backend_info.reasons)
        unreliable = backend_info.unreliable
        if self.state.num_string_tensors > 0:
            unreliable = True
            reasons.append(STRING_MEMORY_REASON)
        return MemoryInfo(
            num_tensors=self.state.num_tensors,
            num_data_buffers=self.state.num_data_buffers,
            num_bytes=self.state.num_bytes,
            unreliable=unreliable,
            reasons=reasons,
            backend=backend_info,
        )

    def profile(self, fn: Callable[[], Any]) -> ProfileInfo:
        """Run `fn` and report per-kernel memory and timing."""
        self.state.profiling = True
        start_bytes = self.state.num_bytes
        start_num_tensors = self.state.num_tensors
        self.state.active_profile = ProfileInfo()
        try:
            result = fn()
        finally:
            self.state.profiling = False

        report = self.state.active_profile
        report.result = result
        report.peak_bytes = max(
            [start_bytes] + [k.total_bytes_snapshot for k in report.kernels]
        )
        report.new_bytes = self.state.num_bytes - start_bytes
        report.new_tensors = self.state.num_tensors - start_num_tensors
        report.kernel_names = list(dict.fromkeys(k.name for k in report.kernels))
        return report

    def time(self, fn: Callable[[], None]) -> TimingInfo:
        """Time `fn` with the backend timer, adding wall-clock time."""
        start = _time.perf_counter()
        timing = self.backend.time(fn)
        timing.wall_ms = (_time.perf_counter() - start) * 1000.0
        return timing

    def reset(self) -> None:
        """
        Dispose every variable and backend instance and start from a fresh
        state. Backend factories, kernels and gradients stay registered.
        """
        self._teardown_pending_init()
        self.state.dispose()
        self.state = EngineState()

        for name in list(self.registry):
            self._dispose_registered_kernels(name)
            self.registry[name].dispose()
            del self.registry[name]
        self.backend_name = None
        self._backend_instance = None
        self._profiler = None
