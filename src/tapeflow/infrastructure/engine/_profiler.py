"""
Kernel profiling and numeric anomaly detection.

The engine routes a kernel through `Profiler.profile_kernel` when debug mode
is on or a `profile()` call is running. Timing comes from the backend's timer
when it has one, otherwise from the wall clock after synchronously reading
the outputs back.

In debug mode with ``CHECK_COMPUTATION_FOR_ERRORS`` on, floating outputs are
scanned for NaN / Inf; findings are reported as warnings and execution
continues.
"""

from __future__ import annotations

import logging
import time
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping

import numpy as np

from ...domain._backend import KernelBackend
from ...domain._dtype import DType
from ..config._environment import Environment
from ..tensor._tensor import Tensor

logger = logging.getLogger(__name__)


@dataclass
class KernelProfile:
    kernel_name: str
    outputs: List[Tensor]
    inputs: Mapping[str, Tensor]
    time_ms: float
    extra_info: Dict[str, Any] = field(default_factory=dict)


def check_computation_for_errors(
    values: np.ndarray, dtype: DType, kernel_name: str
) -> bool:
    """
    Warn if `values` contains NaN or infinity.

    Returns
    -------
    bool
        True if an anomaly was found. Non-float dtypes are never checked.
    """
    if dtype is not DType.FLOAT32:
        return False
    arr = np.asarray(values)
    if np.isnan(arr).any():
        found = "NaN"
    elif np.isinf(arr).any():
        found = "Infinity"
    else:
        return False
    warnings.warn(
        f"Found {found} in the result of '{kernel_name}'",
        RuntimeWarning,
        stacklevel=2,
    )
    return True


class Profiler:
    """
    Times kernels on one backend.

    Parameters
    ----------
    backend_timer : KernelBackend
        Backend whose `time` / `timer_available` are used.
    env : Environment
        Consulted for ``CHECK_COMPUTATION_FOR_ERRORS``.
    """

    def __init__(self, backend_timer: KernelBackend, env: Environment) -> None:
        self.backend_timer = backend_timer
        self.env = env

    def profile_kernel(
        self,
        kernel_name: str,
        inputs: Mapping[str, Tensor],
        f: Callable[[], List[Tensor]],
    ) -> KernelProfile:
        outputs: List[Tensor] = []

        def hold_result() -> None:
            outputs.extend(f())

        if self.backend_timer.timer_available():
            timing = self.backend_timer.time(hold_result)
            time_ms = timing.kernel_ms
            extra = dict(timing.extra)
        else:
            start = time.perf_counter()
            hold_result()
            for output in outputs:
                output.data_sync()
            time_ms = (time.perf_counter() - start) * 1000.0
            extra = {}

        if self.env.get_bool("CHECK_COMPUTATION_FOR_ERRORS"):
            for output in outputs:
                check_computation_for_errors(
                    output.data_sync(), output.dtype, kernel_name
                )

        return KernelProfile(
            kernel_name=kernel_name,
            outputs=outputs,
            inputs=inputs,
            time_ms=time_ms,
            extra_info=extra,
        )

    def log_kernel_profile(self, profile: KernelProfile) -> None:
        for output in profile.outputs:
            input_shapes = ", ".join(
                f"{name}: {tuple(t.shape)}" for name, t in profile.inputs.items()
            )
            logger.debug(
                "%-25s %9.3fms rank=%d shape=%s size=%d inputs={%s} %s",
                profile.kernel_name,
                profile.time_ms,
                output.rank,
                output.shape,
                output.size,
                input_shapes,
                profile.extra_info or "",
            )
