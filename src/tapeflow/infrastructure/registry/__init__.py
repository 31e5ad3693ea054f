"""
Kernel and gradient registries.

Both registries are process-wide tables populated by explicit registration
calls (usually import side effects of backend and op modules).
"""

from ._gradient_registry import GradientRegistry, register_gradient
from ._kernel_registry import KernelRegistry, register_kernel

__all__ = [
    GradientRegistry.__name__,
    KernelRegistry.__name__,
    register_gradient.__name__,
    register_kernel.__name__,
]
