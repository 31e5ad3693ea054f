"""
Kernel registry.

This module defines `KernelRegistry`, the process-wide table mapping a
`(kernel_name, backend_name)` pair to its `KernelConfig`.

Design
------
- Kernels are registered explicitly at import time (see
  `tapeflow.infrastructure.backends.cpu`), either with `register` or with the
  `register_kernel` decorator.
- Registering an already-registered pair warns and overwrites.
- Lookups return `None` for unknown pairs; the engine turns that into a
  `KernelNotFoundError` at dispatch time, so registration order never
  matters.

Usage example
-------------
    @register_kernel("Add", "cpu")
    def add_cpu(inputs, backend, attrs):
        ...
"""

from __future__ import annotations

import warnings
from typing import Callable, ClassVar, Dict, List, Optional, Tuple

from ...domain._kernel import (
    KernelConfig,
    KernelDisposeFunc,
    KernelFunc,
    KernelSetupFunc,
)

_Key = Tuple[str, str]


class KernelRegistry:
    """
    Class-level table of kernel registrations.

    Notes
    -----
    The table is shared by every engine in the process: a kernel registered
    for backend "cpu" is available to any engine that activates a backend
    named "cpu".
    """

    KERNELS: ClassVar[Dict[_Key, KernelConfig]] = {}

    @classmethod
    def register(cls, config: KernelConfig) -> KernelConfig:
        key = (config.kernel_name, config.backend_name)
        if key in cls.KERNELS:
            warnings.warn(
                f"The kernel '{config.kernel_name}' for backend "
                f"'{config.backend_name}' is already registered; overwriting.",
                RuntimeWarning,
                stacklevel=2,
            )
        cls.KERNELS[key] = config
        return config

    @classmethod
    def unregister(cls, kernel_name: str, backend_name: str) -> None:
        """
        Remove a registration.

        Raises
        ------
        KeyError
            If the pair is not registered.
        """
        key = (kernel_name, backend_name)
        if key not in cls.KERNELS:
            raise KeyError(
                f"The kernel '{kernel_name}' for backend '{backend_name}' is not registered."
            )
        del cls.KERNELS[key]

    @classmethod
    def get(cls, kernel_name: str, backend_name: str) -> Optional[KernelConfig]:
        return cls.KERNELS.get((kernel_name, backend_name))

    @classmethod
    def kernels_for_backend(cls, backend_name: str) -> List[KernelConfig]:
        return [c for (_, b), c in cls.KERNELS.items() if b == backend_name]

    @classmethod
    def copy_registered_kernels(
        cls, registered_backend_name: str, new_backend_name: str
    ) -> None:
        """
        Register every kernel of `registered_backend_name` again under
        `new_backend_name`.

        Used when a new backend is a drop-in variant of an existing one.
        """
        for config in cls.kernels_for_backend(registered_backend_name):
            cls.register(
                KernelConfig(
                    kernel_name=config.kernel_name,
                    backend_name=new_backend_name,
                    kernel_func=config.kernel_func,
                    setup_func=config.setup_func,
                    dispose_func=config.dispose_func,
                )
            )

    @classmethod
    def unregister_backend(cls, backend_name: str) -> None:
        """Remove every kernel registered for `backend_name`."""
        for config in cls.kernels_for_backend(backend_name):
            cls.unregister(config.kernel_name, backend_name)


def register_kernel(
    kernel_name: str,
    backend_name: str,
    *,
    setup_func: Optional[KernelSetupFunc] = None,
    dispose_func: Optional[KernelDisposeFunc] = None,
) -> Callable[[KernelFunc], KernelFunc]:
    """Decorator form of `KernelRegistry.register`."""

    def decorator(func: KernelFunc) -> KernelFunc:
        KernelRegistry.register(
            KernelConfig(
                kernel_name=kernel_name,
                backend_name=backend_name,
                kernel_func=func,
                setup_func=setup_func,
                dispose_func=dispose_func,
            )
        )
        return func

    return decorator
