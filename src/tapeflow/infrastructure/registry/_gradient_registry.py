"""
Gradient registry.

`GradientRegistry` maps a kernel name to its `GradConfig`. Gradients are
backend independent: they are written in terms of other kernels dispatched
through the engine, so one registration serves every backend.

At most one gradient is active per kernel name; re-registering replaces the
previous one. The override is reported only in debug mode, since op layers
routinely re-register gradients when modules are reloaded.
"""

from __future__ import annotations

import warnings
from typing import Callable, ClassVar, Dict, Optional, Sequence

from ...domain._kernel import GradConfig, GradFunc
from ..config._environment import ENV, Environment


class GradientRegistry:
    """Class-level table of gradient registrations."""

    GRADIENTS: ClassVar[Dict[str, GradConfig]] = {}
    environment: ClassVar[Environment] = ENV

    @classmethod
    def register(cls, config: GradConfig) -> GradConfig:
        if config.kernel_name in cls.GRADIENTS and cls.environment.get_bool("DEBUG"):
            warnings.warn(
                f"Overriding the gradient for '{config.kernel_name}'.",
                RuntimeWarning,
                stacklevel=2,
            )
        cls.GRADIENTS[config.kernel_name] = config
        return config

    @classmethod
    def unregister(cls, kernel_name: str) -> None:
        if kernel_name not in cls.GRADIENTS:
            raise KeyError(f"The gradient for '{kernel_name}' is not registered.")
        del cls.GRADIENTS[kernel_name]

    @classmethod
    def get(cls, kernel_name: str) -> Optional[GradConfig]:
        return cls.GRADIENTS.get(kernel_name)

    @classmethod
    def available(cls) -> tuple[str, ...]:
        """Return kernel names that have a gradient (sorted)."""
        return tuple(sorted(cls.GRADIENTS))


def register_gradient(
    kernel_name: str,
    *,
    inputs_to_save: Sequence[str] = (),
    outputs_to_save: Sequence[bool] = (),
    save_all_inputs: bool = False,
) -> Callable[[GradFunc], GradFunc]:
    """
    Decorator form of `GradientRegistry.register`.

    Usage
    -----
        @register_gradient("Square", inputs_to_save=["x"])
        def square_grad(dy, saved, attrs):
            (x,) = saved
            return {"x": lambda: mul(dy, mul(x, 2.0))}
    """

    def decorator(func: GradFunc) -> GradFunc:
        GradientRegistry.register(
            GradConfig(
                kernel_name=kernel_name,
                grad_func=func,
                inputs_to_save=inputs_to_save,
                outputs_to_save=outputs_to_save,
                save_all_inputs=save_all_inputs,
            )
        )
        return func

    return decorator
