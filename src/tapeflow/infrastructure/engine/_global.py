"""
Process-wide default engine.

The functional API in `tapeflow` operates on a lazily constructed default
engine with the NumPy CPU backend registered as ``"cpu"``. Code that needs
isolation (tests, embedding) builds its own `Engine` instead.
"""

from __future__ import annotations

from typing import Optional

from ..backends.cpu import BACKEND_NAME, NumpyBackend
from ._engine import Engine

_ENGINE: Optional[Engine] = None

CPU_PRIORITY = 1


def register_cpu_backend(engine: Engine, priority: int = CPU_PRIORITY) -> bool:
    """Register the NumPy backend on `engine` under ``"cpu"``."""
    return engine.register_backend(
        BACKEND_NAME, lambda e: NumpyBackend(data_mover=e), priority
    )


def get_engine() -> Engine:
    """Return the default engine, creating it on first use."""
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = Engine()
        register_cpu_backend(_ENGINE)
    return _ENGINE
