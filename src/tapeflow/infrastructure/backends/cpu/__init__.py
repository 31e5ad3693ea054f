"""
NumPy CPU backend.

Importing this package registers the CPU kernels under backend name
``"cpu"``.
"""

from ._backend import CpuDataEntry, NumpyBackend
from ._kernels import BACKEND_NAME, sum_to_shape_values

__all__ = [
    "BACKEND_NAME",
    CpuDataEntry.__name__,
    NumpyBackend.__name__,
    sum_to_shape_values.__name__,
]
