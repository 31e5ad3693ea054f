from ._container import get_tensors_in_container
from ._dtypes import infer_dtype, string_bytes, to_array, to_numpy_dtype
from ._shape import normalize_axis, reduced_shape, resolve_shape
from ._tensor import Tensor
from ._variable import Variable

__all__ = [
    Tensor.__name__,
    Variable.__name__,
    get_tensors_in_container.__name__,
    infer_dtype.__name__,
    normalize_axis.__name__,
    reduced_shape.__name__,
    resolve_shape.__name__,
    string_bytes.__name__,
    to_array.__name__,
    to_numpy_dtype.__name__,
]
