"""
Mutable tensor handles.

This module defines `Variable`, the one mutable kind of tensor handle. A
variable keeps its identity (tensor id, name) while the data it points at is
replaced by `assign`. Variables are registered by name on their engine, are
never tracked by scopes, and are the objects `variable_grads` differentiates
with respect to.
"""

from __future__ import annotations

from ...domain._errors import DTypeMismatchError, ShapeMismatchError
from ._tensor import Tensor


class Variable(Tensor):
    """
    Named, mutable tensor handle.

    Parameters
    ----------
    initial_value : Tensor
        Tensor whose data the variable starts out sharing.
    trainable : bool
        Whether `variable_grads` should differentiate with respect to it.
    name : str
        Registry key on the engine.
    tensor_id : int

    Notes
    -----
    The constructor does not claim the data; `Engine.make_variable` does so
    through `Engine.inc_ref` after registering the name.
    """

    def __init__(
        self, initial_value: Tensor, trainable: bool, name: str, tensor_id: int
    ) -> None:
        super().__init__(
            initial_value.shape,
            initial_value.dtype,
            initial_value.data_id,
            tensor_id,
            initial_value.engine,
        )
        self.trainable = bool(trainable)
        self.name = name

    def assign(self, new_value: Tensor) -> None:
        """
        Point this variable at `new_value`'s data.

        The old data claim is released (the storage is freed if no other
        handle shares it) and a claim on the new data is taken. Assigning
        a tensor that already shares this variable's data is a no-op.

        Raises
        ------
        DTypeMismatchError
            If `new_value.dtype` differs; nothing is mutated.
        ShapeMismatchError
            If `new_value.shape` differs; nothing is mutated.
        DisposedTensorError
            If either handle is disposed.
        """
        self.throw_if_disposed()
        new_value.throw_if_disposed()
        if new_value.dtype is not self.dtype:
            raise DTypeMismatchError(
                f"Variable '{self.name}'.assign",
                self.dtype,
                new_value.dtype,
                detail="dtype of the new value must match the previous value",
            )
        if new_value.shape != self.shape:
            raise ShapeMismatchError(
                f"Variable '{self.name}'.assign",
                self.shape,
                new_value.shape,
                detail="shape of the new value must match the previous value",
            )
        if new_value.data_id == self._data_id:
            return
        self._engine.dispose_tensor(self)
        self._data_id = new_value.data_id
        self._engine.inc_ref(self)

    def dispose(self) -> None:
        """Release the data claim and unregister the name. Idempotent."""
        if self._is_disposed:
            return
        self._engine.dispose_variable(self)
        self._is_disposed = True
