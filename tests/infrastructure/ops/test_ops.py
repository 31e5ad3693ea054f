import unittest

import numpy as np

from src.tapeflow.domain import DType
from src.tapeflow.infrastructure.ops import (
    add,
    cast,
    clone,
    identity,
    mul,
    ones_like,
    reduce_sum,
    zeros_like,
)
from src.tapeflow.infrastructure.registry import GradientRegistry

from .._engine_test_utils import f32, make_test_engine


class TestOps(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_test_engine()

    def test_scalar_operand_takes_tensor_dtype(self) -> None:
        x = self.engine.make_tensor([1, 2], dtype="int32")
        y = mul(x, 3)
        self.assertIs(y.dtype, DType.INT32)
        np.testing.assert_array_equal(y.data_sync(), [3, 6])

    def test_like_constructors(self) -> None:
        x = self.engine.make_tensor([[1, 2]], dtype="int32")
        z = zeros_like(x)
        o = ones_like(x)
        self.assertEqual((z.shape, z.dtype), ((1, 2), DType.INT32))
        np.testing.assert_array_equal(o.data_sync(), [[1, 1]])

    def test_identity_and_clone_share_data(self) -> None:
        x = f32(self.engine, [1.0])
        self.assertEqual(identity(x).data_id, x.data_id)
        self.assertEqual(clone(x).data_id, x.data_id)

    def test_every_builtin_kernel_has_a_gradient(self) -> None:
        for name in (
            "Identity", "Cast", "Reshape", "BroadcastTo", "SumToShape", "Add",
            "AddN", "Sub", "Multiply", "Neg", "Square", "Exp", "Sum",
        ):
            with self.subTest(kernel=name):
                self.assertIsNotNone(GradientRegistry.get(name))


class TestOpGradients(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_test_engine()

    def test_identity_gradient(self) -> None:
        x = f32(self.engine, [1.0, 2.0])
        _, (dx,) = self.engine.gradients(lambda: identity(x), [x])
        np.testing.assert_array_equal(dx.data_sync(), [1.0, 1.0])

    def test_gradient_through_cast(self) -> None:
        x = f32(self.engine, [1.0, 2.0])
        _, (dx,) = self.engine.gradients(
            lambda: mul(cast(cast(x, "int32"), "float32"), 4.0), [x]
        )
        np.testing.assert_array_equal(dx.data_sync(), [4.0, 4.0])

    def test_shared_input_accumulates(self) -> None:
        x = f32(self.engine, [2.0])
        _, (dx,) = self.engine.gradients(
            lambda: reduce_sum(add(mul(x, x), x)), [x]
        )
        np.testing.assert_allclose(dx.data_sync(), [5.0])


if __name__ == "__main__":
    unittest.main()
