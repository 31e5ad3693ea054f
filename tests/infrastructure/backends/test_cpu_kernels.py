import unittest

import numpy as np

from src.tapeflow.domain import DTypeMismatchError, DType, ShapeMismatchError
from src.tapeflow.infrastructure.backends.cpu import sum_to_shape_values
from src.tapeflow.infrastructure.ops import (
    add,
    add_n,
    broadcast_to,
    cast,
    exp,
    mul,
    neg,
    reduce_sum,
    reshape,
    square,
    sub,
    sum_to_shape,
)

from .._engine_test_utils import f32, make_test_engine


class TestSumToShapeValues(unittest.TestCase):
    def test_leading_and_unit_dims(self) -> None:
        values = np.ones((4, 2, 3), dtype=np.float32)
        np.testing.assert_array_equal(sum_to_shape_values(values, (3,)), np.full(3, 8.0))
        np.testing.assert_array_equal(
            sum_to_shape_values(values, (2, 1)), np.full((2, 1), 12.0)
        )

    def test_same_shape_copies(self) -> None:
        values = np.ones((2,), dtype=np.float32)
        out = sum_to_shape_values(values, (2,))
        out[0] = 5.0
        self.assertEqual(values[0], 1.0)

    def test_incompatible(self) -> None:
        with self.assertRaises(ShapeMismatchError):
            sum_to_shape_values(np.ones((2, 3)), (4,))
        with self.assertRaises(ShapeMismatchError):
            sum_to_shape_values(np.ones((3,)), (2, 3))


class TestCpuKernels(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_test_engine()
        self.backend = self.engine.backend

    def test_arithmetic(self) -> None:
        a = f32(self.engine, [[1.0, 2.0], [3.0, 4.0]])
        b = f32(self.engine, [10.0, 20.0])
        np.testing.assert_array_equal(add(a, b).data_sync(), [[11, 22], [13, 24]])
        np.testing.assert_array_equal(sub(a, b).data_sync(), [[-9, -18], [-7, -16]])
        np.testing.assert_array_equal(mul(a, 2.0).data_sync(), [[2, 4], [6, 8]])
        np.testing.assert_array_equal(neg(b).data_sync(), [-10, -20])
        np.testing.assert_array_equal(square(b).data_sync(), [100, 400])

    def test_binary_dtype_mismatch(self) -> None:
        a = f32(self.engine, [1.0])
        b = self.engine.make_tensor([1], dtype="int32")
        with self.assertRaises(DTypeMismatchError):
            add(a, b)

    def test_int_arithmetic_keeps_dtype(self) -> None:
        a = self.engine.make_tensor([1, 2], dtype="int32")
        out = add(a, 3)
        self.assertIs(out.dtype, DType.INT32)
        np.testing.assert_array_equal(out.data_sync(), [4, 5])

    def test_exp_outputs_float(self) -> None:
        x = self.engine.make_tensor([0, 1], dtype="int32")
        y = exp(x)
        self.assertIs(y.dtype, DType.FLOAT32)
        np.testing.assert_allclose(y.data_sync(), np.exp([0.0, 1.0]), rtol=1e-6)

    def test_reshape_shares_data(self) -> None:
        x = f32(self.engine, [1.0, 2.0, 3.0, 4.0])
        y = reshape(x, (2, -1))
        self.assertEqual(y.shape, (2, 2))
        self.assertEqual(y.data_id, x.data_id)
        self.assertEqual(self.backend.ref_count(x.data_id), 2)
        np.testing.assert_array_equal(y.data_sync(), [[1, 2], [3, 4]])

    def test_reshape_size_mismatch(self) -> None:
        with self.assertRaises(ShapeMismatchError):
            reshape(f32(self.engine, [1.0, 2.0, 3.0]), (2, 2))

    def test_cast(self) -> None:
        x = f32(self.engine, [1.5, -2.5])
        y = cast(x, "int32")
        self.assertIs(y.dtype, DType.INT32)
        self.assertNotEqual(y.data_id, x.data_id)
        np.testing.assert_array_equal(y.data_sync(), [1, -2])
        self.assertEqual(list(cast(x, "string").data_sync()), ["1.5", "-2.5"])

    def test_cast_complex_drops_imaginary_part(self) -> None:
        z = self.engine.make_tensor([1 + 2j], dtype="complex64")
        np.testing.assert_array_equal(cast(z, "float32").data_sync(), [1.0])

    def test_broadcast_and_sum_to_shape(self) -> None:
        x = f32(self.engine, [1.0, 2.0])
        y = broadcast_to(x, (3, 2))
        np.testing.assert_array_equal(y.data_sync(), [[1, 2]] * 3)
        np.testing.assert_array_equal(sum_to_shape(y, (2,)).data_sync(), [3, 6])
        with self.assertRaises(ShapeMismatchError):
            broadcast_to(x, (3,))

    def test_add_n(self) -> None:
        a = f32(self.engine, [1.0, 2.0])
        b = f32(self.engine, [3.0, 4.0])
        np.testing.assert_array_equal(add_n([a, b, a]).data_sync(), [5, 8])
        with self.assertRaises(ShapeMismatchError):
            add_n([a, f32(self.engine, [1.0])])
        with self.assertRaises(ValueError):
            self.engine.run_kernel("AddN", {"tensors": []})

    def test_sum(self) -> None:
        x = f32(self.engine, [[1.0, 2.0], [3.0, 4.0]])
        self.assertEqual(reduce_sum(x).item(), 10.0)
        np.testing.assert_array_equal(reduce_sum(x, axis=0).data_sync(), [4, 6])
        kept = reduce_sum(x, axis=-1, keep_dims=True)
        self.assertEqual(kept.shape, (2, 1))
        np.testing.assert_array_equal(kept.data_sync(), [[3], [7]])
        with self.assertRaises(ValueError):
            reduce_sum(x, axis=2)


if __name__ == "__main__":
    unittest.main()
