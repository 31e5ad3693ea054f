import asyncio
import unittest

import numpy as np

from src.tapeflow.domain import DataIdNotFoundError, DType
from src.tapeflow.infrastructure.backends.cpu import NumpyBackend


class TestNumpyBackend(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = NumpyBackend()

    def test_write_and_read(self) -> None:
        data_id = self.backend.write([1, 2, 3, 4], (2, 2), DType.FLOAT32)
        values = self.backend.read_sync(data_id)
        self.assertEqual(values.dtype, np.float32)
        np.testing.assert_array_equal(values, [[1.0, 2.0], [3.0, 4.0]])
        np.testing.assert_array_equal(asyncio.run(self.backend.read(data_id)), values)

    def test_data_ids_are_unique(self) -> None:
        a = self.backend.write([1.0], (1,), DType.FLOAT32)
        b = NumpyBackend().write([1.0], (1,), DType.FLOAT32)
        self.assertNotEqual(a, b)

    def test_refcounting(self) -> None:
        data_id = self.backend.write([1.0], (1,), DType.FLOAT32)
        self.assertEqual(self.backend.ref_count(data_id), 1)
        self.backend.inc_ref(data_id)
        self.assertEqual(self.backend.ref_count(data_id), 2)

        self.assertFalse(self.backend.dispose_data(data_id))
        self.assertEqual(self.backend.num_data_ids(), 1)
        self.assertTrue(self.backend.dispose_data(data_id))
        self.assertEqual(self.backend.num_data_ids(), 0)
        self.assertEqual(self.backend.ref_count(data_id), 0)

    def test_force_dispose(self) -> None:
        data_id = self.backend.write([1.0], (1,), DType.FLOAT32)
        self.backend.inc_ref(data_id)
        self.assertTrue(self.backend.dispose_data(data_id, force=True))
        self.assertFalse(self.backend.data.has(data_id))

    def test_dispose_unknown_id(self) -> None:
        self.assertTrue(self.backend.dispose_data(12345678))

    def test_read_unknown_id_without_mover(self) -> None:
        with self.assertRaises(DataIdNotFoundError):
            self.backend.read_sync(12345678)

    def test_move_adopts_refcount(self) -> None:
        self.backend.move(77, [1.0, 2.0], (2,), DType.FLOAT32, 3)
        self.assertEqual(self.backend.ref_count(77), 3)
        np.testing.assert_array_equal(self.backend.read_sync(77), [1.0, 2.0])

    def test_memory(self) -> None:
        self.backend.write([1.0, 2.0], (2,), DType.FLOAT32)
        info = self.backend.memory()
        self.assertEqual(info.num_bytes, 8)
        self.assertEqual(info.num_data_ids, 1)
        self.assertFalse(info.unreliable)

        self.backend.write(["abc"], (1,), DType.STRING)
        info = self.backend.memory()
        self.assertEqual(info.num_bytes, 8 + 6)
        self.assertTrue(info.unreliable)
        self.assertEqual(len(info.reasons), 1)

    def test_time(self) -> None:
        calls = []
        timing = self.backend.time(lambda: calls.append(1))
        self.assertEqual(calls, [1])
        self.assertGreaterEqual(timing.kernel_ms, 0.0)
        self.assertTrue(self.backend.timer_available())

    def test_precision(self) -> None:
        self.assertEqual(self.backend.float_precision(), 32)
        self.assertEqual(self.backend.epsilon(), 1e-7)
        self.assertEqual(NumpyBackend(float_precision=16).epsilon(), 1e-4)
        with self.assertRaises(ValueError):
            NumpyBackend(float_precision=64)

    def test_dispose_clears_storage(self) -> None:
        self.backend.write([1.0], (1,), DType.FLOAT32)
        self.backend.dispose()
        self.assertEqual(self.backend.num_data_ids(), 0)


if __name__ == "__main__":
    unittest.main()
