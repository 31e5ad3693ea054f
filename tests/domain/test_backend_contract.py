import asyncio
import unittest

from src.tapeflow.domain import (
    BackendNotImplementedError,
    DType,
    KernelBackend,
)


class _HalfBackend(KernelBackend):
    def float_precision(self) -> int:
        return 16


class TestKernelBackendDefaults(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = KernelBackend()

    def test_unimplemented_capability_names_op_and_backend(self) -> None:
        with self.assertRaises(BackendNotImplementedError) as cm:
            self.backend.read_sync(1)
        self.assertEqual(cm.exception.op, "read_sync")
        self.assertEqual(cm.exception.backend, "KernelBackend")

    def test_every_capability_raises(self) -> None:
        calls = {
            "write": lambda: self.backend.write([1.0], (1,), DType.FLOAT32),
            "move": lambda: self.backend.move(1, [1.0], (1,), DType.FLOAT32, 1),
            "dispose_data": lambda: self.backend.dispose_data(1),
            "ref_count": lambda: self.backend.ref_count(1),
            "inc_ref": lambda: self.backend.inc_ref(1),
            "num_data_ids": self.backend.num_data_ids,
            "memory": self.backend.memory,
            "time": lambda: self.backend.time(lambda: None),
            "float_precision": self.backend.float_precision,
            "dispose": self.backend.dispose,
        }
        for op, call in calls.items():
            with self.subTest(op=op):
                with self.assertRaises(BackendNotImplementedError) as cm:
                    call()
                self.assertEqual(cm.exception.op, op)

    def test_async_read_raises(self) -> None:
        with self.assertRaises(BackendNotImplementedError):
            asyncio.run(self.backend.read(1))

    def test_not_implemented_is_a_builtin_category(self) -> None:
        with self.assertRaises(NotImplementedError):
            self.backend.num_data_ids()

    def test_timer_not_available_by_default(self) -> None:
        self.assertFalse(self.backend.timer_available())

    def test_epsilon_follows_precision(self) -> None:
        self.assertEqual(_HalfBackend().epsilon(), 1e-4)


if __name__ == "__main__":
    unittest.main()
