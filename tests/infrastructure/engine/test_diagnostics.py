import logging
import unittest
import warnings

import numpy as np

from src.tapeflow.domain import DType
from src.tapeflow.infrastructure.engine import _profiler, check_computation_for_errors
from src.tapeflow.infrastructure.engine._engine import STRING_MEMORY_REASON
from src.tapeflow.infrastructure.ops import add, neg, square

from .._engine_test_utils import f32, make_test_engine


class TestMemory(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_test_engine()

    def test_counts_tensors_buffers_and_bytes(self) -> None:
        info = self.engine.memory()
        self.assertEqual((info.num_tensors, info.num_data_buffers, info.num_bytes), (0, 0, 0))

        x = f32(self.engine, [1.0, 2.0, 3.0])
        info = self.engine.memory()
        self.assertEqual((info.num_tensors, info.num_data_buffers, info.num_bytes), (1, 1, 12))
        self.assertFalse(info.unreliable)

        y = x.clone()
        info = self.engine.memory()
        self.assertEqual((info.num_tensors, info.num_data_buffers), (2, 1))
        self.assertEqual(info.backend.num_data_ids, 1)

        x.dispose()
        y.dispose()
        info = self.engine.memory()
        self.assertEqual((info.num_tensors, info.num_data_buffers, info.num_bytes), (0, 0, 0))

    def test_string_tensors_are_unreliable(self) -> None:
        s = self.engine.make_tensor(["ab", "c"])
        info = self.engine.memory()
        self.assertEqual(info.num_bytes, 6)
        self.assertTrue(info.unreliable)
        self.assertIn(STRING_MEMORY_REASON, info.reasons)
        self.assertTrue(info.backend.unreliable)

        s.dispose()
        info = self.engine.memory()
        self.assertEqual(info.num_bytes, 0)
        self.assertFalse(info.unreliable)


class TestProfile(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_test_engine()

    def test_profile_report(self) -> None:
        x = f32(self.engine, [1.0, 2.0, 3.0])

        def f():
            a = square(x)
            b = add(a, a)
            a.dispose()
            return b

        report = self.engine.profile(f)

        self.assertEqual(report.new_bytes, 12)
        self.assertEqual(report.new_tensors, 1)
        self.assertEqual(report.peak_bytes, 12 + 24)
        self.assertEqual(report.kernel_names, ["Square", "Add"])
        self.assertEqual([k.bytes_added for k in report.kernels], [12, 12])
        self.assertEqual(report.kernels[1].input_shapes, [(3,), (3,)])
        self.assertEqual(report.kernels[1].output_shapes, [(3,)])
        self.assertGreaterEqual(report.kernels[0].kernel_time_ms, 0.0)
        np.testing.assert_allclose(report.result.data_sync(), [2.0, 8.0, 18.0])
        self.assertFalse(self.engine.state.profiling)

    def test_kernel_names_are_unique(self) -> None:
        x = f32(self.engine, [1.0])
        report = self.engine.profile(lambda: neg(neg(neg(x))))
        self.assertEqual(report.kernel_names, ["Neg"])
        self.assertEqual(len(report.kernels), 3)

    def test_profiling_flag_cleared_on_error(self) -> None:
        def boom():
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            self.engine.profile(boom)
        self.assertFalse(self.engine.state.profiling)


class TestTime(unittest.TestCase):
    def test_time_reports_kernel_and_wall_time(self) -> None:
        engine = make_test_engine()
        x = f32(engine, [1.0, 2.0])
        timing = engine.time(lambda: neg(x))
        self.assertGreaterEqual(timing.kernel_ms, 0.0)
        self.assertIsNotNone(timing.wall_ms)
        self.assertGreaterEqual(timing.wall_ms, timing.kernel_ms)


class TestDebugMode(unittest.TestCase):
    def test_kernels_are_logged(self) -> None:
        engine = make_test_engine(DEBUG=True)
        x = f32(engine, [1.0, 2.0])
        with self.assertLogs(_profiler.logger, level=logging.DEBUG) as cm:
            neg(x)
        self.assertEqual(len(cm.output), 1)
        self.assertIn("Neg", cm.output[0])

    def test_nan_output_warns(self) -> None:
        engine = make_test_engine(DEBUG=True)
        x = f32(engine, [np.nan])
        with self.assertWarnsRegex(RuntimeWarning, "NaN"):
            neg(x)

    def test_error_check_can_be_disabled(self) -> None:
        engine = make_test_engine(DEBUG=True, CHECK_COMPUTATION_FOR_ERRORS=False)
        x = f32(engine, [np.nan])
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            y = neg(x)
        self.assertFalse([w for w in caught if "NaN" in str(w.message)])
        self.assertTrue(np.isnan(y.data_sync()[0]))


class TestCheckComputationForErrors(unittest.TestCase):
    def test_finite_values(self) -> None:
        self.assertFalse(check_computation_for_errors(np.array([1.0]), DType.FLOAT32, "K"))

    def test_infinity(self) -> None:
        with self.assertWarnsRegex(RuntimeWarning, "Infinity in the result of 'K'"):
            found = check_computation_for_errors(np.array([np.inf]), DType.FLOAT32, "K")
        self.assertTrue(found)

    def test_non_float_dtypes_are_skipped(self) -> None:
        self.assertFalse(check_computation_for_errors(np.array([1]), DType.INT32, "K"))


if __name__ == "__main__":
    unittest.main()
