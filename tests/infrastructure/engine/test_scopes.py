import unittest

import numpy as np

from src.tapeflow.domain import AsyncScopeError
from src.tapeflow.infrastructure.ops import add, mul

from .._engine_test_utils import f32, make_test_engine


class TestTidy(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_test_engine()

    def num_tensors(self) -> int:
        return self.engine.memory().num_tensors

    def test_intermediates_are_disposed(self) -> None:
        x = f32(self.engine, [1.0, 2.0])
        before = self.num_tensors()

        def f():
            h = mul(x, x)
            return add(h, h)

        y = self.engine.tidy(f)
        self.assertEqual(self.num_tensors(), before + 1)
        np.testing.assert_allclose(y.data_sync(), [2.0, 8.0])
        self.assertIsNone(y.scope_id)

    def test_returned_container_survives(self) -> None:
        x = f32(self.engine, [1.0])
        before = self.num_tensors()

        out = self.engine.tidy(lambda: {"a": mul(x, 2.0), "b": [mul(x, 3.0)]})

        self.assertEqual(self.num_tensors(), before + 2)
        self.assertFalse(out["a"].is_disposed)
        self.assertFalse(out["b"][0].is_disposed)

    def test_keep_survives_scope(self) -> None:
        x = f32(self.engine, [1.0])
        kept = []

        def f():
            kept.append(self.engine.keep(mul(x, 2.0)))
            mul(x, 3.0)

        self.engine.tidy(f)
        self.assertFalse(kept[0].is_disposed)
        np.testing.assert_allclose(kept[0].data_sync(), [2.0])

    def test_nested_result_moves_to_parent(self) -> None:
        x = f32(self.engine, [1.0])
        inner_results = []

        def outer():
            inner = self.engine.tidy(lambda: mul(x, 2.0))
            inner_results.append(inner)
            self.assertEqual(inner.scope_id, self.engine.state.active_scope.id)
            return None

        self.engine.tidy(outer)
        # adopted by the outer scope, then disposed when it closed
        self.assertTrue(inner_results[0].is_disposed)

    def test_tensor_created_outside_is_untouched(self) -> None:
        x = f32(self.engine, [1.0])
        self.engine.tidy(lambda: x)
        self.assertFalse(x.is_disposed)
        self.engine.tidy(lambda: None)
        self.assertFalse(x.is_disposed)

    def test_scope_ends_on_exception(self) -> None:
        x = f32(self.engine, [1.0])
        before = self.num_tensors()

        def f():
            mul(x, 2.0)
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            self.engine.tidy(f)
        self.assertEqual(self.num_tensors(), before)
        self.assertEqual(self.engine.state.scope_stack, [])

    def test_async_function_rejected(self) -> None:
        async def f():
            return None

        with self.assertRaises(AsyncScopeError):
            self.engine.tidy(f)
        self.assertEqual(self.engine.state.scope_stack, [])

    def test_requires_callable(self) -> None:
        with self.assertRaises(TypeError):
            self.engine.tidy(3)

    def test_end_scope_without_start(self) -> None:
        with self.assertRaises(RuntimeError):
            self.engine.end_scope()

    def test_manual_scopes(self) -> None:
        x = f32(self.engine, [1.0])
        self.engine.start_scope("manual")
        a = mul(x, 2.0)
        b = mul(x, 3.0)
        self.engine.end_scope(b)
        self.assertTrue(a.is_disposed)
        self.assertFalse(b.is_disposed)

    def test_dispose_container(self) -> None:
        a = f32(self.engine, [1.0])
        b = f32(self.engine, [2.0])
        self.engine.dispose({"a": a, "rest": (b, 5)})
        self.assertTrue(a.is_disposed)
        self.assertTrue(b.is_disposed)


if __name__ == "__main__":
    unittest.main()
