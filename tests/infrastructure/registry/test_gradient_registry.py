import unittest
import warnings

from src.tapeflow.domain import GradConfig
from src.tapeflow.infrastructure.config import Environment
from src.tapeflow.infrastructure.registry import GradientRegistry, register_gradient

_KERNEL = "GradientRegistryTestOp"


def _grad(dy, saved, attrs):
    return {}


class TestGradientRegistry(unittest.TestCase):
    def setUp(self) -> None:
        self._saved_env = GradientRegistry.environment
        GradientRegistry.environment = Environment(environ={})

    def tearDown(self) -> None:
        GradientRegistry.environment = self._saved_env
        if GradientRegistry.get(_KERNEL) is not None:
            GradientRegistry.unregister(_KERNEL)

    def test_register_and_get(self) -> None:
        cfg = GradientRegistry.register(GradConfig(_KERNEL, _grad))
        self.assertIs(GradientRegistry.get(_KERNEL), cfg)
        self.assertIn(_KERNEL, GradientRegistry.available())

    def test_override_is_silent_outside_debug(self) -> None:
        GradientRegistry.register(GradConfig(_KERNEL, _grad))
        replacement = GradConfig(_KERNEL, lambda dy, saved, attrs: {})
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            GradientRegistry.register(replacement)
        self.assertIs(GradientRegistry.get(_KERNEL), replacement)

    def test_override_warns_in_debug(self) -> None:
        GradientRegistry.environment.set("DEBUG", True)
        GradientRegistry.register(GradConfig(_KERNEL, _grad))
        with self.assertWarns(RuntimeWarning):
            GradientRegistry.register(GradConfig(_KERNEL, _grad))

    def test_unregister(self) -> None:
        GradientRegistry.register(GradConfig(_KERNEL, _grad))
        GradientRegistry.unregister(_KERNEL)
        self.assertIsNone(GradientRegistry.get(_KERNEL))
        with self.assertRaises(KeyError):
            GradientRegistry.unregister(_KERNEL)

    def test_decorator(self) -> None:
        @register_gradient(_KERNEL, inputs_to_save=["x"], outputs_to_save=[True])
        def grad(dy, saved, attrs):
            return {}

        cfg = GradientRegistry.get(_KERNEL)
        self.assertIs(cfg.grad_func, grad)
        self.assertEqual(cfg.inputs_to_save, ("x",))
        self.assertEqual(cfg.outputs_to_save, (True,))

    def test_decorator_validates_save_policy(self) -> None:
        with self.assertRaises(ValueError):
            register_gradient(_KERNEL, inputs_to_save=["x"], save_all_inputs=True)(_grad)
        self.assertIsNone(GradientRegistry.get(_KERNEL))


if __name__ == "__main__":
    unittest.main()
