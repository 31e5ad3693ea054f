import unittest

from src.tapeflow.domain import KernelConfig
from src.tapeflow.infrastructure.registry import KernelRegistry, register_kernel

_BACKEND = "registry_test_backend"
_OTHER = "registry_test_backend_copy"


def _kernel(inputs, backend, attrs):
    return None


class TestKernelRegistry(unittest.TestCase):
    def tearDown(self) -> None:
        KernelRegistry.unregister_backend(_BACKEND)
        KernelRegistry.unregister_backend(_OTHER)

    def test_register_and_get(self) -> None:
        cfg = KernelRegistry.register(KernelConfig("Foo", _BACKEND, _kernel))
        self.assertIs(KernelRegistry.get("Foo", _BACKEND), cfg)

    def test_get_unknown_returns_none(self) -> None:
        self.assertIsNone(KernelRegistry.get("Foo", _BACKEND))

    def test_duplicate_warns_and_overwrites(self) -> None:
        KernelRegistry.register(KernelConfig("Foo", _BACKEND, _kernel))
        replacement = KernelConfig("Foo", _BACKEND, lambda i, b, a: None)
        with self.assertWarns(RuntimeWarning):
            KernelRegistry.register(replacement)
        self.assertIs(KernelRegistry.get("Foo", _BACKEND), replacement)

    def test_unregister(self) -> None:
        KernelRegistry.register(KernelConfig("Foo", _BACKEND, _kernel))
        KernelRegistry.unregister("Foo", _BACKEND)
        self.assertIsNone(KernelRegistry.get("Foo", _BACKEND))
        with self.assertRaises(KeyError):
            KernelRegistry.unregister("Foo", _BACKEND)

    def test_kernels_for_backend(self) -> None:
        KernelRegistry.register(KernelConfig("Foo", _BACKEND, _kernel))
        KernelRegistry.register(KernelConfig("Bar", _BACKEND, _kernel))
        names = sorted(c.kernel_name for c in KernelRegistry.kernels_for_backend(_BACKEND))
        self.assertEqual(names, ["Bar", "Foo"])

    def test_copy_registered_kernels(self) -> None:
        setup_calls = []
        KernelRegistry.register(
            KernelConfig("Foo", _BACKEND, _kernel, setup_func=setup_calls.append)
        )
        KernelRegistry.copy_registered_kernels(_BACKEND, _OTHER)
        copied = KernelRegistry.get("Foo", _OTHER)
        self.assertIsNotNone(copied)
        self.assertIs(copied.kernel_func, _kernel)
        self.assertIs(copied.setup_func, KernelRegistry.get("Foo", _BACKEND).setup_func)

    def test_decorator_registers_and_returns_function(self) -> None:
        @register_kernel("Baz", _BACKEND)
        def baz(inputs, backend, attrs):
            return None

        self.assertIs(KernelRegistry.get("Baz", _BACKEND).kernel_func, baz)


class TestBuiltinCpuKernels(unittest.TestCase):
    def test_cpu_kernels_registered_on_import(self) -> None:
        import src.tapeflow  # noqa: F401

        for name in ("Identity", "Cast", "Reshape", "Add", "AddN", "Sub",
                     "Multiply", "Neg", "Square", "Exp", "Sum",
                     "BroadcastTo", "SumToShape"):
            with self.subTest(kernel=name):
                self.assertIsNotNone(KernelRegistry.get(name, "cpu"))


if __name__ == "__main__":
    unittest.main()
