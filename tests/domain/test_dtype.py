import unittest

from src.tapeflow.domain import DEFAULT_FLOAT, DType, as_dtype, bytes_per_element


class TestDType(unittest.TestCase):
    def test_as_dtype_accepts_enum_and_string(self) -> None:
        self.assertIs(as_dtype(DType.INT32), DType.INT32)
        self.assertIs(as_dtype("float32"), DType.FLOAT32)
        self.assertIs(as_dtype("string"), DType.STRING)

    def test_as_dtype_rejects_unknown(self) -> None:
        with self.assertRaises(ValueError) as cm:
            as_dtype("float64")
        self.assertIn("float32", str(cm.exception))

    def test_str_is_value(self) -> None:
        self.assertEqual(str(DType.COMPLEX64), "complex64")

    def test_default_float_is_the_only_floating_type(self) -> None:
        self.assertIs(DEFAULT_FLOAT, DType.FLOAT32)
        self.assertTrue(DType.FLOAT32.is_floating)
        self.assertFalse(DType.INT32.is_floating)

    def test_bytes_per_element(self) -> None:
        self.assertEqual(bytes_per_element(DType.FLOAT32), 4)
        self.assertEqual(bytes_per_element(DType.INT32), 4)
        self.assertEqual(bytes_per_element(DType.BOOL), 1)
        self.assertEqual(bytes_per_element(DType.COMPLEX64), 8)

    def test_bytes_per_element_string_raises(self) -> None:
        with self.assertRaises(ValueError):
            bytes_per_element(DType.STRING)


if __name__ == "__main__":
    unittest.main()
