import unittest
import warnings

from src.tapeflow.infrastructure.config import DEFAULT_FLAGS, ENV_PREFIX, Environment


class TestEnvironment(unittest.TestCase):
    def test_defaults(self) -> None:
        env = Environment(environ={})
        self.assertEqual(env.flags, dict(DEFAULT_FLAGS))
        self.assertFalse(env.get_bool("DEBUG"))
        self.assertTrue(env.get_bool("CHECK_COMPUTATION_FOR_ERRORS"))

    def test_process_environment_overrides_default(self) -> None:
        env = Environment(environ={ENV_PREFIX + "DEBUG": "1", ENV_PREFIX + "IS_TEST": "yes"})
        self.assertTrue(env.get_bool("DEBUG"))
        self.assertTrue(env.get_bool("IS_TEST"))

    def test_falsy_strings(self) -> None:
        for raw in ("0", "", "false", "FALSE", " False "):
            with self.subTest(raw=raw):
                env = Environment(environ={ENV_PREFIX + "CHECK_COMPUTATION_FOR_ERRORS": raw})
                self.assertFalse(env.get_bool("CHECK_COMPUTATION_FOR_ERRORS"))

    def test_explicit_set_wins_over_process_environment(self) -> None:
        env = Environment(environ={ENV_PREFIX + "DEBUG": "1"})
        env.set("DEBUG", False)
        self.assertFalse(env.get_bool("DEBUG"))

    def test_reset_forgets_overrides(self) -> None:
        env = Environment(environ={})
        env.set("IS_TEST", True)
        env.reset()
        self.assertFalse(env.get_bool("IS_TEST"))

    def test_unknown_flag_raises(self) -> None:
        env = Environment(environ={})
        with self.assertRaises(KeyError):
            env.get_bool("NOPE")
        with self.assertRaises(KeyError):
            env.set("NOPE", True)

    def test_register_flag(self) -> None:
        env = Environment(environ={ENV_PREFIX + "FAST_MATH": "true"})
        env.register_flag("FAST_MATH", False)
        self.assertTrue(env.get_bool("FAST_MATH"))

    def test_register_existing_flag_warns(self) -> None:
        env = Environment(environ={})
        with self.assertWarns(RuntimeWarning):
            env.register_flag("DEBUG", True)
        self.assertTrue(env.get_bool("DEBUG"))

    def test_debug_in_prod_warns(self) -> None:
        env = Environment(environ={})
        env.set("PROD", True)
        with self.assertWarns(RuntimeWarning):
            env.set("DEBUG", True)
        self.assertTrue(env.get_bool("DEBUG"))

    def test_debug_outside_prod_does_not_warn(self) -> None:
        env = Environment(environ={})
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            env.set("DEBUG", True)


if __name__ == "__main__":
    unittest.main()
