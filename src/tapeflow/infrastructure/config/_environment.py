"""
Runtime feature flags.

`Environment` holds the boolean flags the engine consults to decide how much
extra bookkeeping to pay for:

- ``DEBUG``: profile and log every kernel, warn on gradient overrides.
- ``IS_TEST``: leak-checking mode; every kernel is checked for unaccounted
  data ids.
- ``PROD``: production build; disables leak checks and debug-only warnings.
- ``CHECK_COMPUTATION_FOR_ERRORS``: in debug mode, warn on NaN / Inf outputs.

Each flag may be overridden from the process environment via
``TAPEFLOW_<FLAG>``. Values ``"0"``, ``""`` and ``"false"`` (any case) mean
off; anything else means on.
"""

from __future__ import annotations

import os
import warnings
from typing import Dict, Mapping, Optional

ENV_PREFIX = "TAPEFLOW_"

DEFAULT_FLAGS: Mapping[str, bool] = {
    "DEBUG": False,
    "IS_TEST": False,
    "PROD": False,
    "CHECK_COMPUTATION_FOR_ERRORS": True,
}

_FALSY = ("0", "", "false")


def _parse_flag(raw: str) -> bool:
    return raw.strip().lower() not in _FALSY


class Environment:
    """
    Registry of boolean runtime flags.

    Resolution order for a flag is: an explicit `set`, then the process
    environment (``TAPEFLOW_<FLAG>``), then the registered default.

    Parameters
    ----------
    environ : Mapping[str, str] | None
        Source of overrides. Defaults to `os.environ`; tests pass a dict.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        self._environ = os.environ if environ is None else environ
        self._defaults: Dict[str, bool] = dict(DEFAULT_FLAGS)
        self._values: Dict[str, bool] = {}

    def register_flag(self, name: str, default: bool) -> None:
        if name in self._defaults:
            warnings.warn(
                f"Flag '{name}' is already registered; overwriting its default.",
                RuntimeWarning,
                stacklevel=2,
            )
        self._defaults[name] = bool(default)

    def get_bool(self, name: str) -> bool:
        """
        Return the current value of flag `name`.

        Raises
        ------
        KeyError
            If `name` was never registered.
        """
        if name in self._values:
            return self._values[name]
        if name not in self._defaults:
            raise KeyError(f"Cannot evaluate flag '{name}': no registration found.")
        raw = self._environ.get(ENV_PREFIX + name)
        value = self._defaults[name] if raw is None else _parse_flag(raw)
        self._values[name] = value
        return value

    def set(self, name: str, value: bool) -> None:
        if name not in self._defaults:
            raise KeyError(f"Cannot set flag '{name}': no registration found.")
        if name == "DEBUG" and value and self.get_bool("PROD"):
            warnings.warn(
                "Debug mode is ON in a production build. Kernels will be "
                "profiled and their outputs downloaded, which slows execution.",
                RuntimeWarning,
                stacklevel=2,
            )
        self._values[name] = bool(value)

    def reset(self) -> None:
        """Forget explicit overrides; the next read re-resolves each flag."""
        self._values.clear()

    @property
    def flags(self) -> Dict[str, bool]:
        return {name: self.get_bool(name) for name in self._defaults}


ENV = Environment()
"""Process-wide default environment shared by the registries and default engines."""
