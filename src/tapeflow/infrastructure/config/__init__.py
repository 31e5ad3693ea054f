from ._environment import DEFAULT_FLAGS, ENV, ENV_PREFIX, Environment

__all__ = [
    "DEFAULT_FLAGS",
    "ENV",
    "ENV_PREFIX",
    "Environment",
]
