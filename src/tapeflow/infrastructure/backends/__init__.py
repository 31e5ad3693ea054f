from .cpu import NumpyBackend

__all__ = [NumpyBackend.__name__]
