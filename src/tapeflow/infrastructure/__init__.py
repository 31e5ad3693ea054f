"""
Concrete runtime: configuration, storage, registries, tensors, autodiff,
the engine, the NumPy backend and the built-in ops.
"""
