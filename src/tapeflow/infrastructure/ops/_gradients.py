"""
Gradient registrations for the built-in ops.

Importing this module registers one backward rule per kernel name in
`GradientRegistry`. Rules are backend independent: they are written with the
ops in `_ops`, which dispatch to whatever backend is active.

Every thunk returns a tensor with its own handle (never `dy` itself), so the
backward pass may dispose partial sums without invalidating anything else.
"""

from __future__ import annotations

from ...domain import _kernel_names as names
from ...domain._dtype import DEFAULT_FLOAT
from ..registry._gradient_registry import register_gradient
from ..tensor._shape import normalize_axis, reduced_shape
from ._ops import (
    broadcast_to,
    cast,
    clone,
    mul,
    neg,
    reshape,
    sum_to_shape,
)


@register_gradient(names.IDENTITY)
def identity_grad(dy, saved, attrs):
    return {"x": lambda: cast(dy, DEFAULT_FLOAT)}


@register_gradient(names.CAST)
def cast_grad(dy, saved, attrs):
    return {"x": lambda: clone(dy)}


@register_gradient(names.RESHAPE, inputs_to_save=["x"])
def reshape_grad(dy, saved, attrs):
    (x,) = saved
    return {"x": lambda: reshape(dy, x.shape)}


@register_gradient(names.BROADCAST_TO, inputs_to_save=["x"])
def broadcast_to_grad(dy, saved, attrs):
    (x,) = saved
    return {"x": lambda: sum_to_shape(dy, x.shape)}


@register_gradient(names.SUM_TO_SHAPE, inputs_to_save=["x"])
def sum_to_shape_grad(dy, saved, attrs):
    (x,) = saved
    return {"x": lambda: broadcast_to(dy, x.shape)}


@register_gradient(names.ADD, inputs_to_save=["a", "b"])
def add_grad(dy, saved, attrs):
    a, b = saved
    return {
        "a": lambda: sum_to_shape(dy, a.shape),
        "b": lambda: sum_to_shape(dy, b.shape),
    }


@register_gradient(names.ADD_N, save_all_inputs=True)
def add_n_grad(dy, saved, attrs):
    # one saved tensor per list entry; only the count is used
    return {f"tensors:{i}": (lambda: clone(dy)) for i in range(len(saved))}


@register_gradient(names.SUB, inputs_to_save=["a", "b"])
def sub_grad(dy, saved, attrs):
    a, b = saved
    return {
        "a": lambda: sum_to_shape(dy, a.shape),
        "b": lambda: neg(sum_to_shape(dy, b.shape)),
    }


@register_gradient(names.MULTIPLY, inputs_to_save=["a", "b"])
def multiply_grad(dy, saved, attrs):
    a, b = saved
    return {
        "a": lambda: sum_to_shape(mul(dy, cast(b, DEFAULT_FLOAT)), a.shape),
        "b": lambda: sum_to_shape(mul(dy, cast(a, DEFAULT_FLOAT)), b.shape),
    }


@register_gradient(names.NEG)
def neg_grad(dy, saved, attrs):
    return {"x": lambda: neg(dy)}


@register_gradient(names.SQUARE, inputs_to_save=["x"])
def square_grad(dy, saved, attrs):
    (x,) = saved
    return {"x": lambda: mul(dy, mul(cast(x, DEFAULT_FLOAT), 2.0))}


@register_gradient(names.EXP, outputs_to_save=[True])
def exp_grad(dy, saved, attrs):
    (y,) = saved
    return {"x": lambda: mul(dy, y)}


@register_gradient(names.SUM, inputs_to_save=["x"])
def sum_grad(dy, saved, attrs):
    (x,) = saved
    axes = normalize_axis(attrs.get("axis"), x.rank)
    kept = reduced_shape(x.shape, axes)
    return {"x": lambda: broadcast_to(reshape(dy, kept), x.shape)}
