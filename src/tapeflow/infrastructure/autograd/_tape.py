"""
Tape recording primitives and the reverse-mode backward pass.

While gradients are being computed, the engine appends one `TapeNode` per
executed kernel to the active tape. Nodes are ordered by execution and
identified by a monotonically increasing id; they reference tensors by
handle, never by back-pointers, so the tape is a flat list.

`filter_nodes_x_to_y` prunes the tape to the nodes lying on some path from
the requested inputs `xs` to the output `y`. `backpropagate_gradients` walks
the pruned nodes in reverse, accumulating one gradient per tensor id.

Both functions are engine-agnostic: the caller injects `tidy` and `add` so
that gradient thunks run inside scopes and partial sums are reclaimed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ...domain._dtype import DEFAULT_FLOAT
from ...domain._errors import (
    DTypeMismatchError,
    GradientNotFoundError,
    ShapeMismatchError,
)
from ..tensor._tensor import Tensor

NodeGradient = Callable[[List[Optional[Tensor]]], Mapping[str, Callable[[], Tensor]]]
"""`gradient(dys) -> {input_name: thunk}` with one `dys` slot per output."""


@dataclass
class TapeNode:
    """
    One recorded kernel execution.

    Attributes
    ----------
    id : int
        Execution order key.
    kernel_name : str
    inputs : dict[str, Tensor]
        Forward inputs by name. List-valued inputs are flattened to
        ``"<name>:<index>"`` keys.
    outputs : list[Tensor]
    saved : list[Tensor]
        Kept clones needed by `gradient`; disposed when the tape is discarded.
    attrs : dict[str, Any]
    gradient : NodeGradient | None
        Backward rule; None when the kernel has no registered gradient.
    """

    id: int
    kernel_name: str
    inputs: Dict[str, Tensor]
    outputs: List[Tensor]
    saved: List[Tensor] = field(default_factory=list)
    attrs: Dict[str, Any] = field(default_factory=dict)
    gradient: Optional[NodeGradient] = None


def flatten_inputs(inputs: Mapping[str, Any]) -> Dict[str, Tensor]:
    """Flatten list-valued kernel inputs to ``"<name>:<index>"`` keys."""
    flat: Dict[str, Tensor] = {}
    for name, value in inputs.items():
        if isinstance(value, Tensor):
            flat[name] = value
        elif isinstance(value, (list, tuple)):
            for i, t in enumerate(value):
                flat[f"{name}:{i}"] = t
        else:
            raise TypeError(
                f"Kernel input '{name}' must be a Tensor or a sequence of Tensors, "
                f"got {type(value)!r}"
            )
    return flat


def filter_nodes_x_to_y(
    tape: Sequence[TapeNode], xs: Sequence[Tensor], y: Tensor
) -> List[TapeNode]:
    """
    Return the nodes on some path from `xs` to `y`, in execution order.

    Two sweeps are made. The forward sweep marks every tensor computed
    (transitively) from some `x` and every node consuming one; the backward
    sweep marks every tensor `y` (transitively) depends on and every node
    producing one. A node is kept when both sweeps marked it. Each kept node
    is a shallow copy whose `inputs` only retain the inputs reachable from
    `xs`; gradients are never propagated into the other inputs.
    """
    tensors_from_x: set[int] = {x.id for x in xs}
    nodes_from_x: set[int] = set()
    for node in tape:
        if any(t.id in tensors_from_x for t in node.inputs.values()):
            nodes_from_x.add(node.id)
            tensors_from_x.update(o.id for o in node.outputs)

    tensors_lead_to_y: set[int] = {y.id}
    nodes_to_y: set[int] = set()
    for node in reversed(tape):
        if any(o.id in tensors_lead_to_y for o in node.outputs):
            nodes_to_y.add(node.id)
            tensors_lead_to_y.update(t.id for t in node.inputs.values())

    filtered: List[TapeNode] = []
    for node in tape:
        if node.id in nodes_from_x and node.id in nodes_to_y:
            pruned = {
                name: t for name, t in node.inputs.items() if t.id in tensors_from_x
            }
            filtered.append(replace(node, inputs=pruned))
    return filtered


def backpropagate_gradients(
    accumulated: Dict[int, Tensor],
    filtered_tape: Sequence[TapeNode],
    tidy: Callable[[Callable[[], Tensor]], Tensor],
    add: Callable[[Tensor, Tensor], Tensor],
) -> None:
    """
    Run the backward pass over `filtered_tape`, updating `accumulated`.

    Parameters
    ----------
    accumulated : dict[int, Tensor]
        Tensor id -> gradient. Must be seeded with the gradient of `y`.
    filtered_tape : Sequence[TapeNode]
        Output of `filter_nodes_x_to_y`.
    tidy : Callable
        Runs a gradient thunk inside a scope.
    add : Callable
        Elementwise addition used to sum contributions.

    Raises
    ------
    GradientNotFoundError
        If a node on the path has no gradient function.
    LookupError
        If a gradient function omits a required input.
    DTypeMismatchError
        If a gradient is not of the default floating type.
    ShapeMismatchError
        If a gradient's shape differs from its input's shape.
    """
    for node in reversed(filtered_tape):
        dys: List[Optional[Tensor]] = [accumulated.get(o.id) for o in node.outputs]

        if node.gradient is None:
            raise GradientNotFoundError(node.kernel_name)

        input_gradients = node.gradient(dys)

        for input_name, x in node.inputs.items():
            if input_name not in input_gradients:
                raise LookupError(
                    f"Cannot backprop through input '{input_name}' of "
                    f"'{node.kernel_name}'. Available gradients found: "
                    f"{sorted(input_gradients)}."
                )

            dx = tidy(input_gradients[input_name])
            if dx.dtype is not DEFAULT_FLOAT:
                raise DTypeMismatchError(
                    f"Gradient of '{node.kernel_name}' for input '{input_name}'",
                    DEFAULT_FLOAT,
                    dx.dtype,
                )
            if dx.shape != x.shape:
                raise ShapeMismatchError(
                    f"Gradient of '{node.kernel_name}' for input '{input_name}'",
                    x.shape,
                    dx.shape,
                    detail="gradient shape must match the input shape",
                )

            current = accumulated.get(x.id)
            if current is None:
                accumulated[x.id] = dx
            else:
                accumulated[x.id] = add(current, dx)
                # still held as another input's gradient
                if not any(g is current for g in accumulated.values()):
                    current.dispose()
