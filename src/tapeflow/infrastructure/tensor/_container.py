"""
Helpers for walking arbitrary containers of tensors.

Scopes and `dispose(container)` accept any nesting of lists, tuples, sets
and dicts. `get_tensors_in_container` flattens such a structure into the
tensors it reaches, each listed once, in first-seen order.
"""

from __future__ import annotations

from typing import Any, List

from ._tensor import Tensor


def get_tensors_in_container(result: Any) -> List[Tensor]:
    found: List[Tensor] = []
    seen_tensors: set[int] = set()
    seen_containers: set[int] = set()

    def walk(obj: Any) -> None:
        if isinstance(obj, Tensor):
            if obj.id not in seen_tensors:
                seen_tensors.add(obj.id)
                found.append(obj)
            return
        if isinstance(obj, dict):
            children = obj.values()
        elif isinstance(obj, (list, tuple, set, frozenset)):
            children = obj
        else:
            return
        # guard against self-referencing containers
        if id(obj) in seen_containers:
            return
        seen_containers.add(id(obj))
        for child in children:
            walk(child)

    walk(result)
    return found
