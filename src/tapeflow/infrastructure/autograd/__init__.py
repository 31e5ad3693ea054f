from ._tape import (
    TapeNode,
    backpropagate_gradients,
    filter_nodes_x_to_y,
    flatten_inputs,
)

__all__ = [
    TapeNode.__name__,
    backpropagate_gradients.__name__,
    filter_nodes_x_to_y.__name__,
    flatten_inputs.__name__,
]
