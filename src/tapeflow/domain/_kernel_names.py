"""
Names of the built-in kernels.

Kernel and gradient registrations, and the op wrappers dispatching to them,
refer to kernels by these names.
"""

IDENTITY = "Identity"
CAST = "Cast"
RESHAPE = "Reshape"
BROADCAST_TO = "BroadcastTo"
SUM_TO_SHAPE = "SumToShape"
ADD = "Add"
ADD_N = "AddN"
SUB = "Sub"
MULTIPLY = "Multiply"
NEG = "Neg"
SQUARE = "Square"
EXP = "Exp"
SUM = "Sum"
